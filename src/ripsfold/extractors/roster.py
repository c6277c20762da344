"""Patient roster extraction from USUARIOS lines.

Roster lines have no fixed column order across exporters, so each attribute
is sniffed from the split fields by shape.
"""

from __future__ import annotations

import re

from ripsfold.core.utils import normalize_id
from ripsfold.models import PatientRecord

_DIGITS_RE = re.compile(r"^\d+$", re.ASCII)
_ID_FIELD_RE = re.compile(r"^(?:CC|TI|RC|CE|PA|PE|CN|MS)?-?\d{3,20}$", re.IGNORECASE | re.ASCII)
_SEX_RE = re.compile(r"^(M|F)$", re.IGNORECASE)
_DATE_FIELD_RE = re.compile(r"^(?:\d{4}-\d{2}-\d{2}|\d{2}/\d{2}/\d{4})$", re.ASCII)
_LETTER_RE = re.compile(r"[A-Za-zÁÉÍÓÚÜÑáéíóúüñ]")

MIN_ID_LENGTH = 3
MAX_NAME_PARTS = 4


def _candidate_id(fields: list[str]) -> str:
    """Second field when purely numeric, else the first ID-shaped field."""
    if len(fields) > 1 and _DIGITS_RE.match(fields[1]):
        return fields[1]
    return next((f for f in fields if _ID_FIELD_RE.match(f)), "")


def _is_name_part(value: str) -> bool:
    return (
        bool(_LETTER_RE.search(value))
        and not _SEX_RE.match(value)
        and not _DIGITS_RE.match(value)
        and len(value) > 2
    )


def extract_patient(fields: list[str]) -> PatientRecord | None:
    """Build a PatientRecord from roster fields, or None when no usable ID."""
    patient_id = normalize_id(_candidate_id(fields))
    if len(patient_id) < MIN_ID_LENGTH:
        return None

    sex = next((f for f in fields if _SEX_RE.match(f)), "").upper()
    birth_date = next((f for f in fields if _DATE_FIELD_RE.match(f)), "")
    name_parts = [f for f in fields if _is_name_part(f)]

    return PatientRecord(
        patient_id=patient_id,
        sex=sex,
        birth_date=birth_date,
        full_name=" ".join(name_parts[:MAX_NAME_PARTS]),
    )


def merge_patient(roster: dict[str, PatientRecord], patient: PatientRecord) -> PatientRecord:
    """Merge into the roster: each non-empty incoming field replaces the stored one.

    Empty incoming fields keep the previous value. Returns the stored record.
    """
    prev = roster.get(patient.patient_id) or PatientRecord(patient_id=patient.patient_id)
    merged = PatientRecord(
        patient_id=patient.patient_id,
        sex=patient.sex or prev.sex,
        birth_date=patient.birth_date or prev.birth_date,
        full_name=patient.full_name or prev.full_name,
    )
    roster[patient.patient_id] = merged
    return merged


def fold_roster(
    base: dict[str, PatientRecord], partial: dict[str, PatientRecord]
) -> dict[str, PatientRecord]:
    """Fold a per-file roster into ``base`` in the partial's insertion order.

    Applying the merge rule entry by entry gives the same result as merging
    the file's lines directly into ``base``.
    """
    for patient in partial.values():
        merge_patient(base, patient)
    return base
