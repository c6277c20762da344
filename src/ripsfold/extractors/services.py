"""Service record extraction from consultation/procedure/medication lines."""

from __future__ import annotations

import re
from typing import Mapping

from ripsfold.core.utils import normalize_id, parse_date_from_line
from ripsfold.models import CatalogEntry, ServiceRecord

_CODE_RE = re.compile(r"\b\d{6}\b", re.ASCII)
_PATIENT_RE = re.compile(
    r"\b(?:CC|TI|RC|CE|PA|PE|CN|MS)-?\d{4,15}\b|\b\d{6,15}\b", re.ASCII
)

NO_ID = "SIN_ID"


def find_service_code(line: str) -> str:
    """First standalone six-digit token, or ""."""
    m = _CODE_RE.search(line)
    return m.group(0) if m else ""


def find_patient_id(line: str) -> str:
    """Normalized patient ID from the leftmost ID-shaped token, or NO_ID."""
    m = _PATIENT_RE.search(line)
    if not m:
        return NO_ID
    return normalize_id(m.group(0)) or NO_ID


def extract_service(line: str, catalog: Mapping[str, CatalogEntry]) -> ServiceRecord | None:
    """Build a ServiceRecord from a raw line, or None if its code is not catalogued.

    Service type and name always come from the catalog.
    """
    code = find_service_code(line)
    if not code:
        return None
    entry = catalog.get(code)
    if entry is None:
        return None

    return ServiceRecord(
        service_code=code,
        patient_id=find_patient_id(line),
        service_type=entry.service_type,
        service_name=entry.display_name,
        service_date=parse_date_from_line(line),
    )
