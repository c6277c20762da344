"""Code and patient rankings built from an Aggregates pass."""

from __future__ import annotations

from datetime import date
from typing import Mapping

from ripsfold.analysis.aggregate import PLACEHOLDER, Aggregates
from ripsfold.core.utils import age_bracket, age_detailed
from ripsfold.models import CodeRankingRow, PatientRankingRow, PatientRecord

UNREGISTERED = "NO REGISTRADO"


def top_patient(patient_counts: Mapping[str, int]) -> tuple[str, int]:
    """Patient with the highest count; the first one seen wins ties."""
    best_id, best_count = "", 0
    for pid, count in patient_counts.items():
        if count > best_count:
            best_id, best_count = pid, count
    return best_id, best_count


def build_code_ranking(
    agg: Aggregates,
    roster: Mapping[str, PatientRecord],
    today: date | None = None,
) -> list[CodeRankingRow]:
    """One row per code, sorted by count descending (stable on first appearance)."""
    rows = []
    for code, count in agg.code_counts.items():
        name, service_type = agg.code_info[code]
        pid, pid_count = top_patient(agg.code_patient_counts.get(code, {}))
        patient = roster.get(pid)
        birth_date = patient.birth_date if patient else ""
        dates = agg.code_patient_dates.get(code, {}).get(pid, set())
        rows.append(
            CodeRankingRow(
                service_code=code,
                service_name=name,
                service_type=service_type,
                count=count,
                top_patient_id=pid,
                top_patient_count=pid_count,
                top_patient_name=patient.full_name if patient else "",
                top_patient_sex=patient.sex if patient else "",
                top_patient_age=age_detailed(birth_date, today),
                top_patient_bracket=age_bracket(birth_date, today),
                top_patient_dates=", ".join(sorted(dates)),
            )
        )
    rows.sort(key=lambda r: -r.count)
    return rows


def build_patient_ranking(
    agg: Aggregates,
    roster: Mapping[str, PatientRecord],
    today: date | None = None,
) -> list[PatientRankingRow]:
    """One row per patient, sorted by count descending (stable on first appearance).

    Code and date lists keep original record order and are not deduplicated.
    """
    rows = []
    for pid, count in agg.patient_counts.items():
        patient = roster.get(pid)
        birth_date = patient.birth_date if patient else ""
        rows.append(
            PatientRankingRow(
                patient_id=pid,
                full_name=(patient.full_name if patient else "") or UNREGISTERED,
                sex=(patient.sex if patient else "") or PLACEHOLDER,
                age=age_detailed(birth_date, today) or PLACEHOLDER,
                bracket=age_bracket(birth_date, today) or PLACEHOLDER,
                count=count,
                codes=tuple(agg.patient_codes.get(pid, [])),
                dates=tuple(agg.patient_dates.get(pid, [])),
            )
        )
    rows.sort(key=lambda r: -r.count)
    return rows
