"""Aggregation passes over service records: counts per type, code and patient.

Every dict here is insertion-ordered by first appearance in the record list,
which is what makes ranking tie-breaks reproducible.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable, Mapping

from ripsfold.core.utils import round_half_up
from ripsfold.models import (
    ChartPoint,
    CodeRankingRow,
    PatientRankingRow,
    PatientRecord,
    ProcessingStats,
    ServiceRecord,
    ServiceTypeGoal,
)

VALID_SCALES = (1, 2, 3, 6, 12)

COLOR_RED = "red"
COLOR_YELLOW = "yellow"
COLOR_GREEN = "green"

COLOR_HEX = {
    COLOR_RED: "#ef4444",
    COLOR_YELLOW: "#eab308",
    COLOR_GREEN: "#10b981",
}

WARNING_PERCENT = 80
MET_PERCENT = 100

PLACEHOLDER = "-"


@dataclass
class Aggregates:
    """Counts and groupings from a single pass over the filtered records."""

    records: list[ServiceRecord] = field(default_factory=list)
    type_counts: dict[str, int] = field(default_factory=dict)
    code_counts: dict[str, int] = field(default_factory=dict)
    # code -> (name, type) of its first record
    code_info: dict[str, tuple[str, str]] = field(default_factory=dict)
    code_patient_counts: dict[str, dict[str, int]] = field(default_factory=dict)
    code_patient_dates: dict[str, dict[str, set[str]]] = field(default_factory=dict)
    patient_counts: dict[str, int] = field(default_factory=dict)
    patient_codes: dict[str, list[str]] = field(default_factory=dict)
    patient_dates: dict[str, list[str]] = field(default_factory=dict)


def validate_scale(scale: int) -> int:
    if scale not in VALID_SCALES:
        raise ValueError(f"Period scale must be one of {VALID_SCALES}, got {scale!r}")
    return scale


def active_types(goals: Iterable[ServiceTypeGoal]) -> set[str]:
    return {g.service_type for g in goals if g.active}


def filter_active(
    records: Iterable[ServiceRecord], goals: Iterable[ServiceTypeGoal]
) -> list[ServiceRecord]:
    """Keep only records whose service type has an active goal."""
    types = active_types(goals)
    return [r for r in records if r.service_type in types]


def aggregate_records(records: list[ServiceRecord]) -> Aggregates:
    """Count records per type, per code, per (code, patient) and per patient."""
    agg = Aggregates(records=records)
    for r in records:
        agg.type_counts[r.service_type] = agg.type_counts.get(r.service_type, 0) + 1

        agg.code_counts[r.service_code] = agg.code_counts.get(r.service_code, 0) + 1
        agg.code_info.setdefault(r.service_code, (r.service_name, r.service_type))

        pac_counts = agg.code_patient_counts.setdefault(r.service_code, {})
        pac_counts[r.patient_id] = pac_counts.get(r.patient_id, 0) + 1
        agg.code_patient_dates.setdefault(r.service_code, {}).setdefault(
            r.patient_id, set()
        ).add(r.service_date)

        agg.patient_counts[r.patient_id] = agg.patient_counts.get(r.patient_id, 0) + 1
        agg.patient_codes.setdefault(r.patient_id, []).append(r.service_code)
        agg.patient_dates.setdefault(r.patient_id, []).append(r.service_date)
    return agg


def goal_color(capped_percent: int) -> str:
    """Red below 80%, yellow from 80% to 99%, green at 100%."""
    if capped_percent >= MET_PERCENT:
        return COLOR_GREEN
    if capped_percent >= WARNING_PERCENT:
        return COLOR_YELLOW
    return COLOR_RED


def build_chart(
    goals: Iterable[ServiceTypeGoal], type_counts: Mapping[str, int], scale: int = 1
) -> list[ChartPoint]:
    """One ChartPoint per active goal, in goal order."""
    points = []
    for goal in goals:
        if not goal.active:
            continue
        executed = type_counts.get(goal.service_type, 0)
        target = goal.monthly_goal * scale
        percent = round_half_up(executed / target * 100) if target > 0 else 0
        capped = min(percent, MET_PERCENT)
        points.append(
            ChartPoint(
                service_type=goal.service_type,
                target=target,
                executed=executed,
                percent=percent,
                capped_percent=capped,
                color=goal_color(capped),
            )
        )
    return points


def build_stats(
    total_records: int,
    roster: Mapping[str, PatientRecord],
    code_ranking: list[CodeRankingRow],
    patient_ranking: list[PatientRankingRow],
) -> ProcessingStats:
    """Top-line numbers. total_patients is the roster size, not the filtered set."""
    top_code = code_ranking[0] if code_ranking else None
    top_patient = patient_ranking[0] if patient_ranking else None
    return ProcessingStats(
        total_records=total_records,
        total_patients=len(roster),
        top_code=top_code.service_code if top_code else PLACEHOLDER,
        top_code_name=top_code.service_name if top_code else "",
        top_code_count=top_code.count if top_code else 0,
        top_patient_id=top_patient.patient_id if top_patient else PLACEHOLDER,
        top_patient_name=top_patient.full_name if top_patient else "",
        top_patient_count=top_patient.count if top_patient else 0,
    )
