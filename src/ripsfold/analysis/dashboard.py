"""Full aggregation pass: stats, goal chart, rankings and duplicates."""

from __future__ import annotations

from datetime import date
from typing import Iterable, Mapping

from ripsfold.analysis.aggregate import (
    aggregate_records,
    build_chart,
    build_stats,
    filter_active,
    validate_scale,
)
from ripsfold.analysis.data_quality import find_duplicates
from ripsfold.analysis.rankings import build_code_ranking, build_patient_ranking
from ripsfold.models import Dashboard, PatientRecord, ServiceRecord, ServiceTypeGoal


def build_dashboard(
    records: Iterable[ServiceRecord],
    roster: Mapping[str, PatientRecord],
    goals: Iterable[ServiceTypeGoal],
    scale: int = 1,
    today: date | None = None,
) -> Dashboard:
    """Recompute every derived view from scratch.

    Only records whose service type has an active goal are counted, ranked
    or checked for duplicates. The patient total in the stats is the whole
    roster.

    Args:
        records: All service records, in ingestion order.
        roster: Canonical patient ID -> PatientRecord.
        goals: Configured goals; order sets the chart order.
        scale: Period multiplier for the monthly goals (1, 2, 3, 6 or 12).
        today: Reference date for ages (defaults to today).
    """
    validate_scale(scale)
    goals = list(goals)
    filtered = filter_active(records, goals)
    agg = aggregate_records(filtered)

    code_ranking = build_code_ranking(agg, roster, today)
    patient_ranking = build_patient_ranking(agg, roster, today)

    return Dashboard(
        stats=build_stats(len(filtered), roster, code_ranking, patient_ranking),
        chart=build_chart(goals, agg.type_counts, scale),
        code_ranking=code_ranking,
        patient_ranking=patient_ranking,
        duplicates=find_duplicates(filtered),
    )
