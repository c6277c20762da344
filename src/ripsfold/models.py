"""Data model for RIPS ingestion and the audit views derived from it.

Service and patient records map 1:1 to SQLite tables. The derived views
(chart points, rankings, duplicate groups, stats) are recomputed from the
records on every aggregation pass and are never stored.
"""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass(frozen=True)
class ServiceRecord:
    """One ingested encounter: a patient, a CUPS code and a date."""

    service_code: str
    patient_id: str
    service_type: str = ""  # from the catalog, not the line
    service_name: str = ""  # from the catalog, not the line
    service_date: str = ""  # verbatim YYYY-MM-DD or DD/MM/YYYY, may be empty

    @property
    def duplicate_key(self) -> tuple[str, str, str]:
        return (self.patient_id, self.service_code, self.service_date)


@dataclass(frozen=True)
class PatientRecord:
    """Patient demographics, keyed by canonical ID."""

    patient_id: str
    sex: str = ""  # M, F or empty
    birth_date: str = ""  # ISO YYYY-MM-DD or DD/MM/YYYY
    full_name: str = ""


@dataclass(frozen=True)
class CatalogEntry:
    """One CUPS catalog row."""

    service_code: str
    service_type: str = ""
    display_name: str = ""


@dataclass
class ServiceTypeGoal:
    """Monthly target for a service type."""

    service_type: str
    monthly_goal: int = 0
    active: bool = True


@dataclass(frozen=True)
class DuplicateGroup:
    """Records sharing the exact (patient, code, date) triple."""

    patient_id: str
    service_code: str
    service_date: str
    count: int
    record: ServiceRecord  # first record of the group

    @property
    def key(self) -> tuple[str, str, str]:
        return (self.patient_id, self.service_code, self.service_date)


@dataclass(frozen=True)
class ChartPoint:
    """Executed count versus scaled goal for one active service type."""

    service_type: str
    target: int
    executed: int
    percent: int
    capped_percent: int
    color: str  # red, yellow, green


@dataclass(frozen=True)
class CodeRankingRow:
    """One CUPS code with its most frequent patient."""

    service_code: str
    service_name: str
    service_type: str
    count: int
    top_patient_id: str = ""
    top_patient_count: int = 0
    top_patient_name: str = ""
    top_patient_sex: str = ""
    top_patient_age: str = ""
    top_patient_bracket: str = ""
    top_patient_dates: str = ""  # sorted, comma-joined distinct dates


@dataclass(frozen=True)
class PatientRankingRow:
    """One patient with every code and date they appear in."""

    patient_id: str
    full_name: str
    sex: str
    age: str
    bracket: str
    count: int
    codes: tuple[str, ...] = ()  # original record order
    dates: tuple[str, ...] = ()  # original record order


@dataclass(frozen=True)
class ProcessingStats:
    """Top-line numbers for the dashboard header."""

    total_records: int = 0
    total_patients: int = 0  # roster size, not limited to filtered records
    top_code: str = "-"
    top_code_name: str = ""
    top_code_count: int = 0
    top_patient_id: str = "-"
    top_patient_name: str = ""
    top_patient_count: int = 0


@dataclass(frozen=True)
class Dashboard:
    """Every derived view from one aggregation pass."""

    stats: ProcessingStats
    chart: list[ChartPoint] = field(default_factory=list)
    code_ranking: list[CodeRankingRow] = field(default_factory=list)
    patient_ranking: list[PatientRankingRow] = field(default_factory=list)
    duplicates: list[DuplicateGroup] = field(default_factory=list)


@dataclass
class IngestBatch:
    """Result of one ingestion batch, ready to commit.

    ``roster`` already contains the patients known before the batch, merged
    with the batch's roster lines.
    """

    records: list[ServiceRecord] = field(default_factory=list)
    roster: dict[str, PatientRecord] = field(default_factory=dict)
    files: list[str] = field(default_factory=list)

    def counts(self) -> dict[str, int]:
        """Return counts per table, matching the keys logged by RipsDB.log_load()."""
        return {
            "files": len(self.files),
            "service_records": len(self.records),
            "patients": len(self.roster),
        }
