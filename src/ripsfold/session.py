"""In-memory engine state: committed records, roster, catalog, goals and scale.

A batch is committed only after every file and the catalog parsed cleanly;
on failure the previously committed state is left exactly as it was.
Callers get snapshots (tuples, read-only mappings), never the live state.
"""

from __future__ import annotations

import logging
from datetime import date
from types import MappingProxyType
from typing import Any, Iterable, Mapping

from ripsfold.analysis.aggregate import validate_scale
from ripsfold.analysis.dashboard import build_dashboard
from ripsfold.analysis.data_quality import (
    DuplicateKey,
    remove_all_duplicates,
    remove_duplicate_group,
)
from ripsfold.analysis.records import search_records
from ripsfold.catalog import Catalog, load_catalog
from ripsfold.config import default_goals
from ripsfold.models import (
    Dashboard,
    IngestBatch,
    PatientRecord,
    ServiceRecord,
    ServiceTypeGoal,
)
from ripsfold.sources.base import (
    DEFAULT_LAYOUT,
    IngestError,
    MissingInputError,
    RipsLayout,
)
from ripsfold.sources.rips import process_rips_files

logger = logging.getLogger(__name__)


class RipsSession:
    """Committed ingestion state plus the configuration aggregation needs."""

    def __init__(
        self,
        goals: Iterable[ServiceTypeGoal] | None = None,
        scale: int = 1,
        layout: RipsLayout = DEFAULT_LAYOUT,
    ):
        self.goals: list[ServiceTypeGoal] = list(goals) if goals is not None else default_goals()
        self.scale = validate_scale(scale)
        self.layout = layout
        self._records: list[ServiceRecord] = []
        self._roster: dict[str, PatientRecord] = {}
        self._catalog: Catalog = MappingProxyType({})

    @property
    def records(self) -> tuple[ServiceRecord, ...]:
        return tuple(self._records)

    @property
    def roster(self) -> Mapping[str, PatientRecord]:
        return MappingProxyType(dict(self._roster))

    @property
    def catalog(self) -> Catalog:
        return self._catalog

    def ingest(
        self,
        files: Iterable[tuple[str, str | bytes]],
        catalog_rows: Iterable[Mapping[str, Any]] | None,
    ) -> IngestBatch:
        """Load the catalog, ingest the files and commit the batch atomically.

        The batch's records replace the committed records; its roster lines
        are merged into the committed roster.

        Raises:
            MissingInputError: no files or no catalog.
            IngestError: the catalog or any file failed to parse.
        """
        if catalog_rows is None:
            raise MissingInputError("Select the RIPS files (.txt) and the CUPS catalog (.xlsx).")
        try:
            catalog = load_catalog(catalog_rows)
        except IngestError:
            raise
        except Exception as e:
            logger.error("Catalog parse failed: %s", e)
            raise IngestError(f"Error in catalog format: {e}") from e

        batch = process_rips_files(files, catalog, self._roster, self.layout)

        self._catalog = catalog
        self._records = list(batch.records)
        self._roster = dict(batch.roster)
        return batch

    def restore(
        self, records: Iterable[ServiceRecord], patients: Iterable[PatientRecord]
    ) -> None:
        """Pre-seed state from a saved session."""
        self._records = list(records)
        self._roster = {p.patient_id: p for p in patients}

    def clear(self) -> None:
        self._records = []
        self._roster = {}

    def set_goals(self, goals: Iterable[ServiceTypeGoal], scale: int | None = None) -> None:
        self.goals = list(goals)
        if scale is not None:
            self.scale = validate_scale(scale)

    def dashboard(self, today: date | None = None) -> Dashboard:
        return build_dashboard(self._records, self._roster, self.goals, self.scale, today)

    def search(self, term: str) -> list[ServiceRecord]:
        return search_records(self._records, term)

    def remove_duplicate_group(self, key: DuplicateKey) -> int:
        """Keep the first record of ``key`` and drop its later copies. Returns removed count."""
        self._records, removed = remove_duplicate_group(self._records, key)
        logger.info("Removed %d extra copies of %s", removed, "|".join(key))
        return removed

    def remove_all_duplicates(self) -> int:
        """Keep one record per (patient, code, date). Irreversible. Returns removed count."""
        self._records, removed = remove_all_duplicates(self._records)
        logger.info("Removed %d duplicate records", removed)
        return removed
