"""Tests for ripsfold.db.RipsDB."""

from ripsfold.db import RipsDB
from ripsfold.models import IngestBatch, PatientRecord


class TestSession:
    def test_empty_load(self, tmp_db):
        assert tmp_db.load_session() is None

    def test_round_trip_keeps_order(self, tmp_db, sample_records, sample_roster):
        patients = list(reversed(list(sample_roster.values())))
        assert tmp_db.save_session(sample_records, patients)
        records, loaded_patients = tmp_db.load_session()
        assert records == sample_records
        assert loaded_patients == patients

    def test_save_replaces(self, tmp_db, sample_records, sample_roster):
        tmp_db.save_session(sample_records, sample_roster.values())
        tmp_db.save_session(sample_records[:1], [PatientRecord("1")])
        records, patients = tmp_db.load_session()
        assert records == sample_records[:1]
        assert patients == [PatientRecord("1")]

    def test_clear(self, tmp_db, sample_records):
        tmp_db.save_session(sample_records, [])
        assert tmp_db.clear_session()
        assert tmp_db.load_session() is None

    def test_save_failure_returns_false(self, tmp_path, sample_records):
        db = RipsDB(str(tmp_path / "closed.db"))
        db.init_schema()
        db.close()
        assert db.save_session(sample_records, []) is False

    def test_persists_across_connections(self, tmp_path, sample_records):
        path = str(tmp_path / "persist.db")
        with RipsDB(path) as db:
            db.init_schema()
            db.save_session(sample_records, [])
        with RipsDB(path) as db:
            records, _ = db.load_session()
        assert records == sample_records


class TestLoadLog:
    def test_log_and_sources(self, tmp_db, sample_records, sample_roster):
        batch = IngestBatch(records=sample_records, roster=dict(sample_roster), files=["US001.txt", "AC001.txt"])
        chash = tmp_db.log_load(batch, 0.5)
        assert len(chash) == 64

        [source] = tmp_db.sources()
        assert source["files"] == ["US001.txt", "AC001.txt"]
        assert source["service_records_count"] == 5
        assert tmp_db.last_load_counts() == {"files": 2, "service_records": 5, "patients": 2}

    def test_hash_is_deterministic(self, tmp_db, sample_records):
        batch = IngestBatch(records=sample_records, files=["a"])
        assert tmp_db.log_load(batch) == tmp_db.log_load(batch)

    def test_no_loads(self, tmp_db):
        assert tmp_db.sources() == []
        assert tmp_db.last_load_counts() is None


class TestQuery:
    def test_summary_excludes_load_log(self, tmp_db, sample_records):
        tmp_db.save_session(sample_records, [])
        assert tmp_db.summary() == {"patients": 0, "service_records": 5}

    def test_query(self, tmp_db, sample_records):
        tmp_db.save_session(sample_records, [])
        rows = tmp_db.query(
            "SELECT service_code, COUNT(*) AS n FROM service_records GROUP BY service_code ORDER BY n DESC"
        )
        assert rows[0] == {"service_code": "890201", "n": 3}
