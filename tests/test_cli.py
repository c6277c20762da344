"""Tests for the ripsfold command line."""

import pytest

from ripsfold.cli import main
from ripsfold.config import save_config
from ripsfold.db import RipsDB
from ripsfold.models import ServiceTypeGoal

from conftest import LABORATORIO, MEDICINA


@pytest.fixture
def paths(tmp_path):
    return {
        "db": str(tmp_path / "rips.db"),
        "config": str(tmp_path / "ripsfold.toml"),
        "out": tmp_path / "out",
    }


@pytest.fixture
def loaded(paths, rips_dir, catalog_xlsx):
    """Database loaded from the sample files and a config with two active goals."""
    main(["load", str(rips_dir), "--catalog", str(catalog_xlsx), "--db", paths["db"]])
    save_config(
        [ServiceTypeGoal(MEDICINA, 10), ServiceTypeGoal(LABORATORIO, 1)],
        scale=1,
        config_path=paths["config"],
    )
    return paths


class TestLoad:
    def test_load_directory(self, capsys, loaded):
        out = capsys.readouterr().out
        assert "Service records:" in out
        with RipsDB(loaded["db"]) as db:
            records, patients = db.load_session()
            assert len(records) == 5
            assert len(patients) == 2
            assert db.last_load_counts()["files"] == 3

    def test_load_missing_catalog(self, paths, rips_dir, tmp_path, capsys):
        with pytest.raises(SystemExit) as exc:
            main(["load", str(rips_dir), "--catalog", str(tmp_path / "none.xlsx"), "--db", paths["db"]])
        assert exc.value.code == 1
        assert "Error" in capsys.readouterr().err

    def test_failed_load_keeps_previous_session(self, loaded, tmp_path):
        with pytest.raises(SystemExit):
            main(["load", str(tmp_path / "missing.txt"), "--catalog", str(tmp_path / "CUPS.xlsx"),
                  "--db", loaded["db"]])
        with RipsDB(loaded["db"]) as db:
            records, _ = db.load_session()
        assert len(records) == 5

    def test_no_command(self):
        with pytest.raises(SystemExit):
            main([])


class TestReports:
    def test_summary(self, loaded, capsys):
        main(["summary", "--db", loaded["db"]])
        out = capsys.readouterr().out
        assert "service_records" in out
        assert "Load History" in out

    def test_goals(self, loaded, capsys):
        main(["goals", "--db", loaded["db"], "--config", loaded["config"]])
        out = capsys.readouterr().out
        assert "30%" in out
        assert "100%" in out

    def test_goals_bad_scale(self, loaded):
        with pytest.raises(SystemExit):
            main(["goals", "--db", loaded["db"], "--config", loaded["config"], "--scale", "5"])

    def test_rankings(self, loaded, capsys):
        main(["rankings", "--db", loaded["db"], "--config", loaded["config"], "--by", "patients"])
        out = capsys.readouterr().out
        assert "GOMEZ PEREZ ANA MARIA" in out

    def test_duplicates(self, loaded, capsys):
        main(["duplicates", "--db", loaded["db"], "--config", loaded["config"]])
        assert "1234567|890201|2024-01-05" in capsys.readouterr().out

    def test_search(self, loaded, capsys):
        main(["search", "glucosa", "--db", loaded["db"]])
        assert "(1 rows)" in capsys.readouterr().out

    def test_export_global(self, loaded):
        main(["export", "--db", loaded["db"], "--config", loaded["config"], "--output", str(loaded["out"])])
        assert (loaded["out"] / "Reporte_Global_Auditoria.xlsx").exists()

    def test_export_markdown(self, loaded, tmp_path):
        output = str(tmp_path / "report.md")
        main(["export", "--kind", "markdown", "--db", loaded["db"], "--config", loaded["config"],
              "--output", output])
        assert "RIPS Audit Report" in (tmp_path / "report.md").read_text(encoding="utf-8")

    def test_init_config(self, loaded, tmp_path, capsys):
        output = str(tmp_path / "generated.toml")
        main(["init-config", "--db", loaded["db"], "--output", output])
        assert MEDICINA in (tmp_path / "generated.toml").read_text(encoding="utf-8")


class TestDedupe:
    def test_dedupe_group(self, loaded, capsys):
        main(["dedupe", "--db", loaded["db"], "--id", "1234567|890201|2024-01-05"])
        assert "Removed 1 duplicate records (4 remaining)" in capsys.readouterr().out

    def test_dedupe_all_requires_yes(self, loaded):
        with pytest.raises(SystemExit):
            main(["dedupe", "--db", loaded["db"], "--all"])
        with RipsDB(loaded["db"]) as db:
            records, _ = db.load_session()
        assert len(records) == 5

    def test_dedupe_all(self, loaded):
        main(["dedupe", "--db", loaded["db"], "--all", "--yes"])
        with RipsDB(loaded["db"]) as db:
            records, _ = db.load_session()
        assert len(records) == 4

    def test_bad_id(self, loaded):
        with pytest.raises(SystemExit):
            main(["dedupe", "--db", loaded["db"], "--id", "nope"])


class TestClear:
    def test_clear_requires_yes(self, loaded):
        with pytest.raises(SystemExit):
            main(["clear", "--db", loaded["db"]])

    def test_clear(self, loaded):
        main(["clear", "--db", loaded["db"], "--yes"])
        with RipsDB(loaded["db"]) as db:
            assert db.load_session() is None
