"""Shared test fixtures for ripsfold tests."""

from datetime import date

import openpyxl
import pytest

from ripsfold.catalog import CODE_COLUMN, NAME_COLUMN, TYPE_COLUMN, load_catalog
from ripsfold.db import RipsDB
from ripsfold.models import PatientRecord, ServiceRecord, ServiceTypeGoal

TODAY = date(2026, 10, 18)

MEDICINA = "CONSULTA EXTERNA Y/O SERVICIO DE MEDICINA GENERAL"
LABORATORIO = "LABORATORIO CLINICO, BAJA COMPLEJIDAD"
PSICOLOGIA = "PSICOLOGIA"

CATALOG_ROWS = [
    {CODE_COLUMN: "890201", TYPE_COLUMN: MEDICINA, NAME_COLUMN: "CONSULTA DE PRIMERA VEZ POR MEDICINA GENERAL"},
    {CODE_COLUMN: "903841", TYPE_COLUMN: LABORATORIO, NAME_COLUMN: "GLUCOSA EN SUERO"},
    {CODE_COLUMN: "890208", TYPE_COLUMN: PSICOLOGIA, NAME_COLUMN: "CONSULTA DE PRIMERA VEZ POR PSICOLOGIA"},
]

ROSTER_TEXT = (
    "°----ARCHIVO-USUARIOS----°|\r\n"
    "CC,1234567,1,1,40,1,F,1985-03-10,GOMEZ,PEREZ,ANA,MARIA|\r\n"
    "TI,7654321,1,1,6,1,M,15/06/2020,RUIZ,DIAZ,LUIS\r\n"
)

CONSULTAS_TEXT = (
    "°----ARCHIVO-CONSULTAS----°|\n"
    "CC-1234567,2024-01-05,890201,1\n"
    "CC-1234567,2024-01-05,890201,1\n"
    "TI-7654321,2024-01-06,890201,1\n"
    "CC-1234567,2024-01-07,999999,1\n"
)

PROCEDIMIENTOS_TEXT = (
    "1234567|2024-01-08|903841|1\n"
    "7654321|2024-01-09|890208|1\n"
)


@pytest.fixture
def catalog():
    return load_catalog(CATALOG_ROWS)


@pytest.fixture
def rips_files():
    """Roster, consultation and procedure files as (name, text) pairs."""
    return [
        ("US001.txt", ROSTER_TEXT),
        ("AC001.txt", CONSULTAS_TEXT),
        ("AP001.txt", PROCEDIMIENTOS_TEXT),
    ]


@pytest.fixture
def goals():
    return [
        ServiceTypeGoal(service_type=MEDICINA, monthly_goal=10),
        ServiceTypeGoal(service_type=LABORATORIO, monthly_goal=1),
        ServiceTypeGoal(service_type=PSICOLOGIA, monthly_goal=5, active=False),
    ]


@pytest.fixture
def sample_records():
    """Service records as the sample files ingest to."""
    return [
        ServiceRecord("890201", "1234567", MEDICINA, "CONSULTA DE PRIMERA VEZ POR MEDICINA GENERAL", "2024-01-05"),
        ServiceRecord("890201", "1234567", MEDICINA, "CONSULTA DE PRIMERA VEZ POR MEDICINA GENERAL", "2024-01-05"),
        ServiceRecord("890201", "7654321", MEDICINA, "CONSULTA DE PRIMERA VEZ POR MEDICINA GENERAL", "2024-01-06"),
        ServiceRecord("903841", "1234567", LABORATORIO, "GLUCOSA EN SUERO", "2024-01-08"),
        ServiceRecord("890208", "7654321", PSICOLOGIA, "CONSULTA DE PRIMERA VEZ POR PSICOLOGIA", "2024-01-09"),
    ]


@pytest.fixture
def sample_roster():
    return {
        "1234567": PatientRecord("1234567", "F", "1985-03-10", "GOMEZ PEREZ ANA MARIA"),
        "7654321": PatientRecord("7654321", "M", "15/06/2020", "RUIZ DIAZ LUIS"),
    }


@pytest.fixture
def catalog_xlsx(tmp_path):
    """CUPS catalog workbook written with openpyxl; codes stored as numbers."""
    path = tmp_path / "CUPS.xlsx"
    wb = openpyxl.Workbook()
    ws = wb.active
    ws.title = "CUPS"
    ws.append([CODE_COLUMN, TYPE_COLUMN, NAME_COLUMN, "OBSERVACIONES"])
    for row in CATALOG_ROWS:
        ws.append([int(row[CODE_COLUMN]), row[TYPE_COLUMN], row[NAME_COLUMN], None])
    ws.append([None, None, None, None])
    wb.save(path)
    return path


@pytest.fixture
def rips_dir(tmp_path, rips_files):
    """Directory holding the sample RIPS files on disk."""
    d = tmp_path / "rips"
    d.mkdir()
    for name, text in rips_files:
        (d / name).write_text(text, encoding="utf-8")
    return d


@pytest.fixture
def tmp_db(tmp_path):
    """Create a temporary SQLite database with schema initialized."""
    db_path = str(tmp_path / "test.db")
    db = RipsDB(db_path)
    db.init_schema()
    yield db
    db.close()
