"""Export audit views as spreadsheets or markdown.

Every view is first flattened into a list of row dicts whose keys are the
column headers of the exported sheet. List fields (a patient's codes and
dates) are joined with newlines; split_list_field() reverses that.
"""

from __future__ import annotations

from datetime import date
from pathlib import Path
from typing import Any, Iterable, Mapping

import openpyxl
from openpyxl.styles import Alignment, Font
from openpyxl.utils import get_column_letter

from ripsfold.analysis.aggregate import COLOR_HEX
from ripsfold.analysis.data_quality import duplicate_group_id
from ripsfold.analysis.rankings import UNREGISTERED
from ripsfold.analysis.records import (
    FAMILY_CONSULTATIONS,
    FAMILY_OTHER,
    FAMILY_PROCEDURES,
    service_family,
)
from ripsfold.catalog import iter_sheet_rows
from ripsfold.core.utils import age_bracket, age_detailed
from ripsfold.formatters.markdown import format_dashboard
from ripsfold.models import (
    ChartPoint,
    CodeRankingRow,
    Dashboard,
    DuplicateGroup,
    PatientRankingRow,
    PatientRecord,
    ServiceRecord,
)

GLOBAL_REPORT = "Reporte_Global_Auditoria.xlsx"
PATIENT_RANKING_REPORT = "Ranking_Pacientes.xlsx"
CODE_RANKING_REPORT = "Ranking_CUPS.xlsx"
DUPLICATES_REPORT = "Auditoria_Duplicados.xlsx"
ORGANIZED_REPORT = "RIPS_Consolidado_Organizado.xlsx"

SHEET_CHART = "Metas_vs_Ejecutado"
SHEET_CODE_RANKING = "Ranking_CUPS"
SHEET_PATIENT_RANKING = "Ranking_Pacientes"
SHEET_DUPLICATES = "Duplicados"
SHEET_ROSTER = "USUARIOS"

LIST_SEPARATOR = "\n"

_MAX_COLUMN_WIDTH = 60


# --- Row contracts ---


def chart_rows(chart: Iterable[ChartPoint]) -> list[dict[str, Any]]:
    return [
        {
            "name": p.service_type,
            "meta": p.target,
            "ejecutado": p.executed,
            "cumplimiento": p.capped_percent,
            "color": COLOR_HEX[p.color],
        }
        for p in chart
    ]


def code_ranking_rows(ranking: Iterable[CodeRankingRow]) -> list[dict[str, Any]]:
    return [
        {
            "CUPS": r.service_code,
            "Nombre": r.service_name,
            "TipoSer": r.service_type,
            "Cantidad": r.count,
            "PacienteTop": r.top_patient_id,
            "PacienteTop_Cant": r.top_patient_count,
            "PacienteTop_Nombre": r.top_patient_name,
            "PacienteTop_Sexo": r.top_patient_sex,
            "PacienteTop_Edad": r.top_patient_age,
            "PacienteTop_GrupoEtario": r.top_patient_bracket,
            "PacienteTop_Fechas": r.top_patient_dates,
        }
        for r in ranking
    ]


def join_list_field(values: Iterable[str]) -> str:
    return LIST_SEPARATOR.join(values)


def split_list_field(text: Any, count: int | None = None) -> list[str]:
    """Inverse of join_list_field().

    An empty cell is ambiguous between [] and [""]; pass ``count`` (the
    number of joined values) to resolve it.
    """
    text = "" if text is None else str(text)
    if count == 0 or (count is None and text == ""):
        return []
    return text.split(LIST_SEPARATOR)


def patient_ranking_rows(ranking: Iterable[PatientRankingRow]) -> list[dict[str, Any]]:
    return [
        {
            "PacienteId": p.patient_id,
            "Nombre": p.full_name,
            "Sexo": p.sex,
            "Edad": p.age,
            "GrupoEtario": p.bracket,
            "TotalAtenciones": p.count,
            "ListaCUPS": join_list_field(p.codes),
            "ListaFechas": join_list_field(p.dates),
        }
        for p in ranking
    ]


def patient_ranking_from_rows(rows: Iterable[Mapping[str, Any]]) -> list[PatientRankingRow]:
    """Rebuild PatientRankingRow objects from exported rows."""
    result = []
    for row in rows:
        count = int(row.get("TotalAtenciones") or 0)
        result.append(
            PatientRankingRow(
                patient_id=str(row.get("PacienteId", "")),
                full_name=str(row.get("Nombre", "")),
                sex=str(row.get("Sexo", "")),
                age=str(row.get("Edad", "")),
                bracket=str(row.get("GrupoEtario", "")),
                count=count,
                codes=tuple(split_list_field(row.get("ListaCUPS"), count)),
                dates=tuple(split_list_field(row.get("ListaFechas"), count)),
            )
        )
    return result


def duplicate_rows(
    duplicates: Iterable[DuplicateGroup], roster: Mapping[str, PatientRecord]
) -> list[dict[str, Any]]:
    rows = []
    for d in duplicates:
        patient = roster.get(d.patient_id)
        rows.append(
            {
                "id": duplicate_group_id(d.key),
                "paciente": d.patient_id,
                "nombre_paciente": (patient.full_name if patient else "") or UNREGISTERED,
                "cups": d.service_code,
                "nombre_cups": d.record.service_name,
                "fecha": d.service_date,
                "repeticiones": d.count,
            }
        )
    return rows


def roster_rows(
    roster: Mapping[str, PatientRecord], today: date | None = None
) -> list[dict[str, Any]]:
    return [
        {
            "Numero_Identificacion": p.patient_id,
            "Nombre_Completo": p.full_name,
            "Sexo": p.sex,
            "Fecha_Nacimiento": p.birth_date,
            "Edad": age_detailed(p.birth_date, today),
            "Grupo_Etario": age_bracket(p.birth_date, today),
        }
        for p in roster.values()
    ]


def organized_service_rows(records: Iterable[ServiceRecord]) -> dict[str, list[dict[str, Any]]]:
    """Split every record (unfiltered) into CONSULTAS / PROCEDIMIENTOS / OTROS_SERVICIOS rows."""
    families: dict[str, list[dict[str, Any]]] = {
        FAMILY_CONSULTATIONS: [],
        FAMILY_PROCEDURES: [],
        FAMILY_OTHER: [],
    }
    for r in records:
        families[service_family(r.service_type)].append(
            {
                "Numero_Identificacion": r.patient_id,
                "Fecha_Servicio": r.service_date,
                "Codigo_CUPS": r.service_code,
                "Nombre_Procedimiento": r.service_name,
                "Tipo_Servicio_Maestro": r.service_type,
            }
        )
    return families


# --- Writers ---


def write_workbook(output_path: str | Path, sheets: Mapping[str, list[dict[str, Any]]]) -> str:
    """Write one sheet per entry, headers taken from the first row's keys.

    Returns the output file path.
    """
    wb = openpyxl.Workbook()
    wb.remove(wb.active)
    for title, rows in sheets.items():
        ws = wb.create_sheet(title)
        if not rows:
            continue
        headers = list(rows[0].keys())
        ws.append(headers)
        for cell in ws[1]:
            cell.font = Font(bold=True)
        widths = [len(h) for h in headers]
        for row in rows:
            values = [row.get(h, "") for h in headers]
            ws.append(values)
            for i, v in enumerate(values):
                longest = max((len(part) for part in str(v).split(LIST_SEPARATOR)), default=0)
                widths[i] = max(widths[i], min(longest, _MAX_COLUMN_WIDTH))
        for i, width in enumerate(widths, start=1):
            ws.column_dimensions[get_column_letter(i)].width = width + 2
        _wrap_multiline(ws)

    path = Path(output_path)
    path.parent.mkdir(parents=True, exist_ok=True)
    wb.save(path)
    return str(path)


def _wrap_multiline(ws) -> None:
    for row in ws.iter_rows(min_row=2):
        for cell in row:
            if isinstance(cell.value, str) and LIST_SEPARATOR in cell.value:
                cell.alignment = Alignment(wrap_text=True, vertical="top")


def export_global(
    dashboard: Dashboard, output_dir: str | Path = ".", filename: str = GLOBAL_REPORT
) -> str:
    """Goals chart plus both rankings in one workbook."""
    return write_workbook(
        Path(output_dir) / filename,
        {
            SHEET_CHART: chart_rows(dashboard.chart),
            SHEET_CODE_RANKING: code_ranking_rows(dashboard.code_ranking),
            SHEET_PATIENT_RANKING: patient_ranking_rows(dashboard.patient_ranking),
        },
    )


def export_code_ranking(
    dashboard: Dashboard, output_dir: str | Path = ".", filename: str = CODE_RANKING_REPORT
) -> str:
    return write_workbook(
        Path(output_dir) / filename,
        {SHEET_CODE_RANKING: code_ranking_rows(dashboard.code_ranking)},
    )


def export_patient_ranking(
    dashboard: Dashboard, output_dir: str | Path = ".", filename: str = PATIENT_RANKING_REPORT
) -> str:
    return write_workbook(
        Path(output_dir) / filename,
        {SHEET_PATIENT_RANKING: patient_ranking_rows(dashboard.patient_ranking)},
    )


def export_duplicates(
    dashboard: Dashboard,
    roster: Mapping[str, PatientRecord],
    output_dir: str | Path = ".",
    filename: str = DUPLICATES_REPORT,
) -> str:
    return write_workbook(
        Path(output_dir) / filename,
        {SHEET_DUPLICATES: duplicate_rows(dashboard.duplicates, roster)},
    )


def export_organized(
    records: Iterable[ServiceRecord],
    roster: Mapping[str, PatientRecord],
    output_dir: str | Path = ".",
    filename: str = ORGANIZED_REPORT,
    today: date | None = None,
) -> str:
    """Roster sheet plus one sheet per service family; empty families are left out."""
    sheets: dict[str, list[dict[str, Any]]] = {SHEET_ROSTER: roster_rows(roster, today)}
    for family, rows in organized_service_rows(records).items():
        if rows:
            sheets[family] = rows
    return write_workbook(Path(output_dir) / filename, sheets)


def read_patient_ranking(path: str | Path) -> list[PatientRankingRow]:
    """Read the patient ranking sheet back from an exported workbook."""
    return patient_ranking_from_rows(iter_sheet_rows(path, SHEET_PATIENT_RANKING))


def export_markdown(
    dashboard: Dashboard,
    output_path: str = "ripsfold_report.md",
    top_n: int = 20,
) -> str:
    """Export the dashboard as structured markdown.

    Returns the output file path.
    """
    content = format_dashboard(dashboard, top_n=top_n, generated=date.today().isoformat())
    Path(output_path).write_text(content, encoding="utf-8")
    return output_path
