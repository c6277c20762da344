"""CUPS service catalog: code -> service type and display name.

The catalog arrives as spreadsheet rows keyed by header name. Only three
columns are read: "CUPS VIGENTE", "Tipo Ser" and "NOMBRE CUPS".
"""

from __future__ import annotations

import logging
import zipfile
from pathlib import Path
from types import MappingProxyType
from typing import Any, Iterable, Iterator, Mapping

import openpyxl
from openpyxl.utils.exceptions import InvalidFileException

from ripsfold.core.utils import cell_text
from ripsfold.models import CatalogEntry
from ripsfold.sources.base import CatalogError

logger = logging.getLogger(__name__)

CODE_COLUMN = "CUPS VIGENTE"
TYPE_COLUMN = "Tipo Ser"
NAME_COLUMN = "NOMBRE CUPS"

Catalog = Mapping[str, CatalogEntry]


def load_catalog(rows: Iterable[Mapping[str, Any]]) -> Catalog:
    """Build an immutable code -> CatalogEntry map.

    Rows without a code are skipped. When a code repeats, the last row wins.
    """
    entries: dict[str, CatalogEntry] = {}
    for row in rows:
        code = cell_text(row.get(CODE_COLUMN))
        if not code:
            continue
        entries[code] = CatalogEntry(
            service_code=code,
            service_type=cell_text(row.get(TYPE_COLUMN)),
            display_name=cell_text(row.get(NAME_COLUMN)),
        )
    logger.debug("Catalog loaded with %d codes", len(entries))
    return MappingProxyType(entries)


def iter_sheet_rows(path: str | Path, sheet_name: str | None = None) -> Iterator[dict[str, Any]]:
    """Lazily yield header-keyed rows from one sheet of an .xlsx workbook.

    Reads the first sheet unless ``sheet_name`` is given. Empty cells come
    back as "". Fully empty rows are skipped.
    """
    try:
        wb = openpyxl.load_workbook(path, read_only=True, data_only=True)
    except (OSError, ValueError, KeyError, zipfile.BadZipFile, InvalidFileException) as e:
        raise CatalogError(f"Cannot open workbook {path}: {e}") from e

    try:
        if sheet_name is None:
            ws = wb.worksheets[0]
        elif sheet_name in wb.sheetnames:
            ws = wb[sheet_name]
        else:
            raise CatalogError(f"Workbook {path} has no sheet {sheet_name!r}")
        rows = ws.iter_rows(values_only=True)
        header_row = next(rows, None)
        if header_row is None:
            raise CatalogError(f"Workbook {path} is empty")
        headers = [cell_text(h) for h in header_row]

        for values in rows:
            if values is None or all(v is None or v == "" for v in values):
                continue
            yield {
                h: ("" if v is None else v)
                for h, v in zip(headers, values, strict=False)
                if h
            }
    finally:
        wb.close()


def read_catalog_rows(path: str | Path) -> Iterator[dict[str, Any]]:
    """Catalog rows from the first sheet of the CUPS workbook."""
    return iter_sheet_rows(path)


def load_catalog_file(path: str | Path) -> Catalog:
    """Read and build the catalog from an .xlsx file."""
    return load_catalog(read_catalog_rows(path))
