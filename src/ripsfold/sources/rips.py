"""RIPS text ingestion: line classification and batch processing.

Each physical line passes through an ordered chain of classifier stages
over an immutable LineState:

1. detect_archive_marker: "°----ARCHIVO-<NAME>----°|" sets the section
2. detect_header: "USUARIOS"/"CONSULTAS"/... header lines set the section
3. split_fields: comma (>= 3 commas) or pipe separator sniffing
4. override_by_content: a date plus a lone M/F token means a roster line

Classified lines are then handed to the roster or service extractor.
Sections carry over from line to line within a file; each file starts
from the default implied by its name.
"""

from __future__ import annotations

import logging
import re
import time
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Callable, Iterable, Iterator, Mapping

from ripsfold.extractors.roster import extract_patient, fold_roster, merge_patient
from ripsfold.extractors.services import extract_service
from ripsfold.models import CatalogEntry, IngestBatch, PatientRecord, ServiceRecord
from ripsfold.sources.base import (
    ARCHIVE_MARKER_RE,
    DEFAULT_LAYOUT,
    ROSTER,
    SERVICES,
    IngestError,
    MissingInputError,
    RipsLayout,
    is_roster_section,
    section_from_filename,
)

logger = logging.getLogger(__name__)

_NEWLINE_RE = re.compile(r"\r?\n")
_CONTENT_DATE_RE = re.compile(r"\d{4}-\d{2}-\d{2}|\d{2}/\d{2}/\d{4}", re.ASCII)
_CONTENT_SEX_RE = re.compile(r"\b(M|F)\b", re.IGNORECASE | re.ASCII)

MIN_COMMAS = 3
MIN_FIELDS = 2


@dataclass(frozen=True)
class LineState:
    """One trimmed line moving through the classifier stages."""

    raw: str
    section: str
    upper: str = ""
    fields: tuple[str, ...] = ()
    skip: bool = False  # consumed as a marker, or no usable separator


Stage = Callable[[LineState, RipsLayout], LineState]


def detect_archive_marker(state: LineState, layout: RipsLayout) -> LineState:
    m = ARCHIVE_MARKER_RE.match(state.raw)
    if not m:
        return state
    return replace(state, section=m.group(1).strip().upper(), skip=True)


def detect_header(state: LineState, layout: RipsLayout) -> LineState:
    upper = state.upper
    if layout.roster_header in upper and any(g in upper for g in layout.roster_header_glyphs):
        return replace(state, section=ROSTER, skip=True)
    if any(h in upper for h in layout.service_headers):
        return replace(state, section=SERVICES, skip=True)
    return state


def split_fields(state: LineState, layout: RipsLayout) -> LineState:
    raw = state.raw
    if raw.count(",") >= MIN_COMMAS:
        fields = tuple(_strip_trailing_pipe(p.strip()) for p in raw.split(","))
    elif "|" in raw:
        fields = tuple(p.strip() for p in raw.split("|"))
    else:
        return replace(state, skip=True)
    if len(fields) < MIN_FIELDS:
        return replace(state, skip=True)
    return replace(state, fields=fields)


def override_by_content(state: LineState, layout: RipsLayout) -> LineState:
    if is_roster_section(state.section):
        return state
    if _CONTENT_DATE_RE.search(state.raw) and _CONTENT_SEX_RE.search(state.raw):
        return replace(state, section=ROSTER)
    return state


def _strip_trailing_pipe(value: str) -> str:
    return value[:-1] if value.endswith("|") else value


CLASSIFIER_STAGES: tuple[Stage, ...] = (
    detect_archive_marker,
    detect_header,
    split_fields,
    override_by_content,
)


def classify_line(
    line: str, section: str, layout: RipsLayout = DEFAULT_LAYOUT
) -> LineState:
    """Run the classifier stages; stops at the first stage that skips the line."""
    raw = line.strip()
    state = LineState(raw=raw, section=section, upper=raw.upper())
    for stage in CLASSIFIER_STAGES:
        state = stage(state, layout)
        if state.skip:
            break
    return state


@dataclass
class FileParse:
    """Partial result for one file, folded into the batch in file order."""

    name: str
    records: list[ServiceRecord] = field(default_factory=list)
    roster: dict[str, PatientRecord] = field(default_factory=dict)
    lines: int = 0
    skipped: int = 0


def parse_rips_text(
    name: str,
    text: str,
    catalog: Mapping[str, CatalogEntry],
    layout: RipsLayout = DEFAULT_LAYOUT,
) -> FileParse:
    """Classify and extract every line of one RIPS file."""
    result = FileParse(name=name)
    section = section_from_filename(name, layout)

    for line in _NEWLINE_RE.split(text):
        if not line.strip():
            continue
        result.lines += 1
        state = classify_line(line, section, layout)
        section = state.section
        if state.skip:
            continue

        if is_roster_section(section):
            patient = extract_patient(list(state.fields))
            if patient is None:
                result.skipped += 1
                continue
            merge_patient(result.roster, patient)
            continue

        record = extract_service(state.raw, catalog)
        if record is None:
            result.skipped += 1
            continue
        result.records.append(record)

    logger.debug(
        "%s: %d lines, %d services, %d patients, %d skipped",
        name, result.lines, len(result.records), len(result.roster), result.skipped,
    )
    return result


def decode_rips_bytes(data: bytes) -> str:
    """Decode file bytes as UTF-8 (BOM allowed), falling back to latin-1."""
    try:
        return data.decode("utf-8-sig")
    except UnicodeDecodeError:
        return data.decode("latin-1")


def read_rips_file(path: str | Path) -> tuple[str, str]:
    """Return (file name, decoded text) for a RIPS file on disk."""
    p = Path(path)
    return p.name, decode_rips_bytes(p.read_bytes())


def iter_rips_paths(paths: Iterable[str | Path]) -> Iterator[tuple[str, str]]:
    """Lazily read RIPS files so read errors surface inside the batch."""
    for path in paths:
        yield read_rips_file(path)


def process_rips_files(
    files: Iterable[tuple[str, str | bytes]],
    catalog: Mapping[str, CatalogEntry] | None,
    roster: Mapping[str, PatientRecord] | None = None,
    layout: RipsLayout = DEFAULT_LAYOUT,
) -> IngestBatch:
    """Ingest a batch of (name, content) RIPS files against a catalog.

    Files are processed in the given order and their partial rosters are
    folded into a copy of ``roster`` in the same order. Service records
    from this batch replace, rather than extend, any earlier batch.

    Raises:
        MissingInputError: no files, or no catalog.
        IngestError: any failure while reading or parsing a file. No
            partial result is returned, and ``roster`` is never mutated.
    """
    if catalog is None:
        raise MissingInputError("Select the RIPS files (.txt) and the CUPS catalog (.xlsx).")

    start = time.monotonic()
    batch = IngestBatch(roster=dict(roster or {}))
    current = ""
    try:
        for name, content in files:
            current = name
            text = decode_rips_bytes(content) if isinstance(content, bytes) else content
            parsed = parse_rips_text(name, text, catalog, layout)
            batch.records.extend(parsed.records)
            fold_roster(batch.roster, parsed.roster)
            batch.files.append(name)
    except IngestError:
        raise
    except Exception as e:
        logger.error("Batch aborted while reading %s: %s", current or "<input>", e)
        raise IngestError(f"Error in file format ({current or 'input'}): {e}") from e

    if not batch.files:
        raise MissingInputError("Select the RIPS files (.txt) and the CUPS catalog (.xlsx).")

    logger.info(
        "Processed %d files: %d records and %d patients in %.2fs",
        len(batch.files), len(batch.records), len(batch.roster), time.monotonic() - start,
    )
    return batch
