"""Base definitions for RIPS sources: sections, markers, file discovery, errors."""

from __future__ import annotations

import os
import re
from dataclasses import dataclass, field

ROSTER = "USUARIOS"
SERVICES = "SERVICIOS"


class IngestError(Exception):
    """A batch could not be ingested; nothing was committed."""


class MissingInputError(IngestError):
    """No RIPS files or no catalog were supplied."""


class CatalogError(IngestError):
    """The CUPS catalog could not be read."""


@dataclass
class RipsLayout:
    """Section markers and file-name conventions of a RIPS export."""

    roster_prefixes: list[str] = field(default_factory=lambda: ["US"])
    service_prefixes: list[str] = field(default_factory=lambda: ["AC", "AP", "AM", "AT"])
    # "USUARIOS" only counts as a header when one of these glyphs is present
    roster_header: str = ROSTER
    roster_header_glyphs: list[str] = field(default_factory=lambda: ["*", "°", "-"])
    service_headers: list[str] = field(
        default_factory=lambda: ["CONSULTAS", "PROCEDIMIENTOS", "MEDICAMENTOS", "OTROS SERVICIOS"]
    )
    file_pattern: str = r".*\.txt$"


DEFAULT_LAYOUT = RipsLayout()

# °----ARCHIVO-USUARIOS----°|
ARCHIVE_MARKER_RE = re.compile(r"^°-+ARCHIVO-(.+?)-+°\|?$", re.IGNORECASE)


def is_roster_section(section: str) -> bool:
    return ROSTER in section


def section_from_filename(name: str, layout: RipsLayout = DEFAULT_LAYOUT) -> str:
    """Coarse default section from a file name: US* -> roster, AC/AP/AM/AT* -> services."""
    n = os.path.basename(name).upper()
    if any(n.startswith(p) for p in layout.roster_prefixes):
        return ROSTER
    if any(n.startswith(p) for p in layout.service_prefixes):
        return SERVICES
    return ""


def discover_files(input_dir: str, pattern: str = DEFAULT_LAYOUT.file_pattern) -> list[str]:
    """Find files matching a regex pattern in a directory."""
    files = []
    for f in os.listdir(input_dir):
        if re.match(pattern, f, re.IGNORECASE):
            files.append(os.path.join(input_dir, f))
    return sorted(files)
