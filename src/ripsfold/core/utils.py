"""Shared utility functions for identifiers, dates, ages and deduplication."""

from __future__ import annotations

import math
import re
from datetime import date
from typing import Any, Callable, Iterable, TypeVar

T = TypeVar("T")

# Colombian identity document types that may prefix a patient number
DOC_TYPES = ("CC", "TI", "RC", "CE", "PA", "PE", "CN", "MS")

_DOC_ALT = "|".join(DOC_TYPES)

_DOC_PREFIX_RE = re.compile(rf"^(?:{_DOC_ALT})[-\s]*", re.IGNORECASE)
_NON_ALNUM_RE = re.compile(r"[^0-9A-Za-z]")
_LEADING_DOC_RE = re.compile(rf"^(?:{_DOC_ALT})")

_LINE_DATE_RE = re.compile(r"\b(\d{4}-\d{2}-\d{2})\b|\b(\d{2}/\d{2}/\d{4})\b", re.ASCII)
_ISO_DATE_RE = re.compile(r"(\d{4})-(\d{2})-(\d{2})(?=$|[T\s])")
_DMY_DATE_RE = re.compile(r"(\d{2})/(\d{2})/(\d{4})$")

DAYS_PER_MONTH = 30.4375

BRACKET_EARLY_CHILDHOOD = "PRIMERA INFANCIA (0m-5a)"
BRACKET_CHILDHOOD = "INFANCIA (6-11)"
BRACKET_ADOLESCENCE = "ADOLESCENCIA (12-17)"
BRACKET_YOUTH = "JÓVENES (18-28)"
BRACKET_ADULTHOOD = "ADULTEZ (29-59)"
BRACKET_OLD_AGE = "VEJEZ (60+)"


def normalize_id(raw: str | None) -> str:
    """Canonical patient ID: no document-type prefix, ASCII alphanumerics, uppercase.

    "cc-123.456" -> "123456". A prefix exposed by the cleanup
    ("CC-.TI99" -> "TI99") is stripped too, so the function is idempotent.
    """
    if raw is None:
        return ""
    x = _DOC_PREFIX_RE.sub("", str(raw).strip(), count=1)
    x = _NON_ALNUM_RE.sub("", x).upper()
    while _LEADING_DOC_RE.match(x):
        x = x[2:]
    return x


def parse_date_from_line(line: str) -> str:
    """Return the leftmost YYYY-MM-DD or DD/MM/YYYY substring, verbatim.

    The two formats are not converted into each other.
    """
    if not line:
        return ""
    m = _LINE_DATE_RE.search(line)
    if not m:
        return ""
    return m.group(1) or m.group(2) or ""


def parse_birth_date(value: str | None) -> date | None:
    """Parse YYYY-MM-DD (time suffix allowed) or day-first DD/MM/YYYY."""
    if not value:
        return None
    s = value.strip()
    m = _ISO_DATE_RE.match(s)
    if m:
        y, mo, d = int(m.group(1)), int(m.group(2)), int(m.group(3))
    else:
        m = _DMY_DATE_RE.match(s)
        if not m:
            return None
        d, mo, y = int(m.group(1)), int(m.group(2)), int(m.group(3))
    try:
        return date(y, mo, d)
    except ValueError:
        return None


def age_detailed(birth_date: str | None, today: date | None = None) -> str:
    """Human age: days under 30 days, months under 24 months, then years.

    Returns "" for empty, unparsable or future birth dates.
    """
    born = parse_birth_date(birth_date)
    if born is None:
        return ""
    today = today or date.today()
    days = (today - born).days
    if days < 0:
        return ""
    if days < 30:
        return f"{days} días"
    months = math.floor(days / DAYS_PER_MONTH)
    if months < 24:
        return f"{months} meses"
    years, rem = divmod(months, 12)
    return f"{years} años" + (f" {rem} meses" if rem else "")


def age_years(birth_date: str | None, today: date | None = None) -> int | None:
    """Exact age in completed years."""
    born = parse_birth_date(birth_date)
    if born is None:
        return None
    today = today or date.today()
    years = today.year - born.year
    if (today.month, today.day) < (born.month, born.day):
        years -= 1
    return years


def age_months(birth_date: str | None, today: date | None = None) -> int | None:
    """Calendar-month difference, ignoring the day of month.

    Coarser than age_years(); age_bracket() depends on both.
    """
    born = parse_birth_date(birth_date)
    if born is None:
        return None
    today = today or date.today()
    return (today.year - born.year) * 12 + (today.month - born.month)


def age_bracket(birth_date: str | None, today: date | None = None) -> str:
    """Life-course bracket used in compliance reports."""
    if not birth_date:
        return ""
    months = age_months(birth_date, today)
    years = age_years(birth_date, today)
    if months is None or years is None:
        return ""
    if months <= 60:
        return BRACKET_EARLY_CHILDHOOD
    if years <= 11:
        return BRACKET_CHILDHOOD
    if years <= 17:
        return BRACKET_ADOLESCENCE
    if years <= 28:
        return BRACKET_YOUTH
    if years <= 59:
        return BRACKET_ADULTHOOD
    return BRACKET_OLD_AGE


def round_half_up(value: float) -> int:
    """Round .5 away from zero for positive values (round() rounds to even)."""
    return math.floor(value + 0.5)


def cell_text(value: Any) -> str:
    """Render a spreadsheet cell as trimmed text ("" for None, 890201.0 -> "890201")."""
    if value is None:
        return ""
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    return str(value).strip()


def deduplicate_by_key(items: Iterable[T], key_func: Callable[[T], Any]) -> list[T]:
    """Keep the first item for each key, preserving input order."""
    seen = set()
    result = []
    for item in items:
        k = key_func(item)
        if k in seen:
            continue
        seen.add(k)
        result.append(item)
    return result
