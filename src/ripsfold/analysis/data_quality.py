"""Data quality analysis: exact duplicate detection and remediation.

A duplicate is any set of records sharing the literal triple
(patient_id, service_code, service_date). Dates are compared verbatim, so
"2024-01-05" and "05/01/2024" are different keys.
"""

from __future__ import annotations

from typing import Iterable

from ripsfold.core.utils import deduplicate_by_key
from ripsfold.models import DuplicateGroup, ServiceRecord

DuplicateKey = tuple[str, str, str]

_ID_SEPARATOR = "|"


def find_duplicates(records: Iterable[ServiceRecord]) -> list[DuplicateGroup]:
    """Group records by exact triple and return groups with more than one member.

    Groups come back in order of their first record. Each group carries its
    size and the first record as representative.
    """
    groups: dict[DuplicateKey, list] = {}
    for r in records:
        entry = groups.get(r.duplicate_key)
        if entry:
            entry[0] += 1
        else:
            groups[r.duplicate_key] = [1, r]

    return [
        DuplicateGroup(
            patient_id=key[0],
            service_code=key[1],
            service_date=key[2],
            count=count,
            record=first,
        )
        for key, (count, first) in groups.items()
        if count > 1
    ]


def duplicate_group_id(key: DuplicateKey) -> str:
    """Identifier of the form "pid|code|date", used in exports and on the command line."""
    return _ID_SEPARATOR.join(key)


def duplicate_key_from_id(group_id: str) -> DuplicateKey:
    """Inverse of duplicate_group_id(). The date part may be empty."""
    parts = group_id.split(_ID_SEPARATOR)
    if len(parts) != 3:
        raise ValueError(f"Duplicate id must look like 'patient|code|date', got {group_id!r}")
    return parts[0], parts[1], parts[2]


def remove_duplicate_group(
    records: Iterable[ServiceRecord], key: DuplicateKey
) -> tuple[list[ServiceRecord], int]:
    """Keep the first record matching ``key`` and drop every later match.

    Unrelated records are untouched. Returns (kept records, removed count).
    """
    kept = []
    seen = False
    removed = 0
    for r in records:
        if r.duplicate_key == key:
            if seen:
                removed += 1
                continue
            seen = True
        kept.append(r)
    return kept, removed


def remove_all_duplicates(
    records: Iterable[ServiceRecord],
) -> tuple[list[ServiceRecord], int]:
    """Keep the first occurrence of every triple. Returns (kept records, removed count)."""
    records = list(records)
    kept = deduplicate_by_key(records, lambda r: r.duplicate_key)
    return kept, len(records) - len(kept)
