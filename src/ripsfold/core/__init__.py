"""Core utilities for identifier, date and age normalization."""

from ripsfold.core.utils import (
    age_bracket,
    age_detailed,
    age_months,
    age_years,
    deduplicate_by_key,
    normalize_id,
    parse_birth_date,
    parse_date_from_line,
)
