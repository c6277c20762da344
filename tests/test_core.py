"""Tests for ripsfold.core.utils."""

from datetime import date

import pytest

from ripsfold.core.utils import (
    BRACKET_ADOLESCENCE,
    BRACKET_ADULTHOOD,
    BRACKET_CHILDHOOD,
    BRACKET_EARLY_CHILDHOOD,
    BRACKET_OLD_AGE,
    BRACKET_YOUTH,
    age_bracket,
    age_detailed,
    age_months,
    age_years,
    cell_text,
    deduplicate_by_key,
    normalize_id,
    parse_birth_date,
    parse_date_from_line,
    round_half_up,
)

TODAY = date(2026, 10, 18)


class TestNormalizeId:
    def test_strips_prefix_and_punctuation(self):
        assert normalize_id("cc-123.456") == "123456"

    def test_prefix_with_space(self):
        assert normalize_id(" TI 1002003 ") == "1002003"

    def test_prefix_without_separator(self):
        assert normalize_id("CE987654") == "987654"

    def test_no_prefix_keeps_letters(self):
        assert normalize_id("abc-12") == "ABC12"

    def test_none_and_empty(self):
        assert normalize_id(None) == ""
        assert normalize_id("") == ""
        assert normalize_id("CC-") == ""

    def test_prefix_exposed_by_cleanup(self):
        assert normalize_id("CC-.TI99") == "99"

    @pytest.mark.parametrize(
        "raw", ["cc-123.456", "CC-.TI99", "CCTI5", "rc 00-12", "MS-ms-4", "PA.PE.7", "x y z"]
    )
    def test_idempotent(self, raw):
        once = normalize_id(raw)
        assert normalize_id(once) == once


class TestParseDateFromLine:
    def test_iso(self):
        assert parse_date_from_line("CC-1,2024-01-05,890201") == "2024-01-05"

    def test_dmy_verbatim(self):
        assert parse_date_from_line("x|05/01/2024|y") == "05/01/2024"

    def test_leftmost_wins(self):
        assert parse_date_from_line("05/01/2024 then 2024-02-01") == "05/01/2024"

    def test_no_date(self):
        assert parse_date_from_line("20240105") == ""
        assert parse_date_from_line("") == ""


class TestParseBirthDate:
    def test_iso_with_time(self):
        assert parse_birth_date("1985-03-10T00:00:00") == date(1985, 3, 10)

    def test_dmy_is_day_first(self):
        assert parse_birth_date("02/03/2020") == date(2020, 3, 2)

    def test_invalid(self):
        assert parse_birth_date("31/02/2020") is None
        assert parse_birth_date("garbage") is None
        assert parse_birth_date(None) is None


class TestAges:
    def test_days(self):
        assert age_detailed("2026-10-08", TODAY) == "10 días"

    def test_months(self):
        # 70 days
        assert age_detailed("2026-08-09", TODAY) == "2 meses"

    def test_years_with_remainder(self):
        # 2191 days is just short of 72 average months
        assert age_detailed("2020-10-18", TODAY) == "5 años 11 meses"

    def test_whole_years(self):
        assert age_detailed("2022-10-18", TODAY) == "4 años"

    def test_future_or_empty(self):
        assert age_detailed("2027-01-01", TODAY) == ""
        assert age_detailed("", TODAY) == ""

    def test_age_years(self):
        assert age_years("1966-10-18", TODAY) == 60
        assert age_years("1966-10-19", TODAY) == 59
        assert age_years("nope", TODAY) is None

    def test_age_months_ignores_day(self):
        assert age_months("2021-10-31", TODAY) == 60


class TestAgeBracket:
    @pytest.mark.parametrize(
        "birth, bracket",
        [
            ("2021-10-18", BRACKET_EARLY_CHILDHOOD),  # 60 months
            ("2021-09-18", BRACKET_CHILDHOOD),  # 61 months
            ("15/06/2020", BRACKET_CHILDHOOD),
            ("2008-10-19", BRACKET_ADOLESCENCE),
            ("2008-10-18", BRACKET_YOUTH),
            ("1997-10-19", BRACKET_YOUTH),
            ("1985-03-10", BRACKET_ADULTHOOD),
            ("1966-10-19", BRACKET_ADULTHOOD),
            ("1966-10-18", BRACKET_OLD_AGE),
        ],
    )
    def test_brackets(self, birth, bracket):
        assert age_bracket(birth, TODAY) == bracket

    def test_unknown(self):
        assert age_bracket("", TODAY) == ""
        assert age_bracket("99/99/9999", TODAY) == ""


class TestHelpers:
    def test_round_half_up(self):
        assert round_half_up(12.5) == 13
        assert round_half_up(0.5) == 1
        assert round_half_up(66.66) == 67
        assert round_half_up(2.4) == 2

    def test_cell_text(self):
        assert cell_text(None) == ""
        assert cell_text(890201.0) == "890201"
        assert cell_text(890201) == "890201"
        assert cell_text("  PSICOLOGIA ") == "PSICOLOGIA"

    def test_deduplicate_by_key_keeps_first(self):
        items = [("a", 1), ("b", 2), ("a", 3)]
        assert deduplicate_by_key(items, lambda x: x[0]) == [("a", 1), ("b", 2)]

    def test_deduplicate_by_key_keeps_input_order(self):
        items = [("b", 2), ("a", 1), ("b", 3), ("c", 0)]
        assert deduplicate_by_key(items, lambda x: x[0]) == [("b", 2), ("a", 1), ("c", 0)]
