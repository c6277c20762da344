"""Tests for ripsfold.analysis.data_quality and record helpers."""

import pytest

from ripsfold.analysis.data_quality import (
    duplicate_group_id,
    duplicate_key_from_id,
    find_duplicates,
    remove_all_duplicates,
    remove_duplicate_group,
)
from ripsfold.analysis.records import (
    FAMILY_CONSULTATIONS,
    FAMILY_OTHER,
    FAMILY_PROCEDURES,
    search_records,
    service_family,
)
from ripsfold.models import ServiceRecord

A = ServiceRecord("890201", "1", "T", "CONSULTA", "2024-01-05")
B = ServiceRecord("903841", "1", "T", "GLUCOSA", "2024-01-05")
C = ServiceRecord("890201", "7654321", "T", "CONSULTA", "2024-01-05")


class TestFindDuplicates:
    def test_groups_with_more_than_one(self):
        groups = find_duplicates([A, B, A, C, A])
        assert len(groups) == 1
        assert groups[0].key == A.duplicate_key
        assert groups[0].count == 3
        assert groups[0].record is A

    def test_dates_compared_verbatim(self):
        other_format = ServiceRecord("890201", "1", "T", "CONSULTA", "05/01/2024")
        assert find_duplicates([A, other_format]) == []

    def test_group_order_follows_first_record(self):
        groups = find_duplicates([B, A, A, B])
        assert [g.key for g in groups] == [B.duplicate_key, A.duplicate_key]


class TestRemoveDuplicates:
    def test_remove_all(self):
        kept, removed = remove_all_duplicates([A, A, B])
        assert kept == [A, B]
        assert removed == 1

    def test_remove_all_idempotent(self):
        kept, _ = remove_all_duplicates([A, B, A, C, C])
        again, removed = remove_all_duplicates(kept)
        assert again == kept
        assert removed == 0

    def test_remove_group_keeps_first_and_others(self):
        kept, removed = remove_duplicate_group([B, A, C, A, B, A], A.duplicate_key)
        assert kept == [B, A, C, B]
        assert removed == 2

    def test_remove_group_unknown_key(self):
        kept, removed = remove_duplicate_group([A, B], ("x", "y", "z"))
        assert kept == [A, B]
        assert removed == 0


class TestGroupId:
    def test_round_trip(self):
        key = ("1234567", "890201", "2024-01-05")
        assert duplicate_group_id(key) == "1234567|890201|2024-01-05"
        assert duplicate_key_from_id(duplicate_group_id(key)) == key

    def test_empty_date(self):
        assert duplicate_key_from_id("1|890201|") == ("1", "890201", "")

    def test_malformed(self):
        with pytest.raises(ValueError):
            duplicate_key_from_id("1|890201")


class TestRecords:
    def test_search_case_insensitive(self):
        assert search_records([A, B, C], "glucosa") == [B]
        assert search_records([A, B, C], "890201") == [A, C]

    def test_search_patient_id(self):
        assert search_records([A, B, C], "7654") == [C]

    def test_empty_term_returns_all(self):
        assert search_records([A, B], "") == [A, B]

    @pytest.mark.parametrize(
        "service_type, family",
        [
            ("CONSULTA EXTERNA Y/O SERVICIO DE MEDICINA GENERAL", FAMILY_CONSULTATIONS),
            ("URGENCIAS BC", FAMILY_CONSULTATIONS),
            ("LABORATORIO CLINICO, BAJA COMPLEJIDAD", FAMILY_PROCEDURES),
            ("odontologia general", FAMILY_PROCEDURES),
            ("PSICOLOGIA", FAMILY_OTHER),
            ("", FAMILY_OTHER),
        ],
    )
    def test_service_family(self, service_type, family):
        assert service_family(service_type) == family
