"""
Unit tests for the header mapper.

Run: pytest tests/unit/test_header_mapper.py -v
"""

import pytest

from parsers.header_mapper import (
    CanonicalField,
    ColumnMap,
    HEADER_SYNONYMS,
    header_matches,
    map_columns,
)


class TestHeaderMatches:
    """Tests for header_matches()"""

    def test_substring_match(self):
        assert header_matches("product sku code", ("sku",))

    def test_case_and_whitespace_ignored(self):
        assert header_matches("  Part Number ", ("part number",))

    def test_blank_header_never_matches(self):
        assert not header_matches("   ", ("part number",))


class TestMapColumns:
    """Tests for map_columns()"""

    def test_maps_template_headers(self):
        """Should map the sample template layout."""
        column_map = map_columns(["id", "part_number", "partimage", "part description"])

        assert column_map.get(CanonicalField.ID) == 0
        assert column_map.get(CanonicalField.PART_NUMBER) == 1
        assert column_map.get(CanonicalField.IMAGE) == 2
        assert column_map.get(CanonicalField.DESCRIPTION) == 3

    def test_arbitrary_order_and_naming(self):
        column_map = map_columns(["photo", "desc", "sku", "unit price", "qty"])

        assert column_map.to_dict() == {
            "part_number": 2,
            "description": 1,
            "image": 0,
            "price": 3,
            "quantity": 4,
        }

    def test_missing_fields_are_absent_not_errors(self):
        column_map = map_columns(["part no", "description"])

        assert not column_map.has(CanonicalField.IMAGE)
        assert column_map.get(CanonicalField.IMAGE) is None
        assert column_map.missing() == []

    def test_missing_required_field_reported(self):
        column_map = map_columns(["description", "image"])

        assert column_map.missing() == [CanonicalField.PART_NUMBER]

    def test_first_match_wins_for_duplicate_headers(self):
        """Lowest-index matching header should win."""
        column_map = map_columns(["sku", "part number"])

        assert column_map.get(CanonicalField.PART_NUMBER) == 0

    def test_claimed_column_not_reused(self):
        """
        "image description" matches both description and image; description
        comes first in priority and claims it.
        """
        column_map = map_columns(["image description", "item code"])

        assert column_map.get(CanonicalField.DESCRIPTION) == 0
        assert column_map.get(CanonicalField.PART_NUMBER) == 1
        assert not column_map.has(CanonicalField.IMAGE)

    def test_indices_unique(self):
        column_map = map_columns(["id", "part no", "image", "description", "category", "price"])

        indices = list(column_map.to_dict().values())
        assert len(indices) == len(set(indices))

    def test_id_and_name_columns_kept_apart(self):
        column_map = map_columns(["product name", "product id", "part no"])

        assert column_map.get(CanonicalField.ID) == 1
        assert column_map.get(CanonicalField.DESCRIPTION) == 0

    def test_empty_headers(self):
        column_map = map_columns([])

        assert len(column_map) == 0


class TestSynonymTable:
    """The synonym table is shared, read-only configuration."""

    def test_table_is_immutable(self):
        with pytest.raises(TypeError):
            HEADER_SYNONYMS[CanonicalField.ID] = ("x",)

    def test_every_field_has_synonyms(self):
        for canonical in CanonicalField:
            assert HEADER_SYNONYMS[canonical]

    def test_column_map_accepts_string_field_names(self):
        column_map = ColumnMap(indices={CanonicalField.PART_NUMBER: 3})

        assert column_map.get("part_number") == 3
