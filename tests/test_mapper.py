"""
Unit tests for the mapping advisor and import preview.

These tests verify that:
1. Headers are suggested by synonym containment, first match wins
2. Unrecognized headers are omitted, never errors
3. Applying a mapping keeps only provided values
4. The preview payload carries the first 10 rows and the full row count
"""

import pytest

from assetkit.errors import MalformedInputError
from assetkit.mapper import FieldMapper, is_provided
from assetkit.parser import ImportParser
from assetkit.adapters import CsvAdapter


# =============================================================================
# SUGGESTION TESTS
# =============================================================================

class TestSuggestions:
    """Tests for header -> canonical field suggestions."""

    def test_asset_tag_suggests_tag(self):
        assert FieldMapper().suggest(["Asset Tag"]) == {"Asset Tag": "tag"}

    def test_unrecognized_header_omitted(self):
        mapping = FieldMapper().suggest(["Asset Tag", "foo_bar"])

        assert "foo_bar" not in mapping
        assert mapping == {"Asset Tag": "tag"}

    @pytest.mark.parametrize("header,expected", [
        ("Serial Number", "serial"),
        ("Model", "model"),
        ("Purchase Price", "cost"),
        ("Purchase Date", "purchase_date"),
        ("Warranty End", "warranty_end"),
        ("Supplier", "vendor"),
        ("Office", "location"),
        ("Assigned To", "owner"),
        ("Comments", "notes"),
        ("PO Number", "po_number"),
    ])
    def test_common_headers(self, header, expected):
        assert FieldMapper().suggest_field(header) == expected

    def test_header_contained_in_synonym(self):
        """A short header matches when a synonym contains it."""
        assert FieldMapper().suggest_field("Warranty Exp") == "warranty_end"

    def test_first_field_in_table_order_wins(self):
        """'model id' contains the tag synonym 'id', and tag is declared first."""
        assert FieldMapper().suggest_field("Model ID") == "tag"

    def test_blank_header(self):
        mapper = FieldMapper()
        assert mapper.suggest_field("") is None
        assert mapper.suggest_field("   ") is None
        assert mapper.suggest(["", "tag"]) == {"tag": "tag"}

    def test_mapping_report(self):
        report = FieldMapper().get_mapping_report(["Asset Tag", "Tag", "foo_bar"])

        assert report["mapped"] == {"tag": ["Asset Tag", "Tag"]}
        assert report["unmapped"] == ["foo_bar"]
        assert "po_number" in report["canonical_fields"]


# =============================================================================
# MAPPING APPLICATION TESTS
# =============================================================================

class TestApply:
    """Tests for projecting raw rows onto canonical fields."""

    def test_is_provided(self):
        assert is_provided("x")
        assert is_provided(0)
        assert not is_provided(None)
        assert not is_provided("")
        assert not is_provided("   ")

    def test_apply_with_mapping(self):
        row = {"Asset Tag": "A1", "SN": "S1", "Price": "", "Extra": "ignored"}
        mapping = {"Asset Tag": "tag", "SN": "serial", "Price": "cost"}

        assert FieldMapper().apply(row, mapping) == {"tag": "A1", "serial": "S1"}

    def test_apply_skips_unmapped_targets(self):
        row = {"Asset Tag": "A1", "Junk": "x"}

        assert FieldMapper().apply(row, {"Asset Tag": "tag", "Junk": ""}) == {"tag": "A1"}

    def test_apply_without_mapping_uses_row_keys(self):
        row = {"tag": "A1", "cost": None, "notes": ""}

        assert FieldMapper().apply(row) == {"tag": "A1"}


# =============================================================================
# PREVIEW TESTS
# =============================================================================

class TestPreview:
    """Tests for the import preview payload."""

    def test_preview_text(self):
        lines = ["Asset Tag,Serial Number,foo_bar"]
        lines += [f"A{i},S{i},x" for i in range(1, 13)]

        preview = ImportParser().preview_text("\n".join(lines))

        assert preview.headers == ["asset tag", "serial number", "foo_bar"]
        assert preview.total_rows == 12
        assert len(preview.preview_rows) == 10
        assert preview.preview_rows[0]["asset tag"] == "A1"
        assert preview.suggested_mapping == {"asset tag": "tag", "serial number": "serial"}

    def test_preview_to_dict(self):
        preview = ImportParser().preview_text("tag,cost\nA1,100")

        assert preview.to_dict() == {
            "headers": ["tag", "cost"],
            "preview_rows": [{"tag": "A1", "cost": "100"}],
            "total_rows": 1,
            "suggested_mapping": {"tag": "tag", "cost": "cost"},
        }

    def test_preview_rejects_single_line(self):
        with pytest.raises(MalformedInputError):
            ImportParser().preview_text("tag,serial")

    def test_preview_file_requires_adapter(self, tmp_path):
        path = tmp_path / "assets.csv"
        path.write_text("tag\nA1\n")
        parser = ImportParser()

        with pytest.raises(ValueError):
            parser.preview_file(str(path))

        parser.register_adapter(CsvAdapter())
        assert parser.preview_file(str(path)).total_rows == 1
