"""Tests for record coercion and the entity/relation descriptors."""

from datetime import date, datetime

import pytest

from FormatLibrary.models import (
    EntityKind,
    Format,
    Relation,
    Tag,
    build_record,
    merge_fields,
    parse_date,
    unique_strings,
)


class TestCoercion:
    """Field-level normalisation helpers."""

    @pytest.mark.parametrize(
        "value",
        [
            "2024-03-28",
            "2024-3-28",
            "2024/03/28",
            "2024-03-28T15:08:00",
            datetime(2024, 3, 28, 15, 8),
            date(2024, 3, 28),
        ],
    )
    def test_parse_date_accepts_registry_timestamps(self, value):
        """Dates and timestamps in either form collapse to the calendar date."""
        assert parse_date(value) == date(2024, 3, 28)

    @pytest.mark.parametrize("value", [None, "", "yesterday", "2024-13-01", "20240328"])
    def test_parse_date_rejects_garbage(self, value):
        with pytest.raises(ValueError):
            parse_date(value)

    def test_unique_strings_keeps_first_seen_order(self):
        """Blank and duplicate entries are dropped, order is preserved."""
        assert unique_strings([" tif", "tiff", "tif", "", None, "TIF"]) == ["tif", "tiff", "TIF"]

    def test_unique_strings_wraps_single_string(self):
        assert unique_strings("image/bmp") == ["image/bmp"]
        assert unique_strings(None) == []


class TestRecords:
    """Format and Tag construction."""

    def test_format_from_mapping_normalises_fields(self):
        fmt = Format.from_mapping(
            {
                "uid": "fmt/114",
                "name": "Windows Bitmap",
                "source": "PRONOM",
                "extensions": ["bmp", "bmp", "dib"],
                "created_at": "2024-03-28T15:08:00",
                "version": 3,
            }
        )
        assert fmt.extensions == ["bmp", "dib"]
        assert fmt.created_at == date(2024, 3, 28)
        assert fmt.version == "3"
        assert fmt.mimetypes == []
        assert fmt.properties == {}

    def test_to_dict_renders_iso_date(self):
        fmt = Format(uid="fmt/1", name="x", source="PRONOM", created_at=date(2020, 1, 2))
        assert fmt.to_dict()["created_at"] == "2020-01-02"

    def test_build_record_rejects_unknown_fields(self):
        with pytest.raises(ValueError, match="unknown tag field"):
            build_record(EntityKind.TAG, {"tag": "IMAGE", "colour": "red"})

    def test_map_field_must_be_mapping(self):
        with pytest.raises(ValueError, match="mapping"):
            Tag.from_mapping({"tag": "IMAGE", "info": ["not", "a", "map"]})

    def test_merge_fields_replaces_collections(self):
        """Merging replaces list values instead of unioning them."""
        fmt = Format(uid="fmt/1", extensions=["a", "b"], properties={"k": 1})
        merge_fields(fmt, {"uid": "ignored", "extensions": ["c"], "properties": {"j": 2}}, skip=("uid",))
        assert fmt.uid == "fmt/1"
        assert fmt.extensions == ["c"]
        assert fmt.properties == {"j": 2}


class TestDescriptors:
    """EntityKind and Relation metadata."""

    def test_entity_kind_parse(self):
        assert EntityKind.parse("FORMAT") is EntityKind.FORMAT
        assert EntityKind.parse(EntityKind.TAG) is EntityKind.TAG
        with pytest.raises(ValueError):
            EntityKind.parse("widget")

    def test_columns_follow_record_fields(self):
        assert EntityKind.FORMAT.columns[0] == "uid"
        assert EntityKind.TAG.columns == ("tag", "name", "profile", "properties", "info")
        assert EntityKind.FORMAT.required == ("name", "source")

    def test_relation_endpoints(self):
        assert Relation.FORMAT_TAG.table == "tagged_formats"
        assert Relation.FORMAT_TAG.endpoint_kinds == (EntityKind.TAG, EntityKind.FORMAT)
        assert Relation.TAG_PARENT.columns == ("tag", "parent")
