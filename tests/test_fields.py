"""
Tests for EDM type mapping and row formatting.
"""

from __future__ import annotations

from odc.connector.fields import (
    build_fields,
    format_rows,
    format_value,
    get_field_type,
    select_fields,
)
from odc.types import ConceptType, EntitySchema, FieldType

SCHEMA = EntitySchema(
    entity_set="Documents",
    entity_type="Document",
    properties={
        "DocumentId": "Edm.Int32",
        "Title": "Edm.String",
        "IsPrivileged": "Edm.Boolean",
        "CreatedOn": "Edm.DateTimeOffset",
        "FiledOn": "Edm.Date",
        "Custom": "NoType",
    },
)


class TestFieldTypes:
    """Test EDM to host field mapping."""

    def test_numbers_are_metrics(self) -> None:
        for edm_type in ["Edm.Int32", "Edm.Int64", "Edm.Decimal"]:
            info = get_field_type(edm_type)
            assert info.concept_type is ConceptType.METRIC
            assert info.data_type is FieldType.NUMBER

    def test_boolean(self) -> None:
        assert get_field_type("Edm.Boolean").data_type is FieldType.BOOLEAN

    def test_dates(self) -> None:
        assert get_field_type("Edm.Date").data_type is FieldType.YEAR_MONTH_DAY
        assert get_field_type("Edm.DateTime").data_type is FieldType.YEAR_MONTH_DAY_HOUR
        assert get_field_type("Edm.DateTimeOffset").data_type is FieldType.YEAR_MONTH_DAY_HOUR

    def test_unknown_types_are_text_dimensions(self) -> None:
        for edm_type in ["Edm.Guid", "NoType", None]:
            info = get_field_type(edm_type)
            assert info.concept_type is ConceptType.DIMENSION
            assert info.data_type is FieldType.TEXT


class TestBuildFields:
    """Test host field construction."""

    def test_one_field_per_property(self) -> None:
        fields = build_fields(SCHEMA)

        assert [f.id for f in fields] == list(SCHEMA.properties)
        assert fields[0].to_dict() == {
            "id": "DocumentId",
            "name": "DocumentId",
            "conceptType": "metric",
            "dataType": "NUMBER",
        }

    def test_select_fields_keeps_requested_order(self) -> None:
        fields = build_fields(SCHEMA)
        selected = select_fields(fields, ["Title", "Unknown", "DocumentId"])

        assert [f.id for f in selected] == ["Title", "DocumentId"]


class TestFormatting:
    """Test value conversion for the host."""

    def test_null_becomes_empty_string(self) -> None:
        assert format_value(None, FieldType.TEXT) == ""
        assert format_value(None, FieldType.NUMBER) == ""

    def test_date_hour(self) -> None:
        assert format_value("2017-03-17T20:00:00Z", FieldType.YEAR_MONTH_DAY_HOUR) == "2017031720"
        assert format_value("2017-03-17T20:00", FieldType.YEAR_MONTH_DAY_HOUR) == "2017031720"

    def test_date(self) -> None:
        assert format_value("2017-03-17", FieldType.YEAR_MONTH_DAY) == "20170317"

    def test_other_values_pass_through(self) -> None:
        assert format_value(42, FieldType.NUMBER) == 42
        assert format_value(True, FieldType.BOOLEAN) is True
        assert format_value("a-b", FieldType.TEXT) == "a-b"

    def test_format_rows(self) -> None:
        raw = [
            {"DocumentId": 1, "Title": "Memo", "CreatedOn": "2020-01-02T03:04:05Z"},
            {"DocumentId": 2, "Title": None},
        ]

        rows = format_rows(SCHEMA, ["Title", "CreatedOn", "DocumentId"], raw)

        assert rows == [
            {"values": ["Memo", "2020010203", 1]},
            {"values": ["", "", 2]},
        ]
