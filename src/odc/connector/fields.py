"""
Mapping from OData EDM types to reporting host fields, and row formatting.

EDM types: https://docs.oasis-open.org/odata/odata-csdl-xml/v4.01/
Unknown or unmapped EDM types are exposed as text dimensions so no data is lost.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from typing import Any

from odc.types import (
    ConceptType,
    DataRow,
    EntitySchema,
    FieldSpec,
    FieldType,
    FieldTypeInfo,
    ODataRow,
)

_METRIC_NUMBER = FieldTypeInfo(ConceptType.METRIC, FieldType.NUMBER)
_TEXT = FieldTypeInfo(ConceptType.DIMENSION, FieldType.TEXT)

EDM_FIELD_TYPES: dict[str, FieldTypeInfo] = {
    "Edm.Int32": _METRIC_NUMBER,
    "Edm.Int64": _METRIC_NUMBER,
    "Edm.Decimal": _METRIC_NUMBER,
    "Edm.Boolean": FieldTypeInfo(ConceptType.METRIC, FieldType.BOOLEAN),
    "Edm.String": _TEXT,
    # "12-00 (noon)": the host has no time-of-day type
    "Edm.Time": _TEXT,
    # "2017-03-17" -> "20170317"
    "Edm.Date": FieldTypeInfo(ConceptType.DIMENSION, FieldType.YEAR_MONTH_DAY),
    # "2017-03-17T20:00" / "2017-03-17T20:00:00Z" -> "2017031720"
    "Edm.DateTime": FieldTypeInfo(ConceptType.DIMENSION, FieldType.YEAR_MONTH_DAY_HOUR),
    "Edm.DateTimeOffset": FieldTypeInfo(ConceptType.DIMENSION, FieldType.YEAR_MONTH_DAY_HOUR),
}


def get_field_type(edm_type: str | None) -> FieldTypeInfo:
    """Host field classification for an EDM type name."""
    if edm_type is None:
        return _TEXT
    return EDM_FIELD_TYPES.get(edm_type, _TEXT)


def build_fields(schema: EntitySchema) -> list[FieldSpec]:
    """One host field per schema property, in schema order."""
    fields = []
    for name, edm_type in schema.properties.items():
        info = get_field_type(edm_type)
        fields.append(
            FieldSpec(
                id=name,
                name=name,
                concept_type=info.concept_type,
                data_type=info.data_type,
            )
        )
    return fields


def select_fields(fields: Iterable[FieldSpec], field_ids: Sequence[str]) -> list[FieldSpec]:
    """Fields matching field_ids, in the order requested. Unknown ids are dropped."""
    by_id = {f.id: f for f in fields}
    return [by_id[fid] for fid in field_ids if fid in by_id]


def format_value(value: Any, data_type: FieldType) -> Any:
    """Convert one OData value to the host's representation."""
    if value is None:
        return ""
    if not isinstance(value, str):
        return value

    if data_type is FieldType.YEAR_MONTH_DAY_HOUR:
        return value.replace("-", "").replace("T", "").split(":")[0]
    if data_type is FieldType.YEAR_MONTH_DAY:
        return value.replace("-", "")
    return value


def format_rows(
    schema: EntitySchema,
    field_ids: Sequence[str],
    raw_rows: Iterable[ODataRow],
) -> list[DataRow]:
    """Project raw OData rows onto the requested fields.

    Missing properties become empty strings.
    """
    types = [get_field_type(schema.edm_type(fid)).data_type for fid in field_ids]

    rows: list[DataRow] = []
    for raw in raw_rows:
        values = []
        for fid, data_type in zip(field_ids, types):
            if fid not in raw:
                values.append("")
            else:
                values.append(format_value(raw[fid], data_type))
        rows.append({"values": values})
    return rows
