"""
Core types for the OData connector.

This module defines the fundamental data structures used throughout the system:
- Cache records (IndexRecord, CachedRecord)
- Field classification enums for the reporting host (FieldType, ConceptType)
- Schema and field descriptions (EntitySchema, FieldTypeInfo, FieldSpec)
- Helper functions for ID generation and timestamps
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from uuid6 import uuid7

JSONValue = Any
ODataRow = dict[str, Any]
DataRow = dict[str, list[Any]]


def generate_id(prefix: str = "") -> str:
    """Generate a time-ordered unique ID using UUID7.

    Args:
        prefix: Optional prefix for the ID (e.g., "rows")

    Returns:
        A unique ID string, optionally prefixed.
    """
    uid = str(uuid7())
    return f"{prefix}_{uid}" if prefix else uid


def now_ms() -> int:
    """Milliseconds since the epoch."""
    return time.time_ns() // 1_000_000


@dataclass(frozen=True)
class IndexRecord:
    """Index entry of a sharded cache item.

    ``subs`` lists the chunk keys in the order their contents must be
    concatenated.
    """

    timestamp: int
    subs: tuple[str, ...] = field(default_factory=tuple)

    @classmethod
    def create(cls, subs: list[str] | tuple[str, ...]) -> IndexRecord:
        """Factory method stamping the record with the current time."""
        return cls(timestamp=now_ms(), subs=tuple(subs))

    def to_dict(self) -> dict[str, Any]:
        return {"timestamp": self.timestamp, "subs": list(self.subs)}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> IndexRecord:
        return cls(timestamp=int(data["timestamp"]), subs=tuple(data["subs"]))


@dataclass(frozen=True)
class CachedRecord:
    """A reassembled cache item: the index fields plus the decoded value."""

    timestamp: int
    subs: tuple[str, ...]
    data: JSONValue

    def to_dict(self) -> dict[str, Any]:
        return {"timestamp": self.timestamp, "subs": list(self.subs), "data": self.data}


class FieldType(str, Enum):
    """Data types understood by the reporting host."""

    TEXT = "TEXT"
    NUMBER = "NUMBER"
    BOOLEAN = "BOOLEAN"
    YEAR_MONTH_DAY = "YEAR_MONTH_DAY"  # 20170317
    YEAR_MONTH_DAY_HOUR = "YEAR_MONTH_DAY_HOUR"  # 2017031720


class ConceptType(str, Enum):
    """Whether a field is aggregated (metric) or grouped by (dimension)."""

    DIMENSION = "dimension"
    METRIC = "metric"


@dataclass(frozen=True)
class FieldTypeInfo:
    """Host classification of a single EDM type."""

    concept_type: ConceptType
    data_type: FieldType


@dataclass(frozen=True)
class FieldSpec:
    """A field exposed to the reporting host."""

    id: str
    name: str
    concept_type: ConceptType
    data_type: FieldType

    def to_dict(self) -> dict[str, str]:
        return {
            "id": self.id,
            "name": self.name,
            "conceptType": self.concept_type.value,
            "dataType": self.data_type.value,
        }


@dataclass(frozen=True)
class EntitySchema:
    """Properties of one entity set as described by the service's $metadata.

    ``properties`` maps property name to EDM type name (e.g. "Edm.Int32")
    in document order.
    """

    entity_set: str
    entity_type: str
    properties: dict[str, str] = field(default_factory=dict)

    def edm_type(self, property_name: str) -> str | None:
        return self.properties.get(property_name)
