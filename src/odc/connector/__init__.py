"""
Connector package.

Host-facing side of the adapter:
- Connector (service.py): auth, configuration, schema and data handlers
- Field mapping and row formatting (fields.py)
- Per-user properties (properties.py)
"""

from odc.connector.fields import build_fields, format_rows, get_field_type
from odc.connector.properties import PropertyStore
from odc.connector.service import Connector, validate_cache_ttl

__all__ = [
    "Connector",
    "PropertyStore",
    "build_fields",
    "format_rows",
    "get_field_type",
    "validate_cache_ttl",
]
