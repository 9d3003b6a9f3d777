"""
OData access package.

- ODataClient: HTTP access to the service root, $metadata and entity sets
- parse_schema_xml: property types of one entity set from $metadata
"""

from odc.odata.client import ODataClient
from odc.odata.schema import parse_schema_xml

__all__ = [
    "ODataClient",
    "parse_schema_xml",
]
