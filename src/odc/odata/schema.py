"""
Parser for OData $metadata (EDMX) documents.

The service publishes two schemas: one namespace lists the entity sets
(EntityContainer), the other defines the entity types and their properties.
"""

from __future__ import annotations

from bs4 import BeautifulSoup, Tag

from odc.exceptions import SchemaError
from odc.logging import get_logger
from odc.types import EntitySchema

logger = get_logger(__name__)

NO_TYPE = "NoType"


def _find_schema(soup: BeautifulSoup, namespace: str) -> Tag | None:
    for schema in soup.find_all("Schema"):
        if schema.get("Namespace") == namespace:
            return schema
    return None


def _strip_namespace(qualified_name: str, namespace: str) -> str:
    prefix = f"{namespace}."
    if qualified_name.startswith(prefix):
        return qualified_name[len(prefix):]
    return qualified_name.rsplit(".", 1)[-1]


def parse_schema_xml(
    raw_xml: str | bytes,
    entity_name: str,
    edm_namespace: str,
    entity_namespace: str,
) -> EntitySchema:
    """Extract the property types of one entity set.

    Args:
        raw_xml: The $metadata document.
        entity_name: Entity set (table) name.
        edm_namespace: Namespace of the schema holding EntityType elements.
        entity_namespace: Namespace of the schema holding EntitySet elements.

    Returns:
        EntitySchema mapping property name to EDM type.

    Raises:
        SchemaError: If either schema, the entity set or its type is missing.
    """
    soup = BeautifulSoup(raw_xml, "xml")

    entity_schema = _find_schema(soup, entity_namespace)
    if entity_schema is None:
        raise SchemaError(
            "Unable to find the entity schema in $metadata",
            context={"namespace": entity_namespace},
        )
    edm_schema = _find_schema(soup, edm_namespace)
    if edm_schema is None:
        raise SchemaError(
            "Unable to find the EDM schema in $metadata",
            context={"namespace": edm_namespace},
        )

    entity_type_name: str | None = None
    for entity_set in entity_schema.find_all("EntitySet"):
        if entity_set.get("Name") == entity_name:
            entity_type_name = _strip_namespace(entity_set.get("EntityType", ""), edm_namespace)
            break

    if not entity_type_name:
        raise SchemaError(
            f"Unable to find {entity_name} in schema",
            context={"entity": entity_name, "namespace": entity_namespace},
        )

    entity_type = edm_schema.find(
        lambda tag: tag.name == "EntityType" and tag.get("Name") == entity_type_name
    )
    if entity_type is None:
        raise SchemaError(
            f"Unable to find {entity_type_name} in EDM schema",
            context={"entity_type": entity_type_name, "namespace": edm_namespace},
        )

    properties: dict[str, str] = {}
    for prop in entity_type.find_all("Property", recursive=False):
        name = prop.get("Name")
        if not name:
            continue
        properties[name] = prop.get("Type") or NO_TYPE

    logger.debug(
        "Parsed entity schema",
        entity=entity_name,
        entity_type=entity_type_name,
        properties=len(properties),
    )
    return EntitySchema(
        entity_set=entity_name,
        entity_type=entity_type_name,
        properties=properties,
    )
