# ============================================================================
# RELATED ENTITY IDENTITY
# ============================================================================
# STATUS: Core - Identity bookkeeping for the related-entity side table
# PURPOSE: Derive a stable (type tag, identifier) pair for any domain object
# ============================================================================
"""
Related Entity Identity

Jobs can be associated with arbitrary domain objects through the
job_related_entities side table. The job queue never inspects those objects;
it only needs a stable key for them:

    (related_class, related_id)

related_class is the object's fully qualified class name. related_id is a
JSON object of its identifier values with sorted keys. Identifier columns are
read from a ``__sql_primary_key__`` ClassVar when the class declares one
(as Job does), otherwise from an ``id`` attribute.
"""

import json
from typing import Any, Dict, List, Tuple

from core.exceptions import RelatedEntityError


def related_class_tag(entity: Any) -> str:
    cls = type(entity)
    return f"{cls.__module__}.{cls.__qualname__}"


def related_entity_identifier(entity: Any) -> Tuple[str, str]:
    """
    Compute the side-table key for an entity.

    Raises:
        RelatedEntityError: if the entity is not an object or has no
            non-empty identifier values
    """
    if entity is None or isinstance(entity, (str, bytes, int, float, bool, dict, list, tuple)):
        raise RelatedEntityError(f"entity must be an object, got {type(entity).__name__}")

    columns: List[str] = list(getattr(type(entity), "__sql_primary_key__", None) or ["id"])
    identifier: Dict[str, Any] = {}
    for column in columns:
        value = getattr(entity, column, None)
        if value is not None:
            identifier[column] = value

    relation = related_class_tag(entity)
    if not identifier:
        raise RelatedEntityError(f'The identifier for entity of class "{relation}" was empty.')

    return relation, json.dumps(identifier, sort_keys=True, default=str)


__all__ = ["related_class_tag", "related_entity_identifier"]
