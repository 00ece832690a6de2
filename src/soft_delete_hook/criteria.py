"""Criteria helpers for soft-deleted records"""

from types import MappingProxyType
from typing import Any, Optional

DELETED_AT = "deleted_at"

# Marker condition matching trashed records only; copy before use
TRASHED = MappingProxyType({"!=": None})


def add_deleted_at_to_criteria(criteria: Any, deleted_at: Any, pk: Optional[str] = None) -> Any:
    """
    Merge a ``deleted_at`` condition into ``criteria``

    Absent criteria become ``{}`` and a scalar becomes ``{pk: scalar}`` when
    ``pk`` is given. Dict criteria are mutated in place. The condition goes
    into ``where`` when present, and always replaces a caller-supplied one.
    """
    if criteria is None:
        criteria = {}
    elif not isinstance(criteria, dict):
        if not pk:
            # Left for the engine to validate
            return criteria
        criteria = {pk: criteria}

    where = criteria.get("where")
    target = where if isinstance(where, dict) else criteria
    target[DELETED_AT] = deleted_at

    return criteria
