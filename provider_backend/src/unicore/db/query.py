from __future__ import annotations

from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from pymongo import ASCENDING, DESCENDING

from src.unicore.errors import InvalidInputError

_OPERATORS = {
    "==": "$eq",
    "!=": "$ne",
    "<": "$lt",
    "<=": "$lte",
    ">": "$gt",
    ">=": "$gte",
    "in": "$in",
    "not-in": "$nin",
}

_DIRECTIONS = {"asc": ASCENDING, "desc": DESCENDING}


def _plain(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (list, tuple, set)):
        return [_plain(v) for v in value]
    return value


@dataclass(frozen=True)
class DocumentQuery:
    """
    Immutable query over one collection.

    Each refinement returns a new query, so a base query can be shared and refined freely.
    Field names are attribute names of the entity; the repository translates them to stored names.
    """

    clauses: Tuple[Tuple[str, str, Any], ...] = ()
    ordering: Tuple[Tuple[str, str], ...] = ()
    max_results: Optional[int] = None

    def where(self, field_name: str, op: str, value: Any) -> "DocumentQuery":
        if op not in _OPERATORS:
            raise InvalidInputError(f"unsupported query operator {op!r}")
        if op in ("in", "not-in") and not isinstance(value, (list, tuple, set)):
            raise InvalidInputError(f"operator {op!r} needs a list of values")
        return replace(self, clauses=self.clauses + ((field_name, op, _plain(value)),))

    def where_equal(self, field_name: str, value: Any) -> "DocumentQuery":
        return self.where(field_name, "==", value)

    def order_by(self, field_name: str, direction: str = "asc") -> "DocumentQuery":
        if direction not in _DIRECTIONS:
            raise InvalidInputError(f"unsupported sort direction {direction!r}")
        return replace(self, ordering=self.ordering + ((field_name, direction),))

    def limit(self, count: int) -> "DocumentQuery":
        if int(count) < 1:
            raise InvalidInputError("limit must be at least 1")
        return replace(self, max_results=int(count))

    # Translation to pymongo arguments; `rename` maps attribute names to stored names.

    def to_filter(self, rename=lambda name: name) -> Dict[str, Any]:
        parts: List[Dict[str, Any]] = [
            {rename(name): {_OPERATORS[op]: value}} for name, op, value in self.clauses
        ]
        if not parts:
            return {}
        if len(parts) == 1:
            return parts[0]
        return {"$and": parts}

    def to_sort(self, rename=lambda name: name) -> List[Tuple[str, int]]:
        return [(rename(name), _DIRECTIONS[direction]) for name, direction in self.ordering]


# Default empty query, shared by repositories as their base query.
EMPTY_QUERY = DocumentQuery()
