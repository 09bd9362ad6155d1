from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Generic, Mapping, Type, TypeVar, Union

from pydantic import BaseModel, ValidationError

from src.unicore.errors import InvalidInputError

T = TypeVar("T", bound=BaseModel)

KEY_FIELD = "_id"


def _aware(value: Any) -> Any:
    """Ensure a datetime is timezone-aware (the driver returns naive UTC unless tz_aware is set)."""
    if isinstance(value, datetime) and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _storable(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    return value


@dataclass(frozen=True)
class DocumentCodec(Generic[T]):
    """
    Explicit mapping between an entity model and its stored document.

    - key_attr is the attribute holding the document key; it is never written into the body
      and is filled from `_id` on read.
    - fields maps every other persisted attribute to its stored (lower_snake) field name.
    """

    model: Type[T]
    key_attr: str
    fields: Mapping[str, str]

    def __post_init__(self) -> None:
        model_fields = set(self.model.model_fields)
        if self.key_attr not in model_fields:
            raise ValueError(f"{self.model.__name__} has no key attribute {self.key_attr!r}")
        if self.key_attr in self.fields:
            raise ValueError(f"key attribute {self.key_attr!r} must not be mapped to a body field")
        unknown = set(self.fields) - model_fields
        if unknown:
            raise ValueError(f"{self.model.__name__} has no attributes {sorted(unknown)}")
        stored = list(self.fields.values())
        if len(set(stored)) != len(stored) or KEY_FIELD in stored:
            raise ValueError(f"stored field names for {self.model.__name__} must be unique and not {KEY_FIELD!r}")

    @property
    def entity_name(self) -> str:
        return self.model.__name__

    def field_name(self, name: str) -> str:
        """Translate an attribute name to its stored name; stored names pass through unchanged."""
        if name == self.key_attr:
            return KEY_FIELD
        return self.fields.get(name, name)

    def match_filter(self, expected: Mapping[str, Any]) -> Dict[str, Any]:
        """Equality filter on stored field names for a mapping of attribute names to values."""
        return {self.field_name(name): _storable(value) for name, value in expected.items()}

    def to_document(self, entity: Union[T, Mapping[str, Any]], *, partial: bool = False) -> Dict[str, Any]:
        """
        Serialize an entity (or a mapping of attribute names to values) into a document body.

        With partial=True only the attributes explicitly set on the entity are emitted, which is
        what makes merge writes leave other stored fields untouched. Mappings are always partial.
        """
        if not isinstance(entity, BaseModel):
            unknown = set(entity) - set(self.fields) - {self.key_attr}
            if unknown:
                raise InvalidInputError(f"unknown {self.entity_name} fields: {', '.join(sorted(unknown))}")
            try:
                entity = self.model.model_validate(dict(entity))
            except ValidationError as exc:
                raise InvalidInputError(str(exc)) from exc
            partial = True

        values = entity.model_dump(exclude_unset=partial)
        return {
            self.fields[attr]: _storable(value)
            for attr, value in values.items()
            if attr in self.fields
        }

    def from_document(self, doc: Mapping[str, Any]) -> T:
        """Deserialize a stored document; stored fields without a mapping are ignored."""
        values: Dict[str, Any] = {
            attr: _aware(doc[stored]) for attr, stored in self.fields.items() if stored in doc
        }
        values[self.key_attr] = str(doc[KEY_FIELD])
        return self.model.model_validate(values)
