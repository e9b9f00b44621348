"""
Content-type descriptors derived from the SQLAlchemy mappings.

A ``ContentType`` answers the questions the generic services ask about a
model: which columns are plain attributes and of what kind, which
relationships exist and how removal cascades through them, and how raw
request values are coerced to column types.
"""
from __future__ import annotations

import enum
import logging
from dataclasses import dataclass, field
from functools import lru_cache
from typing import Any, Mapping

from pydantic import TypeAdapter
from sqlalchemy import (
    JSON,
    Boolean,
    Date,
    DateTime,
    Enum,
    Float,
    Integer,
    Numeric,
    String,
    Text,
    Time,
    inspect,
)
from sqlalchemy.orm import RelationshipDirection, configure_mappers

from app.exceptions import UnknownAttributeError

logger = logging.getLogger(__name__)


class RelationNature(str, enum.Enum):
    ONE_WAY = "oneWay"
    ONE_TO_ONE = "oneToOne"
    ONE_TO_MANY = "oneToMany"
    MANY_TO_ONE = "manyToOne"
    MANY_TO_MANY = "manyToMany"
    ONE_TO_MANY_MORPH = "oneToManyMorph"
    MANY_TO_MANY_MORPH = "manyToManyMorph"


# Natures that hold at most one related entry on this side.
SINGULAR_NATURES = frozenset(
    {
        RelationNature.ONE_WAY,
        RelationNature.ONE_TO_ONE,
        RelationNature.MANY_TO_ONE,
        RelationNature.ONE_TO_MANY_MORPH,
    }
)

TEXT_TYPES = frozenset({"string", "text"})
NUMERIC_TYPES = frozenset({"integer", "decimal", "float"})
BOOLEAN_TYPES = frozenset({"boolean"})


def clear_value(nature: RelationNature) -> list | None:
    """Value that detaches every related entry for an association of *nature*."""
    return None if nature in SINGULAR_NATURES else []


def attribute_type(column_type) -> str:
    """Map a SQLAlchemy column type to its attribute type name."""
    # Order matters: Boolean/Enum/Text/Float are subclasses of broader types.
    if isinstance(column_type, Boolean):
        return "boolean"
    if isinstance(column_type, Enum):
        return "enumeration"
    if isinstance(column_type, Text):
        return "text"
    if isinstance(column_type, String):
        return "string"
    if isinstance(column_type, Integer):
        return "integer"
    if isinstance(column_type, Float):
        return "float"
    if isinstance(column_type, Numeric):
        return "decimal"
    if isinstance(column_type, DateTime):
        return "datetime"
    if isinstance(column_type, Date):
        return "date"
    if isinstance(column_type, Time):
        return "time"
    if isinstance(column_type, JSON):
        return "json"
    return "other"


@lru_cache(maxsize=None)
def _adapter(python_type: type) -> TypeAdapter:
    return TypeAdapter(python_type)


def _reverse_key(rel) -> str | None:
    if rel.back_populates:
        return rel.back_populates
    if isinstance(rel.backref, str):
        return rel.backref
    if isinstance(rel.backref, tuple):
        return rel.backref[0]
    return None


def _derive_nature(rel) -> RelationNature:
    override = rel.info.get("nature")
    if override:
        return RelationNature(override)

    if rel.direction is RelationshipDirection.MANYTOMANY:
        return RelationNature.MANY_TO_MANY
    if rel.direction is RelationshipDirection.ONETOMANY:
        return RelationNature.ONE_TO_MANY if rel.uselist else RelationNature.ONE_TO_ONE

    reverse_key = _reverse_key(rel)
    if reverse_key is None:
        return RelationNature.ONE_WAY
    reverse = rel.mapper.relationships[reverse_key]
    return RelationNature.MANY_TO_ONE if reverse.uselist else RelationNature.ONE_TO_ONE


@dataclass(frozen=True)
class Association:
    alias: str
    nature: RelationNature
    target: type
    autopopulate: bool = True

    @property
    def singular(self) -> bool:
        return self.nature in SINGULAR_NATURES


@dataclass
class ContentType:
    """Introspected view of one mapped model."""

    model: type
    primary_key: str
    attributes: dict[str, str]
    associations: list[Association]
    # Association alias -> attribute key of the foreign key it owns.
    foreign_keys: dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_model(cls, model: type) -> "ContentType":
        configure_mappers()
        mapper = inspect(model)

        pk_columns = mapper.primary_key
        if len(pk_columns) != 1:
            raise TypeError(f"{model.__name__} must have a single-column primary key")
        primary_key = mapper.get_property_by_column(pk_columns[0]).key

        associations: list[Association] = []
        foreign_keys: dict[str, str] = {}
        fk_columns = set()
        for rel in mapper.relationships:
            associations.append(
                Association(
                    alias=rel.key,
                    nature=_derive_nature(rel),
                    target=rel.mapper.class_,
                    autopopulate=rel.info.get("autopopulate", True),
                )
            )
            if rel.direction is RelationshipDirection.MANYTOONE:
                local = list(rel.local_columns)
                fk_columns.update(local)
                if len(local) == 1:
                    foreign_keys[rel.key] = mapper.get_property_by_column(local[0]).key

        attributes: dict[str, str] = {}
        for prop in mapper.column_attrs:
            column = prop.columns[0]
            if column in fk_columns:
                continue
            attributes[prop.key] = attribute_type(column.type)

        logger.debug(
            "Registered content type %s: %d attributes, %d associations",
            model.__name__, len(attributes), len(associations),
        )
        return cls(
            model=model,
            primary_key=primary_key,
            attributes=attributes,
            associations=associations,
            foreign_keys=foreign_keys,
        )

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    @property
    def name(self) -> str:
        return self.model.__name__

    @property
    def aliases(self) -> list[str]:
        return [a.alias for a in self.associations]

    @property
    def populate(self) -> list[str]:
        """Aliases loaded by default on fetch."""
        return [a.alias for a in self.associations if a.autopopulate]

    def association(self, alias: str) -> Association:
        for association in self.associations:
            if association.alias == alias:
                return association
        raise UnknownAttributeError(self.name, alias)

    def column(self, key: str):
        """
        Return the mapped column attribute for *key*.

        *key* is an attribute, the primary key, or the alias of an
        association owning a foreign key (filtering ``seller=3`` compares
        the ``seller_id`` column).
        """
        if key in self.foreign_keys:
            key = self.foreign_keys[key]
        elif key != self.primary_key and key not in self.attributes:
            raise UnknownAttributeError(self.name, key)
        return getattr(self.model, key)

    def searchable(self, kinds: frozenset[str] | None = None, exclude: frozenset[str] = frozenset()) -> list[str]:
        """Attribute keys (never the primary key) filtered by attribute type."""
        return [
            key
            for key, kind in self.attributes.items()
            if key != self.primary_key
            and key not in self.aliases
            and (kinds is None or kind in kinds)
            and kind not in exclude
        ]

    # ------------------------------------------------------------------
    # Request values
    # ------------------------------------------------------------------

    def split_values(self, values: Mapping[str, Any]) -> tuple[dict, dict]:
        """Split a request body into ``(data, relations)`` by association alias."""
        aliases = set(self.aliases)
        relations = {k: v for k, v in values.items() if k in aliases}
        data = {k: v for k, v in values.items() if k not in aliases}
        return data, relations

    def coerce(self, key: str, value: Any) -> Any:
        """
        Convert *value* to the Python type of column *key*.

        Raises ``pydantic.ValidationError`` when the value does not fit.
        """
        if value is None:
            return None
        column = self.column(key)
        try:
            python_type = column.type.python_type
        except NotImplementedError:
            return value
        return _adapter(python_type).validate_python(value)

    def coerce_data(self, data: Mapping[str, Any]) -> dict:
        """Coerce a scalar payload; the primary key is never written."""
        coerced = {}
        for key, value in data.items():
            if key == self.primary_key:
                continue
            if key not in self.attributes:
                raise UnknownAttributeError(self.name, key)
            coerced[key] = self.coerce(key, value)
        return coerced


@lru_cache(maxsize=None)
def content_type_for(model: type) -> ContentType:
    """Return the (cached) content type of *model*."""
    return ContentType.from_model(model)
