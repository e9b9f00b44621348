"""
Query-string filters.

``convert_params`` normalises a raw query bag such as::

    {"name_contains": "acme", "rating_gte": "4", "_sort": "name:desc",
     "_start": "20", "_limit": "10"}

into a ``Filters`` descriptor, and ``apply_where`` compiles its where
clauses onto a SQLAlchemy ``Select``.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Mapping

from sqlalchemy import Select, String, and_, cast, or_

from app.config import settings
from app.content_types import ContentType
from app.exceptions import InvalidParameterError

# Suffix -> operator symbol.  A key without a known suffix compares with "=".
_SUFFIXES: dict[str, str] = {
    "ne": "!=",
    "lt": "<",
    "lte": "<=",
    "gt": ">",
    "gte": ">=",
    "contains": "ilike",
    "containss": "like",
    "in": "IN",
}

_LIKE_SYMBOLS = frozenset({"like", "ilike"})

# Keys consumed elsewhere (``_q`` by search).
_IGNORED_KEYS = frozenset({"_q"})


@dataclass(frozen=True)
class WhereClause:
    symbol: str
    value: Any


@dataclass(frozen=True)
class SortSpec:
    key: str
    order: str  # "ASC" or "DESC"


@dataclass
class Filters:
    where: dict[str, WhereClause] = field(default_factory=dict)
    sort: SortSpec | None = None
    start: int = 0
    limit: int | None = None


def _single(key: str, value) -> str:
    if isinstance(value, (list, tuple)):
        if len(value) != 1:
            raise InvalidParameterError(f"{key} accepts a single value")
        return value[0]
    return value


def _parse_int(key: str, value) -> int:
    try:
        return int(float(_single(key, value)))
    except (TypeError, ValueError, OverflowError):
        # OverflowError: "inf", "1e999".
        raise InvalidParameterError(f"{key} must be a number", details={key: value})


def _parse_sort(content_type: ContentType, value) -> SortSpec:
    raw = _single("_sort", value)
    key, _, order = raw.partition(":")
    order = (order or "ASC").upper()
    if order not in ("ASC", "DESC"):
        raise InvalidParameterError(
            "_sort order must be ASC or DESC", details={"_sort": raw}
        )
    # Raises UnknownAttributeError for anything that is not a column.
    content_type.column(key)
    return SortSpec(key=key, order=order)


def _split_suffix(content_type: ContentType, key: str) -> tuple[str, str]:
    if key in content_type.attributes or key in content_type.foreign_keys:
        return key, "="
    field_name, sep, suffix = key.rpartition("_")
    if sep and field_name and suffix in _SUFFIXES:
        return field_name, _SUFFIXES[suffix]
    return key, "="


def _where_value(content_type: ContentType, key: str, symbol: str, value):
    if symbol in _LIKE_SYMBOLS:
        if isinstance(value, (list, tuple)):
            return [f"%{v}%" for v in value]
        return f"%{value}%"
    if symbol == "IN" and not isinstance(value, (list, tuple)):
        value = [value]
    if isinstance(value, (list, tuple)):
        return [content_type.coerce(key, v) for v in value]
    return content_type.coerce(key, value)


def convert_params(content_type: ContentType, params: Mapping[str, Any]) -> Filters:
    """Normalise a raw query bag into a ``Filters`` descriptor."""
    filters = Filters(limit=settings.DEFAULT_LIMIT)

    for key, value in params.items():
        if key in _IGNORED_KEYS:
            continue
        if key == "_start":
            filters.start = max(_parse_int(key, value), 0)
        elif key == "_limit":
            limit = _parse_int(key, value)
            filters.limit = None if limit < 0 else min(limit, settings.MAX_LIMIT)
        elif key == "_sort":
            filters.sort = _parse_sort(content_type, value)
        else:
            field_name, symbol = _split_suffix(content_type, key)
            # Validates the field before any value coercion.
            content_type.column(field_name)
            filters.where[field_name] = WhereClause(
                symbol=symbol,
                value=_where_value(content_type, field_name, symbol, value),
            )

    return filters


def _compare(column, symbol: str, value):
    if symbol in _LIKE_SYMBOLS and not isinstance(column.type, String):
        # Numbers, dates and the like are matched on their text form.
        column = cast(column, String)
    if symbol == "=":
        return column.is_(None) if value is None else column == value
    if symbol == "!=":
        return column.is_not(None) if value is None else column != value
    if symbol == "<":
        return column < value
    if symbol == "<=":
        return column <= value
    if symbol == ">":
        return column > value
    if symbol == ">=":
        return column >= value
    if symbol == "like":
        return column.like(value)
    if symbol == "ilike":
        return column.ilike(value)
    if symbol == "IN":
        return column.in_(value)
    raise InvalidParameterError(f"Unsupported operator {symbol!r}")


def where_criteria(content_type: ContentType, where: Mapping[str, WhereClause]) -> list:
    """
    Build one SQL criterion per where clause.

    A list value under any operator but ``IN`` matches when any of its
    values matches (``a = 1 OR a = 2``).
    """
    criteria = []
    for key, clause in where.items():
        column = content_type.column(key)
        if isinstance(clause.value, (list, tuple)) and clause.symbol != "IN":
            criteria.append(or_(*(_compare(column, clause.symbol, v) for v in clause.value)))
        else:
            criteria.append(_compare(column, clause.symbol, clause.value))
    return criteria


def apply_where(stmt: Select, content_type: ContentType, where: Mapping[str, WhereClause]) -> Select:
    criteria = where_criteria(content_type, where)
    if criteria:
        stmt = stmt.where(and_(*criteria))
    return stmt


def apply_window(stmt: Select, content_type: ContentType, filters: Filters) -> Select:
    """Apply sort, offset and limit."""
    if filters.sort:
        column = content_type.column(filters.sort.key)
        stmt = stmt.order_by(column.desc() if filters.sort.order == "DESC" else column.asc())
    if filters.start:
        stmt = stmt.offset(filters.start)
    if filters.limit is not None:
        stmt = stmt.limit(filters.limit)
    return stmt
