"""
Generic collection service shared by every content type.

Design notes
------------
- A service is bound to one model; ``CollectionService(Seller)`` exposes
  fetch_all / fetch / count / add / edit / remove / search plus the three
  relation mutations.  Per-resource modules only instantiate it.
- Associations are ``lazy="noload"`` on the models; the associations a
  content type marks for auto-population are loaded with
  ``selectinload`` on every read.
- Writes flush but do not commit; the transaction boundary is owned by
  the ``get_db`` dependency in the router layer.
- Every write returns the entry re-read from the database, so columns
  filled by the server (``created_at``, ``updated_at``) are current.
"""
import enum
import logging
import math
import re
from datetime import date, datetime, time
from decimal import Decimal
from typing import Any, Mapping

from pydantic import ValidationError
from sqlalchemy import (
    BigInteger,
    Integer,
    Select,
    SmallInteger,
    String,
    cast,
    func,
    or_,
    select,
)
from sqlalchemy.dialects.mysql import match as mysql_match
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from app import relations
from app.content_types import (
    BOOLEAN_TYPES,
    NUMERIC_TYPES,
    TEXT_TYPES,
    ContentType,
    clear_value,
    content_type_for,
)
from app.exceptions import InvalidParameterError
from app.filters import apply_where, apply_window, convert_params

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Search helpers
# ---------------------------------------------------------------------------

_SEARCH_STRIP_RE = re.compile(r"[^a-zA-Z0-9.\-\s]+")

_NON_OTHER_TYPES = TEXT_TYPES | NUMERIC_TYPES | BOOLEAN_TYPES

# Signed storage width per integer column type, most specific first.
_INTEGER_BITS = ((SmallInteger, 16), (BigInteger, 64), (Integer, 32))


def sanitize_query(raw: str | list[str] | None) -> str:
    """Drop every character that is not a letter, digit, dot, hyphen or whitespace."""
    if isinstance(raw, (list, tuple)):
        raw = " ".join(raw)
    return _SEARCH_STRIP_RE.sub("", raw or "")


def parse_number(query: str) -> float | None:
    """Return *query* as a finite number, or None when it is not one."""
    if not query.strip():
        return None
    try:
        number = float(query)
    except ValueError:
        return None
    return number if math.isfinite(number) else None


def fits_column(column_type, value) -> bool:
    """False when *value* is outside the range an integer column can store."""
    for type_, bits in _INTEGER_BITS:
        if isinstance(column_type, type_):
            bound = 2 ** (bits - 1)
            return -bound <= value < bound
    return True


# ---------------------------------------------------------------------------
# Serialisation helpers
# ---------------------------------------------------------------------------

def _plain(value: Any) -> Any:
    if isinstance(value, (datetime, date, time)):
        return value.isoformat()
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, enum.Enum):
        return value.value
    return value


def _attributes_to_dict(content_type: ContentType, entry) -> dict:
    return {key: _plain(getattr(entry, key)) for key in content_type.attributes}


def entry_to_dict(content_type: ContentType, entry, populate: list[str]) -> dict:
    """
    Serialise an ORM entry to a plain dict.

    Populated associations are embedded one level deep.  Singular
    associations that were not populated are reported by foreign key.
    """
    data = _attributes_to_dict(content_type, entry)
    for association in content_type.associations:
        alias = association.alias
        if alias in populate:
            target = content_type_for(association.target)
            related = getattr(entry, alias)
            if association.singular:
                data[alias] = None if related is None else _attributes_to_dict(target, related)
            else:
                data[alias] = [_attributes_to_dict(target, r) for r in related]
        elif alias in content_type.foreign_keys:
            data[alias] = getattr(entry, content_type.foreign_keys[alias])
    return data


# ---------------------------------------------------------------------------
# Service
# ---------------------------------------------------------------------------

class CollectionService:
    """CRUD, search and relation maintenance for one content type."""

    def __init__(self, model: type) -> None:
        self.model = model
        self.content_type = content_type_for(model)

    def __repr__(self) -> str:
        return f"<CollectionService {self.content_type.name}>"

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _select(self) -> Select:
        populate = self.content_type.populate
        return select(self.model).options(
            *(selectinload(getattr(self.model, alias)) for alias in populate)
        )

    def _to_dict(self, entry) -> dict:
        return entry_to_dict(self.content_type, entry, self.content_type.populate)

    def _entry_id(self, params: Mapping[str, Any]):
        ct = self.content_type
        if ct.primary_key not in params:
            raise InvalidParameterError(f"Missing {ct.primary_key!r} parameter")
        return ct.coerce(ct.primary_key, params[ct.primary_key])

    async def _reload(self, db: AsyncSession, entry_id) -> dict:
        entry = await relations.load_entry(db, self.content_type, entry_id, self.content_type.populate)
        return self._to_dict(entry)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def fetch_all(self, db: AsyncSession, params: Mapping[str, Any]) -> list[dict]:
        """Return the entries matching the query filters, sorted and paginated."""
        ct = self.content_type
        filters = convert_params(ct, params)
        stmt = apply_window(apply_where(self._select(), ct, filters.where), ct, filters)
        result = await db.execute(stmt)
        return [self._to_dict(e) for e in result.scalars().all()]

    async def fetch(self, db: AsyncSession, params: Mapping[str, Any]) -> dict:
        """Return one entry by primary key; raises ``EntryNotFoundError``."""
        return await self._reload(db, self._entry_id(params))

    async def count(self, db: AsyncSession, params: Mapping[str, Any]) -> int:
        """Count the entries matching the query filters (no sort or pagination)."""
        filters = convert_params(self.content_type, params)
        stmt = apply_where(
            select(func.count()).select_from(self.model), self.content_type, filters.where
        )
        return (await db.execute(stmt)).scalar_one()

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def add(self, db: AsyncSession, values: Mapping[str, Any]) -> dict:
        """Insert the scalar values, then attach the relations."""
        ct = self.content_type
        data, relation_values = ct.split_values(values)

        entry = self.model(**ct.coerce_data(data))
        db.add(entry)
        await db.flush()
        entry_id = getattr(entry, ct.primary_key)
        logger.info("Created %s %s", ct.name, entry_id)

        await relations.update_relations(db, ct, entry_id, relation_values)
        return await self._reload(db, entry_id)

    async def edit(self, db: AsyncSession, params: Mapping[str, Any], values: Mapping[str, Any]) -> dict:
        """Apply scalar changes to an existing entry, then its relation changes."""
        ct = self.content_type
        entry_id = self._entry_id(params)
        data, relation_values = ct.split_values(values)

        entry = await relations.load_entry(db, ct, entry_id, [])
        for key, value in ct.coerce_data(data).items():
            setattr(entry, key, value)
        await db.flush()
        logger.info("Updated %s %s (%s)", ct.name, entry_id, ", ".join(data) or "no attributes")

        await relations.update_relations(db, ct, entry_id, relation_values)
        return await self._reload(db, entry_id)

    async def remove(self, db: AsyncSession, params: Mapping[str, Any]) -> dict:
        """
        Delete an entry and return it as it was.

        Every association is detached first (``None`` for singular natures,
        ``[]`` for plural ones), then the row is deleted.
        """
        ct = self.content_type
        entry_id = self._entry_id(params)
        removed = await self._reload(db, entry_id)

        detached = {a.alias: clear_value(a.nature) for a in ct.associations}
        entry = await relations.update_relations(db, ct, entry_id, detached)

        await db.delete(entry)
        await db.flush()
        logger.info("Removed %s %s", ct.name, entry_id)
        return removed

    # ------------------------------------------------------------------
    # Relations
    # ------------------------------------------------------------------

    async def add_relation(self, db: AsyncSession, params: Mapping[str, Any], values: Mapping[str, Any]) -> dict:
        entry_id = self._entry_id(params)
        await relations.add_relations(db, self.content_type, entry_id, values)
        return await self._reload(db, entry_id)

    async def edit_relation(self, db: AsyncSession, params: Mapping[str, Any], values: Mapping[str, Any]) -> dict:
        entry_id = self._entry_id(params)
        await relations.update_relations(db, self.content_type, entry_id, values)
        return await self._reload(db, entry_id)

    async def remove_relation(self, db: AsyncSession, params: Mapping[str, Any], values: Mapping[str, Any]) -> dict:
        entry_id = self._entry_id(params)
        await relations.remove_relations(db, self.content_type, entry_id, values)
        return await self._reload(db, entry_id)

    # ------------------------------------------------------------------
    # Search
    # ------------------------------------------------------------------

    def search_criteria(self, query: str, dialect_name: str) -> list:
        """
        Build the OR-ed criteria matching *query* (already sanitised).

        Non-text, non-numeric, non-boolean attributes match by substring;
        numeric ones by equality when *query* is a number; boolean ones
        when it is ``true`` or ``false``; text attributes go through the
        engine's full-text operator.
        """
        ct = self.content_type
        model = self.model
        criteria = []

        if query:
            lowered = query.lower()
            for key in ct.searchable(exclude=_NON_OTHER_TYPES):
                criteria.append(func.lower(cast(getattr(model, key), String)).like(f"%{lowered}%"))

        number = parse_number(query)
        if number is not None:
            for key in ct.searchable(NUMERIC_TYPES):
                try:
                    value = ct.coerce(key, number)
                except ValidationError:
                    # 1.5 cannot equal an integer column.
                    continue
                column = getattr(model, key)
                if not fits_column(column.type, value):
                    continue
                criteria.append(column == value)

        if query in ("true", "false"):
            for key in ct.searchable(BOOLEAN_TYPES):
                criteria.append(getattr(model, key).is_(query == "true"))

        columns = [getattr(model, key) for key in ct.searchable(TEXT_TYPES)]
        if columns:
            if dialect_name == "postgresql":
                vector = func.to_tsvector(func.coalesce(columns[0], ""))
                for column in columns[1:]:
                    vector = vector.op("||")(func.to_tsvector(func.coalesce(column, "")))
                criteria.append(vector.op("@@", is_comparison=True)(func.plainto_tsquery(query)))
            elif dialect_name in ("mysql", "mariadb"):
                criteria.append(mysql_match(*columns, against=f"*{query}*").in_boolean_mode())
            else:
                # No native full-text operator on plain tables (SQLite).
                lowered = query.lower()
                criteria.extend(func.lower(column).like(f"%{lowered}%") for column in columns)

        return criteria

    def build_search_statement(self, params: Mapping[str, Any], dialect_name: str) -> Select:
        ct = self.content_type
        filters = convert_params(ct, {k: v for k, v in params.items() if k.startswith("_")})
        query = sanitize_query(params.get("_q"))
        logger.debug("Searching %s for %r (%s)", ct.name, query, dialect_name)

        stmt = self._select()
        criteria = self.search_criteria(query, dialect_name)
        if criteria:
            stmt = stmt.where(or_(*criteria))
        return apply_window(stmt, ct, filters)

    async def search(self, db: AsyncSession, params: Mapping[str, Any]) -> list[dict]:
        """Free-text search over every attribute, sorted and paginated like fetch_all."""
        dialect_name = db.get_bind().dialect.name
        result = await db.execute(self.build_search_statement(params, dialect_name))
        return [self._to_dict(e) for e in result.scalars().all()]
