"""
Relation synchronisation.

Association values arrive as related primary keys (``3``, ``[1, 2]``) or
as objects carrying one (``{"id": 3}``).  Singular associations take one
id or ``None``; plural associations take a list.
"""
import logging
from typing import Any, Mapping

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from app.content_types import Association, ContentType, content_type_for
from app.exceptions import EntryNotFoundError, InvalidParameterError

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _related_id(association: Association, value: Any):
    target = content_type_for(association.target)
    if isinstance(value, Mapping):
        if target.primary_key not in value:
            raise InvalidParameterError(
                f"{association.alias} entries must carry {target.primary_key!r}",
                details={association.alias: value},
            )
        value = value[target.primary_key]
    return target.coerce(target.primary_key, value)


def _as_list(association: Association, value: Any) -> list:
    if value is None:
        return []
    if not isinstance(value, (list, tuple)):
        raise InvalidParameterError(
            f"{association.alias} expects a list of related entries",
            details={association.alias: value},
        )
    return list(value)


def _as_single(association: Association, value: Any) -> Any:
    if isinstance(value, (list, tuple)):
        raise InvalidParameterError(
            f"{association.alias} expects a single related entry",
            details={association.alias: value},
        )
    return value


async def _resolve(db: AsyncSession, association: Association, values: list) -> list:
    """Load the related entries for *values*, keeping their order."""
    ids = [_related_id(association, v) for v in values]
    if not ids:
        return []
    target = content_type_for(association.target)
    pk = getattr(target.model, target.primary_key)
    result = await db.execute(select(target.model).where(pk.in_(ids)))
    found = {getattr(row, target.primary_key): row for row in result.scalars().all()}
    for related_id in ids:
        if related_id not in found:
            raise EntryNotFoundError(target.name, related_id)
    return [found[related_id] for related_id in dict.fromkeys(ids)]


def _pk_of(association: Association, related) -> Any:
    return getattr(related, content_type_for(association.target).primary_key)


async def load_entry(db: AsyncSession, content_type: ContentType, entry_id, aliases):
    """
    Load *entry_id* with *aliases* eagerly loaded.

    ``populate_existing`` refreshes an instance already in the identity
    map, including attributes expired by a previous flush.
    """
    model = content_type.model
    stmt = (
        select(model)
        .where(getattr(model, content_type.primary_key) == entry_id)
        .options(*(selectinload(getattr(model, alias)) for alias in aliases))
        .execution_options(populate_existing=True)
    )
    result = await db.execute(stmt)
    entry = result.scalar_one_or_none()
    if entry is None:
        raise EntryNotFoundError(content_type.name, entry_id)
    return entry


async def _load_for_mutation(db, content_type, entry_id, values: Mapping[str, Any]):
    associations = [content_type.association(alias) for alias in values]
    entry = await load_entry(db, content_type, entry_id, [a.alias for a in associations])
    return entry, associations


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

async def update_relations(
    db: AsyncSession,
    content_type: ContentType,
    entry_id,
    values: Mapping[str, Any],
):
    """
    Make each association named in *values* point exactly at the given ids.

    Plural associations are replaced as a whole: related entries left out
    are detached (their foreign key nulled, or their join rows deleted).
    """
    entry, associations = await _load_for_mutation(db, content_type, entry_id, values)

    for association in associations:
        value = values[association.alias]
        if association.singular:
            value = _as_single(association, value)
            related = None if value is None else (await _resolve(db, association, [value]))[0]
            setattr(entry, association.alias, related)
        else:
            related = await _resolve(db, association, _as_list(association, value))
            setattr(entry, association.alias, related)

    await db.flush()
    if associations:
        logger.info(
            "Synchronised %s %s relations: %s",
            content_type.name, entry_id, ", ".join(a.alias for a in associations),
        )
    return entry


async def add_relations(
    db: AsyncSession,
    content_type: ContentType,
    entry_id,
    values: Mapping[str, Any],
):
    """Attach related entries without detaching the current ones."""
    entry, associations = await _load_for_mutation(db, content_type, entry_id, values)

    for association in associations:
        value = values[association.alias]
        if association.singular:
            value = _as_single(association, value)
            if value is not None:
                related = await _resolve(db, association, [value])
                setattr(entry, association.alias, related[0])
            continue

        collection = getattr(entry, association.alias)
        present = {_pk_of(association, r) for r in collection}
        for related in await _resolve(db, association, _as_list(association, value)):
            if _pk_of(association, related) not in present:
                collection.append(related)

    await db.flush()
    return entry


async def remove_relations(
    db: AsyncSession,
    content_type: ContentType,
    entry_id,
    values: Mapping[str, Any],
):
    """
    Detach the given related entries.

    A singular association is cleared only when it currently points at
    the given id.
    """
    entry, associations = await _load_for_mutation(db, content_type, entry_id, values)

    for association in associations:
        value = values[association.alias]
        if association.singular:
            value = _as_single(association, value)
            current = getattr(entry, association.alias)
            if current is not None and value is not None:
                if _pk_of(association, current) == _related_id(association, value):
                    setattr(entry, association.alias, None)
            continue

        ids = {_related_id(association, v) for v in _as_list(association, value)}
        collection = getattr(entry, association.alias)
        for related in [r for r in collection if _pk_of(association, r) in ids]:
            collection.remove(related)

    await db.flush()
    return entry
