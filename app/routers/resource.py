"""
Router factory shared by every resource.

Each action maps the request to one service call: query string as a
bag, path id as ``{"id": ...}``, body verbatim.  Errors raised by the
service reach the handlers in ``app.error_handlers`` untouched.
"""
from typing import Any

from fastapi import APIRouter, Body, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_db
from app.dependencies import query_params
from app.services.base import CollectionService


def build_router(service: CollectionService, prefix: str, tag: str) -> APIRouter:
    router = APIRouter(prefix=prefix, tags=[tag])

    @router.get("")
    async def find(params: dict = Depends(query_params), db: AsyncSession = Depends(get_db)):
        if params.get("_q"):
            return await service.search(db, params)
        return await service.fetch_all(db, params)

    # Declared before "/{id}" so "count" is not read as an id.
    @router.get("/count")
    async def count(params: dict = Depends(query_params), db: AsyncSession = Depends(get_db)) -> int:
        return await service.count(db, params)

    @router.get("/{id}")
    async def find_one(id: int, db: AsyncSession = Depends(get_db)):
        return await service.fetch(db, {"id": id})

    @router.post("", status_code=201)
    async def create(values: dict[str, Any] = Body(...), db: AsyncSession = Depends(get_db)):
        return await service.add(db, values)

    @router.put("/{id}")
    async def update(id: int, values: dict[str, Any] = Body(...), db: AsyncSession = Depends(get_db)):
        return await service.edit(db, {"id": id}, values)

    @router.delete("/{id}")
    async def destroy(id: int, db: AsyncSession = Depends(get_db)):
        return await service.remove(db, {"id": id})

    @router.post("/{id}/relationships")
    async def create_relation(id: int, values: dict[str, Any] = Body(...), db: AsyncSession = Depends(get_db)):
        return await service.add_relation(db, {"id": id}, values)

    @router.put("/{id}/relationships")
    async def update_relation(id: int, values: dict[str, Any] = Body(...), db: AsyncSession = Depends(get_db)):
        return await service.edit_relation(db, {"id": id}, values)

    @router.delete("/{id}/relationships")
    async def destroy_relation(id: int, values: dict[str, Any] = Body(...), db: AsyncSession = Depends(get_db)):
        return await service.remove_relation(db, {"id": id}, values)

    return router
