"""
Customer endpoint tests — singular relations (manyToOne seller, oneWay
preferred type), value coercion and filtering by relation.
"""
from decimal import Decimal

import pytest
from httpx import AsyncClient

BASE = "/api/v1/customers"


async def _seller(client: AsyncClient, name: str) -> int:
    return (await client.post("/api/v1/sellers", json={"name": name})).json()["id"]


async def _type(client: AsyncClient, name: str) -> int:
    return (await client.post("/api/v1/types", json={"name": name})).json()["id"]


@pytest.mark.asyncio
async def test_create_with_relations(async_client: AsyncClient):
    seller_id = await _seller(async_client, "Acme")
    type_id = await _type(async_client, "Books")

    resp = await async_client.post(BASE, json={
        "first_name": "Ann",
        "last_name": "Lee",
        "age": 34,
        "balance": "120.50",
        "is_vip": True,
        "birthday": "1990-05-01",
        "seller": seller_id,
        "preferred_type": {"id": type_id},
    })
    assert resp.status_code == 201
    customer = resp.json()
    assert customer["first_name"] == "Ann"
    assert isinstance(customer["balance"], str)
    assert Decimal(customer["balance"]) == Decimal("120.50")
    assert customer["birthday"] == "1990-05-01"
    assert customer["seller"]["name"] == "Acme"
    assert customer["preferred_type"]["name"] == "Books"


@pytest.mark.asyncio
async def test_create_minimal(async_client: AsyncClient):
    resp = await async_client.post(BASE, json={"first_name": "Bob"})
    assert resp.status_code == 201
    customer = resp.json()
    assert customer["seller"] is None
    assert customer["preferred_type"] is None
    assert customer["is_vip"] is False


@pytest.mark.asyncio
async def test_create_invalid_value(async_client: AsyncClient):
    resp = await async_client.post(BASE, json={"first_name": "Ann", "age": "old"})
    assert resp.status_code == 422
    assert resp.json()["error_code"] == "VALIDATION_ERROR"


@pytest.mark.asyncio
async def test_create_unknown_attribute(async_client: AsyncClient):
    resp = await async_client.post(BASE, json={"first_name": "Ann", "nickname": "Annie"})
    assert resp.status_code == 400
    assert resp.json()["error_code"] == "UNKNOWN_ATTRIBUTE"


@pytest.mark.asyncio
async def test_create_requires_object_body(async_client: AsyncClient):
    resp = await async_client.post(BASE, json=["not", "an", "object"])
    assert resp.status_code == 422


@pytest.mark.asyncio
async def test_filter_by_relation_alias(async_client: AsyncClient):
    acme = await _seller(async_client, "Acme")
    bolt = await _seller(async_client, "Bolt")
    for name, seller_id in (("Ann", acme), ("Bob", bolt), ("Cid", acme)):
        await async_client.post(BASE, json={"first_name": name, "seller": seller_id})

    resp = await async_client.get(BASE, params={"seller": acme, "_sort": "first_name"})
    assert [c["first_name"] for c in resp.json()] == ["Ann", "Cid"]

    resp = await async_client.get(f"{BASE}/count", params={"seller": bolt})
    assert resp.json() == 1


@pytest.mark.asyncio
async def test_unknown_filter(async_client: AsyncClient):
    resp = await async_client.get(BASE, params={"bogus": "1"})
    assert resp.status_code == 400
    assert resp.json()["error_code"] == "UNKNOWN_ATTRIBUTE"


@pytest.mark.asyncio
async def test_invalid_sort(async_client: AsyncClient):
    resp = await async_client.get(BASE, params={"_sort": "first_name:sideways"})
    assert resp.status_code == 400
    assert resp.json()["error_code"] == "INVALID_PARAMETER"


@pytest.mark.asyncio
async def test_update_moves_customer_to_other_seller(async_client: AsyncClient):
    acme = await _seller(async_client, "Acme")
    bolt = await _seller(async_client, "Bolt")
    customer = (await async_client.post(BASE, json={"first_name": "Ann", "seller": acme})).json()

    resp = await async_client.put(f"{BASE}/{customer['id']}", json={"notes": "moved", "seller": bolt})
    assert resp.status_code == 200
    body = resp.json()
    assert body["notes"] == "moved"
    assert body["seller"]["id"] == bolt


@pytest.mark.asyncio
async def test_destroy(async_client: AsyncClient):
    acme = await _seller(async_client, "Acme")
    customer = (await async_client.post(BASE, json={"first_name": "Ann", "seller": acme})).json()

    resp = await async_client.delete(f"{BASE}/{customer['id']}")
    assert resp.status_code == 200
    assert resp.json()["first_name"] == "Ann"
    assert (await async_client.get(f"{BASE}/count")).json() == 0
    assert (await async_client.get(f"/api/v1/sellers/{acme}")).status_code == 200


@pytest.mark.asyncio
async def test_destroy_not_found(async_client: AsyncClient):
    resp = await async_client.delete(f"{BASE}/99999")
    assert resp.status_code == 404


@pytest.mark.asyncio
async def test_contains_filter_on_integer_column(async_client: AsyncClient):
    await async_client.post(BASE, json={"first_name": "Ann", "age": 34})
    await async_client.post(BASE, json={"first_name": "Bob", "age": 51})

    resp = await async_client.get(BASE, params={"age_contains": "3"})
    assert resp.status_code == 200
    assert [c["first_name"] for c in resp.json()] == ["Ann"]
