"""HTTP tests for the property catalog endpoints."""

import uuid
from unittest.mock import AsyncMock, MagicMock

import pytest

from nibret.api.v1.endpoints.properties import get_catalog
from nibret.core.errors import AuthorizationError, NotFoundError
from nibret.core.security import UserRole
from nibret.main import app
from nibret.models.property import Property
from nibret.schemas.property import PropertyCreate, PropertyUpdate
from nibret.utils.time import utcnow

BASE = "/api/v1/properties"


def _listing(**overrides) -> Property:
    now = utcnow()
    fields = {
        "id": uuid.uuid4(),
        "title": "Family home in Bole",
        "description": None,
        "price": 3_500_000.0,
        "currency": "ETB",
        "beds": 3,
        "baths": 2,
        "sqft": 180.0,
        "property_type": "house",
        "year_built": None,
        "lot_size": None,
        "features": ["garden"],
        "images": [],
        "address": "Bole Road, Addis Ababa",
        "lat": 9.032,
        "lng": 38.7469,
        "status": "for_sale",
        "publish_status": "draft",
        "listing_type": "sale",
        "contact_info": None,
        "is_featured": False,
        "views": 0,
        "owner_id": uuid.uuid4(),
        "published_at": None,
        "archived_at": None,
        "created_at": now,
        "updated_at": now,
    }
    fields.update(overrides)
    return Property(**fields)


def _payload(**overrides):
    data = {
        "title": "Family home in Bole",
        "price": 3500000,
        "beds": 3,
        "baths": 2,
        "sqft": 180,
        "property_type": "house",
        "address": "Bole Road, Addis Ababa",
    }
    data.update(overrides)
    return data


@pytest.fixture
def catalog(api_client):
    service = MagicMock()
    for name in (
        "create", "view", "update", "delete", "publish", "archive", "set_as_draft",
        "toggle_sale_status", "set_featured", "search", "public_search", "nearby",
        "list_owned", "status_breakdown", "monthly_stats",
    ):
        setattr(service, name, AsyncMock())
    app.dependency_overrides[get_catalog] = lambda: service
    return service


@pytest.mark.asyncio
async def test_create_property(api_client, catalog, make_user, auth_headers):
    agent = make_user(UserRole.AGENT)
    prop = _listing(owner_id=agent.id)
    catalog.create.return_value = prop

    response = await api_client.post(BASE, json=_payload(), headers=auth_headers(agent))

    assert response.status_code == 201
    body = response.json()
    assert body["id"] == str(prop.id)
    assert body["currency"] == "ETB"
    assert body["publish_status"] == "draft"
    payload, owner = catalog.create.await_args.args
    assert isinstance(payload, PropertyCreate)
    assert owner.id == agent.id


@pytest.mark.asyncio
async def test_create_requires_authentication(api_client, catalog):
    response = await api_client.post(BASE, json=_payload())
    assert response.status_code in (401, 403)
    catalog.create.assert_not_awaited()


@pytest.mark.asyncio
async def test_unsupported_currency_is_a_field_error(api_client, catalog, make_user, auth_headers):
    response = await api_client.post(
        BASE, json=_payload(currency="EUR"), headers=auth_headers(make_user())
    )

    assert response.status_code == 400
    body = response.json()
    assert body["success"] is False
    assert body["field"] == "currency"
    assert body["error"].startswith("currency:")
    catalog.create.assert_not_awaited()


@pytest.mark.asyncio
async def test_public_listing_passes_filters(api_client, catalog):
    catalog.public_search.return_value = [_listing(publish_status="published")]

    response = await api_client.get(BASE, params={"status": "for_sale", "property_type": "house,villa"})

    assert response.status_code == 200
    assert len(response.json()) == 1
    filters = catalog.public_search.await_args.args[0]
    assert filters == {"status": "for_sale", "property_type": ["house,villa"], "page": 1}


@pytest.mark.asyncio
async def test_public_listing_collects_repeated_types(api_client, catalog):
    catalog.public_search.return_value = []

    response = await api_client.get(
        f"{BASE}?type=house&type=villa&type[]=apartment&property_type=land"
    )

    assert response.status_code == 200
    filters = catalog.public_search.await_args.args[0]
    assert filters["property_type"] == ["land", "house", "villa", "apartment"]


@pytest.mark.asyncio
async def test_public_listing_singular_room_filters(api_client, catalog):
    catalog.public_search.return_value = []

    response = await api_client.get(BASE, params={"bedroom": 3, "bathroom": 2})

    assert response.status_code == 200
    filters = catalog.public_search.await_args.args[0]
    assert filters["bedrooms"] == 3
    assert filters["bathrooms"] == 2


@pytest.mark.asyncio
async def test_plural_room_filter_wins(api_client, catalog):
    catalog.public_search.return_value = []

    await api_client.get(BASE, params={"bedrooms": 4, "bedroom": 1})

    assert catalog.public_search.await_args.args[0]["bedrooms"] == 4


@pytest.mark.asyncio
async def test_detail_records_view_activity(api_client, catalog, ledger_queue):
    prop = _listing(publish_status="published", views=8)
    catalog.view.return_value = prop

    response = await api_client.get(f"{BASE}/{prop.id}")

    assert response.status_code == 200
    assert response.json()["views"] == 8
    assert catalog.view.await_args.kwargs["viewer"] is None
    assert ledger_queue.queue.qsize() == 1
    queued = ledger_queue.queue.get_nowait()
    assert queued.type == "property_view"
    assert queued.property_id == prop.id


@pytest.mark.asyncio
async def test_unknown_property_is_404(api_client, catalog):
    catalog.view.side_effect = NotFoundError("Property")

    response = await api_client.get(f"{BASE}/{uuid.uuid4()}")

    assert response.status_code == 404
    assert response.json() == {"success": False, "error": "Property not found"}


@pytest.mark.asyncio
async def test_malformed_id_is_400(api_client, catalog):
    response = await api_client.get(f"{BASE}/not-a-uuid")

    assert response.status_code == 400
    assert response.json()["field"] == "property_id"


@pytest.mark.asyncio
async def test_update_by_non_owner_is_forbidden(api_client, catalog, make_user, auth_headers):
    catalog.update.side_effect = AuthorizationError("Not authorized to update this property")

    response = await api_client.put(
        f"{BASE}/{uuid.uuid4()}", json={"price": 1}, headers=auth_headers(make_user())
    )

    assert response.status_code == 403
    assert response.json()["error"] == "Not authorized to update this property"
    assert isinstance(catalog.update.await_args.args[1], PropertyUpdate)


@pytest.mark.asyncio
async def test_delete_returns_no_content(api_client, catalog, make_user, auth_headers, ledger_queue):
    property_id = uuid.uuid4()

    response = await api_client.delete(f"{BASE}/{property_id}", headers=auth_headers(make_user()))

    assert response.status_code == 204
    catalog.delete.assert_awaited_once()
    assert ledger_queue.queue.get_nowait().type == "property_delete"


@pytest.mark.asyncio
async def test_publish_transition(api_client, catalog, make_user, auth_headers):
    prop = _listing(publish_status="published", published_at=utcnow())
    catalog.publish.return_value = prop

    response = await api_client.post(f"{BASE}/{prop.id}/publish", headers=auth_headers(make_user()))

    assert response.status_code == 200
    assert response.json()["publish_status"] == "published"
    assert response.json()["published_at"] is not None


@pytest.mark.asyncio
async def test_feature_requires_admin(api_client, catalog, make_user, auth_headers):
    response = await api_client.patch(
        f"{BASE}/{uuid.uuid4()}/feature",
        json={"is_featured": True},
        headers=auth_headers(make_user(UserRole.AGENT)),
    )

    assert response.status_code == 403
    catalog.set_featured.assert_not_awaited()


@pytest.mark.asyncio
async def test_management_search_is_paginated(api_client, catalog, make_user, auth_headers):
    catalog.search.return_value = ([_listing()], 41)

    response = await api_client.get(
        f"{BASE}/manage", params={"limit": 20, "page": 2}, headers=auth_headers(make_user())
    )

    assert response.status_code == 200
    body = response.json()
    assert (body["total"], body["page"], body["limit"], body["pages"]) == (41, 2, 20, 3)


@pytest.mark.asyncio
async def test_nearby_passes_viewer(api_client, catalog, make_user, auth_headers):
    catalog.nearby.return_value = []
    agent = make_user(UserRole.AGENT)

    response = await api_client.get(
        f"{BASE}/nearby", params={"lat": 9.0, "lng": 38.7, "radius": 2}, headers=auth_headers(agent)
    )

    assert response.status_code == 200
    args = catalog.nearby.await_args
    assert args.args == (9.0, 38.7, 2.0)
    assert args.kwargs["viewer"].id == agent.id
