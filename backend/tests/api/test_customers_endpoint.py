"""HTTP tests for the staff customer endpoints."""

import uuid
from unittest.mock import AsyncMock, MagicMock

import pytest

from nibret.api.v1.endpoints.customers import get_customers
from nibret.core.errors import ConflictError
from nibret.core.security import UserRole
from nibret.main import app
from nibret.models.customer import Customer
from nibret.schemas.customer import CustomerCreate
from nibret.utils.time import utcnow

BASE = "/api/v1/customers"


def _customer(**overrides) -> Customer:
    now = utcnow()
    fields = {
        "id": uuid.uuid4(),
        "first_name": "Hana",
        "last_name": "Tadesse",
        "email": "hana@nibret.com",
        "phone": "+251933000000",
        "preferences": {"min_price": 1000},
        "notes": None,
        "source": "referral",
        "status": "active",
        "created_at": now,
        "updated_at": now,
    }
    fields.update(overrides)
    return Customer(**fields)


@pytest.fixture
def customers(api_client):
    service = MagicMock()
    for name in ("create", "list", "get", "update", "update_preferences", "delete"):
        setattr(service, name, AsyncMock())
    app.dependency_overrides[get_customers] = lambda: service
    return service


@pytest.mark.asyncio
async def test_customers_are_staff_only(api_client, customers, make_user, auth_headers):
    response = await api_client.get(BASE, headers=auth_headers(make_user(UserRole.CUSTOMER)))

    assert response.status_code == 403
    customers.list.assert_not_awaited()


@pytest.mark.asyncio
async def test_create_customer(api_client, customers, make_user, auth_headers):
    customer = _customer()
    customers.create.return_value = customer

    response = await api_client.post(
        BASE,
        json={
            "first_name": "Hana",
            "last_name": "Tadesse",
            "email": "Hana@Nibret.com",
            "phone": "+251933000000",
            "source": "Referral",
        },
        headers=auth_headers(make_user(UserRole.AGENT)),
    )

    assert response.status_code == 201
    assert response.json()["id"] == str(customer.id)
    payload = customers.create.await_args.args[0]
    assert isinstance(payload, CustomerCreate)
    assert payload.email == "hana@nibret.com"
    assert payload.source == "referral"


@pytest.mark.asyncio
async def test_duplicate_contact_conflicts(api_client, customers, make_user, auth_headers):
    customers.create.side_effect = ConflictError("Customer with this email or phone already exists")

    response = await api_client.post(
        BASE,
        json={"first_name": "Hana", "last_name": "Tadesse", "phone": "+251933000000"},
        headers=auth_headers(make_user(UserRole.ADMIN)),
    )

    assert response.status_code == 409
    assert response.json()["success"] is False


@pytest.mark.asyncio
async def test_list_filters_and_page(api_client, customers, make_user, auth_headers):
    customers.list.return_value = ([_customer()], 1)

    response = await api_client.get(
        BASE, params={"search": "hana"}, headers=auth_headers(make_user(UserRole.AGENT))
    )

    assert response.status_code == 200
    assert response.json()["total"] == 1
    filters = customers.list.await_args.args[0]
    assert filters["search"] == "hana"
    assert "status" not in filters


@pytest.mark.asyncio
async def test_preferences_merge_response(api_client, customers, make_user, auth_headers):
    customers.update_preferences.return_value = {"min_price": 1000, "max_price": 5000}

    response = await api_client.patch(
        f"{BASE}/{uuid.uuid4()}/preferences",
        json={"max_price": 5000},
        headers=auth_headers(make_user(UserRole.AGENT)),
    )

    assert response.status_code == 200
    assert response.json() == {"preferences": {"min_price": 1000, "max_price": 5000}}
    assert customers.update_preferences.await_args.args[1].changes() == {"max_price": 5000}


@pytest.mark.asyncio
async def test_preferences_reject_inverted_range(api_client, customers, make_user, auth_headers):
    response = await api_client.patch(
        f"{BASE}/{uuid.uuid4()}/preferences",
        json={"min_price": 9000, "max_price": 5000},
        headers=auth_headers(make_user(UserRole.AGENT)),
    )

    assert response.status_code == 400
    assert "min_price must not exceed max_price" in response.json()["error"]
    customers.update_preferences.assert_not_awaited()


@pytest.mark.asyncio
async def test_delete_customer(api_client, customers, make_user, auth_headers):
    response = await api_client.delete(
        f"{BASE}/{uuid.uuid4()}", headers=auth_headers(make_user(UserRole.ADMIN))
    )

    assert response.status_code == 204
    customers.delete.assert_awaited_once()
