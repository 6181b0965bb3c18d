"""Tests for customer records and preference merging."""

import uuid
from unittest.mock import AsyncMock, MagicMock

import pytest

from nibret.core.errors import AuthorizationError, ConflictError, ValidationError
from nibret.core.security import UserRole
from nibret.models.customer import Customer
from nibret.services.customers import CustomerService


def _customer(**overrides) -> Customer:
    fields = {
        "id": uuid.uuid4(),
        "first_name": "Hanna",
        "last_name": "Girma",
        "email": "hanna@nibret.com",
        "phone": "+251922000000",
        "preferences": {"min_price": 1000, "preferred_locations": ["Bole"]},
        "source": "website",
        "status": "active",
    }
    fields.update(overrides)
    return Customer(**fields)


def _lookup(match=None) -> MagicMock:
    result = MagicMock()
    result.scalars.return_value.first.return_value = match
    return result


@pytest.fixture
def db():
    session = AsyncMock()
    session.add = MagicMock()
    return session


@pytest.fixture
def staff(make_user):
    return make_user(UserRole.ADMIN)


@pytest.mark.asyncio
async def test_create_normalises_and_stores(db, staff):
    db.execute.return_value = _lookup()

    customer = await CustomerService(db).create(
        {
            "first_name": "Hanna",
            "last_name": "Girma",
            "email": "Hanna@Nibret.com",
            "phone": "+251922000000",
            "source": "REFERRAL",
            "preferences": {"property_types": "Villa", "max_beds": 4},
        },
        staff,
    )

    db.add.assert_called_once_with(customer)
    assert customer.email == "hanna@nibret.com"
    assert customer.source == "referral"
    assert customer.status == "active"
    assert customer.preferences == {"property_types": ["villa"], "max_beds": 4}


@pytest.mark.asyncio
async def test_duplicate_contact_conflicts(db, staff):
    db.execute.return_value = _lookup(_customer())

    with pytest.raises(ConflictError):
        await CustomerService(db).create(
            {"first_name": "Hanna", "last_name": "Girma", "phone": "+251922000000"}, staff
        )
    db.add.assert_not_called()


@pytest.mark.asyncio
async def test_requires_staff(db, make_user):
    with pytest.raises(AuthorizationError):
        await CustomerService(db).get(uuid.uuid4(), make_user(UserRole.CUSTOMER))


@pytest.mark.asyncio
async def test_update_checks_contact_clash(db, staff):
    db.get.return_value = _customer()
    db.execute.return_value = _lookup(_customer(id=uuid.uuid4()))

    with pytest.raises(ConflictError):
        await CustomerService(db).update(uuid.uuid4(), {"phone": "+251933000000"}, staff)


@pytest.mark.asyncio
async def test_preferences_merge_shallowly(db, staff):
    customer = _customer()
    db.get.return_value = customer

    merged = await CustomerService(db).update_preferences(
        customer.id, {"max_price": 5000, "preferred_locations": ["CMC"]}, staff
    )

    assert merged == {"min_price": 1000, "max_price": 5000, "preferred_locations": ["CMC"]}
    assert customer.preferences == merged
    db.commit.assert_awaited_once()


@pytest.mark.asyncio
async def test_merged_preferences_keep_ranges_valid(db, staff):
    customer = _customer()
    db.get.return_value = customer

    with pytest.raises(ValidationError):
        await CustomerService(db).update_preferences(customer.id, {"max_price": 10}, staff)
    assert customer.preferences == {"min_price": 1000, "preferred_locations": ["Bole"]}


@pytest.mark.asyncio
async def test_delete_blocked_by_converted_lead(db, staff):
    db.get.return_value = _customer()
    db.scalar.return_value = 1

    with pytest.raises(ConflictError):
        await CustomerService(db).delete(uuid.uuid4(), staff)
    db.delete.assert_not_awaited()


@pytest.mark.asyncio
async def test_delete_unlinked_customer(db, staff):
    customer = _customer()
    db.get.return_value = customer
    db.scalar.return_value = 0

    await CustomerService(db).delete(customer.id, staff)

    db.delete.assert_awaited_once_with(customer)
    db.commit.assert_awaited_once()
