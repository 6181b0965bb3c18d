"""Tests for the property publication and sale-status state machines."""

import uuid

import pytest

from nibret.models.property import Property, PropertyStatus, PublishStatus
from nibret.utils.time import utcnow


def _listing(**overrides) -> Property:
    fields = {
        "id": uuid.uuid4(),
        "title": "Family home in Bole",
        "price": 3_500_000,
        "currency": "ETB",
        "beds": 3,
        "baths": 2,
        "sqft": 180,
        "property_type": "house",
        "address": "Bole Road, Addis Ababa",
        "lat": 9.0,
        "lng": 38.7,
        "status": PropertyStatus.FOR_SALE.value,
        "publish_status": PublishStatus.DRAFT.value,
        "listing_type": "sale",
        "owner_id": uuid.uuid4(),
    }
    fields.update(overrides)
    return Property(**fields)


class TestPublication:
    def test_publish_sets_published_at_only(self):
        prop = _listing()

        assert prop.publish() is True

        assert prop.publish_status == "published"
        assert prop.published_at is not None
        assert prop.archived_at is None

    def test_archive_clears_published_at(self):
        prop = _listing(publish_status="published", published_at=utcnow())

        assert prop.archive() is True

        assert prop.publish_status == "archived"
        assert prop.archived_at is not None
        assert prop.published_at is None

    def test_set_as_draft_clears_both_timestamps(self):
        prop = _listing(publish_status="archived", archived_at=utcnow())

        assert prop.set_as_draft() is True

        assert prop.publish_status == "draft"
        assert prop.published_at is None
        assert prop.archived_at is None

    def test_republish_is_a_no_op(self):
        published_at = utcnow()
        prop = _listing(publish_status="published", published_at=published_at)

        assert prop.publish() is False
        assert prop.published_at == published_at

    def test_unknown_publish_status_rejected(self):
        with pytest.raises(ValueError):
            _listing().apply_publish_status("hidden")


class TestSaleStatusToggle:
    @pytest.mark.parametrize(
        "current, expected",
        [
            ("for_sale", "sold"),
            ("sold", "for_sale"),
            ("for_rent", "rented"),
            ("rented", "for_rent"),
            ("off_market", "for_sale"),
        ],
    )
    def test_toggle(self, current, expected):
        prop = _listing(status=current)
        assert prop.toggle_sale_status() == expected
        assert prop.status == expected

    def test_toggle_does_not_touch_publication(self):
        prop = _listing(publish_status="published")
        prop.toggle_sale_status()
        assert prop.publish_status == "published"


def test_age_derived_from_year_built():
    assert _listing(year_built=utcnow().year - 10).age == 10
    assert _listing(year_built=None).age is None


def test_ownership_compares_ids_as_strings():
    owner_id = uuid.uuid4()
    prop = _listing(owner_id=owner_id)
    assert prop.is_owned_by(str(owner_id))
    assert prop.is_owned_by(owner_id)
    assert not prop.is_owned_by(uuid.uuid4())
    assert not prop.is_owned_by(None)
