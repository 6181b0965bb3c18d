"""Tests for property intake normalisation and bounds."""

import pytest

from nibret.core.config import settings
from nibret.core.errors import ValidationError, parse_payload
from nibret.schemas.property import PropertyCreate, PropertySearch, PropertyUpdate


def _payload(**overrides):
    data = {
        "title": "Family home in Bole",
        "price": 3_500_000,
        "beds": 3,
        "baths": 2,
        "sqft": 180,
        "property_type": "house",
        "address": "Bole Road, Addis Ababa",
    }
    data.update(overrides)
    return data


class TestPropertyCreate:
    def test_defaults_applied(self):
        payload = parse_payload(PropertyCreate, _payload())

        assert payload.currency.value == "ETB"
        assert payload.listing_type.value == "sale"
        assert payload.publish_status.value == "draft"
        assert payload.status.value == "for_sale"
        assert payload.lat == settings.DEFAULT_LATITUDE
        assert payload.lng == settings.DEFAULT_LONGITUDE

    def test_unsupported_currency_names_currency_field(self):
        with pytest.raises(ValidationError) as exc:
            parse_payload(PropertyCreate, _payload(currency="EUR"))

        assert exc.value.field == "currency"
        assert exc.value.to_dict()["field"] == "currency"

    def test_currency_and_enums_case_normalised(self):
        payload = parse_payload(
            PropertyCreate,
            _payload(currency="usd", property_type="APARTMENT", listing_type=" Both "),
        )
        assert payload.currency.value == "USD"
        assert payload.property_type.value == "apartment"
        assert payload.listing_type.value == "both"

    def test_numeric_strings_coerced(self):
        payload = parse_payload(
            PropertyCreate, _payload(price="2500000", beds="4", lat="9.01", year_built="")
        )
        assert payload.price == 2_500_000
        assert payload.beds == 4
        assert payload.lat == pytest.approx(9.01)
        assert payload.year_built is None

    def test_first_violated_bound_reported(self):
        with pytest.raises(ValidationError) as exc:
            parse_payload(PropertyCreate, _payload(title="Hut", beds=50))
        assert exc.value.field == "title"

    @pytest.mark.parametrize(
        "field, value",
        [
            ("price", -1),
            ("beds", 21),
            ("sqft", 0),
            ("address", "short"),
            ("year_built", 1700),
            ("lat", 91),
        ],
    )
    def test_bounds(self, field, value):
        with pytest.raises(ValidationError) as exc:
            parse_payload(PropertyCreate, _payload(**{field: value}))
        assert exc.value.field == field

    def test_features_split_and_deduplicated(self):
        payload = parse_payload(PropertyCreate, _payload(features="garden, parking,garden,"))
        assert payload.features == ["garden", "parking"]

    def test_images_must_be_http_urls(self):
        with pytest.raises(ValidationError) as exc:
            parse_payload(PropertyCreate, _payload(images=["ftp://example.com/a.jpg"]))
        assert exc.value.field == "images"

    def test_blank_contact_info_dropped(self):
        payload = parse_payload(
            PropertyCreate, _payload(contact_info={"phone": " ", "email": "", "agent_name": None})
        )
        assert payload.contact_info is None


class TestPropertyUpdate:
    def test_changes_only_include_supplied_fields(self):
        payload = parse_payload(PropertyUpdate, {"price": "4000000", "status": "SOLD"})
        assert payload.changes() == {"price": 4_000_000.0, "status": "sold"}

    def test_required_fields_cannot_be_nulled(self):
        with pytest.raises(ValidationError) as exc:
            parse_payload(PropertyUpdate, {"title": None})
        assert exc.value.field == "title"

    def test_update_uses_create_bounds(self):
        with pytest.raises(ValidationError) as exc:
            parse_payload(PropertyUpdate, {"currency": "gbp"})
        assert exc.value.field == "currency"


class TestPropertySearch:
    def test_property_types_accept_comma_separated_string(self):
        filters = PropertySearch.model_validate({"property_type": "House, villa,"})
        assert [t.value for t in filters.property_type] == ["house", "villa"]

    def test_property_types_flatten_repeated_values(self):
        filters = PropertySearch.model_validate({"property_type": ["House,villa", " apartment "]})
        assert [t.value for t in filters.property_type] == ["house", "villa", "apartment"]

    def test_sort_restricted_to_known_columns(self):
        with pytest.raises(ValidationError) as exc:
            parse_payload(PropertySearch, {"sort": "-owner_id"})
        assert exc.value.field == "sort"

    def test_price_range_must_be_ordered(self):
        with pytest.raises(ValidationError):
            parse_payload(PropertySearch, {"min_price": 10, "max_price": 5})

    def test_limit_capped(self):
        with pytest.raises(ValidationError) as exc:
            parse_payload(PropertySearch, {"limit": settings.MAX_PAGE_SIZE + 1})
        assert exc.value.field == "limit"
