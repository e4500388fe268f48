"""
Tests for decoding payment metadata and the split cart payload.
"""

import datetime as dt
import json
from decimal import Decimal

import pytest

from reconciler.core.exceptions import DecodeError, InvalidMetadataError
from reconciler.schemas.payment_event import PaymentEvent, PaymentMetadata, PickupLocation, WebhookEnvelope
from reconciler.services.metadata_decoder import decode_cart, decode_cart_payload, join_cart_payload

from conftest import booking_metadata, cart_line


def test_split_payload_is_joined_in_order():
    cart = [cart_line("tour_pyramids", index=0), cart_line("tour_nile", index=1, adults=1)]
    metadata = PaymentMetadata.model_validate(booking_metadata(cart))

    assert metadata.cart_data and metadata.cart_data_2
    lines = decode_cart(metadata)

    assert [line.tour_id for line in lines] == ["tour_pyramids", "tour_nile"]
    assert [line.item_index for line in lines] == [0, 1]


def test_join_tolerates_missing_second_fragment():
    assert join_cart_payload({"cart_data": "[]"}) == "[]"
    assert join_cart_payload({"cart_data": "[{", "cart_data_2": "}]"}) == "[{}]"


def test_short_keys_are_mapped():
    payload = json.dumps([{
        "i": 0, "t": "tour_nile", "d": "2026-12-24", "tm": "19:30",
        "a": 2, "c": 1, "n": 1, "bp": 45.5, "bo": "opt_vip", "bot": "VIP Table",
        "ao": [{"id": "drinks", "t": "Drinks", "p": 12, "pg": True, "q": 1}],
    }])

    [line] = decode_cart_payload(payload)

    assert line.tour_id == "tour_nile"
    assert line.date == dt.date(2026, 12, 24)
    assert line.time == "19:30"
    assert (line.adult_count, line.child_count, line.infant_count) == (2, 1, 1)
    assert line.base_price == Decimal("45.5")
    assert line.selected_option.title == "VIP Table"
    assert line.add_ons[0].per_guest is True
    assert line.priced_guests == 3


def test_missing_index_defaults_to_position_and_lines_are_sorted():
    payload = json.dumps([
        {"i": 3, "t": "tour_desert", "d": "2026-11-03"},
        {"t": "tour_pyramids", "d": "2026-11-02"},
        {"i": -1, "t": "tour_nile", "d": "2026-11-04"},
    ])

    lines = decode_cart_payload(payload)

    assert [(line.item_index, line.tour_id) for line in lines] == [
        (1, "tour_pyramids"),
        (2, "tour_nile"),
        (3, "tour_desert"),
    ]


def test_zero_adults_becomes_one():
    [line] = decode_cart_payload(json.dumps([{"t": "tour_nile", "d": "2026-11-02", "a": 0}]))
    assert line.adult_count == 1


def test_unreadable_date_does_not_fail_the_cart():
    [line] = decode_cart_payload(json.dumps([{"t": "tour_nile", "d": "next tuesday"}]))
    assert line.date is None


@pytest.mark.parametrize("payload", [
    "",
    "[{\"t\": \"tour_nile\"",
    "{\"t\": \"tour_nile\"}",
    "[\"tour_nile\"]",
    "[{\"i\": 0, \"t\": \"a\"}, {\"i\": 0, \"t\": \"b\"}]",
    "[{\"t\": \"tour_nile\", \"a\": \"two\"}]",
])
def test_undecodable_payloads(payload):
    with pytest.raises(DecodeError) as exc:
        decode_cart_payload(payload)
    assert exc.value.reason == "invalid_cart_data"


def test_metadata_flags_and_amounts():
    metadata = PaymentMetadata.model_validate({
        "has_booking_data": "true",
        "customer_email": "  ",
        "discount_code": "summer10",
        "pricing_discount": "12.50",
        "pricing_total": "not-a-number",
        "hotel_pickup_location": "{broken",
    })

    assert metadata.has_booking_data is True
    assert metadata.customer_email is None
    assert metadata.has_customer_data is False
    assert metadata.discount_code == "SUMMER10"
    assert metadata.pricing_discount == Decimal("12.50")
    assert metadata.pricing_total == Decimal("0")
    assert metadata.hotel_pickup_location is None


def test_discount_code_none_means_absent():
    assert PaymentMetadata.model_validate({"discount_code": "none"}).discount_code is None
    assert PaymentMetadata.model_validate({"has_booking_data": "false"}).has_booking_data is False


def test_pickup_location_is_parsed():
    metadata = PaymentMetadata.model_validate({
        "hotel_pickup_location": json.dumps({"lat": 30.0444, "lng": 31.2357, "name": "Nile Ritz"}),
    })
    assert metadata.hotel_pickup_location.name == "Nile Ritz"
    assert metadata.hotel_pickup_location.lat == pytest.approx(30.0444)


@pytest.mark.parametrize("location", [
    json.dumps({"lat": "near the pool", "lng": 31.2}),
    json.dumps({"name": "Hotel lobby"}),
    json.dumps([30.0444, 31.2357]),
    "\"lobby\"",
])
def test_unusable_pickup_location_is_ignored(location):
    metadata = PaymentMetadata.model_validate({"has_booking_data": "true", "hotel_pickup_location": location})
    assert metadata.has_booking_data is True
    assert metadata.hotel_pickup_location is None


def test_rejected_metadata_raises_invalid_metadata(monkeypatch):
    def reject(cls, value, **kwargs):
        return PickupLocation.model_validate({})

    monkeypatch.setattr(PaymentMetadata, "model_validate", classmethod(reject))
    event = PaymentEvent(payment_id="pi_rejected", metadata={"has_booking_data": "true"})

    with pytest.raises(InvalidMetadataError) as exc_info:
        event.decoded_metadata()
    assert exc_info.value.reason == "invalid_metadata"


def test_webhook_envelope_to_payment_event():
    envelope = WebhookEnvelope.model_validate({
        "id": "evt_1",
        "type": "payment_intent.succeeded",
        "data": {"object": {
            "id": "pi_123",
            "amount": 30240,
            "currency": "usd",
            "metadata": {"has_booking_data": "true", "adults": 2},
            "livemode": False,
        }},
    })

    event = envelope.to_payment_event()

    assert isinstance(event, PaymentEvent)
    assert event.payment_id == "pi_123"
    assert event.amount == 30240
    assert event.metadata == {"has_booking_data": "true", "adults": "2"}
