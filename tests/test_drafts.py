import dataclasses
from datetime import datetime, timedelta

import pytest

from domain.drafts import (
    AdventureDetails,
    DraftStore,
    TransportDetails,
    VehicleRentalDetails,
    parse_draft,
)
from domain.errors import ValidationFailed
from models import db
from models.booking_draft import BookingDraftRecord


def test_parse_marks_young_guests_as_children(booking_payload):
    draft = parse_draft(booking_payload())
    assert draft.adult_count == 2
    assert draft.child_count == 1
    assert [g.is_child for g in draft.guests] == [False, False, True]
    assert draft.primary_guest.email == "asha@example.com"


def test_child_age_limit_is_configurable(booking_payload):
    draft = parse_draft(booking_payload(), child_age_limit=3)
    assert draft.child_count == 0


def test_details_union_by_kind(catalog, booking_payload):
    draft = parse_draft(booking_payload(selectedServices=[
        {"serviceId": catalog.car.id, "details": {"kind": "vehicle_rental", "startDate": "2030-03-01", "endDate": "2030-03-02"}},
        {"serviceId": catalog.surfing.id, "quantity": 2, "details": {"kind": "adventure", "participants": 2}},
        {"serviceId": catalog.shuttle.id, "details": {"kind": "transport", "drop": True}},
        {"serviceId": catalog.surfing.id, "details": "beginner board please"},
    ]))
    kinds = [type(s.details) for s in draft.services]
    assert kinds == [VehicleRentalDetails, AdventureDetails, TransportDetails, AdventureDetails]
    assert draft.services[3].details.notes == "beginner board please"
    assert draft.vehicle_rentals == [draft.services[0]]
    assert draft.has_transport


def test_unknown_detail_kind_is_a_field_error(catalog, booking_payload):
    with pytest.raises(ValidationFailed) as exc:
        parse_draft(booking_payload(selectedServices=[{"serviceId": catalog.surfing.id, "details": {"kind": "spa"}}]))
    assert exc.value.errors[0].field == "selectedServices[0].details.kind"


def test_shape_errors_are_collected():
    with pytest.raises(ValidationFailed) as exc:
        parse_draft({
            "bookingType": "cruise",
            "checkIn": "next tuesday",
            "guests": [{"name": "", "age": "x"}],
            "selectedServices": [{"quantity": 0}],
        })
    fields = {e.field for e in exc.value.errors}
    assert {"bookingType", "checkIn", "guests[0].name", "guests[0].age",
            "selectedServices[0].serviceId", "selectedServices[0].quantity"} <= fields


def test_non_object_body_is_rejected():
    with pytest.raises(ValidationFailed):
        parse_draft(["not", "a", "draft"])


def test_services_alias_and_coupon_upper_case(booking_payload):
    draft = parse_draft(booking_payload(bookingType="services", couponCode=" save500 "))
    assert draft.booking_type == "service"
    assert draft.coupon_code == "SAVE500"


def test_utc_offsets_are_normalised(booking_payload):
    draft = parse_draft(booking_payload(checkIn="2030-03-01T12:00:00+05:30", checkOut="2030-03-02T00:00:00Z"))
    assert draft.check_in == datetime(2030, 3, 1, 6, 30)
    assert draft.check_out == datetime(2030, 3, 2)


def test_draft_is_immutable(booking_payload):
    draft = parse_draft(booking_payload())
    with pytest.raises(dataclasses.FrozenInstanceError):
        draft.room_id = 5
    updated = dataclasses.replace(draft, include_food=True)
    assert updated.include_food and not draft.include_food


def test_payload_round_trips_through_parser(catalog, booking_payload):
    draft = parse_draft(booking_payload(
        includeBreakfast=True,
        transport={"pickup": True, "flightNumber": "6E 123"},
        selectedServices=[{"serviceId": catalog.car.id, "details": {
            "kind": "vehicle_rental", "startDate": "2030-03-01", "endDate": "2030-03-03", "withDriver": True,
        }}],
    ))
    assert parse_draft(draft.to_payload()) == draft


class TestDraftStore:
    def test_create_get_replace_discard(self, app, booking_payload):
        store = DraftStore()
        draft = parse_draft(booking_payload())
        token, expires_at = store.create(draft)

        assert expires_at > datetime.utcnow()
        assert store.get(token) == draft

        changed = dataclasses.replace(draft, include_food=True)
        assert store.replace(token, changed) is not None
        assert store.get(token).include_food is True

        assert store.discard(token) is True
        assert store.get(token) is None
        assert store.discard(token) is False

    def test_create_requires_a_selection(self, app):
        with pytest.raises(ValidationFailed):
            DraftStore().create(parse_draft({"guests": [{"name": "A", "age": 30}]}))

    def test_expired_drafts_read_as_missing(self, app, booking_payload):
        store = DraftStore()
        token, _ = store.create(parse_draft(booking_payload()))
        record = db.session.get(BookingDraftRecord, token)
        record.expires_at = datetime.utcnow() - timedelta(seconds=1)
        db.session.commit()

        assert store.get(token) is None
        assert store.replace(token, parse_draft(booking_payload())) is None
        assert db.session.get(BookingDraftRecord, token) is None

    def test_purge_expired(self, app, booking_payload):
        store = DraftStore()
        live, _ = store.create(parse_draft(booking_payload()))
        stale, _ = store.create(parse_draft(booking_payload()))
        db.session.get(BookingDraftRecord, stale).expires_at = datetime.utcnow() - timedelta(hours=1)
        db.session.commit()

        assert store.purge_expired() == 1
        assert store.get(live) is not None
