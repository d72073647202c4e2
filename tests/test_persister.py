from datetime import datetime

import pytest

from domain.drafts import parse_draft
from domain.errors import CapacityError, ValidationFailed
from domain.persister import (
    create_public_booking,
    derive_booking_category,
    derive_booking_type,
    resolve_stay_window,
    validate_submission,
)
from models import db
from models.booking import Booking
from models.coupon import Coupon


def _fields(exc_info):
    return {e.field for e in exc_info.value.errors}


def _rental(service_id, start="2030-03-01", end="2030-03-04", quantity=1):
    return {"serviceId": service_id, "quantity": quantity, "details": {
        "kind": "vehicle_rental", "startDate": start, "endDate": end,
    }}


def test_room_booking_is_stored_pending(app, catalog, booking_payload):
    booking, coupon_message = create_public_booking(parse_draft(booking_payload(includeFood=True)))

    assert coupon_message is None
    stored = db.session.get(Booking, booking.id)
    assert len(stored.id) == 32
    assert (stored.status, stored.payment_status) == ("pending", "pending")
    assert (stored.total_guests, stored.adults, stored.children) == (3, 2, 1)
    assert stored.adults + stored.children == stored.total_guests == len(stored.guests)
    assert stored.room_price == 4000
    assert stored.food_price == 600
    assert stored.total_amount == stored.subtotal_sum() == 4600
    assert stored.final_amount == 4600
    assert stored.booking_category == "accommodation"
    assert stored.guest_email == "asha@example.com"
    assert [g.name for g in stored.guests] == ["Asha Menon", "Ravi Menon", "Mia Menon"]


def test_validation_errors_write_nothing(app, catalog, booking_payload):
    payload = booking_payload(
        guests=[{"name": "Mia", "age": 4}],
        adults=2,
        checkIn="2030-03-05T12:00:00",
        checkOut="2030-03-01T12:00:00",
        primaryGuestInfo={"name": "", "email": "nope", "phone": ""},
    )
    with pytest.raises(ValidationFailed) as exc:
        create_public_booking(parse_draft(payload))

    assert {"adults", "checkOut", "primaryGuestInfo.name", "primaryGuestInfo.email",
            "primaryGuestInfo.phone"} <= _fields(exc)
    assert Booking.query.count() == 0


def test_empty_guest_list_rejected(app, catalog, booking_payload):
    with pytest.raises(ValidationFailed) as exc:
        create_public_booking(parse_draft(booking_payload(guests=[])))
    assert "guests" in _fields(exc)


def test_activity_requires_service_date(app, catalog, booking_payload):
    draft = parse_draft(booking_payload(
        roomId=None, checkIn=None, checkOut=None,
        selectedServices=[{"serviceId": catalog.surfing.id}],
    ))
    assert "serviceDate" in {e.field for e in validate_submission(draft)}


def test_adventure_participants_must_match_quantity(app, catalog, booking_payload):
    def surfing(participants):
        return booking_payload(selectedServices=[{"serviceId": catalog.surfing.id, "quantity": 2, "details": {
            "kind": "adventure", "participants": participants, "sessionTime": "07:00",
        }}])

    with pytest.raises(ValidationFailed) as exc:
        create_public_booking(parse_draft(surfing(3)))
    assert _fields(exc) == {"selectedServices[0].details.participants"}

    booking, _ = create_public_booking(parse_draft(surfing(2)))
    assert booking.services_price == 3000


def test_declared_total_must_match(app, catalog, booking_payload):
    with pytest.raises(ValidationFailed) as exc:
        create_public_booking(parse_draft(booking_payload(totalAmount=1)))
    assert "totalAmount" in _fields(exc)

    booking, _ = create_public_booking(parse_draft(booking_payload(totalAmount=4000)))
    assert booking.total_amount == 4000


def test_service_booking_uses_service_date_window(app, catalog, booking_payload):
    draft = parse_draft(booking_payload(
        bookingType=None, roomId=None, checkIn=None, checkOut=None,
        serviceDate="2030-03-02T09:00:00",
        selectedServices=[{"serviceId": catalog.surfing.id, "quantity": 2}],
    ))
    booking, _ = create_public_booking(draft)

    assert booking.check_in == datetime(2030, 3, 2, 9)
    assert booking.check_out == datetime(2030, 3, 3, 9)
    assert booking.booking_type == "adventure"
    assert booking.booking_category == "activity"
    assert booking.services_price == 3000


def test_vehicle_only_booking_uses_rental_window(app, catalog, booking_payload):
    draft = parse_draft(booking_payload(
        bookingType="service", roomId=None, checkIn=None, checkOut=None,
        selectedServices=[_rental(catalog.car.id)],
    ))
    assert resolve_stay_window(draft) == (datetime(2030, 3, 1), datetime(2030, 3, 4))

    booking, _ = create_public_booking(draft)
    item = booking.selected_services[0]
    assert item.kind == "vehicle_rental"
    assert item.duration == 3
    assert item.total_price == 2400


def test_rental_with_equal_dates_is_rejected(app, catalog, booking_payload):
    draft = parse_draft(booking_payload(selectedServices=[_rental(catalog.car.id, "2030-03-01", "2030-03-01")]))
    with pytest.raises(ValidationFailed) as exc:
        create_public_booking(draft)
    assert "selectedServices[0].details.endDate" in _fields(exc)


def test_category_and_type_derivation(catalog, booking_payload):
    package = parse_draft(booking_payload(transport={"pickup": True}))
    assert derive_booking_category(package) == "mixed"
    assert derive_booking_type(parse_draft(booking_payload(bookingType=None, transport={"pickup": True}))) == "package"

    transport_only = parse_draft(booking_payload(
        bookingType=None, roomId=None, checkIn=None, checkOut=None, transport={"drop": True},
    ))
    assert derive_booking_category(transport_only) == "transport"
    assert derive_booking_type(transport_only) == "transport"


def test_coupon_applied_at_booking_time(app, catalog, booking_payload):
    db.session.add(Coupon(code="SAVE500", discount_type="fixed", discount_value=500, service_type="all"))
    db.session.commit()

    booking, message = create_public_booking(parse_draft(booking_payload(couponCode="save500")))
    assert message is None
    assert booking.coupon_code == "SAVE500"
    assert booking.coupon_discount == 500
    assert booking.final_amount == booking.total_amount - 500
    # usage is only counted once the booking is paid
    assert Coupon.query.filter_by(code="SAVE500").one().used_count == 0


def test_bad_coupon_does_not_block_booking(app, catalog, booking_payload):
    booking, message = create_public_booking(parse_draft(booking_payload(couponCode="BOGUS")))
    assert message == "Invalid coupon code"
    assert booking.coupon_code is None
    assert booking.coupon_discount == 0
    assert booking.final_amount == booking.total_amount


def test_yoga_seats_cannot_be_oversold(app, catalog, booking_payload):
    create_public_booking(parse_draft(booking_payload(yogaSessionId=catalog.yoga.id)))

    with pytest.raises(CapacityError) as exc:
        create_public_booking(parse_draft(booking_payload(yogaSessionId=catalog.yoga.id)))
    assert exc.value.field == "yogaSessionId"
    assert Booking.query.count() == 1


def test_cancelled_bookings_release_seats(app, catalog, booking_payload):
    first, _ = create_public_booking(parse_draft(booking_payload(yogaSessionId=catalog.yoga.id)))
    first.status = "cancelled"
    db.session.commit()

    second, _ = create_public_booking(parse_draft(booking_payload(yogaSessionId=catalog.yoga.id)))
    assert second.yoga_participants == 3


def test_overlapping_rentals_respect_fleet_size(app, catalog, booking_payload):
    create_public_booking(parse_draft(booking_payload(selectedServices=[_rental(catalog.car.id, quantity=2)])))

    with pytest.raises(CapacityError):
        create_public_booking(parse_draft(booking_payload(
            selectedServices=[_rental(catalog.car.id, "2030-03-03", "2030-03-05")],
        )))

    # back-to-back is fine
    booking, _ = create_public_booking(parse_draft(booking_payload(
        selectedServices=[_rental(catalog.car.id, "2030-03-04", "2030-03-06")],
    )))
    assert booking.services_price == 1600


def test_quantity_above_fleet_size(app, catalog, booking_payload):
    with pytest.raises(CapacityError) as exc:
        create_public_booking(parse_draft(booking_payload(selectedServices=[_rental(catalog.car.id, quantity=3)])))
    assert exc.value.field == "selectedServices[0].quantity"
