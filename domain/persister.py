from datetime import timedelta

from flask import current_app
from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError

from domain.coupons import infer_service_type, validate_coupon
from domain.drafts import AdventureDetails, VehicleRentalDetails
from domain.errors import CapacityError, CouponError, FieldError, ValidationFailed
from domain.pricing import quote_draft
from models import db
from models.booking import Booking, BookingGuest, BookingServiceItem
from models.service import Service
from models.yoga_session import YogaSession

HOLDING_PAYMENT_STATUSES = ("pending", "paid")


def derive_booking_category(draft):
    groups = set()
    if draft.room_id is not None:
        groups.add("accommodation")
    if draft.has_activity or draft.vehicle_rentals:
        groups.add("activity")
    if draft.has_transport:
        groups.add("transport")
    if len(groups) == 1:
        return groups.pop()
    return "mixed" if groups else "accommodation"


def derive_booking_type(draft):
    if draft.booking_type:
        return draft.booking_type
    if draft.room_id is not None:
        extras = draft.has_activity or draft.vehicle_rentals or draft.has_transport
        return "package" if extras else "room"
    if draft.yoga_session_id is not None:
        return "yoga"
    if draft.has_activity:
        return "adventure"
    if draft.vehicle_rentals:
        return "service"
    return "transport"


def resolve_stay_window(draft):
    if draft.room_id is not None:
        if draft.check_in and draft.check_out:
            return draft.check_in, draft.check_out
        return None
    if draft.service_date is not None:
        return draft.service_date, draft.service_date + timedelta(days=1)
    window = draft.rental_window()
    if window is not None:
        return window
    if draft.check_in and draft.check_out:
        return draft.check_in, draft.check_out
    return None


def validate_submission(draft):
    """Rules a draft must satisfy before it may become a booking."""
    errors = []

    if not draft.has_selection:
        errors.append(FieldError("selection", "Nothing selected to book"))

    if not draft.guests:
        errors.append(FieldError("guests", "At least one guest is required"))
    elif draft.adult_count < 1:
        errors.append(FieldError("adults", "At least one adult is required"))

    if draft.declared_adults is not None and draft.declared_adults != draft.adult_count:
        errors.append(FieldError("adults", f"adults is {draft.declared_adults} but the guest list has {draft.adult_count}"))
    if draft.declared_children is not None and draft.declared_children != draft.child_count:
        errors.append(FieldError("children", f"children is {draft.declared_children} but the guest list has {draft.child_count}"))
    if draft.declared_total_guests is not None and draft.declared_total_guests != len(draft.guests):
        errors.append(FieldError("totalGuests", f"totalGuests is {draft.declared_total_guests} but the guest list has {len(draft.guests)}"))

    contact = draft.primary_guest
    if contact is None:
        errors.append(FieldError("primaryGuestInfo", "Primary guest details are required"))
    else:
        if not contact.name:
            errors.append(FieldError("primaryGuestInfo.name", "Name is required"))
        if not contact.email or "@" not in contact.email or len(contact.email) > 255:
            errors.append(FieldError("primaryGuestInfo.email", "A valid email is required"))
        if not contact.phone:
            errors.append(FieldError("primaryGuestInfo.phone", "Phone is required"))

    if draft.check_in and draft.check_out and draft.check_in > draft.check_out:
        errors.append(FieldError("checkOut", "checkOut must not be before checkIn"))

    if draft.room_id is None and draft.service_date is None:
        if draft.has_activity:
            errors.append(FieldError("serviceDate", "A service date is required for activity bookings"))
        elif not draft.vehicle_rentals and not (draft.check_in and draft.check_out):
            errors.append(FieldError("serviceDate", "A service date is required"))

    for index, selection in enumerate(draft.services):
        details = selection.details
        if isinstance(details, VehicleRentalDetails):
            prefix = f"selectedServices[{index}].details"
            if details.start_date is None:
                errors.append(FieldError(f"{prefix}.startDate", "Rental start date is required"))
            if details.end_date is None:
                errors.append(FieldError(f"{prefix}.endDate", "Rental end date is required"))
        elif isinstance(details, AdventureDetails):
            # per-person pricing is by quantity
            if details.participants is not None and details.participants != selection.quantity:
                errors.append(FieldError(
                    f"selectedServices[{index}].details.participants",
                    f"participants is {details.participants} but quantity is {selection.quantity}",
                ))

    return errors


def _active_hold_filter():
    return (
        Booking.status != "cancelled",
        Booking.payment_status.in_(HOLDING_PAYMENT_STATUSES),
    )


def check_capacity(draft, quote):
    """Refuse a draft that would oversell yoga seats or rental units.

    Rows are locked with SELECT ... FOR UPDATE on databases that support it so
    concurrent submissions for the same resource serialize here.
    """
    session = quote.yoga_session
    if session is not None:
        YogaSession.query.filter_by(id=session.id).with_for_update().first()
        taken = (
            db.session.query(func.coalesce(func.sum(Booking.yoga_participants), 0))
            .filter(Booking.yoga_session_id == session.id, *_active_hold_filter())
            .scalar()
        )
        wanted = draft.yoga_participant_count
        if taken + wanted > session.capacity:
            left = max(0, session.capacity - taken)
            raise CapacityError("yogaSessionId", f"Only {left} seat(s) left in {session.name}")

    for line in quote.service_lines:
        service = line.service
        if service.max_quantity is None:
            continue
        selection = draft.services[line.index]
        field_name = f"selectedServices[{line.index}].quantity"
        if selection.quantity > service.max_quantity:
            raise CapacityError(field_name, f"At most {service.max_quantity} x {service.name} can be booked")
        if not service.is_vehicle_rental:
            continue

        Service.query.filter_by(id=service.id).with_for_update().first()
        details = selection.details
        overlapping = (
            db.session.query(func.coalesce(func.sum(BookingServiceItem.quantity), 0))
            .join(Booking, BookingServiceItem.booking_id == Booking.id)
            .filter(
                BookingServiceItem.service_id == service.id,
                BookingServiceItem.start_date < details.end_date,
                BookingServiceItem.end_date > details.start_date,
                *_active_hold_filter(),
            )
            .scalar()
        )
        if overlapping + selection.quantity > service.max_quantity:
            left = max(0, service.max_quantity - overlapping)
            raise CapacityError(field_name, f"Only {left} x {service.name} available for those dates")


def _service_kind(service):
    if service.is_vehicle_rental:
        return "vehicle_rental"
    if service.category == "transport":
        return "transport"
    return "adventure"


def _build_booking(draft, quote, breakdown, coupon_code, window):
    contact = draft.primary_guest
    transport = draft.transport

    booking = Booking(
        booking_type=derive_booking_type(draft),
        booking_category=derive_booking_category(draft),
        check_in=window[0],
        check_out=window[1],
        room_id=draft.room_id,
        total_guests=len(draft.guests),
        adults=draft.adult_count,
        children=draft.child_count,
        guest_name=contact.name,
        guest_email=contact.email,
        guest_phone=contact.phone,
        guest_address=contact.address,
        guest_city=contact.city,
        guest_state=contact.state,
        guest_pincode=contact.pincode,
        emergency_contact_name=contact.emergency_contact.name,
        emergency_contact_phone=contact.emergency_contact.phone,
        emergency_contact_relationship=contact.emergency_contact.relationship,
        include_food=draft.include_food,
        include_breakfast=draft.include_breakfast,
        transport_pickup=bool(transport and transport.pickup),
        transport_drop=bool(transport and transport.drop),
        flight_number=transport.flight_number if transport else None,
        arrival_time=transport.arrival_time if transport else None,
        departure_time=transport.departure_time if transport else None,
        airport_from=transport.airport_from if transport else None,
        yoga_session_id=draft.yoga_session_id,
        yoga_participants=draft.yoga_participant_count if draft.yoga_session_id else 0,
        special_requests=draft.special_requests,
        coupon_code=coupon_code,
        status="pending",
        payment_status="pending",
    )
    booking.apply_breakdown(breakdown)

    for position, guest in enumerate(draft.guests):
        booking.guests.append(BookingGuest(
            position=position,
            name=guest.name,
            age=guest.age,
            is_child=guest.is_child,
            gender=guest.gender,
        ))

    for line in quote.service_lines:
        selection = draft.services[line.index]
        details = selection.details
        rental = details if isinstance(details, VehicleRentalDetails) else None
        booking.selected_services.append(BookingServiceItem(
            service_id=line.service.id,
            kind=_service_kind(line.service),
            quantity=selection.quantity,
            unit_price=line.item.unit_price,
            duration=line.item.duration,
            total_price=line.item.total,
            start_date=rental.start_date if rental else None,
            end_date=rental.end_date if rental else None,
            details=details.to_dict() if details is not None else None,
        ))

    return booking


def create_public_booking(draft):
    """Validate, price and persist a draft as a pending/pending booking.

    Returns ``(booking, coupon_message)``. A rejected coupon does not block the
    booking: it is stored without a discount and ``coupon_message`` says why.
    """
    errors = validate_submission(draft)

    quote = None
    try:
        quote = quote_draft(draft)
    except ValidationFailed as exc:
        errors.extend(exc.errors)

    if quote is not None and draft.declared_total is not None:
        if draft.declared_total != quote.breakdown.total_amount:
            errors.append(FieldError(
                "totalAmount",
                f"Declared total {draft.declared_total} does not match computed total {quote.breakdown.total_amount}",
            ))

    window = resolve_stay_window(draft)
    if window is None and not errors:
        errors.append(FieldError("checkIn", "Could not determine the booking dates"))

    if errors:
        raise ValidationFailed(errors)

    breakdown = quote.breakdown
    coupon_code = None
    coupon_message = None
    if draft.coupon_code:
        try:
            coupon, discount = validate_coupon(
                draft.coupon_code,
                infer_service_type(draft),
                breakdown.total_amount,
                phone_number=draft.primary_guest.phone,
            )
            breakdown = breakdown.with_discount(discount)
            coupon_code = coupon.code
        except CouponError as exc:
            coupon_message = exc.message
            current_app.logger.info("Coupon %s rejected at booking time: %s", draft.coupon_code, exc.message)

    try:
        check_capacity(draft, quote)
        booking = _build_booking(draft, quote, breakdown, coupon_code, window)
        db.session.add(booking)
        db.session.commit()
    except (CapacityError, SQLAlchemyError):
        db.session.rollback()
        raise

    current_app.logger.info(
        "Booking %s created (%s, total=%s, final=%s)",
        booking.id, booking.booking_type, booking.total_amount, booking.final_amount,
    )
    return booking, coupon_message
