"""Booking drafts: the not-yet-persisted set of selections a guest is building.

A draft is an immutable value. Changing a selection means building a new
draft (``dataclasses.replace`` or a fresh ``parse_draft``), and the only place
a draft lives between requests is the ``DraftStore``.
"""
import secrets
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import ClassVar, Optional, Tuple, Union

from flask import current_app

from domain.errors import FieldError, ValidationFailed
from models import db
from models.booking import BOOKING_TYPES
from models.booking_draft import BookingDraftRecord

DEFAULT_CHILD_AGE_LIMIT = 5


def parse_datetime(value):
    """ISO-8601 string to a naive UTC datetime."""
    if isinstance(value, datetime):
        dt = value
    else:
        text = str(value).strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        dt = datetime.fromisoformat(text)
    if dt.tzinfo is not None:
        dt = dt.astimezone(timezone.utc).replace(tzinfo=None)
    return dt


def _iso(value):
    return value.isoformat() if value is not None else None


def _compact(data):
    return {k: v for k, v in data.items() if v is not None}


@dataclass(frozen=True)
class GuestInput:
    name: str
    age: int
    is_child: bool = False
    gender: Optional[str] = None

    def to_dict(self):
        return _compact({"name": self.name, "age": self.age, "gender": self.gender})


@dataclass(frozen=True)
class EmergencyContact:
    name: Optional[str] = None
    phone: Optional[str] = None
    relationship: Optional[str] = None


@dataclass(frozen=True)
class ContactInfo:
    name: str = ""
    email: str = ""
    phone: str = ""
    address: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    pincode: Optional[str] = None
    emergency_contact: EmergencyContact = field(default_factory=EmergencyContact)

    def to_dict(self):
        data = _compact({
            "name": self.name,
            "email": self.email,
            "phone": self.phone,
            "address": self.address,
            "city": self.city,
            "state": self.state,
            "pincode": self.pincode,
        })
        data["emergencyContact"] = _compact({
            "name": self.emergency_contact.name,
            "phone": self.emergency_contact.phone,
            "relationship": self.emergency_contact.relationship,
        })
        return data


# ---------- selectedServices[].details: tagged union keyed by "kind" ----------

@dataclass(frozen=True)
class VehicleRentalDetails:
    kind: ClassVar[str] = "vehicle_rental"

    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    with_driver: bool = False
    pickup_location: Optional[str] = None

    @classmethod
    def from_dict(cls, raw, prefix, errors):
        start = _date_field(raw, "startDate", prefix, errors)
        end = _date_field(raw, "endDate", prefix, errors)
        return cls(
            start_date=start,
            end_date=end,
            with_driver=bool(raw.get("withDriver", False)),
            pickup_location=_str(raw.get("pickupLocation")),
        )

    def to_dict(self):
        return _compact({
            "kind": self.kind,
            "startDate": _iso(self.start_date),
            "endDate": _iso(self.end_date),
            "withDriver": self.with_driver,
            "pickupLocation": self.pickup_location,
        })


@dataclass(frozen=True)
class AdventureDetails:
    kind: ClassVar[str] = "adventure"

    participants: Optional[int] = None
    session_time: Optional[str] = None
    notes: Optional[str] = None

    @classmethod
    def from_dict(cls, raw, prefix, errors):
        return cls(
            participants=_int(raw.get("participants"), f"{prefix}.participants", errors, minimum=1),
            session_time=_str(raw.get("sessionTime")),
            notes=_str(raw.get("notes")),
        )

    def to_dict(self):
        return _compact({
            "kind": self.kind,
            "participants": self.participants,
            "sessionTime": self.session_time,
            "notes": self.notes,
        })


@dataclass(frozen=True)
class TransportDetails:
    kind: ClassVar[str] = "transport"

    pickup: bool = False
    drop: bool = False
    flight_number: Optional[str] = None
    arrival_time: Optional[str] = None
    departure_time: Optional[str] = None
    airport_from: Optional[str] = None

    @classmethod
    def from_dict(cls, raw, prefix, errors):
        return cls(
            pickup=bool(raw.get("pickup", False)),
            drop=bool(raw.get("drop", False)),
            flight_number=_str(raw.get("flightNumber")),
            arrival_time=_str(raw.get("arrivalTime")),
            departure_time=_str(raw.get("departureTime")),
            airport_from=_str(raw.get("airportFrom")),
        )

    @property
    def requested(self):
        return self.pickup or self.drop

    def to_dict(self):
        return _compact({
            "kind": self.kind,
            "pickup": self.pickup,
            "drop": self.drop,
            "flightNumber": self.flight_number,
            "arrivalTime": self.arrival_time,
            "departureTime": self.departure_time,
            "airportFrom": self.airport_from,
        })


ServiceDetails = Union[VehicleRentalDetails, AdventureDetails, TransportDetails]

DETAIL_KINDS = {
    VehicleRentalDetails.kind: VehicleRentalDetails,
    AdventureDetails.kind: AdventureDetails,
    TransportDetails.kind: TransportDetails,
}


@dataclass(frozen=True)
class ServiceSelection:
    service_id: int
    quantity: int = 1
    details: Optional[ServiceDetails] = None

    def to_dict(self):
        return _compact({
            "serviceId": self.service_id,
            "quantity": self.quantity,
            "details": self.details.to_dict() if self.details is not None else None,
        })


@dataclass(frozen=True)
class BookingDraft:
    booking_type: Optional[str] = None
    room_id: Optional[int] = None
    check_in: Optional[datetime] = None
    check_out: Optional[datetime] = None
    service_date: Optional[datetime] = None
    guests: Tuple[GuestInput, ...] = ()
    declared_adults: Optional[int] = None
    declared_children: Optional[int] = None
    declared_total_guests: Optional[int] = None
    primary_guest: Optional[ContactInfo] = None
    include_food: bool = False
    include_breakfast: bool = False
    transport: Optional[TransportDetails] = None
    services: Tuple[ServiceSelection, ...] = ()
    yoga_session_id: Optional[int] = None
    yoga_participants: Optional[int] = None
    coupon_code: Optional[str] = None
    declared_total: Optional[int] = None
    special_requests: Optional[str] = None

    @property
    def adult_count(self):
        return sum(1 for g in self.guests if not g.is_child)

    @property
    def child_count(self):
        return sum(1 for g in self.guests if g.is_child)

    @property
    def yoga_participant_count(self):
        return self.yoga_participants or len(self.guests) or 1

    @property
    def has_transport(self):
        if self.transport is not None and self.transport.requested:
            return True
        return any(isinstance(s.details, TransportDetails) for s in self.services)

    @property
    def vehicle_rentals(self):
        return [s for s in self.services if isinstance(s.details, VehicleRentalDetails)]

    @property
    def has_activity(self):
        if self.yoga_session_id is not None:
            return True
        return any(not isinstance(s.details, (VehicleRentalDetails, TransportDetails)) for s in self.services)

    @property
    def has_selection(self):
        return bool(
            self.room_id is not None
            or self.services
            or self.yoga_session_id is not None
            or (self.transport is not None and self.transport.requested)
        )

    def rental_window(self):
        rentals = [s.details for s in self.vehicle_rentals if s.details.start_date and s.details.end_date]
        if not rentals:
            return None
        return min(r.start_date for r in rentals), max(r.end_date for r in rentals)

    def to_payload(self):
        """camelCase JSON form, accepted back by ``parse_draft``."""
        return _compact({
            "bookingType": self.booking_type,
            "roomId": self.room_id,
            "checkIn": _iso(self.check_in),
            "checkOut": _iso(self.check_out),
            "serviceDate": _iso(self.service_date),
            "guests": [g.to_dict() for g in self.guests],
            "adults": self.declared_adults,
            "children": self.declared_children,
            "totalGuests": self.declared_total_guests,
            "primaryGuestInfo": self.primary_guest.to_dict() if self.primary_guest else None,
            "includeFood": self.include_food,
            "includeBreakfast": self.include_breakfast,
            "transport": self.transport.to_dict() if self.transport else None,
            "selectedServices": [s.to_dict() for s in self.services],
            "yogaSessionId": self.yoga_session_id,
            "yogaParticipants": self.yoga_participants,
            "couponCode": self.coupon_code,
            "totalAmount": self.declared_total,
            "specialRequests": self.special_requests,
        })


# ---------- parsing ----------

def _str(value):
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _int(value, field_name, errors, minimum=None):
    if value is None or value == "":
        return None
    if isinstance(value, bool):
        errors.append(FieldError(field_name, "Must be a whole number"))
        return None
    try:
        number = int(value)
    except (TypeError, ValueError):
        errors.append(FieldError(field_name, "Must be a whole number"))
        return None
    if isinstance(value, float) and value != number:
        errors.append(FieldError(field_name, "Must be a whole number"))
        return None
    if minimum is not None and number < minimum:
        errors.append(FieldError(field_name, f"Must be at least {minimum}"))
        return None
    return number


def _date_field(raw, key, prefix, errors):
    value = raw.get(key)
    if value in (None, ""):
        return None
    try:
        return parse_datetime(value)
    except (TypeError, ValueError):
        name = f"{prefix}.{key}" if prefix else key
        errors.append(FieldError(name, "Invalid date. Use ISO e.g. 2025-03-01T10:00:00"))
        return None


def _parse_details(raw, prefix, errors):
    if raw in (None, ""):
        return None
    if isinstance(raw, str):
        # plain description text from older clients
        return AdventureDetails(notes=raw.strip() or None)
    if not isinstance(raw, dict):
        errors.append(FieldError(prefix, "details must be an object"))
        return None
    detail_cls = DETAIL_KINDS.get(raw.get("kind"))
    if detail_cls is None:
        errors.append(FieldError(f"{prefix}.kind", f"kind must be one of {', '.join(DETAIL_KINDS)}"))
        return None
    return detail_cls.from_dict(raw, prefix, errors)


def _parse_guests(raw, child_age_limit, errors):
    if raw is None:
        return ()
    if not isinstance(raw, list):
        errors.append(FieldError("guests", "guests must be a list"))
        return ()
    guests = []
    for i, g in enumerate(raw):
        if not isinstance(g, dict):
            errors.append(FieldError(f"guests[{i}]", "Guest must be an object"))
            continue
        name = _str(g.get("name"))
        age = _int(g.get("age"), f"guests[{i}].age", errors, minimum=0)
        if not name:
            errors.append(FieldError(f"guests[{i}].name", "Guest name is required"))
        if age is None and g.get("age") in (None, ""):
            errors.append(FieldError(f"guests[{i}].age", "Guest age is required"))
        if age is not None and age > 120:
            errors.append(FieldError(f"guests[{i}].age", "Guest age looks wrong"))
            age = None
        if name and age is not None:
            guests.append(GuestInput(name=name, age=age, is_child=age < child_age_limit, gender=_str(g.get("gender"))))
    return tuple(guests)


def _parse_contact(raw, errors):
    if raw is None:
        return None
    if not isinstance(raw, dict):
        errors.append(FieldError("primaryGuestInfo", "primaryGuestInfo must be an object"))
        return None
    emergency = raw.get("emergencyContact") or {}
    if not isinstance(emergency, dict):
        emergency = {}
    return ContactInfo(
        name=_str(raw.get("name")) or "",
        email=(_str(raw.get("email")) or "").lower(),
        phone=_str(raw.get("phone")) or "",
        address=_str(raw.get("address")),
        city=_str(raw.get("city")),
        state=_str(raw.get("state")),
        pincode=_str(raw.get("pincode")),
        emergency_contact=EmergencyContact(
            name=_str(emergency.get("name")),
            phone=_str(emergency.get("phone")),
            relationship=_str(emergency.get("relationship")),
        ),
    )


def _parse_services(raw, errors):
    if raw is None:
        return ()
    if not isinstance(raw, list):
        errors.append(FieldError("selectedServices", "selectedServices must be a list"))
        return ()
    selections = []
    for i, s in enumerate(raw):
        prefix = f"selectedServices[{i}]"
        if not isinstance(s, dict):
            errors.append(FieldError(prefix, "Selection must be an object"))
            continue
        service_id = _int(s.get("serviceId"), f"{prefix}.serviceId", errors, minimum=1)
        if service_id is None and s.get("serviceId") in (None, ""):
            errors.append(FieldError(f"{prefix}.serviceId", "serviceId is required"))
        quantity = _int(s.get("quantity", 1), f"{prefix}.quantity", errors, minimum=1)
        details = _parse_details(s.get("details"), f"{prefix}.details", errors)
        if service_id is not None and quantity is not None:
            selections.append(ServiceSelection(service_id=service_id, quantity=quantity, details=details))
    return tuple(selections)


def parse_draft(data, child_age_limit=DEFAULT_CHILD_AGE_LIMIT):
    """Build a ``BookingDraft`` from a camelCase JSON payload.

    Only the shape is checked here (types, date formats, known enum values).
    Business rules are applied when the draft is submitted.
    """
    if not isinstance(data, dict):
        raise ValidationFailed([FieldError("body", "JSON object expected")])

    errors = []

    booking_type = _str(data.get("bookingType"))
    if booking_type == "services":
        booking_type = "service"
    if booking_type is not None and booking_type not in BOOKING_TYPES:
        errors.append(FieldError("bookingType", f"bookingType must be one of {', '.join(BOOKING_TYPES)}"))

    transport = None
    raw_transport = data.get("transport")
    if isinstance(raw_transport, dict):
        transport = TransportDetails.from_dict(raw_transport, "transport", errors)
    elif raw_transport is not None:
        errors.append(FieldError("transport", "transport must be an object"))

    coupon_code = _str(data.get("couponCode"))

    draft = BookingDraft(
        booking_type=booking_type,
        room_id=_int(data.get("roomId"), "roomId", errors, minimum=1),
        check_in=_date_field(data, "checkIn", "", errors),
        check_out=_date_field(data, "checkOut", "", errors),
        service_date=_date_field(data, "serviceDate", "", errors),
        guests=_parse_guests(data.get("guests"), child_age_limit, errors),
        declared_adults=_int(data.get("adults"), "adults", errors, minimum=0),
        declared_children=_int(data.get("children"), "children", errors, minimum=0),
        declared_total_guests=_int(data.get("totalGuests"), "totalGuests", errors, minimum=0),
        primary_guest=_parse_contact(data.get("primaryGuestInfo"), errors),
        include_food=bool(data.get("includeFood", False)),
        include_breakfast=bool(data.get("includeBreakfast", False)),
        transport=transport,
        services=_parse_services(data.get("selectedServices"), errors),
        yoga_session_id=_int(data.get("yogaSessionId"), "yogaSessionId", errors, minimum=1),
        yoga_participants=_int(data.get("yogaParticipants"), "yogaParticipants", errors, minimum=1),
        coupon_code=coupon_code.upper() if coupon_code else None,
        declared_total=_int(data.get("totalAmount"), "totalAmount", errors, minimum=0),
        special_requests=_str(data.get("specialRequests")),
    )

    if errors:
        raise ValidationFailed(errors)
    return draft


# ---------- draft store ----------

class DraftStore:
    """Server-side home of drafts between requests.

    Lifecycle: ``create`` on the first selection, ``replace`` on every change,
    ``discard`` on abandonment or successful submission. Expired drafts read as
    missing and are removed lazily or by ``purge_expired``.
    """

    def __init__(self, ttl_seconds=None, child_age_limit=None):
        cfg = current_app.config
        self.ttl = timedelta(seconds=ttl_seconds or cfg.get("DRAFT_TTL_SECONDS", 24 * 60 * 60))
        self.child_age_limit = child_age_limit or cfg.get("CHILD_AGE_LIMIT", DEFAULT_CHILD_AGE_LIMIT)

    def create(self, draft):
        if not draft.has_selection:
            raise ValidationFailed([FieldError("selection", "Select a room, service, yoga session or transport first")])
        token = secrets.token_urlsafe(24)
        now = datetime.utcnow()
        record = BookingDraftRecord(
            token=token,
            payload_json=draft.to_payload(),
            created_at=now,
            updated_at=now,
            expires_at=now + self.ttl,
        )
        db.session.add(record)
        db.session.commit()
        return token, record.expires_at

    def _live_record(self, token):
        record = db.session.get(BookingDraftRecord, token)
        if record is None:
            return None
        if record.expires_at <= datetime.utcnow():
            db.session.delete(record)
            db.session.commit()
            return None
        return record

    def get(self, token):
        record = self._live_record(token)
        if record is None:
            return None
        return parse_draft(record.payload_json, child_age_limit=self.child_age_limit)

    def replace(self, token, draft):
        record = self._live_record(token)
        if record is None:
            return None
        record.payload_json = draft.to_payload()
        record.expires_at = datetime.utcnow() + self.ttl
        db.session.commit()
        return record.expires_at

    def discard(self, token, commit=True):
        record = db.session.get(BookingDraftRecord, token)
        if record is None:
            return False
        db.session.delete(record)
        if commit:
            db.session.commit()
        return True

    def purge_expired(self):
        removed = (
            BookingDraftRecord.query
            .filter(BookingDraftRecord.expires_at <= datetime.utcnow())
            .delete(synchronize_session=False)
        )
        db.session.commit()
        return removed
