"""Price aggregation for booking drafts.

Every amount is a whole number of rupees. A draft is turned into a flat list
of ``LineItem`` objects, one per priced unit, and ``aggregate`` folds them into
per-category subtotals. ``totalAmount`` is never stored independently of the
subtotals it is computed from.
"""
import math
from dataclasses import dataclass, field, replace
from datetime import timedelta
from typing import Optional, Sequence, Tuple

from flask import current_app

from domain.drafts import TransportDetails, VehicleRentalDetails
from domain.errors import FieldError, ValidationFailed
from models import db
from models.room import Room
from models.service import Service
from models.yoga_session import YogaSession

DAY = timedelta(days=1)

CATEGORIES = ("room", "food", "breakfast", "services", "transport", "yoga")
UNITS = ("per_person", "per_day", "per_night", "per_session", "flat")


class PricingError(ValueError):
    def __init__(self, field_name, message):
        self.field = field_name
        self.message = message
        super().__init__(message)


@dataclass(frozen=True)
class LineItem:
    category: str
    reference_id: str
    unit_price: int
    quantity: int
    unit: str = "flat"
    duration: int = 1
    label: str = ""

    def __post_init__(self):
        if self.category not in CATEGORIES:
            raise PricingError("category", f"Unknown price category '{self.category}'")
        if self.unit not in UNITS:
            raise PricingError("unit", f"Unknown pricing unit '{self.unit}'")
        if self.unit_price < 0 or self.quantity < 0 or self.duration < 1:
            raise PricingError(self.reference_id, "Price, quantity and duration must be positive")

    @property
    def total(self) -> int:
        return self.unit_price * self.quantity * self.duration


@dataclass(frozen=True)
class PriceBreakdown:
    room_price: int = 0
    food_price: int = 0
    breakfast_price: int = 0
    services_price: int = 0
    transport_price: int = 0
    yoga_price: int = 0
    coupon_discount: int = 0

    @property
    def total_amount(self) -> int:
        return sum(self.subtotals().values())

    @property
    def final_amount(self) -> int:
        return max(0, self.total_amount - self.coupon_discount)

    def subtotals(self) -> dict:
        return {
            "room": self.room_price,
            "food": self.food_price,
            "breakfast": self.breakfast_price,
            "services": self.services_price,
            "transport": self.transport_price,
            "yoga": self.yoga_price,
        }

    def with_discount(self, discount: int) -> "PriceBreakdown":
        # the stored discount never exceeds what it is taken from
        clamped = min(max(0, int(discount or 0)), self.total_amount)
        return replace(self, coupon_discount=clamped)

    def to_dict(self) -> dict:
        return {
            "roomPrice": self.room_price,
            "foodPrice": self.food_price,
            "breakfastPrice": self.breakfast_price,
            "servicesPrice": self.services_price,
            "transportPrice": self.transport_price,
            "yogaPrice": self.yoga_price,
            "totalAmount": self.total_amount,
            "couponDiscount": self.coupon_discount,
            "finalAmount": self.final_amount,
        }


def day_count(start, end) -> int:
    """Whole days between two instants, rounded up, never less than one."""
    return max(1, math.ceil((end - start) / DAY))


def aggregate(items: Sequence[LineItem]) -> PriceBreakdown:
    subtotals = {category: 0 for category in CATEGORIES}
    for item in items:
        subtotals[item.category] += item.total
    return PriceBreakdown(
        room_price=subtotals["room"],
        food_price=subtotals["food"],
        breakfast_price=subtotals["breakfast"],
        services_price=subtotals["services"],
        transport_price=subtotals["transport"],
        yoga_price=subtotals["yoga"],
    )


def vehicle_rental_item(reference_id, price_per_day, quantity, start_date, end_date,
                        with_driver=False, driver_charge_per_day=0, label="") -> LineItem:
    if start_date is None or end_date is None:
        raise PricingError("startDate", "Vehicle rentals need both a start and an end date")
    if start_date >= end_date:
        raise PricingError("endDate", "Vehicle rental end date must be after the start date")

    unit_price = price_per_day
    if with_driver:
        unit_price += driver_charge_per_day or 0

    return LineItem(
        category="services",
        reference_id=reference_id,
        unit_price=unit_price,
        quantity=quantity,
        unit="per_day",
        duration=day_count(start_date, end_date),
        label=label,
    )


@dataclass(frozen=True)
class ServiceLine:
    index: int
    service: Service
    item: LineItem


@dataclass(frozen=True)
class Quote:
    items: Tuple[LineItem, ...]
    breakdown: PriceBreakdown
    nights: int = 0
    service_lines: Tuple[ServiceLine, ...] = field(default_factory=tuple)
    yoga_session: Optional[YogaSession] = None

    def to_dict(self) -> dict:
        data = self.breakdown.to_dict()
        data["nights"] = self.nights
        data["lineItems"] = [
            {
                "category": i.category,
                "referenceId": i.reference_id,
                "label": i.label,
                "unitPrice": i.unit_price,
                "quantity": i.quantity,
                "unit": i.unit,
                "duration": i.duration,
                "total": i.total,
            }
            for i in self.items
        ]
        return data


def _price_service(index, selection, service, errors):
    prefix = f"selectedServices[{index}]"
    details = selection.details

    if service.is_vehicle_rental:
        if not isinstance(details, VehicleRentalDetails):
            errors.append(FieldError(f"{prefix}.details", "Vehicle rentals need rental details"))
            return None
        try:
            return vehicle_rental_item(
                f"service:{service.id}",
                service.price,
                selection.quantity,
                details.start_date,
                details.end_date,
                with_driver=details.with_driver,
                driver_charge_per_day=service.driver_charge_per_day,
                label=service.name,
            )
        except PricingError as exc:
            errors.append(FieldError(f"{prefix}.details.{exc.field}", exc.message))
            return None

    if isinstance(details, VehicleRentalDetails):
        errors.append(FieldError(f"{prefix}.details", f"{service.name} is not a vehicle rental"))
        return None

    category = "transport" if service.category == "transport" else "services"
    if category == "transport" and details is not None and not isinstance(details, TransportDetails):
        errors.append(FieldError(f"{prefix}.details", "Transport services need transport details"))
        return None

    unit = service.price_unit if service.price_unit in UNITS else "flat"
    return LineItem(category, f"service:{service.id}", service.price, selection.quantity, unit, 1, service.name)


def quote_draft(draft, config=None) -> Quote:
    """Price a draft against the live catalog.

    Raises ``ValidationFailed`` when a referenced catalog item is missing or a
    selection cannot be priced; nothing is ever defaulted to a zero price.
    """
    cfg = config if config is not None else current_app.config
    errors = []
    items = []
    service_lines = []

    meal_guests = max(1, draft.adult_count)
    nights = 0

    if draft.room_id is not None:
        room = db.session.get(Room, draft.room_id)
        if room is None or not room.is_active:
            errors.append(FieldError("roomId", "Room not found"))
        elif draft.check_in is None or draft.check_out is None:
            errors.append(FieldError("checkIn", "checkIn and checkOut are required for room bookings"))
        else:
            nights = day_count(draft.check_in, draft.check_out)
            items.append(LineItem("room", f"room:{room.id}", room.price_per_night, 1, "per_night", nights, room.name))

    if nights:
        if draft.include_food:
            items.append(LineItem("food", "food", cfg["PRICE_FOOD_PER_ADULT_PER_DAY"], meal_guests, "per_person", nights, "Meals"))
        if draft.include_breakfast:
            items.append(LineItem("breakfast", "breakfast", cfg["PRICE_BREAKFAST_PER_ADULT_PER_DAY"], meal_guests, "per_person", nights, "Breakfast"))

    if draft.transport is not None:
        if draft.transport.pickup:
            items.append(LineItem("transport", "transport:pickup", cfg["PRICE_TRANSPORT_PICKUP"], 1, "flat", 1, "Airport pickup"))
        if draft.transport.drop:
            items.append(LineItem("transport", "transport:drop", cfg["PRICE_TRANSPORT_DROP"], 1, "flat", 1, "Airport drop"))

    for index, selection in enumerate(draft.services):
        service = db.session.get(Service, selection.service_id)
        if service is None or not service.is_active:
            errors.append(FieldError(f"selectedServices[{index}].serviceId", "Service not found"))
            continue
        item = _price_service(index, selection, service, errors)
        if item is not None:
            items.append(item)
            service_lines.append(ServiceLine(index, service, item))

    yoga_session = None
    if draft.yoga_session_id is not None:
        yoga_session = db.session.get(YogaSession, draft.yoga_session_id)
        if yoga_session is None or not yoga_session.is_active:
            errors.append(FieldError("yogaSessionId", "Yoga session not found"))
            yoga_session = None
        else:
            items.append(LineItem(
                "yoga", f"yoga:{yoga_session.id}", yoga_session.price,
                draft.yoga_participant_count, "per_session", 1, yoga_session.name,
            ))

    if errors:
        raise ValidationFailed(errors)

    return Quote(
        items=tuple(items),
        breakdown=aggregate(items),
        nights=nights,
        service_lines=tuple(service_lines),
        yoga_session=yoga_session,
    )
