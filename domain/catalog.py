"""Build catalog rows and coupons from admin JSON, collecting field errors."""
from domain.coupons import normalize_code
from domain.drafts import parse_datetime
from domain.errors import FieldError, ValidationFailed
from models.coupon import COUPON_SERVICE_TYPES, Coupon
from models.room import Room
from models.service import PRICE_UNITS, SERVICE_CATEGORIES, Service
from models.yoga_session import YogaSession

YOGA_SESSION_TYPES = ("200hr", "300hr", "single", "daily")
DISCOUNT_TYPES = ("fixed", "percentage")


class _Fields:
    def __init__(self, data):
        self.data = data if isinstance(data, dict) else {}
        self.errors = []

    def text(self, key, required=True):
        value = self.data.get(key)
        value = value.strip() if isinstance(value, str) else None
        if required and not value:
            self.errors.append(FieldError(key, "is required"))
        return value or None

    def amount(self, key, required=True, minimum=0):
        value = self.data.get(key)
        if value is None:
            if required:
                self.errors.append(FieldError(key, "is required"))
            return None
        if isinstance(value, bool) or not isinstance(value, int):
            self.errors.append(FieldError(key, "must be a whole number"))
            return None
        if value < minimum:
            self.errors.append(FieldError(key, f"must be at least {minimum}"))
            return None
        return value

    def choice(self, key, options, default):
        value = self.data.get(key, default)
        if value not in options:
            self.errors.append(FieldError(key, f"must be one of {', '.join(options)}"))
        return value

    def when(self, key):
        value = self.data.get(key)
        if value in (None, ""):
            return None
        try:
            return parse_datetime(value)
        except (TypeError, ValueError):
            self.errors.append(FieldError(key, "must be an ISO date"))
            return None

    def done(self):
        if self.errors:
            raise ValidationFailed(self.errors)


def build_room(data) -> Room:
    f = _Fields(data)
    room = Room(
        name=f.text("name"),
        room_type=f.text("roomType", required=False) or "standard",
        description=f.text("description", required=False),
        price_per_night=f.amount("pricePerNight"),
        capacity=f.amount("capacity", required=False, minimum=1) or 2,
    )
    f.done()
    return room


def build_service(data) -> Service:
    f = _Fields(data)
    category = f.choice("category", SERVICE_CATEGORIES, None)
    service = Service(
        name=f.text("name"),
        category=category,
        description=f.text("description", required=False),
        price=f.amount("price"),
        price_unit=f.choice("priceUnit", PRICE_UNITS, "per_day" if category == "vehicle_rental" else "per_person"),
        driver_charge_per_day=f.amount("driverChargePerDay", required=False),
        max_quantity=f.amount("maxQuantity", required=False, minimum=1),
    )
    if service.driver_charge_per_day is not None and category != "vehicle_rental":
        f.errors.append(FieldError("driverChargePerDay", "only applies to vehicle rentals"))
    f.done()
    return service


def build_yoga_session(data) -> YogaSession:
    f = _Fields(data)
    session = YogaSession(
        name=f.text("name"),
        session_type=f.choice("sessionType", YOGA_SESSION_TYPES, "single"),
        price=f.amount("price"),
        capacity=f.amount("capacity", required=False, minimum=1) or 20,
        start_date=f.when("startDate"),
        end_date=f.when("endDate"),
    )
    if session.start_date and session.end_date and session.start_date > session.end_date:
        f.errors.append(FieldError("endDate", "must not be before startDate"))
    f.done()
    return session


def build_coupon(data) -> Coupon:
    f = _Fields(data)
    code = normalize_code(f.text("code"))
    discount_type = f.choice("discountType", DISCOUNT_TYPES, "fixed")
    coupon = Coupon(
        code=code,
        description=f.text("description", required=False),
        discount_type=discount_type,
        discount_value=f.amount("discountValue", minimum=1),
        max_discount=f.amount("maxDiscount", required=False, minimum=1),
        min_order_value=f.amount("minOrderValue", required=False) or 0,
        service_type=f.choice("serviceType", COUPON_SERVICE_TYPES, "all"),
        valid_from=f.when("validFrom"),
        valid_until=f.when("validUntil"),
        usage_limit=f.amount("usageLimit", required=False, minimum=1),
        per_phone_limit=f.amount("perPhoneLimit", required=False, minimum=1),
        used_count=0,
    )
    if discount_type == "percentage" and (coupon.discount_value or 0) > 100:
        f.errors.append(FieldError("discountValue", "percentage must be at most 100"))
    if coupon.valid_from and coupon.valid_until and coupon.valid_from > coupon.valid_until:
        f.errors.append(FieldError("validUntil", "must not be before validFrom"))
    if code and Coupon.query.filter_by(code=code).first():
        f.errors.append(FieldError("code", "already exists"))
    f.done()
    return coupon
