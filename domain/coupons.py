from datetime import datetime

from domain.errors import CouponError
from models import db
from models.coupon import COUPON_SERVICE_TYPES, Coupon, CouponUsage


def normalize_code(code):
    return (code or "").strip().upper()


def infer_service_type(draft):
    """Coupon service type for a draft.

    Pickup/drop wins, then yoga, then vehicle rentals; anything else is an
    adventure booking. A services-only draft therefore resolves to rental or
    adventure.
    """
    if draft.transport is not None and draft.transport.requested:
        return "airport"
    if draft.yoga_session_id is not None:
        return "yoga"
    if draft.vehicle_rentals:
        return "rental"
    return "adventure"


def compute_discount(coupon, order_value):
    if coupon.discount_type == "percentage":
        discount = order_value * coupon.discount_value // 100
        if coupon.max_discount is not None:
            discount = min(discount, coupon.max_discount)
    else:
        discount = coupon.discount_value
    return max(0, min(discount, order_value))


def validate_coupon(code, service_type, order_value, phone_number=None, now=None):
    """Return ``(coupon, discount)`` or raise ``CouponError`` with a message for the guest."""
    if not isinstance(code, str):
        raise CouponError("Coupon code is required")
    code = normalize_code(code)
    if not code:
        raise CouponError("Coupon code is required")
    if service_type not in COUPON_SERVICE_TYPES:
        raise CouponError("Unknown service type")
    try:
        order_value = int(order_value)
    except (TypeError, ValueError):
        raise CouponError("Order value must be a number")

    now = now or datetime.utcnow()
    coupon = Coupon.query.filter_by(code=code).first()

    if coupon is None or not coupon.is_active:
        raise CouponError("Invalid coupon code")
    if coupon.valid_from and now < coupon.valid_from:
        raise CouponError("This coupon is not active yet")
    if coupon.valid_until and now > coupon.valid_until:
        raise CouponError("This coupon has expired")
    if coupon.service_type != "all" and coupon.service_type != service_type:
        raise CouponError(f"This coupon is only valid for {coupon.service_type} bookings")
    if order_value < coupon.min_order_value:
        raise CouponError(f"Minimum order value for this coupon is ₹{coupon.min_order_value}")
    if coupon.usage_limit is not None and coupon.used_count >= coupon.usage_limit:
        raise CouponError("This coupon has reached its usage limit")

    if phone_number and coupon.per_phone_limit is not None:
        used_by_phone = CouponUsage.query.filter_by(coupon_id=coupon.id, phone_number=phone_number).count()
        if used_by_phone >= coupon.per_phone_limit:
            raise CouponError("You have already used this coupon")

    return coupon, compute_discount(coupon, order_value)


def record_usage(booking):
    """Count a coupon against its limits once the booking is paid. Caller commits."""
    if not booking.coupon_code or booking.coupon_discount <= 0:
        return None
    coupon = Coupon.query.filter_by(code=booking.coupon_code).first()
    if coupon is None:
        return None

    usage = CouponUsage.query.filter_by(coupon_id=coupon.id, booking_id=booking.id).first()
    if usage is not None:
        return usage

    usage = CouponUsage(
        coupon_id=coupon.id,
        booking_id=booking.id,
        phone_number=booking.guest_phone,
        discount=booking.coupon_discount,
    )
    db.session.add(usage)
    Coupon.query.filter_by(id=coupon.id).update(
        {Coupon.used_count: Coupon.used_count + 1}, synchronize_session=False
    )
    return usage
