from datetime import datetime
from flask import Blueprint, jsonify, request
from security.rbac import require_admin
from utils.audit import log_event
from models import db
from models.booking import Booking, BOOKING_STATUSES, PAYMENT_STATUSES
from models.coupon import Coupon
from domain.catalog import build_coupon, build_room, build_service, build_yoga_session
from domain.errors import BookingNotFound, PaymentStateError, ValidationFailed
from domain.notifications import send_booking_cancellation
from payments.reconciliation import mark_refunded

admin_bp = Blueprint("admin", __name__, url_prefix="/admin")

# operational status only; payment_status is owned by reconciliation
STATUS_FLOW = {
    "pending": ("confirmed", "cancelled"),
    "confirmed": ("checked_in", "cancelled"),
    "checked_in": ("checked_out", "cancelled"),
    "checked_out": (),
    "cancelled": (),
}


def _get_booking(booking_id):
    return Booking.query.get(booking_id)


# ---------- bookings ----------
@admin_bp.get("/bookings")
@require_admin
def list_bookings():
    status = (request.args.get("status") or "").strip().lower()
    payment_status = (request.args.get("paymentStatus") or "").strip().lower()
    limit = request.args.get("limit", type=int) or 100
    limit = max(1, min(limit, 500))

    if status and status not in BOOKING_STATUSES:
        return jsonify(error=f"status must be one of {', '.join(BOOKING_STATUSES)}"), 400
    if payment_status and payment_status not in PAYMENT_STATUSES:
        return jsonify(error=f"paymentStatus must be one of {', '.join(PAYMENT_STATUSES)}"), 400

    q = Booking.query
    if status:
        q = q.filter(Booking.status == status)
    if payment_status:
        q = q.filter(Booking.payment_status == payment_status)

    rows = q.order_by(Booking.created_at.desc()).limit(limit).all()
    return jsonify([b.to_dict() for b in rows]), 200


@admin_bp.get("/bookings/<booking_id>")
@require_admin
def get_booking(booking_id: str):
    booking = _get_booking(booking_id)
    if not booking:
        return jsonify(error="Booking not found"), 404
    return jsonify(booking=booking.to_dict()), 200


@admin_bp.patch("/bookings/<booking_id>/status")
@require_admin
def update_booking_status(booking_id: str):
    data = request.get_json(silent=True) or {}
    status = str(data.get("status") or "").strip().lower()
    reason = str(data.get("reason") or "").strip() or None

    if status not in BOOKING_STATUSES:
        return jsonify(error=f"status must be one of {', '.join(BOOKING_STATUSES)}"), 400

    booking = _get_booking(booking_id)
    if not booking:
        return jsonify(error="Booking not found"), 404

    previous = booking.status
    if status not in STATUS_FLOW.get(previous, ()):
        return jsonify(error=f"Cannot move booking from {previous} to {status}"), 409

    booking.status = status
    if status == "cancelled":
        booking.cancelled_at = datetime.utcnow()
        booking.cancel_reason = reason
    db.session.commit()

    log_event(
        "ADMIN_BOOKING_STATUS",
        actor="admin",
        entity="booking",
        entity_id=booking.id,
        metadata={"from": previous, "to": status, "reason": reason},
    )

    if status == "cancelled":
        send_booking_cancellation(booking)

    return jsonify(booking=booking.to_dict()), 200


@admin_bp.post("/bookings/<booking_id>/refund")
@require_admin
def refund_booking(booking_id: str):
    data = request.get_json(silent=True) or {}
    reason = str(data.get("reason") or "").strip() or None
    try:
        result = mark_refunded(booking_id, reason=reason)
    except BookingNotFound:
        return jsonify(error="Booking not found"), 404
    except PaymentStateError as exc:
        return jsonify(error=str(exc), paymentStatus=exc.current), 409

    return jsonify(booking=result.booking.to_dict(), alreadyProcessed=not result.transitioned), 200


# ---------- catalog ----------
def _create(builder, entity):
    try:
        row = builder(request.get_json(silent=True))
    except ValidationFailed as exc:
        return jsonify(error="Validation failed", details=exc.to_details()), 400

    db.session.add(row)
    db.session.commit()
    log_event(f"ADMIN_{entity.upper()}_CREATE", actor="admin", entity=entity, entity_id=row.id)
    return jsonify(row.to_dict()), 201


@admin_bp.post("/rooms")
@require_admin
def create_room():
    return _create(build_room, "room")


@admin_bp.post("/services")
@require_admin
def create_service():
    return _create(build_service, "service")


@admin_bp.post("/yoga-sessions")
@require_admin
def create_yoga_session():
    return _create(build_yoga_session, "yoga_session")


# ---------- coupons ----------
@admin_bp.get("/coupons")
@require_admin
def list_coupons():
    rows = Coupon.query.order_by(Coupon.created_at.desc()).limit(200).all()
    return jsonify([
        dict(c.to_dict(), usedCount=c.used_count, usageLimit=c.usage_limit, isActive=c.is_active)
        for c in rows
    ]), 200


@admin_bp.post("/coupons")
@require_admin
def create_coupon():
    return _create(build_coupon, "coupon")


@admin_bp.post("/coupons/<int:coupon_id>/deactivate")
@require_admin
def deactivate_coupon(coupon_id: int):
    coupon = Coupon.query.get(coupon_id)
    if not coupon:
        return jsonify(error="Coupon not found"), 404

    coupon.is_active = False
    db.session.commit()
    log_event("ADMIN_COUPON_DEACTIVATE", actor="admin", entity="coupon", entity_id=coupon.id)
    return jsonify(message="Coupon deactivated", code=coupon.code), 200
