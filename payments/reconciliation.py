"""Apply verified gateway results to stored bookings.

``payment_status`` only ever moves pending -> paid, pending -> failed or
paid -> refunded. Each move is a compare-and-set on the current status, so a
callback delivered twice (or two callbacks racing) performs the transition
once, and only the caller that performed it sends notifications.
"""
from dataclasses import dataclass
from datetime import datetime

from flask import current_app

from domain.coupons import record_usage
from domain.errors import BookingNotFound, PaymentStateError
from domain.notifications import dispatch_payment_notifications
from models import db
from models.booking import Booking
from models.payment import Payment
from utils.audit import log_event

ALLOWED_TRANSITIONS = {
    ("pending", "paid"),
    ("pending", "failed"),
    ("paid", "refunded"),
}


@dataclass
class ReconcileResult:
    booking: Booking
    transitioned: bool
    previous_status: str


def _load(booking_id):
    booking = db.session.get(Booking, booking_id) if booking_id else None
    if booking is None:
        raise BookingNotFound(booking_id)
    return booking


def _compare_and_set(booking_id, current, target, values=None):
    if (current, target) not in ALLOWED_TRANSITIONS:
        raise PaymentStateError(current, target)
    changes = {Booking.payment_status: target}
    changes.update(values or {})
    updated = (
        Booking.query
        .filter(Booking.id == booking_id, Booking.payment_status == current)
        .update(changes, synchronize_session=False)
    )
    return updated == 1


def _lost_race(booking, target):
    db.session.rollback()
    db.session.refresh(booking)
    if booking.payment_status == target:
        return ReconcileResult(booking, False, target)
    raise PaymentStateError(booking.payment_status, target)


def payment_for_order(order_id):
    if not order_id:
        return None
    return Payment.query.filter_by(gateway_order_id=order_id).first()


def mark_paid(booking_id, payment_id, order_id=None, amount_paid=None):
    """pending -> paid. Repeating it for a paid booking is a no-op."""
    booking = _load(booking_id)

    if booking.payment_status == "paid":
        if payment_id and booking.payment_id and payment_id != booking.payment_id:
            current_app.logger.warning(
                "Booking %s already paid by %s, ignoring second payment %s",
                booking.id, booking.payment_id, payment_id,
            )
        return ReconcileResult(booking, False, "paid")
    if booking.payment_status != "pending":
        raise PaymentStateError(booking.payment_status, "paid")

    now = datetime.utcnow()
    if not _compare_and_set(booking.id, "pending", "paid", {Booking.payment_id: payment_id, Booking.paid_at: now}):
        return _lost_race(booking, "paid")

    payment = payment_for_order(order_id)
    if payment is not None and payment.booking_id == booking.id:
        payment.status = "PAID"
        payment.gateway_payment_id = payment_id
        payment.paid_at = now

    record_usage(booking)
    db.session.commit()
    db.session.refresh(booking)

    if amount_paid is not None and amount_paid != booking.final_amount:
        current_app.logger.warning(
            "Booking %s paid %s but final amount is %s", booking.id, amount_paid, booking.final_amount
        )

    log_event(
        "PAYMENT_PAID",
        actor="gateway",
        entity="booking",
        entity_id=booking.id,
        metadata={"payment_id": payment_id, "order_id": order_id, "amount_paid": amount_paid},
    )
    current_app.logger.info("Booking %s marked paid (%s)", booking.id, payment_id)

    dispatch_payment_notifications(booking)
    return ReconcileResult(booking, True, "pending")


def mark_failed(booking_id, order_id=None, reason=None):
    """pending -> failed, reported by the gateway. The booking itself is never cancelled here."""
    booking = _load(booking_id)

    if booking.payment_status == "failed":
        return ReconcileResult(booking, False, "failed")
    if booking.payment_status != "pending":
        raise PaymentStateError(booking.payment_status, "failed")

    if not _compare_and_set(booking.id, "pending", "failed"):
        return _lost_race(booking, "failed")

    payment = payment_for_order(order_id)
    if payment is not None and payment.booking_id == booking.id:
        payment.status = "FAILED"

    db.session.commit()
    db.session.refresh(booking)

    log_event(
        "PAYMENT_FAILED",
        actor="gateway",
        entity="booking",
        entity_id=booking.id,
        metadata={"order_id": order_id, "reason": reason},
    )
    current_app.logger.info("Booking %s payment failed: %s", booking.id, reason)
    return ReconcileResult(booking, True, "pending")


def mark_refunded(booking_id, reason=None):
    """paid -> refunded (admin action)."""
    booking = _load(booking_id)

    if booking.payment_status == "refunded":
        return ReconcileResult(booking, False, "refunded")
    if booking.payment_status != "paid":
        raise PaymentStateError(booking.payment_status, "refunded")

    if not _compare_and_set(booking.id, "paid", "refunded"):
        return _lost_race(booking, "refunded")

    db.session.commit()
    db.session.refresh(booking)

    log_event(
        "PAYMENT_REFUNDED",
        actor="admin",
        entity="booking",
        entity_id=booking.id,
        metadata={"reason": reason},
    )
    return ReconcileResult(booking, True, "paid")
