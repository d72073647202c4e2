from flask import Blueprint, request, jsonify, current_app

from domain.errors import BookingNotFound, GatewayError, PaymentStateError
from payments.gateways import RazorpayGateway, StripeGateway
from payments.reconciliation import mark_failed, mark_paid, payment_for_order
from utils.audit import log_event

webhook_bp = Blueprint("webhook", __name__, url_prefix="/webhooks")

STRIPE_PAID_EVENTS = ("checkout.session.completed", "checkout.session.async_payment_succeeded")
STRIPE_FAILED_EVENTS = ("checkout.session.expired", "checkout.session.async_payment_failed")


def _apply(provider, booking_id, order_id, apply_fn):
    """Run a reconciliation step and swallow the outcomes a gateway retry cannot fix."""
    try:
        return apply_fn()
    except BookingNotFound:
        current_app.logger.warning("%s webhook for unknown booking %s (order %s)", provider, booking_id, order_id)
        log_event("WEBHOOK_UNKNOWN_BOOKING", actor="gateway", entity="booking", entity_id=booking_id,
                  metadata={"provider": provider, "order_id": order_id})
    except PaymentStateError as exc:
        # e.g. a capture arriving after the booking was marked failed: money moved, admin must act
        current_app.logger.error("%s webhook for booking %s rejected: %s", provider, booking_id, exc)
        log_event("WEBHOOK_STATE_CONFLICT", actor="gateway", entity="booking", entity_id=booking_id,
                  metadata={"provider": provider, "order_id": order_id, "current": exc.current, "target": exc.target})
    return None


@webhook_bp.post("/razorpay")
def razorpay_webhook():
    try:
        gateway = RazorpayGateway.from_config()
        valid = gateway.verify_webhook(request.get_data(as_text=True), request.headers.get("X-Razorpay-Signature"))
    except GatewayError as exc:
        return jsonify(error=str(exc)), 500

    if not valid:
        log_event("WEBHOOK_SIGNATURE_FAIL", actor="gateway", metadata={"provider": "razorpay"})
        return jsonify(error="Invalid webhook signature"), 400

    event = request.get_json(silent=True) or {}
    event_type = event.get("event")
    entity = ((event.get("payload") or {}).get("payment") or {}).get("entity") or {}
    order_id = entity.get("order_id")
    payment_id = entity.get("id")

    booking_id = (entity.get("notes") or {}).get("bookingId")
    if not booking_id:
        payment = payment_for_order(order_id)
        booking_id = payment.booking_id if payment else None

    if event_type == "payment.captured":
        amount = entity.get("amount")
        _apply("razorpay", booking_id, order_id, lambda: mark_paid(
            booking_id, payment_id, order_id=order_id,
            amount_paid=amount // 100 if isinstance(amount, int) else None,
        ))
    elif event_type == "payment.failed":
        _apply("razorpay", booking_id, order_id, lambda: mark_failed(
            booking_id, order_id=order_id, reason=entity.get("error_description"),
        ))
    else:
        current_app.logger.debug("Ignoring razorpay event %s", event_type)

    return jsonify(received=True), 200


@webhook_bp.post("/stripe")
def stripe_webhook():
    try:
        event = StripeGateway.from_config().construct_event(request.data, request.headers.get("Stripe-Signature"))
    except GatewayError as exc:
        return jsonify(error=str(exc)), 500

    if event is None:
        log_event("WEBHOOK_SIGNATURE_FAIL", actor="gateway", metadata={"provider": "stripe"})
        return jsonify(error="Invalid webhook signature"), 400

    event_type = event.get("type")
    if event_type in STRIPE_PAID_EVENTS or event_type in STRIPE_FAILED_EVENTS:
        session = event["data"]["object"]
        session_id = session.get("id")
        meta = session.get("metadata", {}) or {}

        booking_id = meta.get("booking_id") or session.get("client_reference_id")
        if not booking_id:
            payment = payment_for_order(session_id)
            booking_id = payment.booking_id if payment else None

        if event_type in STRIPE_PAID_EVENTS:
            if session.get("payment_status") == "paid":
                amount = session.get("amount_total")
                _apply("stripe", booking_id, session_id, lambda: mark_paid(
                    booking_id, session.get("payment_intent"), order_id=session_id,
                    amount_paid=amount // 100 if isinstance(amount, int) else None,
                ))
        else:
            _apply("stripe", booking_id, session_id, lambda: mark_failed(
                booking_id, order_id=session_id, reason=event_type,
            ))

    return jsonify(received=True), 200
