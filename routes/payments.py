from flask import Blueprint, request, jsonify, current_app

from domain.errors import BookingNotFound, GatewayError, PaymentStateError
from models import db
from models.booking import Booking
from models.payment import Payment
from payments.gateways import RazorpayGateway, StripeGateway
from payments.reconciliation import mark_paid, payment_for_order
from utils.audit import log_event

payments_bp = Blueprint("payments", __name__, url_prefix="/payments")


def _payable_booking(booking_id):
    """Returns (booking, error_response)."""
    if not booking_id:
        return None, (jsonify(error="bookingId required"), 400)

    booking = Booking.query.get(str(booking_id))
    if not booking:
        return None, (jsonify(error="Booking not found"), 404)
    if booking.status == "cancelled":
        return None, (jsonify(error="Booking is cancelled"), 400)
    if booking.payment_status == "paid":
        return None, (jsonify(error="Booking already paid"), 400)
    if booking.payment_status != "pending":
        return None, (jsonify(error=f"Booking payment is {booking.payment_status}"), 400)
    if booking.final_amount <= 0:
        return None, (jsonify(error="Nothing to pay for this booking"), 400)
    return booking, None


# ---------- Razorpay: order for the booking's final amount ----------
@payments_bp.post("/public/create-order")
def create_order():
    data = request.get_json(silent=True) or {}
    booking, error = _payable_booking(data.get("bookingId"))
    if error:
        return error

    amount = data.get("amount")
    if amount is not None:
        try:
            amount = int(amount)
        except (TypeError, ValueError):
            return jsonify(error="amount must be a whole number of rupees"), 400
        if amount != booking.final_amount:
            return jsonify(error="Amount does not match booking total", expected=booking.final_amount), 400

    try:
        gateway = RazorpayGateway.from_config()
    except GatewayError as exc:
        return jsonify(error=str(exc)), 500

    currency = current_app.config["PAYMENT_CURRENCY"]
    try:
        order = gateway.create_order(
            booking.final_amount,
            receipt=booking.id,
            currency=currency,
            notes={"bookingId": booking.id},
        )
    except GatewayError as exc:
        current_app.logger.error("Order creation failed for booking %s: %s", booking.id, exc)
        return jsonify(error="Payment gateway unavailable"), 502

    payment = Payment(
        booking_id=booking.id,
        provider=gateway.provider,
        amount=booking.final_amount,
        currency=currency,
        status="CREATED",
        gateway_order_id=order["id"],
    )
    db.session.add(payment)
    db.session.commit()

    log_event("PAYMENT_ORDER_CREATED", actor="guest", entity="booking", entity_id=booking.id,
              metadata={"order_id": order["id"], "amount": booking.final_amount})
    return jsonify(
        orderId=order["id"],
        amount=order["amount"],
        currency=order["currency"],
        keyId=gateway.key_id,
        bookingId=booking.id,
    ), 200


# ---------- Razorpay: client callback after checkout ----------
@payments_bp.post("/public/verify")
def verify_payment():
    data = request.get_json(silent=True) or {}
    booking_id = data.get("bookingId")
    order_id = data.get("razorpay_order_id")
    payment_id = data.get("razorpay_payment_id")
    signature = data.get("razorpay_signature")

    missing = [name for name, value in (
        ("bookingId", booking_id),
        ("razorpay_order_id", order_id),
        ("razorpay_payment_id", payment_id),
        ("razorpay_signature", signature),
    ) if not value]
    if missing:
        return jsonify(error="Missing payment fields", details=missing), 400

    try:
        gateway = RazorpayGateway.from_config()
    except GatewayError as exc:
        return jsonify(error=str(exc)), 500

    if not gateway.verify_payment_signature(order_id, payment_id, signature):
        log_event("PAYMENT_VERIFY_FAIL", actor="guest", entity="booking", entity_id=booking_id,
                  metadata={"order_id": order_id, "payment_id": payment_id})
        return jsonify(error="Payment verification failed", bookingId=booking_id, paymentStatus="pending"), 400

    payment = payment_for_order(order_id)
    if payment is None or payment.booking_id != booking_id:
        log_event("PAYMENT_ORDER_MISMATCH", actor="guest", entity="booking", entity_id=booking_id,
                  metadata={"order_id": order_id})
        return jsonify(error="Order does not belong to this booking"), 400

    try:
        result = mark_paid(booking_id, payment_id, order_id=order_id)
    except BookingNotFound:
        return jsonify(error="Booking not found"), 404
    except PaymentStateError as exc:
        return jsonify(error=str(exc), paymentStatus=exc.current), 409

    return jsonify(booking=result.booking.to_dict(), alreadyProcessed=not result.transitioned), 200


# ---------- Razorpay: client saw checkout fail ----------
@payments_bp.post("/public/failure")
def report_failure():
    """Recorded only. Unsigned client reports never move payment_status."""
    data = request.get_json(silent=True) or {}
    booking_id = data.get("bookingId")
    booking = Booking.query.get(str(booking_id)) if booking_id else None
    if not booking:
        return jsonify(error="Booking not found"), 404

    log_event("PAYMENT_CLIENT_FAILURE", actor="guest", entity="booking", entity_id=booking.id,
              metadata={"order_id": data.get("razorpay_order_id"), "reason": data.get("reason")})
    return jsonify(bookingId=booking.id, paymentStatus=booking.payment_status), 200


# ---------- Stripe Checkout ----------
@payments_bp.post("/stripe/start")
def start_stripe_checkout():
    data = request.get_json(silent=True) or {}
    booking, error = _payable_booking(data.get("bookingId"))
    if error:
        return error

    try:
        gateway = StripeGateway.from_config()
    except GatewayError as exc:
        return jsonify(error=str(exc)), 500

    currency = current_app.config["PAYMENT_CURRENCY"]
    payment = Payment(
        booking_id=booking.id,
        provider=gateway.provider,
        amount=booking.final_amount,
        currency=currency,
        status="CREATED",
    )
    db.session.add(payment)
    db.session.flush()

    try:
        session = gateway.create_checkout_session(booking, payment, currency=currency)
    except GatewayError as exc:
        db.session.rollback()
        current_app.logger.error("Stripe checkout failed for booking %s: %s", booking.id, exc)
        return jsonify(error="Payment gateway unavailable"), 502

    payment.gateway_order_id = session["id"]
    db.session.commit()

    log_event("PAYMENT_SESSION_CREATED", actor="guest", entity="booking", entity_id=booking.id,
              metadata={"stripe_session_id": session["id"], "payment_id": payment.id})
    return jsonify(checkout_url=session["url"]), 200
