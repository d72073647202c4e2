from flask import Blueprint, request, current_app
from markupsafe import escape

from models import db
from models.payment import Payment
from utils.audit import log_event

pay_pages_bp = Blueprint("pay_pages", __name__)


def _booking_url(booking_id):
    base_url = current_app.config["FRONTEND_BASE_URL"].rstrip("/")
    url = f"{base_url}/booking/{booking_id}" if booking_id else base_url
    return str(escape(url))


@pay_pages_bp.get("/pay/success")
def pay_success():
    # Stripe lands here; the webhook does the actual reconciliation
    booking_url = _booking_url(request.args.get("booking_id"))
    return """
    <html>
      <head><title>Payment Received</title></head>
      <body style="font-family: system-ui; max-width: 720px; margin: 40px auto;">
        <h1>Payment Received ✅</h1>
        <p>Thank you. Your payment is being confirmed and a confirmation email will follow shortly.</p>
        <a href=\"""" + booking_url + """\" style="display: inline-block; padding: 12px 18px; background: #0ea5e9; color: white; text-decoration: none; border-radius: 8px; font-weight: 600;">View my booking</a>
      </body>
    </html>
    """, 200


@pay_pages_bp.get("/pay/cancel")
def pay_cancel():
    payment_id = request.args.get("payment_id", type=int)

    payment = db.session.get(Payment, payment_id) if payment_id else None
    if payment and payment.status == "CREATED":
        # only the checkout attempt is dropped; the booking stays pending for a retry
        payment.status = "FAILED"
        db.session.commit()
        log_event("PAYMENT_CANCELLED", actor="guest", entity="payment", entity_id=payment.id,
                  metadata={"reason": "stripe_cancel", "booking_id": payment.booking_id})

    booking_url = _booking_url(request.args.get("booking_id"))
    return """
    <html>
      <head><title>Payment Cancelled</title></head>
      <body style="font-family: system-ui; max-width: 720px; margin: 40px auto;">
        <h1>Payment Cancelled ❌</h1>
        <p>No payment was taken. Your booking is saved and you can try paying again.</p>
        <a href=\"""" + booking_url + """\">Back to my booking</a>
      </body>
    </html>
    """, 200
