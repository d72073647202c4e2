"""Fire-and-forget guest, admin and agency emails.

Nothing here raises: a failed send is logged and audited, and the booking
state that triggered it stays as it is.
"""
from flask import current_app, render_template
from jinja2 import TemplateError

from utils.audit import log_event
from utils.emailer import send_email

RESORT = "Kshetra Retreat Resort"


def _render(template, booking):
    try:
        return render_template(f"emails/{template}", booking=booking)
    except TemplateError as exc:
        current_app.logger.error("Email template %s failed to render: %s", template, exc)
        return None


def _deliver(kind, booking, to_email, subject, text, template, cc=None):
    if not to_email:
        current_app.logger.info("No recipient for %s email on booking %s", kind, booking.id)
        return False

    ok, error = send_email(to_email, subject, text, html=_render(template, booking), cc=cc)
    if not ok:
        current_app.logger.warning("%s email for booking %s not sent: %s", kind, booking.id, error)

    log_event(
        "NOTIFICATION_SENT" if ok else "NOTIFICATION_FAILED",
        actor="system",
        entity="booking",
        entity_id=booking.id,
        metadata={"kind": kind, "to": to_email, "error": error},
    )
    return ok


def send_payment_confirmation(booking):
    return _deliver(
        "payment_confirmation",
        booking,
        booking.guest_email,
        f"Payment Confirmed - {RESORT}",
        f"Payment of ₹{booking.final_amount} confirmed for booking {booking.id}.",
        "payment_confirmation.html",
        cc=current_app.config.get("ADMIN_EMAIL"),
    )


def send_admin_booking_alert(booking):
    return _deliver(
        "admin_alert",
        booking,
        current_app.config.get("ADMIN_EMAIL"),
        f"New Booking Alert - {booking.id}",
        f"Booking {booking.id} by {booking.guest_name} has been paid (₹{booking.final_amount}).",
        "admin_booking_alert.html",
    )


def send_agency_assignment_request(booking):
    return _deliver(
        "agency_assignment",
        booking,
        current_app.config.get("AGENCY_NOTIFICATION_EMAIL"),
        f"New Transport Booking Assignment - {RESORT}",
        f"New transport booking {booking.id} requires vehicle and driver assignment.",
        "agency_assignment.html",
    )


def send_booking_cancellation(booking):
    return _deliver(
        "cancellation",
        booking,
        booking.guest_email,
        f"Booking Cancellation - {RESORT}",
        f"Your booking {booking.id} at {RESORT} has been cancelled.",
        "booking_cancellation.html",
        cc=current_app.config.get("ADMIN_EMAIL"),
    )


def dispatch_payment_notifications(booking):
    """Everything that goes out once a booking's payment is confirmed."""
    results = {
        "payment_confirmation": send_payment_confirmation(booking),
        "admin_alert": send_admin_booking_alert(booking),
    }
    if booking.has_transport:
        results["agency_assignment"] = send_agency_assignment_request(booking)
    return results
