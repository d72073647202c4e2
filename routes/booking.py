from flask import Blueprint, request, jsonify, current_app
from sqlalchemy.exc import SQLAlchemyError

from domain.drafts import parse_draft
from domain.errors import CapacityError, ValidationFailed
from domain.persister import create_public_booking, validate_submission
from domain.pricing import quote_draft
from models.booking import Booking
from utils.audit import log_event

booking_bp = Blueprint("booking", __name__, url_prefix="/bookings")


def validation_error(exc: ValidationFailed):
    return jsonify(error="Validation failed", details=exc.to_details()), 400


def capacity_error(exc: CapacityError):
    return jsonify(error=exc.message, details=[{"field": exc.field, "message": exc.message}]), 409


def submit_draft(draft):
    """Persist a parsed draft and build the HTTP response for it."""
    try:
        booking, coupon_message = create_public_booking(draft)
    except ValidationFailed as exc:
        return validation_error(exc)
    except CapacityError as exc:
        log_event("BOOKING_FAIL_CAPACITY", actor="guest", metadata={"field": exc.field, "message": exc.message})
        return capacity_error(exc)
    except SQLAlchemyError:
        current_app.logger.exception("Booking could not be saved")
        return jsonify(error="Booking could not be saved"), 500

    log_event(
        "BOOKING_CREATE",
        actor="guest",
        entity="booking",
        entity_id=booking.id,
        metadata={"total": booking.total_amount, "final": booking.final_amount, "coupon": booking.coupon_code},
    )
    if coupon_message:
        log_event("COUPON_REJECTED", actor="guest", entity="booking", entity_id=booking.id,
                  metadata={"code": draft.coupon_code, "reason": coupon_message})

    return jsonify(booking=booking.to_dict(), couponError=coupon_message), 201


# ---------- PUBLIC: create booking (pending / pending) ----------
@booking_bp.post("/public")
def create_booking():
    data = request.get_json(silent=True)
    try:
        draft = parse_draft(data, child_age_limit=current_app.config["CHILD_AGE_LIMIT"])
    except ValidationFailed as exc:
        return validation_error(exc)
    return submit_draft(draft)


# ---------- PUBLIC: get booking by id ----------
@booking_bp.get("/public/<booking_id>")
def get_booking(booking_id: str):
    booking = Booking.query.get(booking_id)
    if not booking:
        return jsonify(error="Booking not found"), 404
    return jsonify(booking=booking.to_dict()), 200


# ---------- PUBLIC: price preview, nothing stored ----------
@booking_bp.post("/quote")
def quote_booking():
    data = request.get_json(silent=True)
    try:
        draft = parse_draft(data, child_age_limit=current_app.config["CHILD_AGE_LIMIT"])
        quote = quote_draft(draft)
    except ValidationFailed as exc:
        return validation_error(exc)

    warnings = [{"field": e.field, "message": e.message} for e in validate_submission(draft)]
    return jsonify(quote=quote.to_dict(), warnings=warnings), 200
