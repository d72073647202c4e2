from flask import Blueprint, request, jsonify

from domain.coupons import infer_service_type, validate_coupon
from domain.drafts import DraftStore
from domain.errors import CouponError, ValidationFailed
from domain.pricing import quote_draft
from security.rate_limit import check_and_increment
from utils.audit import log_event

coupons_bp = Blueprint("coupons", __name__, url_prefix="/coupons")


@coupons_bp.post("/validate")
def validate():
    allowed, retry_after = check_and_increment("coupon")
    if not allowed:
        log_event("COUPON_RATE_LIMITED", actor="guest", metadata={"retry_after": retry_after})
        resp = jsonify(error="Too many coupon attempts. Try again later.", retry_after=retry_after)
        resp.headers["Retry-After"] = str(retry_after)
        return resp, 429

    data = request.get_json(silent=True) or {}
    code = data.get("code")
    phone_number = data.get("phoneNumber")

    # with a draft token the order value and service type come from the server-side quote
    token = data.get("draftToken")
    if token:
        draft = DraftStore().get(token)
        if draft is None:
            return jsonify(error="Draft not found or expired"), 404
        try:
            order_value = quote_draft(draft).breakdown.total_amount
        except ValidationFailed as exc:
            return jsonify(error="Validation failed", details=exc.to_details()), 400
        service_type = infer_service_type(draft)
        phone_number = phone_number or (draft.primary_guest.phone if draft.primary_guest else None)
    else:
        order_value = data.get("orderValue")
        service_type = data.get("serviceType")

    try:
        coupon, discount = validate_coupon(code, service_type, order_value, phone_number=phone_number)
    except CouponError as exc:
        return jsonify(error=exc.message), 400

    return jsonify(
        coupon=coupon.to_dict(),
        discount=discount,
        orderValue=int(order_value),
        finalAmount=int(order_value) - discount,
    ), 200
