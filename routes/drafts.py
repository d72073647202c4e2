from flask import Blueprint, request, jsonify, current_app

from domain.drafts import DraftStore, parse_draft
from domain.errors import ValidationFailed
from domain.pricing import quote_draft
from models import db
from routes.booking import submit_draft, validation_error

drafts_bp = Blueprint("drafts", __name__, url_prefix="/drafts")


def _draft_response(token, draft, expires_at=None, status=200):
    quote = None
    quote_errors = []
    try:
        quote = quote_draft(draft).to_dict()
    except ValidationFailed as exc:
        quote_errors = exc.to_details()

    body = {"token": token, "draft": draft.to_payload(), "quote": quote, "quoteErrors": quote_errors}
    if expires_at is not None:
        body["expiresAt"] = expires_at.isoformat()
    return jsonify(body), status


def _parse_body():
    return parse_draft(request.get_json(silent=True), child_age_limit=current_app.config["CHILD_AGE_LIMIT"])


@drafts_bp.post("")
def create_draft():
    try:
        draft = _parse_body()
        token, expires_at = DraftStore().create(draft)
    except ValidationFailed as exc:
        return validation_error(exc)
    return _draft_response(token, draft, expires_at, status=201)


@drafts_bp.get("/<token>")
def get_draft(token: str):
    draft = DraftStore().get(token)
    if draft is None:
        return jsonify(error="Draft not found or expired"), 404
    return _draft_response(token, draft)


@drafts_bp.put("/<token>")
def replace_draft(token: str):
    try:
        draft = _parse_body()
    except ValidationFailed as exc:
        return validation_error(exc)

    expires_at = DraftStore().replace(token, draft)
    if expires_at is None:
        return jsonify(error="Draft not found or expired"), 404
    return _draft_response(token, draft, expires_at)


@drafts_bp.delete("/<token>")
def abandon_draft(token: str):
    if not DraftStore().discard(token):
        return jsonify(error="Draft not found"), 404
    return "", 204


@drafts_bp.post("/<token>/submit")
def submit(token: str):
    store = DraftStore()
    draft = store.get(token)
    if draft is None:
        return jsonify(error="Draft not found or expired"), 404

    # guest details, coupon and declared total arrive with the submission
    extra = request.get_json(silent=True) or {}
    if not isinstance(extra, dict):
        return jsonify(error="JSON object expected"), 400
    payload = draft.to_payload()
    payload.update(extra)

    try:
        final_draft = parse_draft(payload, child_age_limit=store.child_age_limit)
    except ValidationFailed as exc:
        return validation_error(exc)

    # removed in the same transaction that writes the booking
    store.discard(token, commit=False)
    response = submit_draft(final_draft)
    if response[1] != 201:
        db.session.rollback()
    return response
