from flask import Blueprint, jsonify, request

from models.room import Room
from models.service import SERVICE_CATEGORIES, Service
from models.yoga_session import YogaSession

catalog_bp = Blueprint("catalog", __name__)


@catalog_bp.get("/rooms")
def list_rooms():
    rows = Room.query.filter_by(is_active=True).order_by(Room.price_per_night.asc()).all()
    return jsonify([r.to_dict() for r in rows]), 200


@catalog_bp.get("/services")
def list_services():
    category = (request.args.get("category") or "").strip().lower()
    if category and category not in SERVICE_CATEGORIES:
        return jsonify(error=f"category must be one of {', '.join(SERVICE_CATEGORIES)}"), 400

    q = Service.query.filter_by(is_active=True)
    if category:
        q = q.filter(Service.category == category)
    rows = q.order_by(Service.category.asc(), Service.name.asc()).all()
    return jsonify([s.to_dict() for s in rows]), 200


@catalog_bp.get("/yoga-sessions")
def list_yoga_sessions():
    rows = YogaSession.query.filter_by(is_active=True).order_by(YogaSession.start_date.asc()).all()
    return jsonify([y.to_dict() for y in rows]), 200
