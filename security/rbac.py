import hmac
from functools import wraps
from flask import current_app, jsonify, request

ADMIN_KEY_HEADER = "X-Admin-Key"

def is_admin_request() -> bool:
    expected = current_app.config.get("ADMIN_API_KEY")
    supplied = request.headers.get(ADMIN_KEY_HEADER)
    if not expected or not supplied:
        return False
    return hmac.compare_digest(supplied, expected)

def require_admin(fn):
    """
    Usage: @require_admin
    """
    @wraps(fn)
    def wrapper(*args, **kwargs):
        if not current_app.config.get("ADMIN_API_KEY"):
            return jsonify(error="Admin access not configured (ADMIN_API_KEY)"), 500
        if not request.headers.get(ADMIN_KEY_HEADER):
            return jsonify(error="Authentication required"), 401
        if not is_admin_request():
            return jsonify(error="Forbidden"), 403
        return fn(*args, **kwargs)
    return wrapper
