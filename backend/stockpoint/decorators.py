# Overview: Request decorators for API routes.

from functools import wraps
from flask import request, jsonify, g

from .extensions import db
from .models import User

CASHIER_HEADER = "X-Cashier-Id"


def require_cashier(f):
    """
    Resolve the acting staff member for a request.

    Session issuance belongs to the identity provider in front of this
    service; it forwards the authenticated user id in the X-Cashier-Id header.

    Sets g.current_user to the active User. Returns 401 if the header is
    missing, malformed, or names an unknown or deactivated user.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        raw = (request.headers.get(CASHIER_HEADER) or "").strip()
        if not raw.isdigit():
            return jsonify({"error": "Authentication required"}), 401

        user = db.session.get(User, int(raw))
        if not user or not user.is_active:
            return jsonify({"error": "Invalid or inactive user"}), 401

        g.current_user = user
        return f(*args, **kwargs)

    return decorated_function
