# Overview: Flask API routes for sales operations; parses input and returns JSON responses.

# backend/stockpoint/routes/sales.py
"""Sales API routes"""

from flask import Blueprint, request, jsonify, g, current_app

from ..extensions import db
from ..errors import SaleError, ValidationError
from ..services import sales_service
from ..services.sales_service import SaleCommitEngine
from ..validation import coerce_int, validate_status
from ..decorators import require_cashier
from stockpoint.time_utils import parse_date_bound


sales_bp = Blueprint("sales", __name__, url_prefix="/sales")

MAX_PAGE_SIZE = 200


def _error(e: SaleError):
    return jsonify(e.to_dict()), e.status_code


def _tx_options() -> dict:
    return {
        "lock_timeout": current_app.config["LOCK_TIMEOUT_SECONDS"],
        "attempts": current_app.config["COMMIT_RETRY_ATTEMPTS"],
    }


@sales_bp.post("")
@require_cashier
def create_sale_route():
    """
    Commit a sale: reserve stock for every line and persist it atomically.

    Headers:
    - X-Cashier-Id: acting user (required)
    - Idempotency-Key: optional; a repeated key returns the original sale

    Responses: 201 created, 200 idempotent replay, 400 validation,
    404 unknown product/customer, 409 insufficient stock, 500 storage.
    """
    try:
        engine = SaleCommitEngine.from_config(db.session, current_app.config)
        result = engine.commit(
            request.get_json(silent=True),
            g.current_user,
            idempotency_key=request.headers.get("Idempotency-Key"),
        )
        body = {"sale": result.sale.to_dict()}
        if result.replayed:
            body["replayed"] = True
            return jsonify(body), 200
        body["loyalty_points_awarded"] = result.loyalty_points
        return jsonify(body), 201

    except SaleError as e:
        return _error(e)
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to create sale")
        return jsonify({"error": "Internal server error"}), 500


@sales_bp.get("")
@require_cashier
def list_sales_route():
    """
    List sales, newest first.

    Query params:
    - start_date / end_date: ISO date or datetime (inclusive)
    - customer_id, status, payment_method: exact filters
    - limit (default 50, max 200), offset
    """
    try:
        args = request.args
        limit = coerce_int("limit", args.get("limit", "50"))
        offset = coerce_int("offset", args.get("offset", "0"))
        if limit <= 0 or limit > MAX_PAGE_SIZE:
            raise ValidationError(f"limit must be between 1 and {MAX_PAGE_SIZE}")
        if offset < 0:
            raise ValidationError("offset cannot be negative")

        customer_id = args.get("customer_id")
        if customer_id is not None:
            customer_id = coerce_int("customer_id", customer_id)

        status = args.get("status")
        if status:
            validate_status(status)

        try:
            start = parse_date_bound(args.get("start_date"))
            end = parse_date_bound(args.get("end_date"), end=True)
        except ValueError:
            raise ValidationError("start_date and end_date must be ISO-8601 dates")

        sales = sales_service.list_sales(
            db.session,
            start=start,
            end=end,
            customer_id=customer_id,
            status=status,
            payment_method=args.get("payment_method"),
            limit=limit,
            offset=offset,
        )
        return jsonify({
            "sales": [sale.to_dict(include_items=False) for sale in sales],
            "limit": limit,
            "offset": offset,
        }), 200

    except SaleError as e:
        return _error(e)
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to list sales")
        return jsonify({"error": "Internal server error"}), 500


@sales_bp.get("/<int:sale_id>")
@require_cashier
def get_sale_route(sale_id: int):
    """Get sale with line items."""
    try:
        sale = sales_service.get_sale(db.session, sale_id)
        return jsonify({"sale": sale.to_dict()}), 200
    except SaleError as e:
        return _error(e)
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to get sale")
        return jsonify({"error": "Internal server error"}), 500


@sales_bp.patch("/<int:sale_id>/status")
@require_cashier
def update_status_route(sale_id: int):
    """
    Change sale status. Allowed: pending -> completed|cancelled,
    completed -> refunded. Does not touch stock.
    """
    try:
        data = request.get_json(silent=True) or {}
        new_status = validate_status(data.get("status"))
        sale = sales_service.transition_status(db.session, sale_id, new_status, **_tx_options())
        return jsonify({"sale": sale.to_dict()}), 200

    except SaleError as e:
        return _error(e)
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to update sale status")
        return jsonify({"error": "Internal server error"}), 500


@sales_bp.post("/<int:sale_id>/void")
@require_cashier
def void_sale_route(sale_id: int):
    """Void a sale, restore its stock and keep the audit record."""
    try:
        data = request.get_json(silent=True) or {}
        reason = data.get("reason")
        if reason is not None:
            reason = str(reason).strip()[:255] or None

        sale = sales_service.void_sale(
            db.session,
            sale_id,
            g.current_user,
            reason,
            **_tx_options(),
        )
        return jsonify({"sale": sale.to_dict()}), 200

    except SaleError as e:
        return _error(e)
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to void sale")
        return jsonify({"error": "Internal server error"}), 500


@sales_bp.delete("/<int:sale_id>")
@require_cashier
def delete_sale_route(sale_id: int):
    """Permanently delete a sale; its stock is restored first."""
    try:
        sales_service.delete_sale(db.session, sale_id, **_tx_options())
        return jsonify({"deleted": True, "sale_id": sale_id}), 200

    except SaleError as e:
        return _error(e)
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to delete sale")
        return jsonify({"error": "Internal server error"}), 500
