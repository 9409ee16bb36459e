# Overview: Flask API routes for inventory operations; parses input and returns JSON responses.

"""
Inventory ledger routes (administrators only).

- reserve and adjust take the product version the caller read
- release and commit re-check their precondition and retry conflicts
"""

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_admin, require_auth
from ..errors import StockroomError
from ..services import inventory_service
from ..validation import require_expected_version

inventory_bp = Blueprint("inventory", __name__, url_prefix="/api/inventory")


@inventory_bp.post("/<int:product_id>/reserve")
@require_auth
@require_admin
def reserve_route(product_id: int):
    payload = request.get_json(silent=True) or {}
    try:
        expected_version = require_expected_version(payload)
        product = inventory_service.reserve_stock(
            product_id,
            payload.get("quantity"),
            expected_version,
            actor_user_id=g.principal.user_id,
            note=payload.get("note"),
        )
        return jsonify({"product": product.to_dict()}), 200
    except StockroomError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to reserve stock")
        return jsonify({"error": "Internal server error"}), 500


@inventory_bp.post("/<int:product_id>/release")
@require_auth
@require_admin
def release_route(product_id: int):
    payload = request.get_json(silent=True) or {}
    try:
        product = inventory_service.release_stock(
            product_id,
            payload.get("quantity"),
            actor_user_id=g.principal.user_id,
            note=payload.get("note"),
        )
        return jsonify({"product": product.to_dict()}), 200
    except StockroomError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to release stock")
        return jsonify({"error": "Internal server error"}), 500


@inventory_bp.post("/<int:product_id>/commit")
@require_auth
@require_admin
def commit_route(product_id: int):
    payload = request.get_json(silent=True) or {}
    try:
        product = inventory_service.commit_stock(
            product_id,
            payload.get("quantity"),
            actor_user_id=g.principal.user_id,
            note=payload.get("note"),
        )
        return jsonify({"product": product.to_dict()}), 200
    except StockroomError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to commit stock")
        return jsonify({"error": "Internal server error"}), 500


@inventory_bp.post("/<int:product_id>/adjust")
@require_auth
@require_admin
def adjust_route(product_id: int):
    """Body: {"delta": int (non-zero), "expected_version": int, "note": str?}"""
    payload = request.get_json(silent=True) or {}
    try:
        expected_version = require_expected_version(payload)
        product = inventory_service.adjust_stock(
            product_id,
            payload.get("delta"),
            expected_version,
            actor_user_id=g.principal.user_id,
            note=payload.get("note"),
        )
        return jsonify({"product": product.to_dict()}), 200
    except StockroomError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to adjust stock")
        return jsonify({"error": "Internal server error"}), 500


@inventory_bp.get("/<int:product_id>/movements")
@require_auth
@require_admin
def movements_route(product_id: int):
    order_id = request.args.get("order_id", type=int)
    limit = min(max(request.args.get("limit", default=200, type=int), 1), 1000)
    try:
        movements = inventory_service.list_movements(product_id, order_id=order_id, limit=limit)
        return jsonify({"items": [m.to_dict() for m in movements], "count": len(movements)}), 200
    except StockroomError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to list movements")
        return jsonify({"error": "Internal server error"}), 500
