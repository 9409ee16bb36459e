# Overview: Flask API routes for order operations; parses input and returns JSON responses.

"""
Order routes.

Every mutation echoes the order version the caller last read
(expected_version). Customers only see and act on their own orders.
"""

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_auth
from ..errors import StockroomError
from ..services import order_service
from ..validation import coerce_int, require_expected_version

orders_bp = Blueprint("orders", __name__, url_prefix="/api/orders")


@orders_bp.post("")
@require_auth
def place_order_route():
    """
    Body:
    - items: [{"product_id": int, "quantity": int}, ...] (required)
    - customer_id: int (optional, defaults to the caller; admins may order for others)
    - shipping_address, notes (optional)
    """
    payload = request.get_json(silent=True) or {}
    try:
        customer_id = payload.get("customer_id")
        customer_id = g.principal.user_id if customer_id is None else coerce_int(customer_id, "customer_id")

        order = order_service.place_order(
            g.principal,
            customer_id,
            payload.get("items"),
            shipping_address=payload.get("shipping_address"),
            notes=payload.get("notes"),
        )
        return jsonify({"order": order.to_dict()}), 201
    except StockroomError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to place order")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.get("")
@require_auth
def list_orders_route():
    """
    Query params:
    - customer_id: int (optional; ignored for customers, who see their own)
    - status: pending | completed | cancelled (optional)
    """
    try:
        items = order_service.list_orders(
            g.principal,
            customer_id=request.args.get("customer_id", type=int),
            status=request.args.get("status"),
        )
        return jsonify({"items": [o.to_dict() for o in items], "count": len(items)}), 200
    except StockroomError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to list orders")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.get("/<int:order_id>")
@require_auth
def get_order_route(order_id: int):
    try:
        return jsonify({"order": order_service.get_order(g.principal, order_id).to_dict()}), 200
    except StockroomError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to get order")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.post("/<int:order_id>/complete")
@require_auth
def complete_order_route(order_id: int):
    payload = request.get_json(silent=True) or {}
    try:
        expected_version = require_expected_version(payload)
        order = order_service.complete_order(g.principal, order_id, expected_version)
        return jsonify({"order": order.to_dict()}), 200
    except StockroomError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to complete order")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.post("/<int:order_id>/cancel")
@require_auth
def cancel_order_route(order_id: int):
    payload = request.get_json(silent=True) or {}
    try:
        expected_version = require_expected_version(payload)
        order = order_service.cancel_order(
            g.principal, order_id, expected_version, reason=payload.get("reason"),
        )
        return jsonify({"order": order.to_dict()}), 200
    except StockroomError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to cancel order")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.patch("/<int:order_id>/status")
@require_auth
def transition_order_route(order_id: int):
    payload = request.get_json(silent=True) or {}
    status = payload.get("status")
    if not isinstance(status, str) or not status:
        return jsonify({"error": "VALIDATION_ERROR", "message": "status required", "details": {}}), 400

    try:
        expected_version = require_expected_version(payload)
        order = order_service.transition_order(
            g.principal, order_id, status, expected_version, reason=payload.get("reason"),
        )
        return jsonify({"order": order.to_dict()}), 200
    except StockroomError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to update order status")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.patch("/<int:order_id>")
@require_auth
def update_order_route(order_id: int):
    """Only shipping_address and notes, and only while pending."""
    payload = request.get_json(silent=True) or {}
    try:
        expected_version = require_expected_version(payload)
        patch = {k: v for k, v in payload.items() if k != "expected_version"}
        order = order_service.update_order_details(g.principal, order_id, expected_version, patch)
        return jsonify({"order": order.to_dict()}), 200
    except StockroomError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to update order")
        return jsonify({"error": "Internal server error"}), 500
