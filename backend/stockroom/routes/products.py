# Overview: Flask API routes for products operations; parses input and returns JSON responses.

"""
Product catalog routes.

SECURITY: All routes require authentication.
- Reads are open to every authenticated user
- Writes require an administrator

Stock is not editable here; see /api/inventory for restocks and corrections.
"""

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_admin, require_auth
from ..errors import StockroomError
from ..services import catalog_service, projection_service
from ..validation import require_expected_version

products_bp = Blueprint("products", __name__, url_prefix="/api/products")


@products_bp.get("")
@require_auth
def list_products_route():
    """
    Query params:
    - q: case-insensitive name search (optional)
    - category_id: int (optional)
    """
    query = request.args.get("q")
    category_id = request.args.get("category_id", type=int)

    try:
        items = catalog_service.list_products(query, category_id)
        return jsonify({"items": items, "count": len(items)}), 200
    except StockroomError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to list products")
        return jsonify({"error": "Internal server error"}), 500


@products_bp.get("/<int:product_id>")
@require_auth
def get_product_route(product_id: int):
    try:
        product = catalog_service.get_product(product_id)
        return jsonify({"product": projection_service.enriched_products([product])[0]}), 200
    except StockroomError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to get product")
        return jsonify({"error": "Internal server error"}), 500


@products_bp.post("")
@require_auth
@require_admin
def create_product_route():
    """Accepts an optional initial "stock", booked through the ledger."""
    payload = request.get_json(silent=True) or {}
    try:
        product = catalog_service.create_product(g.principal, payload)
        return jsonify({"product": product.to_dict()}), 201
    except StockroomError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to create product")
        return jsonify({"error": "Internal server error"}), 500


@products_bp.patch("/<int:product_id>")
@require_auth
@require_admin
def update_product_route(product_id: int):
    payload = request.get_json(silent=True) or {}
    try:
        expected_version = require_expected_version(payload)
        patch = {k: v for k, v in payload.items() if k != "expected_version"}
        product = catalog_service.update_product(g.principal, product_id, expected_version, patch)
        return jsonify({"product": product.to_dict()}), 200
    except StockroomError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to update product")
        return jsonify({"error": "Internal server error"}), 500


@products_bp.delete("/<int:product_id>")
@require_auth
@require_admin
def delete_product_route(product_id: int):
    try:
        catalog_service.delete_product(g.principal, product_id)
        return jsonify({"ok": True}), 200
    except StockroomError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to delete product")
        return jsonify({"error": "Internal server error"}), 500
