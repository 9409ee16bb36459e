# Overview: Flask API routes for category operations; parses input and returns JSON responses.

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_admin, require_auth
from ..errors import StockroomError
from ..services import catalog_service
from ..validation import require_expected_version

categories_bp = Blueprint("categories", __name__, url_prefix="/api/categories")


@categories_bp.get("")
@require_auth
def list_categories_route():
    try:
        items = catalog_service.list_categories()
        return jsonify({"items": [c.to_dict() for c in items], "count": len(items)}), 200
    except Exception:
        current_app.logger.exception("Failed to list categories")
        return jsonify({"error": "Internal server error"}), 500


@categories_bp.get("/<int:category_id>")
@require_auth
def get_category_route(category_id: int):
    try:
        return jsonify({"category": catalog_service.get_category(category_id).to_dict()}), 200
    except StockroomError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to get category")
        return jsonify({"error": "Internal server error"}), 500


@categories_bp.post("")
@require_auth
@require_admin
def create_category_route():
    payload = request.get_json(silent=True) or {}
    try:
        category = catalog_service.create_category(g.principal, payload)
        return jsonify({"category": category.to_dict()}), 201
    except StockroomError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to create category")
        return jsonify({"error": "Internal server error"}), 500


@categories_bp.patch("/<int:category_id>")
@require_auth
@require_admin
def update_category_route(category_id: int):
    payload = request.get_json(silent=True) or {}
    try:
        expected_version = require_expected_version(payload)
        patch = {k: v for k, v in payload.items() if k != "expected_version"}
        category = catalog_service.update_category(g.principal, category_id, expected_version, patch)
        return jsonify({"category": category.to_dict()}), 200
    except StockroomError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to update category")
        return jsonify({"error": "Internal server error"}), 500


@categories_bp.delete("/<int:category_id>")
@require_auth
@require_admin
def delete_category_route(category_id: int):
    try:
        catalog_service.delete_category(g.principal, category_id)
        return jsonify({"ok": True}), 200
    except StockroomError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to delete category")
        return jsonify({"error": "Internal server error"}), 500
