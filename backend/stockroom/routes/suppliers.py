# Overview: Flask API routes for supplier operations; parses input and returns JSON responses.

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_admin, require_auth
from ..errors import StockroomError
from ..services import catalog_service
from ..validation import require_expected_version

suppliers_bp = Blueprint("suppliers", __name__, url_prefix="/api/suppliers")


@suppliers_bp.get("")
@require_auth
def list_suppliers_route():
    try:
        items = catalog_service.list_suppliers()
        return jsonify({"items": [c.to_dict() for c in items], "count": len(items)}), 200
    except Exception:
        current_app.logger.exception("Failed to list suppliers")
        return jsonify({"error": "Internal server error"}), 500


@suppliers_bp.get("/<int:supplier_id>")
@require_auth
def get_supplier_route(supplier_id: int):
    try:
        return jsonify({"supplier": catalog_service.get_supplier(supplier_id).to_dict()}), 200
    except StockroomError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to get supplier")
        return jsonify({"error": "Internal server error"}), 500


@suppliers_bp.post("")
@require_auth
@require_admin
def create_supplier_route():
    payload = request.get_json(silent=True) or {}
    try:
        supplier = catalog_service.create_supplier(g.principal, payload)
        return jsonify({"supplier": supplier.to_dict()}), 201
    except StockroomError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to create supplier")
        return jsonify({"error": "Internal server error"}), 500


@suppliers_bp.patch("/<int:supplier_id>")
@require_auth
@require_admin
def update_supplier_route(supplier_id: int):
    payload = request.get_json(silent=True) or {}
    try:
        expected_version = require_expected_version(payload)
        patch = {k: v for k, v in payload.items() if k != "expected_version"}
        supplier = catalog_service.update_supplier(g.principal, supplier_id, expected_version, patch)
        return jsonify({"supplier": supplier.to_dict()}), 200
    except StockroomError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to update supplier")
        return jsonify({"error": "Internal server error"}), 500


@suppliers_bp.delete("/<int:supplier_id>")
@require_auth
@require_admin
def delete_supplier_route(supplier_id: int):
    try:
        catalog_service.delete_supplier(g.principal, supplier_id)
        return jsonify({"ok": True}), 200
    except StockroomError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to delete supplier")
        return jsonify({"error": "Internal server error"}), 500
