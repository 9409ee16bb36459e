# Overview: Flask API routes for reports operations; parses input and returns JSON responses.

from datetime import date

from flask import Blueprint, current_app, jsonify, request

from ..decorators import require_admin, require_auth
from ..errors import StockroomError
from ..services import projection_service

reports_bp = Blueprint("reports", __name__, url_prefix="/api/reports")


@reports_bp.get("/low-stock")
@require_auth
@require_admin
def low_stock_route():
    """Query params: threshold (int, optional; defaults to LOW_STOCK_THRESHOLD)."""
    threshold = request.args.get("threshold", type=int)
    try:
        rows = projection_service.enriched_products(projection_service.low_stock(threshold))
        return jsonify({"items": rows, "count": len(rows)}), 200
    except StockroomError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to build low-stock report")
        return jsonify({"error": "Internal server error"}), 500


@reports_bp.get("/out-of-stock")
@require_auth
@require_admin
def out_of_stock_route():
    try:
        rows = projection_service.enriched_products(projection_service.out_of_stock())
        return jsonify({"items": rows, "count": len(rows)}), 200
    except StockroomError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to build out-of-stock report")
        return jsonify({"error": "Internal server error"}), 500


@reports_bp.get("/dashboard")
@require_auth
@require_admin
def dashboard_route():
    """Query params: date (YYYY-MM-DD, optional; defaults to today, UTC)."""
    raw = request.args.get("date")
    try:
        day = date.fromisoformat(raw) if raw else None
    except ValueError:
        return jsonify({"error": "VALIDATION_ERROR", "message": "date must be YYYY-MM-DD", "details": {}}), 400

    try:
        return jsonify(projection_service.dashboard_stats(day)), 200
    except StockroomError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to build dashboard")
        return jsonify({"error": "Internal server error"}), 500
