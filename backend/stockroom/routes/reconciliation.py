# Overview: Flask API routes for reconciliation operations; parses input and returns JSON responses.

"""
Partial-commit reconciliation (administrators only).

Issues are created by the order service when stock was committed but the
order could not be marked completed. Resolution actions:
- retry_status:   complete the order
- reverse_commit: return the committed stock to on-hand and reserved
- dismiss:        close without changes
"""

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_admin, require_auth
from ..errors import StockroomError
from ..services import reconciliation_service

reconciliation_bp = Blueprint("reconciliation", __name__, url_prefix="/api/reconciliation")


@reconciliation_bp.get("/issues")
@require_auth
@require_admin
def list_issues_route():
    """Query params: status (OPEN | RESOLVED | all, default OPEN), order_id (optional)."""
    status = request.args.get("status", "OPEN")
    if status == "all":
        status = None
    try:
        issues = reconciliation_service.list_issues(
            g.principal,
            status=status,
            order_id=request.args.get("order_id", type=int),
        )
        return jsonify({"items": [i.to_dict() for i in issues], "count": len(issues)}), 200
    except StockroomError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to list issues")
        return jsonify({"error": "Internal server error"}), 500


@reconciliation_bp.get("/issues/<int:issue_id>")
@require_auth
@require_admin
def get_issue_route(issue_id: int):
    try:
        issue = reconciliation_service.get_issue(g.principal, issue_id)
        return jsonify({"issue": issue.to_dict()}), 200
    except StockroomError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to get issue")
        return jsonify({"error": "Internal server error"}), 500


@reconciliation_bp.post("/issues/<int:issue_id>/resolve")
@require_auth
@require_admin
def resolve_issue_route(issue_id: int):
    payload = request.get_json(silent=True) or {}
    action = payload.get("action")
    if not isinstance(action, str) or not action:
        return jsonify({"error": "VALIDATION_ERROR", "message": "action required", "details": {}}), 400

    try:
        issue = reconciliation_service.resolve_issue(
            g.principal, issue_id, action, note=payload.get("note"),
        )
        return jsonify({"issue": issue.to_dict()}), 200
    except StockroomError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to resolve reconciliation issue")
        return jsonify({"error": "Internal server error"}), 500
