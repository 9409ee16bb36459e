# Overview: Flask API routes for user operations; parses input and returns JSON responses.

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_admin, require_auth
from ..errors import StockroomError
from ..services import user_service
from ..validation import require_expected_version

users_bp = Blueprint("users", __name__, url_prefix="/api/users")


def _update(user_id: int):
    payload = request.get_json(silent=True) or {}
    try:
        expected_version = require_expected_version(payload)
        patch = {k: v for k, v in payload.items() if k != "expected_version"}
        user = user_service.update_user(g.principal, user_id, expected_version, patch)
        return jsonify({"user": user.to_dict()}), 200
    except StockroomError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to update user")
        return jsonify({"error": "Internal server error"}), 500


@users_bp.get("")
@require_auth
@require_admin
def list_users_route():
    """
    Query params:
    - q: name/email substring (optional)
    - role: admin | customer (optional)
    """
    try:
        items = user_service.list_users(
            g.principal,
            query=request.args.get("q"),
            role=request.args.get("role"),
        )
        return jsonify({"items": [u.to_dict() for u in items], "count": len(items)}), 200
    except StockroomError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to list users")
        return jsonify({"error": "Internal server error"}), 500


@users_bp.post("")
@require_auth
@require_admin
def create_user_route():
    payload = request.get_json(silent=True) or {}
    try:
        user = user_service.create_user(g.principal, payload)
        return jsonify({"user": user.to_dict()}), 201
    except StockroomError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to create user")
        return jsonify({"error": "Internal server error"}), 500


@users_bp.patch("/me")
@require_auth
def update_me_route():
    return _update(g.principal.user_id)


@users_bp.get("/<int:user_id>")
@require_auth
def get_user_route(user_id: int):
    try:
        return jsonify({"user": user_service.get_user(g.principal, user_id).to_dict()}), 200
    except StockroomError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to get user")
        return jsonify({"error": "Internal server error"}), 500


@users_bp.patch("/<int:user_id>")
@require_auth
@require_admin
def update_user_route(user_id: int):
    return _update(user_id)


@users_bp.delete("/<int:user_id>")
@require_auth
@require_admin
def delete_user_route(user_id: int):
    try:
        result = user_service.delete_user(g.principal, user_id)
        return jsonify(result), 200
    except StockroomError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to delete user")
        return jsonify({"error": "Internal server error"}), 500
