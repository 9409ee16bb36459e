# Overview: Request and permission decorators for API routes.

from functools import wraps

from flask import g, jsonify, request

from .services import session_service
from .services.permission_service import Principal


def _unauthorized(message: str):
    return jsonify({"error": "UNAUTHORIZED", "message": message, "details": {}}), 401


def bearer_token() -> str | None:
    auth_header = request.headers.get("Authorization")
    if not auth_header or not auth_header.startswith("Bearer "):
        return None
    return auth_header.split(" ", 1)[1].strip() or None


def require_auth(f):
    """
    Require a valid bearer session.

    Sets on Flask g:
    - g.current_user: the authenticated User
    - g.principal: Principal(user_id, role) handed to services
    - g.session_context: the full SessionContext
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        token = bearer_token()
        if token is None:
            return _unauthorized("Authentication required")

        context = session_service.validate_session(token)
        if not context:
            return _unauthorized("Invalid or expired token")

        g.current_user = context.user
        g.principal = Principal.from_user(context.user)
        g.session_context = context

        return f(*args, **kwargs)

    return decorated_function


def require_admin(f):
    """Must be stacked under @require_auth."""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if not hasattr(g, "principal"):
            return _unauthorized("Authentication required")
        if not g.principal.is_admin:
            return jsonify({
                "error": "FORBIDDEN",
                "message": "Administrator access required",
                "details": {},
            }), 403
        return f(*args, **kwargs)

    return decorated_function
