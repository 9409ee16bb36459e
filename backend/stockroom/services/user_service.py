# Overview: Service-layer operations for users; registration, profile edits and account removal.

from __future__ import annotations

from flask import current_app

from ..errors import ValidationError
from ..extensions import db
from ..models import USER_ROLES, SessionToken, User
from ..time_utils import utcnow
from ..validation import ModelValidationPolicy, validate_payload
from . import projection_service, session_service
from .auth_service import hash_password, normalize_email
from .concurrency import begin_write, commit_changes, run_with_retry
from .entity_store import users
from .permission_service import Principal, require_admin, require_self_or_admin


REGISTER_POLICY = ModelValidationPolicy(
    writable_fields=frozenset({"name", "email", "address", "phone"}),
    required_on_create=frozenset({"name", "email"}),
)

ADMIN_USER_POLICY = ModelValidationPolicy(
    writable_fields=frozenset({"name", "email", "role", "address", "phone", "is_active"}),
    required_on_create=frozenset({"name", "email"}),
)

# Customers editing themselves may not touch role or is_active
SELF_USER_POLICY = ModelValidationPolicy(
    writable_fields=frozenset({"name", "email", "address", "phone"}),
)


def _clean(payload: dict, policy: ModelValidationPolicy, *, partial: bool) -> tuple[dict, str | None]:
    """Split the password out of a user payload and validate the rest."""
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    payload = dict(payload)
    password = payload.pop("password", None)

    patch = validate_payload(model=User, payload=payload, policy=policy, partial=partial)
    if "email" in patch:
        patch["email"] = normalize_email(patch["email"])
    if "role" in patch and patch["role"] not in USER_ROLES:
        raise ValidationError(f"role must be one of: {', '.join(USER_ROLES)}")
    return patch, password


def register(payload: dict) -> User:
    """Self-service sign-up; always creates a customer."""
    patch, password = _clean(payload, REGISTER_POLICY, partial=False)
    patch["password_hash"] = hash_password(password)
    patch["role"] = "customer"

    def _op():
        begin_write()
        return users.create(patch, commit=True)

    user = run_with_retry(_op, attempts=1, label="register")
    current_app.logger.info("User %s registered", user.id)
    return user


def create_user(principal: Principal, payload: dict) -> User:
    require_admin(principal, "create users")
    patch, password = _clean(payload, ADMIN_USER_POLICY, partial=False)
    patch["password_hash"] = hash_password(password)
    patch.setdefault("role", "customer")

    def _op():
        begin_write()
        return users.create(patch, commit=True)

    user = run_with_retry(_op, attempts=1, label="create_user")
    current_app.logger.info("User %s created by admin %s", user.id, principal.user_id)
    return user


def get_user(principal: Principal, user_id: int) -> User:
    require_self_or_admin(principal, user_id, "view this user")
    return users.get(user_id)


def list_users(principal: Principal, *, query: str | None = None, role: str | None = None) -> list[User]:
    require_admin(principal, "list users")
    return projection_service.search_users(query, role)


def update_user(principal: Principal, user_id: int, expected_version: int, payload: dict) -> User:
    """Field edit: a version conflict is surfaced, never retried."""
    require_self_or_admin(principal, user_id, "edit this user")
    policy = ADMIN_USER_POLICY if principal.is_admin else SELF_USER_POLICY
    patch, password = _clean(payload, policy, partial=True)

    if principal.is_admin and principal.user_id == user_id:
        if patch.get("is_active") is False or patch.get("role", "admin") != "admin":
            raise ValidationError("Administrators cannot demote or deactivate themselves")

    changes = dict(patch)
    if password is not None:
        changes["password_hash"] = hash_password(password)
    if not changes:
        raise ValidationError("No editable fields supplied")

    def _op():
        begin_write()
        user = users.get(user_id)
        if user.deleted_at is not None:
            raise ValidationError(f"User {user_id} has been deleted")
        users.write(user, expected_version, changes, commit=False)
        if password is not None or changes.get("is_active") is False:
            session_service.revoke_all_user_sessions(user_id, "Credentials changed", commit=False)
        commit_changes("user")
        return user

    return run_with_retry(_op, attempts=1, label="update_user")


def delete_user(principal: Principal, user_id: int) -> dict:
    """
    Remove an account.

    Users referenced by orders are anonymised and deactivated so the order
    history keeps its customer_id; other users are deleted outright.
    """
    require_admin(principal, "delete users")
    if principal.user_id == user_id:
        raise ValidationError("Administrators cannot delete themselves")

    def _op():
        begin_write()
        user = users.get(user_id)
        counts = users.referencing_count(user_id)

        if counts.get("orders"):
            users.write(
                user,
                user.version,
                {
                    "name": "Deleted user",
                    "email": f"deleted-{user.id}@invalid",
                    "address": None,
                    "phone": None,
                    "is_active": False,
                    "deleted_at": utcnow(),
                },
                commit=False,
            )
            session_service.revoke_all_user_sessions(user_id, "Account deleted", commit=False)
            commit_changes("user")
            return {"id": user_id, "deleted": False, "anonymized": True}

        db.session.query(SessionToken).filter(SessionToken.user_id == user_id).delete(synchronize_session=False)
        users.delete(user_id, commit=True)
        return {"id": user_id, "deleted": True, "anonymized": False}

    result = run_with_retry(_op, attempts=1, label="delete_user")
    current_app.logger.info("User %s removed by admin %s (%s)", user_id, principal.user_id, result)
    return result
