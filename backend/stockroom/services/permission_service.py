# Overview: Service-layer authorization checks for the authenticated principal.

"""
Authorization rules

The HTTP layer authenticates the bearer token and hands services a
Principal. Services never look at Flask's request context themselves.

- Fail closed: anything not explicitly allowed raises ForbiddenError.
- Admins manage the catalog, users, inventory and reconciliation.
- Customers act only on their own account and their own orders.
"""

from __future__ import annotations

from dataclasses import dataclass

from flask import current_app

from ..errors import ForbiddenError


@dataclass(frozen=True)
class Principal:
    user_id: int
    role: str

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"

    @classmethod
    def from_user(cls, user) -> "Principal":
        return cls(user_id=user.id, role=user.role)


def _deny(principal: Principal, action: str) -> ForbiddenError:
    current_app.logger.warning(
        "Permission denied: user_id=%s role=%s action=%s",
        principal.user_id, principal.role, action,
    )
    return ForbiddenError(
        f"Not allowed to {action}",
        details={"action": action, "user_id": principal.user_id},
    )


def require_admin(principal: Principal, action: str) -> None:
    if not principal.is_admin:
        raise _deny(principal, action)


def require_self_or_admin(principal: Principal, user_id: int, action: str) -> None:
    """Customers may only act on their own account."""
    if principal.is_admin or principal.user_id == user_id:
        return
    raise _deny(principal, action)
