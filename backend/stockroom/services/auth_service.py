# Overview: Service-layer operations for auth; password hashing and credential checks.

"""
Authentication

SECURITY NOTES:
- Passwords hashed with bcrypt (cost factor 12)
- Minimum 8 characters; must contain uppercase, lowercase, digit and
  special character
- Session tokens managed separately (see session_service.py)
- Inactive or deleted accounts never authenticate
"""

from __future__ import annotations

import re

import bcrypt

from ..extensions import db
from ..errors import ValidationError
from ..models import User
from ..time_utils import utcnow


class PasswordValidationError(ValidationError):
    """Raised when password doesn't meet strength requirements."""


def validate_password_strength(password: str) -> None:
    if not isinstance(password, str):
        raise PasswordValidationError("Password is required")

    if len(password) < 8:
        raise PasswordValidationError("Password must be at least 8 characters long")

    if not re.search(r"[A-Z]", password):
        raise PasswordValidationError("Password must contain at least one uppercase letter")

    if not re.search(r"[a-z]", password):
        raise PasswordValidationError("Password must contain at least one lowercase letter")

    if not re.search(r"\d", password):
        raise PasswordValidationError("Password must contain at least one digit")

    if not re.search(r"[!@#$%^&*(),.'\":{}|<>?_\-]", password):
        raise PasswordValidationError("Password must contain at least one special character")


def hash_password(password: str) -> str:
    """Validate strength, then hash with bcrypt (cost factor 12)."""
    validate_password_strength(password)
    salt = bcrypt.gensalt(rounds=12)
    return bcrypt.hashpw(password.encode("utf-8"), salt).decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    """Timing-safe check; a malformed stored hash never verifies."""
    if not password or not password_hash:
        return False
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        return False


def normalize_email(email) -> str:
    if not isinstance(email, str) or "@" not in email.strip():
        raise ValidationError("A valid email is required")
    return email.strip().lower()


def authenticate(email: str, password: str) -> User | None:
    """
    Returns the User if the credentials are valid, None otherwise.

    last_login_at is written with a bulk UPDATE so that logging in does not
    move the account's version.
    """
    try:
        email = normalize_email(email)
    except ValidationError:
        return None

    user = db.session.query(User).filter(
        User.email == email,
        User.is_active.is_(True),
        User.deleted_at.is_(None),
    ).first()

    if not user or not verify_password(password, user.password_hash):
        return None

    db.session.query(User).filter(User.id == user.id).update(
        {"last_login_at": utcnow()},
        synchronize_session=False,
    )
    db.session.commit()
    return user
