# Overview: Domain error kinds shared by services and routes.

"""
Stockroom error taxonomy.

Every failure the core can report is a StockroomError subclass carrying a
stable machine-readable ``code``, the HTTP status the API layer answers
with, and a ``details`` dict. Routes turn these into tagged JSON results via
``to_dict()``; nothing else is expected to cross the HTTP boundary.
"""

from __future__ import annotations


class StockroomError(Exception):
    """Base class for domain errors."""

    code = "ERROR"
    http_status = 400

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}

    def to_dict(self) -> dict:
        return {
            "error": self.code,
            "message": str(self),
            "details": self.details,
        }


class NotFoundError(StockroomError):
    """Referenced entity id does not exist."""

    code = "NOT_FOUND"
    http_status = 404


class VersionConflictError(StockroomError):
    """Compare-and-swap precondition failed."""

    code = "VERSION_CONFLICT"
    http_status = 409

    def __init__(self, message: str, details: dict | None = None, *, retryable: bool = True):
        super().__init__(message, details)
        # False once another writer has moved the record past this caller
        self.retryable = retryable


class InsufficientStockError(StockroomError):
    code = "INSUFFICIENT_STOCK"
    http_status = 409

    def __init__(self, message: str, *, product_id: int, requested: int, available: int):
        super().__init__(
            message,
            details={
                "product_id": product_id,
                "requested_quantity": requested,
                "available_quantity": available,
            },
        )
        self.product_id = product_id


class InvalidTransitionError(StockroomError):
    code = "INVALID_TRANSITION"
    http_status = 409


class ReferentialConflictError(StockroomError):
    """Delete blocked by a live reference."""

    code = "REFERENTIAL_CONFLICT"
    http_status = 409


class PartialCommitFailureError(StockroomError):
    """
    Ledger commit applied but the order status update did not.

    The discrepancy is recorded as a ReconciliationIssue before this is
    raised; ``details["issue_id"]`` points at it.
    """

    code = "PARTIAL_COMMIT_FAILURE"
    http_status = 500


class DuplicateError(StockroomError):
    """Natural-key uniqueness violated (e.g. user email)."""

    code = "DUPLICATE"
    http_status = 409


class ValidationError(StockroomError, ValueError):
    """400-level input problem."""

    code = "VALIDATION_ERROR"
    http_status = 400


class ForbiddenError(StockroomError):
    code = "FORBIDDEN"
    http_status = 403


class StoreUnavailableError(StockroomError):
    """Store call failed or timed out; the outcome must be re-read."""

    code = "STORE_UNAVAILABLE"
    http_status = 503
