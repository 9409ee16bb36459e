# Overview: Service-layer operations for reconciliation; audit trail and resolution of partial commits.

from __future__ import annotations

from flask import current_app

from ..extensions import db
from ..errors import InvalidTransitionError, NotFoundError, ValidationError
from ..models import ReconciliationIssue
from ..time_utils import utcnow
from .concurrency import begin_write, commit_changes, run_with_retry
from .entity_store import orders, products
from .inventory_service import apply_reverse_commit, order_commit_movements
from .permission_service import Principal, require_admin
"""
Reconciliation Invariants (authoritative)

- A partial commit is ledger COMMIT movements made durable for an order whose
  status update then failed. The order stays pending with stock_committed_at set.
- Every partial commit is recorded as an OPEN ReconciliationIssue in its own
  transaction, after the failed unit of work was rolled back.
- Nothing compensates automatically. An administrator resolves each issue:
    retry_status    complete the order (stock is already committed)
    reverse_commit  put the committed units back on hand and back on hold, so the
                    order is an ordinary pending order again
    dismiss         close the issue without touching order or stock
- Resolving is the only way an issue leaves OPEN; RESOLVED issues are immutable.
"""

ISSUE_STATUSES = {"OPEN", "RESOLVED"}
RESOLUTIONS = {"retry_status", "reverse_commit", "dismiss"}


def record_partial_commit(
    *,
    order_id: int,
    attempted_status: str,
    error: Exception,
    movement_ids: list[int],
) -> ReconciliationIssue:
    issue = ReconciliationIssue(
        order_id=order_id,
        kind="PARTIAL_COMMIT",
        status="OPEN",
        attempted_status=attempted_status,
        error_code=getattr(error, "code", type(error).__name__),
        error_message=str(error)[:512],
        movement_ids=list(movement_ids),
    )
    db.session.add(issue)
    commit_changes("reconciliation_issue")
    return issue


def close_open_issues(
    order_id: int,
    *,
    resolution: str,
    actor_user_id: int | None,
    note: str | None = None,
) -> list[ReconciliationIssue]:
    """Resolve every OPEN issue of an order inside the caller's unit of work."""
    issues = db.session.query(ReconciliationIssue).filter_by(order_id=order_id, status="OPEN").all()
    now = utcnow()
    for issue in issues:
        issue.status = "RESOLVED"
        issue.resolution = resolution
        issue.resolution_note = note
        issue.resolved_by_user_id = actor_user_id
        issue.resolved_at = now
    return issues


def get_issue(principal: Principal, issue_id: int) -> ReconciliationIssue:
    require_admin(principal, "view reconciliation issues")
    issue = db.session.get(ReconciliationIssue, issue_id)
    if issue is None:
        raise NotFoundError(
            f"reconciliation issue {issue_id} not found",
            details={"entity": "reconciliation_issue", "id": issue_id},
        )
    return issue


def list_issues(
    principal: Principal,
    *,
    status: str | None = "OPEN",
    order_id: int | None = None,
) -> list[ReconciliationIssue]:
    require_admin(principal, "view reconciliation issues")
    if status is not None and status not in ISSUE_STATUSES:
        raise ValidationError(f"status must be one of: {', '.join(sorted(ISSUE_STATUSES))}")

    q = db.session.query(ReconciliationIssue)
    if status is not None:
        q = q.filter(ReconciliationIssue.status == status)
    if order_id is not None:
        q = q.filter(ReconciliationIssue.order_id == order_id)
    return q.order_by(ReconciliationIssue.created_at.desc(), ReconciliationIssue.id.desc()).all()


def _reverse_order_commit(order, actor_user_id: int) -> None:
    if order.status != "pending" or order.stock_committed_at is None:
        raise InvalidTransitionError(
            f"Order {order.id} has no committed stock to reverse",
            details={"order_id": order.id, "status": order.status},
        )

    for movement in order_commit_movements(order.id):
        product = products.get(movement.product_id)
        apply_reverse_commit(
            product,
            movement.quantity,
            order_id=order.id,
            actor_user_id=actor_user_id,
            note=f"Reverse commit of movement {movement.id}",
        )

    orders.write(order, order.version, {"stock_committed_at": None}, commit=False)


def resolve_issue(
    principal: Principal,
    issue_id: int,
    action: str,
    *,
    note: str | None = None,
) -> ReconciliationIssue:
    from . import order_service

    require_admin(principal, "resolve reconciliation issues")
    if action not in RESOLUTIONS:
        raise ValidationError(f"action must be one of: {', '.join(sorted(RESOLUTIONS))}")
    if note is not None:
        note = str(note).strip()[:512] or None

    def _op():
        begin_write()
        issue = get_issue(principal, issue_id)
        if issue.status != "OPEN":
            raise InvalidTransitionError(
                f"reconciliation issue {issue_id} is already resolved",
                details={"issue_id": issue_id, "resolution": issue.resolution},
            )

        if action == "dismiss":
            issue.status = "RESOLVED"
            issue.resolution = action
            issue.resolution_note = note
            issue.resolved_by_user_id = principal.user_id
            issue.resolved_at = utcnow()
        else:
            order = orders.get(issue.order_id)
            if action == "retry_status":
                order_service.apply_completion(order, principal.user_id)
            else:
                _reverse_order_commit(order, principal.user_id)
            close_open_issues(order.id, resolution=action, actor_user_id=principal.user_id, note=note)

        commit_changes("reconciliation_issue")
        return issue

    issue = run_with_retry(_op, label="resolve_issue")
    current_app.logger.info(
        "Reconciliation issue %s resolved with %s by user %s", issue.id, action, principal.user_id,
    )
    return issue
