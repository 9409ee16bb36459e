# Overview: Service-layer operations for orders; the order state machine and its ledger effects.

"""
Stockroom Order State Machine

================================================================================
PURPOSE: Move orders through their lifecycle and keep stock consistent with it
================================================================================

STATE MACHINE:
    pending -> completed
    pending -> cancelled

    pending:    stock for every item is held (reserved) in the ledger
    completed:  TERMINAL, the held stock was committed (permanently removed)
    cancelled:  TERMINAL, the held stock was released

RULES:
1. Every transition not listed above fails with InvalidTransitionError.
2. placeOrder reserves item by item in the given sequence, inside one
   transaction. The first failure rolls back every reservation of the call.
3. Unit prices (and product names) are snapshotted on the order items at
   placement and never recomputed.
4. completeOrder runs in two phases:
     phase 1  commit every item through the ledger and stamp
              stock_committed_at (one transaction)
     phase 2  set status=completed through compare-and-swap
   A phase 2 failure does not undo phase 1. It is recorded as a
   ReconciliationIssue, logged at CRITICAL and raised as
   PartialCommitFailureError.
5. A pending order whose stock is already committed cannot be cancelled;
   its issue has to be resolved first.
6. Status transitions are retried on version conflicts with a fresh read.
   If the fresh read shows the order already left pending (or another
   completion is in flight) the conflict is surfaced: the other writer won.
   Detail edits (shipping_address, notes) are never retried.
================================================================================
"""

from __future__ import annotations

from flask import current_app

from ..extensions import db
from ..errors import (
    InvalidTransitionError,
    PartialCommitFailureError,
    StockroomError,
    ValidationError,
    VersionConflictError,
)
from ..models import Order, OrderItem
from ..time_utils import utcnow
from ..validation import ModelValidationPolicy, validate_order_items, validate_payload
from . import projection_service, reconciliation_service
from .concurrency import begin_write, commit_changes, run_with_retry
from .entity_store import orders, products, users
from .inventory_service import apply_commit, apply_release, apply_reserve, order_commit_movements
from .permission_service import Principal, require_self_or_admin


ORDER_STATUSES = {"pending", "completed", "cancelled"}

TRANSITIONS = {
    "pending": {"completed", "cancelled"},
    "completed": set(),
    "cancelled": set(),
}

ORDER_DETAILS_POLICY = ModelValidationPolicy(
    writable_fields=frozenset({"shipping_address", "notes"}),
)


def validate_status(status: str) -> None:
    if status not in ORDER_STATUSES:
        raise ValidationError(
            f"Invalid status '{status}'. Must be one of: {', '.join(sorted(ORDER_STATUSES))}"
        )


def can_transition(from_status: str, to_status: str) -> bool:
    return to_status in TRANSITIONS.get(from_status, set())


def _invalid_transition(order: Order, target: str, reason: str | None = None) -> InvalidTransitionError:
    message = reason or f"Cannot move order {order.id} from {order.status} to {target}"
    return InvalidTransitionError(
        message,
        details={"order_id": order.id, "from_status": order.status, "to_status": target},
    )


def _check_transition(order: Order, expected_version: int, target: str) -> None:
    """
    Precondition of a status transition, re-checked on every attempt.

    A stale expected_version is tolerated only while the order is still an
    untouched pending order; otherwise the other writer won.
    """
    if order.version != expected_version:
        if order.status != "pending" or order.stock_committed_at is not None:
            raise VersionConflictError(
                f"order {order.id} was modified by another request",
                details={
                    "entity": "order",
                    "id": order.id,
                    "expected_version": expected_version,
                    "current_version": order.version,
                    "status": order.status,
                },
                retryable=False,
            )
        current_app.logger.warning(
            "Order %s transition to %s on stale version %s (current %s); order still pending",
            order.id, target, expected_version, order.version,
        )

    if not can_transition(order.status, target):
        raise _invalid_transition(order, target)


def _authorize(principal: Principal, order: Order, action: str) -> None:
    require_self_or_admin(principal, order.customer_id, action)


def place_order(
    principal: Principal,
    customer_id: int,
    items,
    *,
    shipping_address: str | None = None,
    notes: str | None = None,
) -> Order:
    """
    Reserve stock for every item and create a pending order.

    All-or-nothing: InsufficientStockError names the first product that
    could not be reserved and no reservation of the call survives.
    """
    require_self_or_admin(principal, customer_id, "place orders for another customer")
    items = validate_order_items(items)
    payload = {}
    if shipping_address is not None:
        payload["shipping_address"] = shipping_address
    if notes is not None:
        payload["notes"] = notes
    details = validate_payload(model=Order, payload=payload, policy=ORDER_DETAILS_POLICY, partial=True)

    def _op():
        begin_write()

        customer = users.get(customer_id)
        if not customer.is_active:
            raise ValidationError(
                f"Customer {customer_id} is inactive",
                details={"customer_id": customer_id},
            )

        order = orders.create(
            {"customer_id": customer.id, "status": "pending", **details},
            commit=False,
        )

        for position, item in enumerate(items, start=1):
            product = products.get(item["product_id"])
            apply_reserve(
                product,
                item["quantity"],
                product.version,
                order_id=order.id,
                actor_user_id=principal.user_id,
                note=f"Order {order.id}",
            )
            order.items.append(OrderItem(
                position=position,
                product_id=product.id,
                product_name=product.name,
                quantity=item["quantity"],
                unit_price_cents=product.price_cents,
            ))

        commit_changes("order")
        return order

    order = run_with_retry(_op, label="place_order")
    current_app.logger.info(
        "Order %s placed for customer %s (%d items, total_cents=%s)",
        order.id, order.customer_id, len(order.items), order.total_cents,
    )
    return order


def apply_completion(order: Order, actor_user_id: int | None) -> Order:
    """Phase 2 of completion on an order read in the caller's unit of work."""
    if order.status == "completed":
        return order
    if order.status != "pending" or order.stock_committed_at is None:
        raise _invalid_transition(order, "completed", f"Order {order.id} has no committed stock to complete")

    return orders.write(
        order,
        order.version,
        {"status": "completed", "completed_at": utcnow(), "completed_by_user_id": actor_user_id},
        commit=False,
    )


def _mark_completed(order_id: int, actor_user_id: int | None) -> Order:
    begin_write()
    order = orders.get(order_id)
    apply_completion(order, actor_user_id)
    reconciliation_service.close_open_issues(
        order.id,
        resolution="retry_status",
        actor_user_id=actor_user_id,
        note="Order completed",
    )
    commit_changes("order")
    return order


def complete_order(principal: Principal, order_id: int, expected_version: int) -> Order:
    def _commit_phase():
        begin_write()
        order = orders.get(order_id)
        _authorize(principal, order, "complete this order")

        if order.stock_committed_at is not None and order.status == "pending":
            # Stock is durable from an earlier attempt; only the status is missing
            if order.version != expected_version:
                raise VersionConflictError(
                    f"order {order.id} was modified by another request",
                    details={"entity": "order", "id": order.id, "current_version": order.version},
                    retryable=False,
                )
            ids = [m.id for m in order_commit_movements(order.id)]
            db.session.rollback()
            return ids

        _check_transition(order, expected_version, "completed")

        movement_ids = []
        for item in order.items:
            product = products.get(item.product_id)
            movement = apply_commit(
                product,
                item.quantity,
                order_id=order.id,
                actor_user_id=principal.user_id,
                note=f"Order {order.id} completed",
            )
            movement_ids.append(movement.id)

        orders.write(order, order.version, {"stock_committed_at": utcnow()}, commit=False)
        commit_changes("order")
        return movement_ids

    movement_ids = run_with_retry(_commit_phase, label="complete_order")

    try:
        order = run_with_retry(
            lambda: _mark_completed(order_id, principal.user_id),
            label="complete_order.status",
        )
    except Exception as exc:
        raise _partial_commit_failure(order_id, exc, movement_ids) from exc

    current_app.logger.info("Order %s completed by user %s", order.id, principal.user_id)
    return order


def _partial_commit_failure(
    order_id: int,
    exc: Exception,
    movement_ids: list[int],
) -> PartialCommitFailureError:
    cause = getattr(exc, "code", type(exc).__name__)
    details = {"order_id": order_id, "movement_ids": movement_ids, "cause": cause}
    try:
        issue = reconciliation_service.record_partial_commit(
            order_id=order_id,
            attempted_status="completed",
            error=exc,
            movement_ids=movement_ids,
        )
        details["issue_id"] = issue.id
    except StockroomError:
        db.session.rollback()
        current_app.logger.exception("Failed to record reconciliation issue for order %s", order_id)
        details["issue_id"] = None

    current_app.logger.critical(
        "PARTIAL COMMIT: stock committed for order %s (movements %s) but status update failed: %s (issue %s)",
        order_id, movement_ids, exc, details["issue_id"],
    )
    return PartialCommitFailureError(
        f"Stock for order {order_id} was committed but the order could not be marked completed",
        details=details,
    )


def cancel_order(
    principal: Principal,
    order_id: int,
    expected_version: int,
    *,
    reason: str | None = None,
) -> Order:
    if reason is not None:
        reason = str(reason).strip()[:255] or None

    def _op():
        begin_write()
        order = orders.get(order_id)
        _authorize(principal, order, "cancel this order")
        _check_transition(order, expected_version, "cancelled")
        if order.stock_committed_at is not None:
            raise _invalid_transition(
                order,
                "cancelled",
                f"Stock for order {order.id} is already committed; resolve its reconciliation issue first",
            )

        for item in order.items:
            product = products.get(item.product_id)
            apply_release(
                product,
                item.quantity,
                order_id=order.id,
                actor_user_id=principal.user_id,
                note=f"Order {order.id} cancelled",
            )

        orders.write(
            order,
            order.version,
            {
                "status": "cancelled",
                "cancelled_at": utcnow(),
                "cancelled_by_user_id": principal.user_id,
                "cancel_reason": reason,
            },
            commit=False,
        )
        commit_changes("order")
        return order

    order = run_with_retry(_op, label="cancel_order")
    current_app.logger.info("Order %s cancelled by user %s", order.id, principal.user_id)
    return order


def transition_order(
    principal: Principal,
    order_id: int,
    status: str,
    expected_version: int,
    *,
    reason: str | None = None,
) -> Order:
    """Generic status update entry point; dispatches to complete/cancel."""
    validate_status(status)
    if status == "completed":
        return complete_order(principal, order_id, expected_version)
    if status == "cancelled":
        return cancel_order(principal, order_id, expected_version, reason=reason)

    order = get_order(principal, order_id)
    raise _invalid_transition(order, status)


def update_order_details(
    principal: Principal,
    order_id: int,
    expected_version: int,
    payload: dict,
) -> Order:
    patch = validate_payload(model=Order, payload=payload, policy=ORDER_DETAILS_POLICY, partial=True)
    if not patch:
        raise ValidationError("No editable fields supplied")

    def _op():
        begin_write()
        order = orders.get(order_id)
        _authorize(principal, order, "edit this order")
        if order.status != "pending":
            raise InvalidTransitionError(
                f"Order {order.id} can only be edited while pending",
                details={"order_id": order.id, "status": order.status},
            )
        return orders.update(order_id, expected_version, patch, commit=True)

    return run_with_retry(_op, attempts=1, label="update_order_details")


def get_order(principal: Principal, order_id: int) -> Order:
    order = orders.get(order_id)
    _authorize(principal, order, "view this order")
    return order


def list_orders(
    principal: Principal,
    *,
    customer_id: int | None = None,
    status: str | None = None,
) -> list[Order]:
    """Customers only ever see their own orders."""
    if not principal.is_admin:
        if customer_id is not None and customer_id != principal.user_id:
            require_self_or_admin(principal, customer_id, "view another customer's orders")
        customer_id = principal.user_id

    if status is not None:
        validate_status(status)

    if customer_id is not None:
        result = projection_service.orders_for_customer(customer_id)
        if status is not None:
            result = [o for o in result if o.status == status]
        return result

    if status is not None:
        return projection_service.orders_by_status(status)
    return projection_service.all_orders()
