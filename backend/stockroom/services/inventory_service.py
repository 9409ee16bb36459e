# Overview: Inventory ledger; the only code path that changes a product's stock position.

from __future__ import annotations

from flask import current_app
from sqlalchemy import func

from ..extensions import db
from ..errors import InsufficientStockError, ValidationError
from ..models import InventoryMovement, Product
from ..validation import coerce_int, validate_quantity
from .concurrency import begin_write, check_version, commit_changes, flush_changes, run_with_retry
from .entity_store import products
"""
Stockroom Inventory Ledger Invariants (authoritative)

Stock position per product:
- stock: units on hand and not yet sold
- reserved: units held for pending orders
- available = stock - reserved (what a new order may reserve)

Invariants, after every operation:
- stock >= 0, reserved >= 0, reserved <= stock

Operations:
- RESERVE  qty <= available; reserved += qty. Guarded by the product version the
           caller read, so two checkouts racing for the last unit cannot both win.
- RELEASE  reserved -= min(qty, reserved). Releasing more than is held is a
           no-op for the excess.
- COMMIT   qty <= reserved; stock -= qty and reserved -= qty. The only
           operation that permanently reduces sellable stock.
- ADJUST   administrative restock/correction; stock += delta, never below reserved.
- REVERSE_COMMIT  undo of a COMMIT during reconciliation; stock += qty, reserved += qty.

Audit:
- Every operation that changes the position appends an InventoryMovement in the
  same DB transaction, recording the position right after the change.

apply_* functions work on a product already read inside the caller's unit of
work and never commit; the public *_stock functions wrap them in their own
transaction.
"""


def _record_movement(
    product: Product,
    movement_type: str,
    quantity: int,
    *,
    order_id: int | None = None,
    actor_user_id: int | None = None,
    note: str | None = None,
) -> InventoryMovement:
    movement = InventoryMovement(
        product_id=product.id,
        order_id=order_id,
        movement_type=movement_type,
        quantity=quantity,
        stock_after=product.stock,
        reserved_after=product.reserved,
        actor_user_id=actor_user_id,
        note=str(note)[:255] if note else None,
    )
    db.session.add(movement)
    flush_changes("inventory_movement")
    return movement


def apply_reserve(
    product: Product,
    quantity: int,
    expected_version: int,
    *,
    order_id: int | None = None,
    actor_user_id: int | None = None,
    note: str | None = None,
) -> InventoryMovement:
    check_version(product, expected_version, "product")

    available = product.stock - product.reserved
    if quantity > available:
        raise InsufficientStockError(
            f"Insufficient stock for product {product.id}",
            product_id=product.id,
            requested=quantity,
            available=available,
        )

    products.write(product, expected_version, {"reserved": product.reserved + quantity}, commit=False)
    return _record_movement(
        product, "RESERVE", quantity,
        order_id=order_id, actor_user_id=actor_user_id, note=note,
    )


def apply_release(
    product: Product,
    quantity: int,
    *,
    order_id: int | None = None,
    actor_user_id: int | None = None,
    note: str | None = None,
) -> InventoryMovement | None:
    released = min(quantity, product.reserved)
    if released <= 0:
        return None

    products.write(product, product.version, {"reserved": product.reserved - released}, commit=False)
    return _record_movement(
        product, "RELEASE", released,
        order_id=order_id, actor_user_id=actor_user_id, note=note,
    )


def apply_commit(
    product: Product,
    quantity: int,
    *,
    order_id: int | None = None,
    actor_user_id: int | None = None,
    note: str | None = None,
) -> InventoryMovement:
    if quantity > product.reserved:
        raise InsufficientStockError(
            f"Commit of {quantity} exceeds the quantity reserved for product {product.id}",
            product_id=product.id,
            requested=quantity,
            available=product.reserved,
        )

    products.write(
        product,
        product.version,
        {"stock": product.stock - quantity, "reserved": product.reserved - quantity},
        commit=False,
    )
    return _record_movement(
        product, "COMMIT", quantity,
        order_id=order_id, actor_user_id=actor_user_id, note=note,
    )


def apply_reverse_commit(
    product: Product,
    quantity: int,
    *,
    order_id: int | None = None,
    actor_user_id: int | None = None,
    note: str | None = None,
) -> InventoryMovement:
    products.write(
        product,
        product.version,
        {"stock": product.stock + quantity, "reserved": product.reserved + quantity},
        commit=False,
    )
    return _record_movement(
        product, "REVERSE_COMMIT", quantity,
        order_id=order_id, actor_user_id=actor_user_id, note=note,
    )


def apply_adjust(
    product: Product,
    delta: int,
    expected_version: int,
    *,
    actor_user_id: int | None = None,
    note: str | None = None,
) -> InventoryMovement:
    if delta == 0:
        raise ValidationError("delta must be non-zero")

    check_version(product, expected_version, "product")

    new_stock = product.stock + delta
    if new_stock < product.reserved:
        # Cannot remove units that pending orders are holding
        raise InsufficientStockError(
            f"Adjustment would leave product {product.id} with less stock than is reserved",
            product_id=product.id,
            requested=-delta,
            available=product.stock - product.reserved,
        )

    products.write(product, expected_version, {"stock": new_stock}, commit=False)
    return _record_movement(
        product, "ADJUST", abs(delta),
        actor_user_id=actor_user_id,
        note=note or ("restock" if delta > 0 else "stock correction"),
    )


def reserve_stock(
    product_id: int,
    quantity,
    expected_version: int,
    *,
    actor_user_id: int | None = None,
    note: str | None = None,
) -> Product:
    """
    Hold quantity units of a product.

    The caller supplies the version it read; a mismatch is surfaced as
    VersionConflictError (no retry) since the availability the caller saw
    may no longer hold.
    """
    quantity = validate_quantity(quantity)

    def _op():
        begin_write()
        product = products.get(product_id)
        apply_reserve(product, quantity, expected_version, actor_user_id=actor_user_id, note=note)
        commit_changes("product")
        return product

    return run_with_retry(_op, attempts=1, label="reserve_stock")


def release_stock(
    product_id: int,
    quantity,
    *,
    actor_user_id: int | None = None,
    note: str | None = None,
) -> Product:
    """Drop up to quantity units of a product's reservation."""
    quantity = validate_quantity(quantity)

    def _op():
        begin_write()
        product = products.get(product_id)
        apply_release(product, quantity, actor_user_id=actor_user_id, note=note)
        commit_changes("product")
        return product

    return run_with_retry(_op, label="release_stock")


def commit_stock(
    product_id: int,
    quantity,
    *,
    actor_user_id: int | None = None,
    note: str | None = None,
) -> Product:
    """Turn quantity reserved units into a permanent stock reduction."""
    quantity = validate_quantity(quantity)

    def _op():
        begin_write()
        product = products.get(product_id)
        apply_commit(product, quantity, actor_user_id=actor_user_id, note=note)
        commit_changes("product")
        return product

    return run_with_retry(_op, label="commit_stock")


def adjust_stock(
    product_id: int,
    delta,
    expected_version: int,
    *,
    actor_user_id: int | None = None,
    note: str | None = None,
) -> Product:
    """
    Restock (delta > 0) or correct (delta < 0) a product's on-hand stock.

    Non-idempotent: a version mismatch is surfaced, never retried.
    """
    delta = coerce_int(delta, "delta")

    def _op():
        begin_write()
        product = products.get(product_id)
        apply_adjust(product, delta, expected_version, actor_user_id=actor_user_id, note=note)
        commit_changes("product")
        current_app.logger.info(
            "Stock adjusted for product %s by %+d (stock=%s)", product.id, delta, product.stock,
        )
        return product

    return run_with_retry(_op, attempts=1, label="adjust_stock")


def list_movements(
    product_id: int,
    *,
    order_id: int | None = None,
    limit: int = 200,
) -> list[InventoryMovement]:
    products.get(product_id)

    q = db.session.query(InventoryMovement).filter(InventoryMovement.product_id == product_id)
    if order_id is not None:
        q = q.filter(InventoryMovement.order_id == order_id)

    return q.order_by(
        InventoryMovement.occurred_at.desc(),
        InventoryMovement.id.desc(),
    ).limit(limit).all()


def order_commit_movements(order_id: int) -> list[InventoryMovement]:
    """COMMIT movements of an order that have not been reversed since."""
    last_reversal = db.session.query(func.max(InventoryMovement.id)).filter(
        InventoryMovement.order_id == order_id,
        InventoryMovement.movement_type == "REVERSE_COMMIT",
    ).scalar()

    q = db.session.query(InventoryMovement).filter(
        InventoryMovement.order_id == order_id,
        InventoryMovement.movement_type == "COMMIT",
    )
    if last_reversal is not None:
        q = q.filter(InventoryMovement.id > last_reversal)
    return q.order_by(InventoryMovement.id.asc()).all()
