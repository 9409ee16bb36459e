from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z, utcnow

MOVEMENT_TYPES = ("RESERVE", "RELEASE", "COMMIT", "ADJUST", "REVERSE_COMMIT")


class InventoryMovement(db.Model):
    """
    Append-only record of every ledger operation.

    Written in the same DB transaction as the stock change it describes;
    stock_after/reserved_after are the product's position right after it.
    """
    __tablename__ = "inventory_movements"
    __table_args__ = (
        db.Index("ix_invmov_product_occurred", "product_id", "occurred_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=True, index=True)

    movement_type = db.Column(db.String(16), nullable=False, index=True)
    quantity = db.Column(db.Integer, nullable=False)
    stock_after = db.Column(db.Integer, nullable=False)
    reserved_after = db.Column(db.Integer, nullable=False)

    actor_user_id = db.Column(db.Integer, nullable=True)
    note = db.Column(db.String(255), nullable=True)
    occurred_at = db.Column(db.DateTime, nullable=False, default=utcnow, index=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "order_id": self.order_id,
            "movement_type": self.movement_type,
            "quantity": self.quantity,
            "stock_after": self.stock_after,
            "reserved_after": self.reserved_after,
            "actor_user_id": self.actor_user_id,
            "note": self.note,
            "occurred_at": to_utc_z(self.occurred_at),
        }


class ReconciliationIssue(db.Model):
    """
    Audit record of a partial commit: ledger movements that became durable
    while the order update that should accompany them failed.

    OPEN issues stay visible until an administrator resolves them.
    """
    __tablename__ = "reconciliation_issues"
    __table_args__ = (
        db.Index("ix_recon_status_created", "status", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False, index=True)
    kind = db.Column(db.String(32), nullable=False, default="PARTIAL_COMMIT")
    status = db.Column(db.String(16), nullable=False, default="OPEN", index=True)

    attempted_status = db.Column(db.String(16), nullable=False)
    error_code = db.Column(db.String(64), nullable=False)
    error_message = db.Column(db.String(512), nullable=True)
    movement_ids = db.Column(db.JSON, nullable=False, default=list)

    resolution = db.Column(db.String(32), nullable=True)
    resolution_note = db.Column(db.String(512), nullable=True)
    resolved_by_user_id = db.Column(db.Integer, nullable=True)

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    resolved_at = db.Column(db.DateTime, nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "order_id": self.order_id,
            "kind": self.kind,
            "status": self.status,
            "attempted_status": self.attempted_status,
            "error_code": self.error_code,
            "error_message": self.error_message,
            "movement_ids": list(self.movement_ids or []),
            "resolution": self.resolution,
            "resolution_note": self.resolution_note,
            "resolved_by_user_id": self.resolved_by_user_id,
            "created_at": to_utc_z(self.created_at),
            "resolved_at": to_utc_z(self.resolved_at),
        }
