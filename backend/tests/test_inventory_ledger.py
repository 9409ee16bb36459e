"""
Inventory ledger tests.

Verifies:
- reserve/release/commit/adjust move stock and reserved as documented
- 0 <= reserved <= stock holds after every operation
- Every change appends exactly one movement with the resulting position
- Failed operations leave no trace
"""

import pytest

from stockroom.errors import InsufficientStockError, ValidationError, VersionConflictError
from stockroom.models import InventoryMovement, Product
from stockroom.services import inventory_service


def _product(db_session, product_id) -> Product:
    db_session.expire_all()
    return db_session.get(Product, product_id)


def _movement_types(db_session, product_id) -> list[str]:
    rows = db_session.query(InventoryMovement).filter_by(product_id=product_id).order_by(InventoryMovement.id).all()
    return [m.movement_type for m in rows]


class TestReserve:

    def test_reserve_holds_units(self, db_session, widget):
        product = inventory_service.reserve_stock(widget.id, 4, widget.version)
        assert (product.stock, product.reserved, product.available) == (10, 4, 6)

    def test_reserve_more_than_available(self, db_session, widget):
        inventory_service.reserve_stock(widget.id, 8, widget.version)
        current = _product(db_session, widget.id)

        with pytest.raises(InsufficientStockError) as exc:
            inventory_service.reserve_stock(widget.id, 3, current.version)

        assert exc.value.details == {
            "product_id": widget.id,
            "requested_quantity": 3,
            "available_quantity": 2,
        }
        assert _product(db_session, widget.id).reserved == 8

    def test_reserve_on_stale_version(self, db_session, widget):
        stale = widget.version
        inventory_service.reserve_stock(widget.id, 1, stale)

        with pytest.raises(VersionConflictError):
            inventory_service.reserve_stock(widget.id, 1, stale)
        assert _product(db_session, widget.id).reserved == 1

    @pytest.mark.parametrize("quantity", [0, -1, "two", 1.5, True])
    def test_reserve_rejects_bad_quantity(self, db_session, widget, quantity):
        with pytest.raises(ValidationError):
            inventory_service.reserve_stock(widget.id, quantity, widget.version)


class TestReleaseAndCommit:

    def test_release_is_capped_at_reserved(self, db_session, widget):
        inventory_service.reserve_stock(widget.id, 3, widget.version)
        product = inventory_service.release_stock(widget.id, 5)
        assert (product.stock, product.reserved) == (10, 0)

        movements = inventory_service.list_movements(widget.id)
        assert movements[0].movement_type == "RELEASE"
        assert movements[0].quantity == 3

    def test_release_nothing_held_writes_no_movement(self, db_session, widget):
        before = len(_movement_types(db_session, widget.id))
        inventory_service.release_stock(widget.id, 2)
        assert len(_movement_types(db_session, widget.id)) == before

    def test_commit_reduces_stock_and_reserved(self, db_session, widget):
        inventory_service.reserve_stock(widget.id, 4, widget.version)
        product = inventory_service.commit_stock(widget.id, 4)
        assert (product.stock, product.reserved) == (6, 0)

    def test_commit_beyond_reserved(self, db_session, widget):
        inventory_service.reserve_stock(widget.id, 2, widget.version)
        with pytest.raises(InsufficientStockError):
            inventory_service.commit_stock(widget.id, 3)

        product = _product(db_session, widget.id)
        assert (product.stock, product.reserved) == (10, 2)


class TestAdjust:

    def test_restock(self, db_session, widget):
        product = inventory_service.adjust_stock(widget.id, 5, widget.version, note="delivery")
        assert product.stock == 15

        latest = inventory_service.list_movements(widget.id, limit=1)[0]
        assert (latest.movement_type, latest.quantity, latest.note) == ("ADJUST", 5, "delivery")

    def test_correction_cannot_cut_into_reserved(self, db_session, widget):
        product = inventory_service.reserve_stock(widget.id, 8, widget.version)
        with pytest.raises(InsufficientStockError):
            inventory_service.adjust_stock(widget.id, -3, product.version)

        product = inventory_service.adjust_stock(widget.id, -2, _product(db_session, widget.id).version)
        assert (product.stock, product.reserved) == (8, 8)

    def test_zero_delta_rejected(self, db_session, widget):
        with pytest.raises(ValidationError):
            inventory_service.adjust_stock(widget.id, 0, widget.version)

    def test_adjust_is_not_retried_on_conflict(self, db_session, widget):
        stale = widget.version
        inventory_service.adjust_stock(widget.id, 1, stale)
        with pytest.raises(VersionConflictError):
            inventory_service.adjust_stock(widget.id, 1, stale)
        assert _product(db_session, widget.id).stock == 11


class TestMovements:

    def test_every_change_is_recorded_with_position(self, db_session, widget):
        inventory_service.reserve_stock(widget.id, 4, widget.version)
        inventory_service.commit_stock(widget.id, 3)
        inventory_service.release_stock(widget.id, 1)

        assert _movement_types(db_session, widget.id) == ["ADJUST", "RESERVE", "COMMIT", "RELEASE"]

        rows = db_session.query(InventoryMovement).filter_by(product_id=widget.id).order_by(InventoryMovement.id).all()
        positions = [(m.stock_after, m.reserved_after) for m in rows]
        assert positions == [(10, 0), (10, 4), (7, 1), (7, 0)]
        for stock_after, reserved_after in positions:
            assert 0 <= reserved_after <= stock_after

    def test_list_movements_newest_first_with_limit(self, db_session, widget):
        inventory_service.reserve_stock(widget.id, 1, widget.version)
        inventory_service.release_stock(widget.id, 1)

        movements = inventory_service.list_movements(widget.id, limit=2)
        assert [m.movement_type for m in movements] == ["RELEASE", "RESERVE"]
