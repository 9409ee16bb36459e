"""
Store failure tests.

A failed or timed-out store call has an unknown outcome, so it is rolled
back and reported, never retried blindly.

Verifies:
- OperationalError and pool timeouts surface as StoreUnavailableError
- Nothing from the failed unit of work survives (no order, hold or movement)
- The failing call is attempted exactly once
- The API answers 503 with a tagged STORE_UNAVAILABLE body
"""

import pytest
from sqlalchemy.exc import OperationalError, TimeoutError as PoolTimeoutError

from stockroom.errors import StoreUnavailableError
from stockroom.extensions import db
from stockroom.models import InventoryMovement, Order, Product
from stockroom.services import inventory_service, order_service


def _fresh(db_session, model, entity_id):
    db_session.expire_all()
    return db_session.get(model, entity_id)


def _locked():
    return OperationalError("COMMIT", {}, Exception("database is locked"))


def _pool_timeout():
    return PoolTimeoutError("QueuePool limit of size 5 overflow 10 reached, connection timed out")


@pytest.fixture
def failing_session(monkeypatch):
    """Make one session method raise; returns the list of attempts made."""

    def _install(method, error_factory):
        calls = []

        def _boom(*args, **kwargs):
            calls.append(method)
            raise error_factory()

        monkeypatch.setattr(db.session, method, _boom)
        return calls

    yield _install
    monkeypatch.undo()


class TestPlaceOrderStoreFailure:

    @pytest.mark.parametrize("error_factory,cause", [
        (_locked, "OperationalError"),
        (_pool_timeout, "TimeoutError"),
    ])
    def test_commit_failure_leaves_nothing_behind(
        self, db_session, shopper, customer, widget, failing_session, error_factory, cause,
    ):
        calls = failing_session("commit", error_factory)

        with pytest.raises(StoreUnavailableError) as exc:
            order_service.place_order(shopper, customer.id, [{"product_id": widget.id, "quantity": 2}])

        assert len(calls) == 1
        assert exc.value.http_status == 503
        assert exc.value.details["cause"] == cause

        product = _fresh(db_session, Product, widget.id)
        assert (product.stock, product.reserved) == (10, 0)
        assert db_session.query(Order).count() == 0
        assert db_session.query(InventoryMovement).filter_by(movement_type="RESERVE").count() == 0

    def test_flush_failure_is_not_retried(self, db_session, shopper, customer, widget, failing_session):
        calls = failing_session("flush", _locked)

        with pytest.raises(StoreUnavailableError):
            order_service.place_order(shopper, customer.id, [{"product_id": widget.id, "quantity": 1}])

        assert calls == ["flush"]
        assert db_session.query(Order).count() == 0
        assert _fresh(db_session, Product, widget.id).reserved == 0


class TestReserveStoreFailure:

    def test_reserve_commit_failure(self, db_session, widget, failing_session):
        calls = failing_session("commit", _locked)

        with pytest.raises(StoreUnavailableError):
            inventory_service.reserve_stock(widget.id, 3, widget.version)

        assert len(calls) == 1
        product = _fresh(db_session, Product, widget.id)
        assert (product.stock, product.reserved) == (10, 0)
        assert db_session.query(InventoryMovement).filter_by(
            product_id=widget.id, movement_type="RESERVE",
        ).count() == 0


class TestStoreFailureOverHttp:

    def test_place_order_answers_503(self, client, customer_headers, widget, failing_session):
        failing_session("flush", _pool_timeout)

        resp = client.post("/api/orders", json={
            "items": [{"product_id": widget.id, "quantity": 1}],
        }, headers=customer_headers)

        assert resp.status_code == 503
        assert resp.json["error"] == "STORE_UNAVAILABLE"
