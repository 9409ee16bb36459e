"""
Projection tests: stock alerts, order totals and the dashboard.
"""

from datetime import timedelta

import pytest

from stockroom.errors import ValidationError
from stockroom.services import catalog_service, order_service, projection_service
from stockroom.time_utils import utcnow


@pytest.fixture
def shelf(db_session, admin):
    """Products at stock 0, 1, 4, 5 and 10."""
    return {
        stock: catalog_service.create_product(admin, {"name": f"Item {stock:02d}", "price_cents": 100, "stock": stock})
        for stock in (0, 1, 4, 5, 10)
    }


class TestStockBands:

    def test_low_stock_uses_configured_threshold(self, db_session, shelf):
        names = [p.name for p in projection_service.low_stock()]
        assert names == ["Item 01", "Item 04"]

    def test_low_stock_explicit_threshold(self, db_session, shelf):
        names = [p.name for p in projection_service.low_stock(11)]
        assert names == ["Item 01", "Item 04", "Item 05", "Item 10"]

    def test_out_of_stock_is_not_low_stock(self, db_session, shelf):
        assert [p.name for p in projection_service.out_of_stock()] == ["Item 00"]
        assert "Item 00" not in [p.name for p in projection_service.low_stock()]

    @pytest.mark.parametrize("threshold", [0, -3, True, "5"])
    def test_threshold_must_be_positive_integer(self, db_session, threshold):
        with pytest.raises(ValidationError):
            projection_service.low_stock(threshold)

    def test_low_stock_follows_stock_not_availability(self, db_session, shopper, customer, shelf):
        order_service.place_order(shopper, customer.id, [{"product_id": shelf[10].id, "quantity": 9}])
        names = [p.name for p in projection_service.low_stock()]
        assert "Item 10" not in names


class TestOrderViews:

    def test_order_total_uses_snapshot(self, db_session, admin, shopper, customer, widget, gadget):
        order = order_service.place_order(
            shopper, customer.id,
            [{"product_id": widget.id, "quantity": 3}, {"product_id": gadget.id, "quantity": 2}],
        )
        assert projection_service.order_total(order) == 3 * 250 + 2 * 1000

    def test_enriched_products_resolve_names(self, db_session, admin):
        category = catalog_service.create_category(admin, {"name": "Kitchen"})
        product = catalog_service.create_product(
            admin, {"name": "Kettle", "price_cents": 2500, "category_id": category.id},
        )

        rows = projection_service.enriched_products()
        row = next(r for r in rows if r["id"] == product.id)
        assert row["category_name"] == "Kitchen"
        assert row["supplier_name"] is None

    def test_search_products(self, db_session, widget, gadget):
        assert [p.name for p in projection_service.search_products("WID")] == ["Widget"]
        assert [p.name for p in projection_service.search_products()] == ["Gadget", "Widget"]

    def test_search_users_excludes_deleted(self, db_session, admin_user, customer, other_customer):
        customer.deleted_at = utcnow()
        db_session.commit()
        emails = [u.email for u in projection_service.search_users(role="customer")]
        assert emails == [other_customer.email]


class TestDashboard:

    def test_dashboard_counts(self, db_session, admin, shopper, customer, widget, gadget):
        kept = order_service.place_order(shopper, customer.id, [{"product_id": widget.id, "quantity": 2}])
        dropped = order_service.place_order(shopper, customer.id, [{"product_id": gadget.id, "quantity": 1}])
        order_service.cancel_order(shopper, dropped.id, dropped.version)
        done = order_service.place_order(shopper, customer.id, [{"product_id": gadget.id, "quantity": 3}])
        order_service.complete_order(admin, done.id, done.version)

        stats = projection_service.dashboard_stats()

        assert stats["product_count"] == 2
        assert stats["total_stock"] == 10
        assert stats["total_reserved"] == 2
        assert stats["out_of_stock_count"] == 1
        assert stats["low_stock_count"] == 0
        assert stats["today_order_count"] == 2
        assert stats["today_revenue_cents"] == 2 * 250 + 3 * 1000
        assert (stats["pending_orders"], stats["completed_orders"], stats["cancelled_orders"]) == (1, 1, 1)
        assert kept.status == "pending"

    def test_dashboard_other_day_is_empty(self, db_session, shopper, customer, widget):
        order_service.place_order(shopper, customer.id, [{"product_id": widget.id, "quantity": 1}])
        stats = projection_service.dashboard_stats((utcnow() - timedelta(days=2)).date())
        assert stats["today_order_count"] == 0
        assert stats["today_revenue_cents"] == 0
