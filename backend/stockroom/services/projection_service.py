# Overview: Read-only projections over the store (stock alerts, order views, dashboard).

from __future__ import annotations

from datetime import date

from flask import current_app
from sqlalchemy import func, or_

from ..extensions import db
from ..errors import ValidationError
from ..models import Category, Order, OrderItem, Product, Supplier, User, USER_ROLES
from ..time_utils import day_bounds, utcnow
"""
Projections are computed on every call from what is committed in the store.
Nothing here writes, caches or takes the write lock.

Stock bands (threshold from LOW_STOCK_THRESHOLD unless given):
- out of stock: stock == 0
- low stock:    0 < stock < threshold
"""


def _order_sort(q):
    return q.order_by(Order.created_at.desc(), Order.id.desc())


def _threshold(threshold: int | None) -> int:
    if threshold is None:
        threshold = current_app.config.get("LOW_STOCK_THRESHOLD", 5)
    if isinstance(threshold, bool) or not isinstance(threshold, int) or threshold < 1:
        raise ValidationError("threshold must be a positive integer")
    return threshold


def low_stock(threshold: int | None = None) -> list[Product]:
    limit = _threshold(threshold)
    return db.session.query(Product).filter(
        Product.stock > 0,
        Product.stock < limit,
    ).order_by(Product.stock.asc(), Product.name.asc(), Product.id.asc()).all()


def out_of_stock() -> list[Product]:
    return db.session.query(Product).filter(
        Product.stock == 0,
    ).order_by(Product.name.asc(), Product.id.asc()).all()


def order_total(order: Order) -> int:
    """Sum of quantity x snapshotted unit price; live product prices play no part."""
    return sum(item.quantity * item.unit_price_cents for item in order.items)


def orders_for_customer(customer_id: int) -> list[Order]:
    return _order_sort(db.session.query(Order).filter(Order.customer_id == customer_id)).all()


def orders_by_status(status: str) -> list[Order]:
    return _order_sort(db.session.query(Order).filter(Order.status == status)).all()


def all_orders() -> list[Order]:
    return _order_sort(db.session.query(Order)).all()


def search_products(query: str | None = None, category_id: int | None = None) -> list[Product]:
    q = db.session.query(Product)
    if query:
        q = q.filter(func.lower(Product.name).contains(query.strip().lower(), autoescape=True))
    if category_id is not None:
        q = q.filter(Product.category_id == category_id)
    return q.order_by(Product.name.asc(), Product.id.asc()).all()


def search_users(query: str | None = None, role: str | None = None) -> list[User]:
    if role is not None and role not in USER_ROLES:
        raise ValidationError(f"role must be one of: {', '.join(USER_ROLES)}")

    q = db.session.query(User).filter(User.deleted_at.is_(None))
    if query:
        needle = query.strip().lower()
        q = q.filter(or_(
            func.lower(User.name).contains(needle, autoescape=True),
            func.lower(User.email).contains(needle, autoescape=True),
        ))
    if role is not None:
        q = q.filter(User.role == role)
    return q.order_by(User.name.asc(), User.id.asc()).all()


def enriched_products(products: list[Product] | None = None) -> list[dict]:
    """Products with category/supplier names resolved (None when unresolved)."""
    if products is None:
        products = db.session.query(Product).order_by(Product.name.asc(), Product.id.asc()).all()

    category_names = dict(db.session.query(Category.id, Category.name).all())
    supplier_names = dict(db.session.query(Supplier.id, Supplier.name).all())

    rows = []
    for product in products:
        row = product.to_dict()
        row["category_name"] = category_names.get(product.category_id)
        row["supplier_name"] = supplier_names.get(product.supplier_id)
        rows.append(row)
    return rows


def dashboard_stats(today: date | None = None) -> dict:
    if today is None:
        today = utcnow().date()
    start, end = day_bounds(today)
    threshold = _threshold(None)

    product_count, total_stock, total_reserved = db.session.query(
        func.count(Product.id),
        func.coalesce(func.sum(Product.stock), 0),
        func.coalesce(func.sum(Product.reserved), 0),
    ).one()

    low_count = db.session.query(func.count(Product.id)).filter(
        Product.stock > 0, Product.stock < threshold,
    ).scalar()
    out_count = db.session.query(func.count(Product.id)).filter(Product.stock == 0).scalar()

    today_ids = [row.id for row in db.session.query(Order.id).filter(
        Order.created_at >= start,
        Order.created_at < end,
        Order.status != "cancelled",
    ).all()]
    today_orders = len(today_ids)
    today_revenue = db.session.query(
        func.coalesce(func.sum(OrderItem.quantity * OrderItem.unit_price_cents), 0),
    ).filter(OrderItem.order_id.in_(today_ids)).scalar()

    status_counts = dict(
        db.session.query(Order.status, func.count(Order.id)).group_by(Order.status).all()
    )

    return {
        "date": today.isoformat(),
        "product_count": int(product_count),
        "total_stock": int(total_stock),
        "total_reserved": int(total_reserved),
        "low_stock_threshold": threshold,
        "low_stock_count": int(low_count),
        "out_of_stock_count": int(out_count),
        "today_order_count": int(today_orders),
        "today_revenue_cents": int(today_revenue),
        "pending_orders": int(status_counts.get("pending", 0)),
        "completed_orders": int(status_counts.get("completed", 0)),
        "cancelled_orders": int(status_counts.get("cancelled", 0)),
    }
