# Overview: Service-layer operations for the catalog (categories, suppliers, products).

"""
Catalog Service

- Admin-only writes; anyone authenticated may read.
- Edits are compare-and-swap on the version the caller read and are never
  retried: a conflict goes back to the caller.
- stock and reserved are not patchable. A new product's initial stock is
  booked through the ledger as an ADJUST movement in the same transaction.
- Deleting a category or supplier that products still point at, or a
  product that order items still point at, is a ReferentialConflictError.
"""

from __future__ import annotations

from flask import current_app

from ..extensions import db
from ..errors import ReferentialConflictError
from ..models import Category, InventoryMovement, Product, Supplier
from ..validation import (
    ModelValidationPolicy,
    coerce_int,
    enforce_rules_product,
    enforce_rules_supplier,
    validate_payload,
)
from . import projection_service
from .concurrency import begin_write, commit_changes, run_with_retry
from .entity_store import categories, products, suppliers
from .inventory_service import apply_adjust
from .permission_service import Principal, require_admin


CATEGORY_POLICY = ModelValidationPolicy(
    writable_fields=frozenset({"name", "description"}),
    required_on_create=frozenset({"name"}),
)

SUPPLIER_POLICY = ModelValidationPolicy(
    writable_fields=frozenset({"name", "contact_person", "email", "phone", "address", "latitude", "longitude"}),
    required_on_create=frozenset({"name"}),
)

PRODUCT_POLICY = ModelValidationPolicy(
    writable_fields=frozenset({"name", "description", "image_url", "price_cents", "category_id", "supplier_id"}),
    required_on_create=frozenset({"name", "price_cents"}),
)


def _check_product_refs(patch: dict) -> None:
    if patch.get("category_id") is not None:
        categories.get(patch["category_id"])
    if patch.get("supplier_id") is not None:
        suppliers.get(patch["supplier_id"])


def _create(store, values: dict, label: str):
    def _op():
        begin_write()
        return store.create(values, commit=True)

    return run_with_retry(_op, attempts=1, label=f"create_{label}")


def _update(store, entity_id: int, expected_version: int, patch: dict, label: str, check=None):
    def _op():
        begin_write()
        if check is not None:
            check(patch)
        return store.update(entity_id, expected_version, patch, commit=True)

    return run_with_retry(_op, attempts=1, label=f"update_{label}")


def _delete(store, entity_id: int, label: str) -> None:
    def _op():
        begin_write()
        store.delete(entity_id, commit=True)

    run_with_retry(_op, attempts=1, label=f"delete_{label}")


# Categories

def list_categories() -> list[Category]:
    return categories.list(sort="name")


def get_category(category_id: int) -> Category:
    return categories.get(category_id)


def create_category(principal: Principal, payload: dict) -> Category:
    require_admin(principal, "manage categories")
    patch = validate_payload(model=Category, payload=payload, policy=CATEGORY_POLICY, partial=False)
    return _create(categories, patch, "category")


def update_category(principal: Principal, category_id: int, expected_version: int, payload: dict) -> Category:
    require_admin(principal, "manage categories")
    patch = validate_payload(model=Category, payload=payload, policy=CATEGORY_POLICY, partial=True)
    return _update(categories, category_id, expected_version, patch, "category")


def delete_category(principal: Principal, category_id: int) -> None:
    require_admin(principal, "manage categories")
    _delete(categories, category_id, "category")


# Suppliers

def list_suppliers() -> list[Supplier]:
    return suppliers.list(sort="name")


def get_supplier(supplier_id: int) -> Supplier:
    return suppliers.get(supplier_id)


def create_supplier(principal: Principal, payload: dict) -> Supplier:
    require_admin(principal, "manage suppliers")
    patch = validate_payload(model=Supplier, payload=payload, policy=SUPPLIER_POLICY, partial=False)
    enforce_rules_supplier(patch)
    return _create(suppliers, patch, "supplier")


def update_supplier(principal: Principal, supplier_id: int, expected_version: int, payload: dict) -> Supplier:
    require_admin(principal, "manage suppliers")
    patch = validate_payload(model=Supplier, payload=payload, policy=SUPPLIER_POLICY, partial=True)
    enforce_rules_supplier(patch)
    return _update(suppliers, supplier_id, expected_version, patch, "supplier")


def delete_supplier(principal: Principal, supplier_id: int) -> None:
    require_admin(principal, "manage suppliers")
    _delete(suppliers, supplier_id, "supplier")


# Products

def list_products(query: str | None = None, category_id: int | None = None) -> list[dict]:
    return projection_service.enriched_products(projection_service.search_products(query, category_id))


def get_product(product_id: int) -> Product:
    return products.get(product_id)


def create_product(principal: Principal, payload: dict) -> Product:
    require_admin(principal, "manage products")
    payload = dict(payload or {})
    initial_stock = coerce_int(payload.pop("stock", 0), "stock")
    enforce_rules_product({"stock": initial_stock})

    patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_POLICY, partial=False)
    enforce_rules_product(patch)

    def _op():
        begin_write()
        _check_product_refs(patch)
        product = products.create({**patch, "stock": 0, "reserved": 0}, commit=False)
        if initial_stock:
            apply_adjust(
                product,
                initial_stock,
                product.version,
                actor_user_id=principal.user_id,
                note="Initial stock",
            )
        commit_changes("product")
        return product

    product = run_with_retry(_op, attempts=1, label="create_product")
    current_app.logger.info("Product %s created with stock %s", product.id, product.stock)
    return product


def update_product(principal: Principal, product_id: int, expected_version: int, payload: dict) -> Product:
    require_admin(principal, "manage products")
    patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_POLICY, partial=True)
    enforce_rules_product(patch)
    return _update(products, product_id, expected_version, patch, "product", check=_check_product_refs)


def delete_product(principal: Principal, product_id: int) -> None:
    """Ledger rows not tied to an order (restocks, corrections) go with the product."""
    require_admin(principal, "manage products")

    def _op():
        begin_write()
        product = products.get(product_id)
        if product.reserved:
            raise ReferentialConflictError(
                f"product {product_id} has reserved stock",
                details={"entity": "product", "id": product_id, "reserved": product.reserved},
            )
        db.session.query(InventoryMovement).filter(
            InventoryMovement.product_id == product_id,
            InventoryMovement.order_id.is_(None),
        ).delete(synchronize_session=False)
        products.delete(product_id, commit=True)

    run_with_retry(_op, attempts=1, label="delete_product")
    current_app.logger.info("Product %s deleted by user %s", product_id, principal.user_id)
