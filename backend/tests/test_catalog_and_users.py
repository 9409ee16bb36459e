"""
Catalog and user service tests.

Verifies:
- Catalog writes are admin-only and validated
- Initial stock is booked through the ledger
- Referential deletes are blocked
- Users referenced by orders are anonymised, not deleted
- Credential changes revoke sessions
"""

import pytest

from stockroom.errors import (
    DuplicateError,
    ForbiddenError,
    NotFoundError,
    ReferentialConflictError,
    ValidationError,
    VersionConflictError,
)
from stockroom.models import InventoryMovement, Product, SessionToken, User
from stockroom.services import auth_service, catalog_service, order_service, session_service, user_service


def _fresh(db_session, model, entity_id):
    db_session.expire_all()
    return db_session.get(model, entity_id)


class TestCatalog:

    def test_customer_cannot_create_product(self, db_session, shopper):
        with pytest.raises(ForbiddenError):
            catalog_service.create_product(shopper, {"name": "Nope", "price_cents": 1})

    def test_initial_stock_is_an_adjust_movement(self, db_session, widget):
        movements = db_session.query(InventoryMovement).filter_by(product_id=widget.id).all()
        assert [(m.movement_type, m.quantity, m.note) for m in movements] == [("ADJUST", 10, "Initial stock")]

    @pytest.mark.parametrize("payload", [
        {"name": "Cheap", "price_cents": -1},
        {"name": "Pricey", "price_cents": 1_000_000_000},
        {"name": "Negative", "price_cents": 1, "stock": -2},
        {"price_cents": 100},
        {"name": "Reserved", "price_cents": 1, "reserved": 4},
    ])
    def test_product_validation(self, db_session, admin, payload):
        with pytest.raises(ValidationError):
            catalog_service.create_product(admin, payload)

    def test_stock_is_not_patchable(self, db_session, admin, widget):
        with pytest.raises(ValidationError):
            catalog_service.update_product(admin, widget.id, widget.version, {"stock": 99})

    def test_update_product_checks_references(self, db_session, admin, widget):
        with pytest.raises(NotFoundError):
            catalog_service.update_product(admin, widget.id, widget.version, {"category_id": 424242})

    def test_update_product_conflict(self, db_session, admin, widget):
        stale = widget.version
        catalog_service.update_product(admin, widget.id, stale, {"name": "Widget Pro"})
        with pytest.raises(VersionConflictError):
            catalog_service.update_product(admin, widget.id, stale, {"name": "Widget Max"})
        assert _fresh(db_session, Product, widget.id).name == "Widget Pro"

    def test_supplier_coordinates(self, db_session, admin):
        with pytest.raises(ValidationError):
            catalog_service.create_supplier(admin, {"name": "Far Away", "latitude": 123.0})
        supplier = catalog_service.create_supplier(admin, {"name": "Near", "latitude": 51.5, "longitude": -0.12})
        assert supplier.latitude == 51.5

    def test_category_delete_blocked_while_in_use(self, db_session, admin):
        category = catalog_service.create_category(admin, {"name": "Garden"})
        catalog_service.create_product(admin, {"name": "Rake", "price_cents": 1500, "category_id": category.id})
        with pytest.raises(ReferentialConflictError):
            catalog_service.delete_category(admin, category.id)

    def test_duplicate_category(self, db_session, admin):
        catalog_service.create_category(admin, {"name": "Garden"})
        with pytest.raises(DuplicateError):
            catalog_service.create_category(admin, {"name": "GARDEN"})

    def test_product_with_order_history_cannot_be_deleted(self, db_session, admin, shopper, customer, widget):
        order = order_service.place_order(shopper, customer.id, [{"product_id": widget.id, "quantity": 1}])
        with pytest.raises(ReferentialConflictError):
            catalog_service.delete_product(admin, widget.id)

        order_service.cancel_order(shopper, order.id, order.version)
        with pytest.raises(ReferentialConflictError):
            catalog_service.delete_product(admin, widget.id)

    def test_unordered_product_is_deleted_with_its_restocks(self, db_session, admin, gadget):
        gadget_id = gadget.id
        catalog_service.delete_product(admin, gadget_id)
        assert _fresh(db_session, Product, gadget_id) is None
        assert db_session.query(InventoryMovement).filter_by(product_id=gadget_id).count() == 0


class TestUsers:

    def test_register_always_creates_customer(self, db_session):
        user = user_service.register({
            "name": "Eve", "email": "  EVE@Example.com ", "password": "TestPass123!",
        })
        assert user.role == "customer"
        assert user.email == "eve@example.com"

    def test_register_cannot_choose_role(self, db_session):
        with pytest.raises(ValidationError):
            user_service.register({"name": "Mallory", "email": "m@example.com", "password": "TestPass123!", "role": "admin"})

    def test_weak_password(self, db_session):
        with pytest.raises(auth_service.PasswordValidationError):
            user_service.register({"name": "Weak", "email": "weak@example.com", "password": "password"})

    def test_duplicate_email(self, db_session, customer):
        with pytest.raises(DuplicateError):
            user_service.register({"name": "Again", "email": customer.email.upper(), "password": "TestPass123!"})

    def test_customer_edits_self_but_not_role(self, db_session, shopper, customer):
        updated = user_service.update_user(shopper, customer.id, customer.version, {"phone": "555-0100"})
        assert updated.phone == "555-0100"

        with pytest.raises(ValidationError):
            user_service.update_user(shopper, customer.id, updated.version, {"role": "admin"})

    def test_customer_cannot_edit_others(self, db_session, shopper, other_customer):
        with pytest.raises(ForbiddenError):
            user_service.update_user(shopper, other_customer.id, other_customer.version, {"name": "X"})

    def test_admin_cannot_demote_self(self, db_session, admin, admin_user):
        with pytest.raises(ValidationError):
            user_service.update_user(admin, admin_user.id, admin_user.version, {"role": "customer"})

    def test_password_change_revokes_sessions(self, db_session, shopper, customer):
        _, token = session_service.create_session(customer.id)
        user_service.update_user(shopper, customer.id, _fresh(db_session, User, customer.id).version,
                                 {"password": "NewPass456!"})

        assert session_service.validate_session(token) is None
        assert auth_service.authenticate(customer.email, "NewPass456!") is not None

    def test_delete_user_without_orders(self, db_session, admin, other_customer):
        user_id = other_customer.id
        session_service.create_session(user_id)

        result = user_service.delete_user(admin, user_id)
        assert result == {"id": user_id, "deleted": True, "anonymized": False}
        assert _fresh(db_session, User, user_id) is None
        assert db_session.query(SessionToken).filter_by(user_id=user_id).count() == 0

    def test_delete_user_with_orders_anonymises(self, db_session, admin, shopper, customer, widget):
        order = order_service.place_order(shopper, customer.id, [{"product_id": widget.id, "quantity": 1}])
        _, token = session_service.create_session(customer.id)

        result = user_service.delete_user(admin, customer.id)
        assert result == {"id": customer.id, "deleted": False, "anonymized": True}

        user = _fresh(db_session, User, customer.id)
        assert user.name == "Deleted user"
        assert user.email == f"deleted-{customer.id}@invalid"
        assert user.address is None
        assert user.is_active is False
        assert user.deleted_at is not None
        assert session_service.validate_session(token) is None

        assert order_service.get_order(admin, order.id).customer_id == customer.id

    def test_admin_cannot_delete_self(self, db_session, admin):
        with pytest.raises(ValidationError):
            user_service.delete_user(admin, admin.user_id)

    def test_inactive_user_cannot_log_in(self, db_session, admin, customer):
        user_service.update_user(admin, customer.id, customer.version, {"is_active": False})
        assert auth_service.authenticate(customer.email, "TestPass123!") is None
