# Overview: Authoritative CRUD over persisted records with compare-and-swap updates.

"""
Entity Store

One EntityStore per persisted record type. It owns:
- existence checks (NotFoundError)
- natural-key uniqueness (DuplicateError)
- compare-and-swap updates keyed on the record's version
- referential checks on delete (ReferentialConflictError, never cascades)
- updated_at stamping; the version bump comes from SQLAlchemy's
  version_id_col on every UPDATE

Public update() honours each store's mutable-field allowlist. write() is the
privileged form used by the ledger and the order state machine to change
fields that clients may never patch (stock, reserved, status).

All methods run inside the caller's unit of work. commit=False flushes
instead of committing so several writes can be composed into one
transaction.
"""

from __future__ import annotations

from sqlalchemy import func

from ..extensions import db
from ..errors import DuplicateError, NotFoundError, ReferentialConflictError, ValidationError
from ..models import Category, Order, OrderItem, Product, SessionToken, Supplier, User
from ..time_utils import utcnow
from .concurrency import check_version, commit_changes, flush_changes


class EntityStore:
    def __init__(
        self,
        model,
        *,
        label: str,
        mutable_fields: set[str],
        unique_fields: tuple[str, ...] = (),
        references: tuple[tuple[type, str, str], ...] = (),
    ):
        self.model = model
        self.label = label
        self.mutable_fields = frozenset(mutable_fields)
        self.unique_fields = unique_fields
        # (referencing model, referencing column, human label)
        self.references = references

    def __repr__(self) -> str:
        return f"<EntityStore {self.label}>"

    def _finish(self, commit: bool) -> None:
        if commit:
            commit_changes(self.label)
        else:
            flush_changes(self.label)

    def _check_unique(self, values: dict, exclude_id: int | None = None) -> None:
        for field in self.unique_fields:
            value = values.get(field)
            if value is None:
                continue
            column = getattr(self.model, field)
            q = db.session.query(self.model.id)
            if isinstance(value, str):
                q = q.filter(func.lower(column) == value.lower())
            else:
                q = q.filter(column == value)
            if exclude_id is not None:
                q = q.filter(self.model.id != exclude_id)
            if q.first() is not None:
                raise DuplicateError(
                    f"{self.label} with this {field} already exists",
                    details={"entity": self.label, "field": field},
                )

    def get(self, entity_id: int):
        entity = db.session.get(self.model, entity_id)
        if entity is None:
            raise NotFoundError(
                f"{self.label} {entity_id} not found",
                details={"entity": self.label, "id": entity_id},
            )
        return entity

    def create(self, values: dict, *, commit: bool = True):
        self._check_unique(values)
        entity = self.model(**values)
        db.session.add(entity)
        self._finish(commit)
        return entity

    def update(self, entity_id: int, expected_version: int, patch: dict, *, commit: bool = True):
        """Client-facing compare-and-swap restricted to mutable fields."""
        blocked = sorted(set(patch) - self.mutable_fields)
        if blocked:
            raise ValidationError(
                f"Field not allowed: {', '.join(blocked)}",
                details={"entity": self.label, "fields": blocked},
            )
        entity = self.get(entity_id)
        return self.write(entity, expected_version, patch, commit=commit)

    def write(self, entity, expected_version: int, changes: dict, *, commit: bool = True):
        """Compare-and-swap on an entity already read in this unit of work."""
        check_version(entity, expected_version, self.label)
        self._check_unique(changes, exclude_id=entity.id)
        for key, value in changes.items():
            setattr(entity, key, value)
        # Always emit an UPDATE so the version moves even for a no-op patch
        entity.updated_at = utcnow()
        self._finish(commit)
        return entity

    def referencing_count(self, entity_id: int) -> dict[str, int]:
        counts = {}
        for ref_model, column, ref_label in self.references:
            n = db.session.query(func.count(ref_model.id)).filter(
                getattr(ref_model, column) == entity_id
            ).scalar()
            if n:
                counts[ref_label] = int(n)
        return counts

    def delete(self, entity_id: int, *, commit: bool = True) -> None:
        entity = self.get(entity_id)
        counts = self.referencing_count(entity_id)
        if counts:
            raise ReferentialConflictError(
                f"{self.label} {entity_id} is still referenced",
                details={"entity": self.label, "id": entity_id, "references": counts},
            )
        db.session.delete(entity)
        self._finish(commit)

    def list(self, filters: dict | None = None, sort: str | None = None, descending: bool = False):
        q = db.session.query(self.model)
        for key, value in (filters or {}).items():
            if value is None:
                continue
            if not hasattr(self.model, key):
                raise ValidationError(f"Unknown filter: {key}")
            q = q.filter(getattr(self.model, key) == value)

        sort_key = sort or "id"
        if not hasattr(self.model, sort_key):
            raise ValidationError(f"Unknown sort field: {sort_key}")
        column = getattr(self.model, sort_key)
        if descending:
            q = q.order_by(column.desc(), self.model.id.desc())
        else:
            q = q.order_by(column.asc(), self.model.id.asc())
        return q.all()


categories = EntityStore(
    Category,
    label="category",
    mutable_fields={"name", "description"},
    unique_fields=("name",),
    references=((Product, "category_id", "products"),),
)

suppliers = EntityStore(
    Supplier,
    label="supplier",
    mutable_fields={"name", "contact_person", "email", "phone", "address", "latitude", "longitude"},
    references=((Product, "supplier_id", "products"),),
)

products = EntityStore(
    Product,
    label="product",
    mutable_fields={"name", "description", "image_url", "price_cents", "category_id", "supplier_id"},
    references=((OrderItem, "product_id", "order_items"),),
)

orders = EntityStore(
    Order,
    label="order",
    mutable_fields={"shipping_address", "notes"},
)

users = EntityStore(
    User,
    label="user",
    mutable_fields={"name", "email", "role", "address", "phone", "is_active"},
    unique_fields=("email",),
    references=((Order, "customer_id", "orders"), (SessionToken, "user_id", "sessions")),
)
