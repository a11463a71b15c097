# Overview: Typed query filters for list endpoints, translated once into SQLAlchemy filters.

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from flask import current_app

from ..models import Transaction, Location, InventoryMovement
from ..validation import ValidationError
from app.time_utils import coerce_datetime


def _parse_optional_int(args, key: str) -> int | None:
    raw = args.get(key)
    if raw is None or raw == "":
        return None
    try:
        return int(raw)
    except (TypeError, ValueError):
        raise ValidationError(f"{key} must be an integer")


def _parse_optional_bool(args, key: str) -> bool | None:
    raw = args.get(key)
    if raw is None or raw == "":
        return None
    lowered = str(raw).strip().lower()
    if lowered in {"true", "1", "yes"}:
        return True
    if lowered in {"false", "0", "no"}:
        return False
    raise ValidationError(f"{key} must be a boolean")


def _parse_optional_datetime(args, key: str) -> datetime | None:
    try:
        return coerce_datetime(args.get(key) or None, key)
    except ValueError as exc:
        raise ValidationError(str(exc))


@dataclass(frozen=True)
class TransactionFilter:
    type: str | None = None
    status: str | None = None
    payment_status: str | None = None
    customer_id: int | None = None
    supplier_id: int | None = None
    date_from: datetime | None = None
    date_to: datetime | None = None

    @classmethod
    def from_args(cls, args) -> "TransactionFilter":
        return cls(
            type=args.get("type") or None,
            status=args.get("status") or None,
            payment_status=args.get("payment_status") or None,
            customer_id=_parse_optional_int(args, "customer_id"),
            supplier_id=_parse_optional_int(args, "supplier_id"),
            date_from=_parse_optional_datetime(args, "date_from"),
            date_to=_parse_optional_datetime(args, "date_to"),
        )

    def apply(self, query):
        if self.type:
            query = query.filter(Transaction.type == self.type)
        if self.status:
            query = query.filter(Transaction.status == self.status)
        if self.payment_status:
            query = query.filter(Transaction.payment_status == self.payment_status)
        if self.customer_id is not None:
            query = query.filter(Transaction.customer_id == self.customer_id)
        if self.supplier_id is not None:
            query = query.filter(Transaction.supplier_id == self.supplier_id)
        if self.date_from is not None:
            query = query.filter(Transaction.transaction_date >= self.date_from)
        if self.date_to is not None:
            query = query.filter(Transaction.transaction_date <= self.date_to)
        return query


@dataclass(frozen=True)
class LocationFilter:
    type: str | None = None
    is_active: bool | None = None
    parent_id: int | None = None
    search: str | None = None

    @classmethod
    def from_args(cls, args) -> "LocationFilter":
        return cls(
            type=args.get("type") or None,
            is_active=_parse_optional_bool(args, "is_active"),
            parent_id=_parse_optional_int(args, "parent_id"),
            search=(args.get("search") or "").strip() or None,
        )

    def apply(self, query):
        if self.type:
            query = query.filter(Location.type == self.type)
        if self.is_active is not None:
            query = query.filter(Location.is_active.is_(self.is_active))
        if self.parent_id is not None:
            query = query.filter(Location.parent_id == self.parent_id)
        if self.search:
            pattern = f"%{self.search}%"
            query = query.filter(Location.name.ilike(pattern) | Location.code.ilike(pattern))
        return query


@dataclass(frozen=True)
class MovementFilter:
    product_id: int | None = None
    transaction_id: int | None = None
    location_id: int | None = None
    type: str | None = None
    reason: str | None = None
    date_from: datetime | None = None
    date_to: datetime | None = None

    @classmethod
    def from_args(cls, args) -> "MovementFilter":
        return cls(
            product_id=_parse_optional_int(args, "product_id"),
            transaction_id=_parse_optional_int(args, "transaction_id"),
            location_id=_parse_optional_int(args, "location_id"),
            type=args.get("type") or None,
            reason=args.get("reason") or None,
            date_from=_parse_optional_datetime(args, "date_from"),
            date_to=_parse_optional_datetime(args, "date_to"),
        )

    def apply(self, query):
        if self.product_id is not None:
            query = query.filter(InventoryMovement.product_id == self.product_id)
        if self.transaction_id is not None:
            query = query.filter(InventoryMovement.transaction_id == self.transaction_id)
        if self.location_id is not None:
            query = query.filter(
                (InventoryMovement.from_location_id == self.location_id)
                | (InventoryMovement.to_location_id == self.location_id)
            )
        if self.type:
            query = query.filter(InventoryMovement.type == self.type)
        if self.reason:
            query = query.filter(InventoryMovement.reason == self.reason)
        if self.date_from is not None:
            query = query.filter(InventoryMovement.movement_date >= self.date_from)
        if self.date_to is not None:
            query = query.filter(InventoryMovement.movement_date <= self.date_to)
        return query


def paginate(query, *, page: int | None, per_page: int | None, serialize) -> dict:
    """
    Shared page envelope for list endpoints.

    page=None returns every row without pagination metadata.
    """
    if page is None:
        rows = query.all()
        return {
            "items": [serialize(row) for row in rows],
            "count": len(rows),
        }

    default_size = current_app.config.get("DEFAULT_PAGE_SIZE", 20)
    max_size = current_app.config.get("MAX_PAGE_SIZE", 100)
    per_page = max(1, min(per_page or default_size, max_size))
    page = max(page, 1)

    total = query.order_by(None).count()
    total_pages = (total + per_page - 1) // per_page if total > 0 else 1

    rows = query.offset((page - 1) * per_page).limit(per_page).all()

    return {
        "items": [serialize(row) for row in rows],
        "count": len(rows),
        "pagination": {
            "page": page,
            "per_page": per_page,
            "total": total,
            "total_pages": total_pages,
            "has_next": page < total_pages,
            "has_prev": page > 1,
        },
    }
