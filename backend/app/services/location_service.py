# Overview: Service-layer operations for locations; hierarchy maintenance, stats and stock transfers.

"""
Location Transfer Engine

A location holds a stock pool independent of product stock. Transfers move
units between two pools of the same company and leave one TRANSFER row in
the movement ledger.

Invariants:
- 0 <= current_stock <= capacity (when capacity is set)
- A transfer conserves the sum of both pools
- The parent chain is acyclic; a location is never its own ancestor
"""

from __future__ import annotations

from collections import Counter

from flask import current_app

from ..extensions import db
from ..models import Location, InventoryMovement, ProductBatch
from ..validation import (
    ModelValidationPolicy,
    ValidationError,
    NotFoundError,
    ConflictError,
    InsufficientStockError,
    CapacityExceededError,
    CircularReferenceError,
    validate_payload,
    enforce_rules_location,
    require_positive_int,
    require_choice,
)
from .concurrency import run_atomic
from .filters import LocationFilter, paginate
from .movement_service import record_movement, MOVEMENT_TRANSFER, REASON_TRANSFER
from .stock_service import (
    get_location_for_company,
    get_product_for_company,
    get_user_for_company,
    set_location_stock,
)


VALID_LOCATION_TYPES = {"WAREHOUSE", "ZONE", "AISLE", "SHELF", "BIN", "STORE", "OTHER"}

_EDITABLE_FIELDS = {
    "name",
    "code",
    "type",
    "description",
    "address",
    "city",
    "state",
    "zip_code",
    "country",
    "capacity",
    "is_active",
    "parent_id",
}

LOCATION_CREATE_POLICY = ModelValidationPolicy(
    writable_fields=_EDITABLE_FIELDS | {"current_stock"},
    required_on_create={"name", "code"},
)

LOCATION_UPDATE_POLICY = ModelValidationPolicy(writable_fields=_EDITABLE_FIELDS)


# =============================================================================
# HIERARCHY HELPERS
# =============================================================================

def _ensure_code_available(company_id: int, code: str, *, exclude_id: int | None = None) -> None:
    query = db.session.query(Location.id).filter(
        Location.company_id == company_id,
        Location.code == code,
    )
    if exclude_id is not None:
        query = query.filter(Location.id != exclude_id)
    if query.first() is not None:
        raise ConflictError(f"Location code {code} already exists")


def _validate_no_circular_reference(location_id: int, parent_id: int, company_id: int) -> None:
    """Walk up from the proposed parent; meeting location_id means a cycle."""
    visited = set()
    current_id = parent_id
    while current_id is not None:
        if current_id == location_id or current_id in visited:
            raise CircularReferenceError("Circular reference detected in location hierarchy")
        visited.add(current_id)
        current_id = (
            db.session.query(Location.parent_id)
            .filter(Location.id == current_id, Location.company_id == company_id)
            .scalar()
        )


def _resolve_parent(company_id: int, parent_id: int | None, *, location_id: int | None = None) -> Location | None:
    if parent_id is None:
        return None
    if location_id is not None and parent_id == location_id:
        raise ValidationError("Location cannot be its own parent")
    parent = get_location_for_company(parent_id, company_id, require_active=True, label="Parent location")
    if location_id is not None:
        _validate_no_circular_reference(location_id, parent_id, company_id)
    return parent


def _serialize_detail(location: Location) -> dict:
    return {
        **location.to_dict(),
        "parent": location.parent.to_summary() if location.parent else None,
        "children": [child.to_summary() for child in location.children],
    }


# =============================================================================
# READS
# =============================================================================

def get_location(location_id: int, company_id: int) -> dict:
    return _serialize_detail(get_location_for_company(location_id, company_id))


def list_locations(
    company_id: int,
    filters: LocationFilter | None = None,
    *,
    page: int | None = None,
    per_page: int | None = None,
) -> dict:
    query = db.session.query(Location).filter(Location.company_id == company_id)
    query = (filters or LocationFilter()).apply(query)
    query = query.order_by(Location.type.asc(), Location.name.asc(), Location.id.asc())
    return paginate(query, page=page, per_page=per_page, serialize=lambda loc: loc.to_dict())


def get_location_hierarchy(company_id: int) -> list[dict]:
    """Tree of active locations, roots first, children ordered by name."""
    rows = (
        db.session.query(Location)
        .filter(Location.company_id == company_id, Location.is_active.is_(True))
        .order_by(Location.name.asc(), Location.id.asc())
        .all()
    )

    nodes = {loc.id: {**loc.to_summary(), "current_stock": loc.current_stock, "capacity": loc.capacity, "children": []} for loc in rows}
    roots = []
    for loc in rows:
        if loc.parent_id is None:
            roots.append(nodes[loc.id])
        elif loc.parent_id in nodes:
            nodes[loc.parent_id]["children"].append(nodes[loc.id])
    return roots


def get_location_stats(company_id: int) -> dict:
    """
    Capacity and utilisation figures for the company's locations.

    Low/high stock lists only consider active locations with a positive
    capacity; thresholds come from LOCATION_LOW_STOCK_RATIO and
    LOCATION_HIGH_STOCK_RATIO.
    """
    low_ratio = float(current_app.config.get("LOCATION_LOW_STOCK_RATIO", 0.2))
    high_ratio = float(current_app.config.get("LOCATION_HIGH_STOCK_RATIO", 0.8))

    locations = db.session.query(Location).filter(Location.company_id == company_id).all()
    active = [loc for loc in locations if loc.is_active]

    total_capacity = sum(loc.capacity or 0 for loc in active)
    used_capacity = sum(loc.current_stock or 0 for loc in active if loc.capacity is not None)
    utilization = round(used_capacity / total_capacity * 100, 2) if total_capacity > 0 else 0.0

    low_stock = []
    high_stock = []
    for loc in active:
        if not loc.capacity:
            continue
        ratio = (loc.current_stock or 0) / loc.capacity
        if ratio < low_ratio:
            low_stock.append({**loc.to_summary(), "current_stock": loc.current_stock, "capacity": loc.capacity})
        elif ratio > high_ratio:
            high_stock.append({**loc.to_summary(), "current_stock": loc.current_stock, "capacity": loc.capacity})

    return {
        "total_locations": len(locations),
        "active_locations": len(active),
        "inactive_locations": len(locations) - len(active),
        "total_capacity": total_capacity,
        "used_capacity": used_capacity,
        "utilization_percent": utilization,
        "by_type": dict(Counter(loc.type for loc in locations)),
        "low_stock_locations": low_stock,
        "high_stock_locations": high_stock,
    }


# =============================================================================
# WRITES
# =============================================================================

def create_location(company_id: int, payload: dict) -> dict:
    """
    Create a location.

    Raises:
        ValidationError: Bad field, unknown type, negative capacity or stock
        ConflictError: Code already used in this company
        NotFoundError: Parent missing, inactive or out of scope
        CapacityExceededError: Opening stock above capacity
    """
    data = validate_payload(model=Location, payload=payload, policy=LOCATION_CREATE_POLICY, partial=False)
    enforce_rules_location(data)
    data.setdefault("type", "WAREHOUSE")
    require_choice(data["type"], "location type", VALID_LOCATION_TYPES)

    opening_stock = data.pop("current_stock", None) or 0
    if opening_stock < 0:
        raise ValidationError("current_stock must be >= 0")
    if data.get("capacity") is not None and opening_stock > data["capacity"]:
        raise CapacityExceededError("current_stock cannot exceed capacity")

    def _op():
        _ensure_code_available(company_id, data["code"])
        _resolve_parent(company_id, data.get("parent_id"))

        location = Location(company_id=company_id, current_stock=opening_stock, **data)
        db.session.add(location)
        db.session.flush()
        return location.id

    location_id = run_atomic(_op)
    return get_location(location_id, company_id)


def update_location(location_id: int, company_id: int, payload: dict) -> dict:
    """
    Patch location fields. current_stock is only changed by transfers.

    Raises:
        CapacityExceededError: New capacity below current stock
        CircularReferenceError: parent_id would create a cycle
    """
    patch = validate_payload(model=Location, payload=payload, policy=LOCATION_UPDATE_POLICY, partial=True)
    enforce_rules_location(patch)
    if "type" in patch:
        require_choice(patch["type"], "location type", VALID_LOCATION_TYPES)

    def _op():
        location = get_location_for_company(location_id, company_id, lock=True)

        if "code" in patch and patch["code"] != location.code:
            _ensure_code_available(company_id, patch["code"], exclude_id=location.id)
        if "parent_id" in patch:
            _resolve_parent(company_id, patch["parent_id"], location_id=location.id)
        if patch.get("capacity") is not None and patch["capacity"] < location.current_stock:
            raise CapacityExceededError(
                f"Capacity {patch['capacity']} is below current stock {location.current_stock}"
            )

        for key, value in patch.items():
            setattr(location, key, value)
        db.session.flush()
        return location.id

    run_atomic(_op)
    return get_location(location_id, company_id)


def move_location(location_id: int, company_id: int, new_parent_id: int | None) -> dict:
    """Reparent a location; None makes it a root."""
    if new_parent_id is not None:
        new_parent_id = require_positive_int(new_parent_id, "parent_id")

    def _op():
        location = get_location_for_company(location_id, company_id, lock=True)
        _resolve_parent(company_id, new_parent_id, location_id=location.id)
        location.parent_id = new_parent_id
        db.session.flush()
        return location.id

    run_atomic(_op)
    return get_location(location_id, company_id)


def delete_location(location_id: int, company_id: int) -> None:
    """
    Remove a location with no dependants.

    Raises:
        ConflictError: Children, product batches or movements reference it
    """
    def _op():
        location = get_location_for_company(location_id, company_id, lock=True)

        if db.session.query(Location.id).filter(Location.parent_id == location.id).first():
            raise ConflictError("Cannot delete location with child locations")
        if db.session.query(ProductBatch.id).filter(ProductBatch.location_id == location.id).first():
            raise ConflictError("Cannot delete location with product batches")
        referenced = db.session.query(InventoryMovement.id).filter(
            (InventoryMovement.from_location_id == location.id)
            | (InventoryMovement.to_location_id == location.id)
        ).first()
        if referenced:
            raise ConflictError("Cannot delete location with inventory movements")

        db.session.delete(location)
        db.session.flush()

    run_atomic(_op)


# =============================================================================
# TRANSFERS
# =============================================================================

def transfer_stock(
    *,
    company_id: int,
    user_id: int,
    from_location_id: int,
    to_location_id: int,
    quantity: int,
    reason: str | None = None,
    notes: str | None = None,
    product_id: int | None = None,
) -> dict:
    """
    Move units between two location pools of one company.

    Both rows are locked in ascending id order so two opposite transfers
    cannot deadlock. Stock and capacity are checked on the locked rows.

    Args:
        reason: Free-text reason, stored as the movement reference
        product_id: Optional product the units belong to (stock untouched)

    Returns:
        {"movement", "from_location", "to_location"}

    Raises:
        ValidationError: Same source and destination, or quantity < 1
        NotFoundError: Location missing, inactive or out of scope
        InsufficientStockError: Source holds fewer units than requested
        CapacityExceededError: Destination would exceed its capacity
    """
    quantity = require_positive_int(quantity, "quantity")
    from_location_id = require_positive_int(from_location_id, "from_location_id")
    to_location_id = require_positive_int(to_location_id, "to_location_id")
    if from_location_id == to_location_id:
        raise ValidationError("Source and destination locations must be different")

    def _op():
        get_user_for_company(user_id, company_id)
        if product_id is not None:
            get_product_for_company(product_id, company_id)

        labels = {from_location_id: "Source location", to_location_id: "Destination location"}
        locked = {}
        for location_id in sorted(labels):
            locked[location_id] = get_location_for_company(
                location_id,
                company_id,
                require_active=True,
                lock=True,
                label=labels[location_id],
            )
        source = locked[from_location_id]
        destination = locked[to_location_id]

        if source.current_stock < quantity:
            raise InsufficientStockError(
                f"Insufficient stock in source location. "
                f"Available: {source.current_stock}, requested: {quantity}"
            )
        if destination.capacity is not None and destination.current_stock + quantity > destination.capacity:
            raise CapacityExceededError(
                f"Destination location capacity exceeded. "
                f"Available capacity: {destination.available_capacity}, requested: {quantity}"
            )

        previous_stock = source.current_stock
        set_location_stock(source, previous_stock - quantity)
        set_location_stock(destination, destination.current_stock + quantity)

        movement = record_movement(
            company_id=company_id,
            user_id=user_id,
            product_id=product_id,
            movement_type=MOVEMENT_TRANSFER,
            reason=REASON_TRANSFER,
            quantity=quantity,
            previous_stock=previous_stock,
            new_stock=source.current_stock,
            reference=reason,
            notes=notes,
            from_location_id=source.id,
            to_location_id=destination.id,
        )
        return movement.id

    movement_id = run_atomic(_op)
    movement = db.session.get(InventoryMovement, movement_id)

    current_app.logger.info(
        "Location transfer %s: %s -> %s qty=%s company=%s",
        movement_id, from_location_id, to_location_id, quantity, company_id,
    )

    return {
        "movement": movement.to_dict(),
        "from_location": get_location(from_location_id, company_id),
        "to_location": get_location(to_location_id, company_id),
    }
