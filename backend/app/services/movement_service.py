# Overview: Append-only inventory movement ledger and the single write path for product stock.

from __future__ import annotations

from flask import current_app

from ..extensions import db
from ..models import InventoryMovement, Product
from ..validation import InsufficientStockError
from .filters import MovementFilter, paginate
from .stock_service import get_product_for_company
from app.time_utils import utcnow
"""
Inventory Movement Ledger Invariants (authoritative)

- Append-only: rows are inserted, never updated or deleted. There is no
  update/delete function in this module.
- One row per discrete stock change.
- previous_stock / new_stock bracket the delta applied:
    IN  -> new_stock - previous_stock == +quantity
    OUT -> new_stock - previous_stock == -quantity
- Product.current_stock is a projection of the ledger: every write goes
  through apply_product_movement, which updates the product and appends the
  row in the caller's unit of work.
- TRANSFER rows describe location pools; their stock fields refer to the
  source location and they never move Product.current_stock.
"""


# Movement types
MOVEMENT_IN = "IN"
MOVEMENT_OUT = "OUT"
MOVEMENT_ADJUSTMENT = "ADJUSTMENT"
MOVEMENT_TRANSFER = "TRANSFER"

VALID_MOVEMENT_TYPES = {MOVEMENT_IN, MOVEMENT_OUT, MOVEMENT_ADJUSTMENT, MOVEMENT_TRANSFER}

# Movement reasons
REASON_PURCHASE = "PURCHASE"
REASON_SALE = "SALE"
REASON_RETURN = "RETURN"
REASON_DAMAGE = "DAMAGE"
REASON_EXPIRATION = "EXPIRATION"
REASON_THEFT = "THEFT"
REASON_ADJUSTMENT = "ADJUSTMENT"
REASON_TRANSFER = "TRANSFER"
REASON_PRODUCTION = "PRODUCTION"
REASON_CONSUMPTION = "CONSUMPTION"

VALID_MOVEMENT_REASONS = {
    REASON_PURCHASE,
    REASON_SALE,
    REASON_RETURN,
    REASON_DAMAGE,
    REASON_EXPIRATION,
    REASON_THEFT,
    REASON_ADJUSTMENT,
    REASON_TRANSFER,
    REASON_PRODUCTION,
    REASON_CONSUMPTION,
}

INVERSE_MOVEMENT_TYPE = {
    MOVEMENT_IN: MOVEMENT_OUT,
    MOVEMENT_OUT: MOVEMENT_IN,
}


def record_movement(
    *,
    company_id: int,
    user_id: int,
    movement_type: str,
    reason: str,
    quantity: int,
    previous_stock: int,
    new_stock: int,
    product_id: int | None = None,
    unit_cost_cents: int | None = None,
    total_cost_cents: int | None = None,
    reference: str | None = None,
    notes: str | None = None,
    transaction_id: int | None = None,
    from_location_id: int | None = None,
    to_location_id: int | None = None,
    reverses_movement_id: int | None = None,
) -> InventoryMovement:
    """
    Append one ledger row.

    - No commit here; the caller's unit of work owns the transaction.
    - No updates/deletes of existing rows.
    """
    if movement_type not in VALID_MOVEMENT_TYPES:
        raise ValueError(f"invalid movement type: {movement_type}")
    if reason not in VALID_MOVEMENT_REASONS:
        raise ValueError(f"invalid movement reason: {reason}")

    movement = InventoryMovement(
        company_id=company_id,
        product_id=product_id,
        type=movement_type,
        reason=reason,
        quantity=quantity,
        previous_stock=previous_stock,
        new_stock=new_stock,
        unit_cost_cents=unit_cost_cents,
        total_cost_cents=total_cost_cents,
        reference=reference,
        notes=notes,
        transaction_id=transaction_id,
        from_location_id=from_location_id,
        to_location_id=to_location_id,
        reverses_movement_id=reverses_movement_id,
        user_id=user_id,
        movement_date=utcnow(),
    )
    db.session.add(movement)
    db.session.flush()  # ensures movement.id is assigned without committing
    return movement


def apply_product_movement(
    product: Product,
    *,
    delta: int,
    movement_type: str,
    reason: str,
    user_id: int,
    unit_cost_cents: int | None = None,
    transaction_id: int | None = None,
    reference: str | None = None,
    notes: str | None = None,
    reverses_movement_id: int | None = None,
    allow_negative: bool | None = None,
) -> InventoryMovement:
    """
    Change a product's stock by delta and append the matching ledger row.

    The product must already be row-locked by the caller. previous_stock is
    read from the locked row, so consecutive calls in one unit of work chain
    correctly (item N sees the stock written by item N-1).
    """
    if allow_negative is None:
        allow_negative = bool(current_app.config.get("ALLOW_NEGATIVE_STOCK", False))

    previous_stock = product.current_stock or 0
    new_stock = previous_stock + delta

    if new_stock < 0 and not allow_negative:
        raise InsufficientStockError(
            f"Insufficient stock for product {product.id}. "
            f"On-hand: {previous_stock}, requested: {-delta}"
        )

    product.current_stock = new_stock
    db.session.flush()

    quantity = abs(delta)
    return record_movement(
        company_id=product.company_id,
        user_id=user_id,
        product_id=product.id,
        movement_type=movement_type,
        reason=reason,
        quantity=quantity,
        previous_stock=previous_stock,
        new_stock=new_stock,
        unit_cost_cents=unit_cost_cents,
        total_cost_cents=quantity * unit_cost_cents if unit_cost_cents is not None else None,
        reference=reference,
        notes=notes,
        transaction_id=transaction_id,
        reverses_movement_id=reverses_movement_id,
    )


def get_transaction_movements(transaction_id: int, company_id: int, *, include_reversals: bool = False) -> list[InventoryMovement]:
    query = db.session.query(InventoryMovement).filter(
        InventoryMovement.transaction_id == transaction_id,
        InventoryMovement.company_id == company_id,
    )
    if not include_reversals:
        query = query.filter(InventoryMovement.reverses_movement_id.is_(None))
    return query.order_by(InventoryMovement.id.asc()).all()


def list_movements(
    company_id: int,
    filters: MovementFilter | None = None,
    *,
    page: int | None = None,
    per_page: int | None = None,
) -> dict:
    query = db.session.query(InventoryMovement).filter(InventoryMovement.company_id == company_id)
    query = (filters or MovementFilter()).apply(query)
    query = query.order_by(InventoryMovement.movement_date.desc(), InventoryMovement.id.desc())
    return paginate(query, page=page, per_page=per_page, serialize=lambda m: m.to_dict())


def verify_product_ledger(product_id: int, company_id: int) -> dict:
    """
    Check that a product's stock history is a consistent chain.

    Reports:
    - rows whose delta does not match type/quantity
    - breaks where previous_stock != new_stock of the prior row
    - a final new_stock that differs from Product.current_stock

    Products created with an opening balance and no movements are
    considered consistent.
    """
    product = get_product_for_company(product_id, company_id)

    movements = (
        db.session.query(InventoryMovement)
        .filter(
            InventoryMovement.company_id == company_id,
            InventoryMovement.product_id == product_id,
            InventoryMovement.type != MOVEMENT_TRANSFER,
        )
        .order_by(InventoryMovement.id.asc())
        .all()
    )

    issues: list[dict] = []
    prior = None
    for movement in movements:
        delta = movement.stock_delta
        if movement.type == MOVEMENT_IN and delta != movement.quantity:
            issues.append({"movement_id": movement.id, "issue": "IN delta does not match quantity"})
        elif movement.type == MOVEMENT_OUT and delta != -movement.quantity:
            issues.append({"movement_id": movement.id, "issue": "OUT delta does not match quantity"})
        elif movement.type == MOVEMENT_ADJUSTMENT and abs(delta) != movement.quantity:
            issues.append({"movement_id": movement.id, "issue": "ADJUSTMENT delta does not match quantity"})

        if prior is not None and movement.previous_stock != prior.new_stock:
            issues.append({
                "movement_id": movement.id,
                "issue": f"chain break: previous_stock {movement.previous_stock} != prior new_stock {prior.new_stock}",
            })
        prior = movement

    ledger_stock = prior.new_stock if prior is not None else None
    if ledger_stock is not None and ledger_stock != product.current_stock:
        issues.append({
            "movement_id": prior.id,
            "issue": f"current_stock {product.current_stock} != ledger stock {ledger_stock}",
        })

    return {
        "product_id": product.id,
        "current_stock": product.current_stock,
        "ledger_stock": ledger_stock,
        "movement_count": len(movements),
        "ok": not issues,
        "issues": issues,
    }
