# Overview: Service-layer operations for transactions; validation, totals, stock effects, reversal and payments.

"""
Transaction Engine

WHY: A sale, purchase or return is one commercial document whose creation
moves product stock. Header, items, stock changes and ledger rows must land
together or not at all, and deleting the document must put stock back.

DESIGN PRINCIPLES:
- Validate everything first (parties, products, amounts, stock), then mutate
- create/delete/add_payment each run as a single run_atomic unit of work
- Stock changes go through movement_service.apply_product_movement only,
  so every change has exactly one ledger row
- Totals are derived from items on demand, never stored
- Deletion is a soft delete plus compensating ledger rows (no history rewrite)
- Paid transactions are frozen: no update, delete or further payment
"""

from __future__ import annotations

from collections import Counter
from datetime import datetime

from flask import current_app
from sqlalchemy import func
from sqlalchemy.orm import selectinload

from ..extensions import db
from ..models import Transaction, TransactionItem, TransactionPayment
from ..validation import (
    ValidationError,
    NotFoundError,
    ConflictError,
    InsufficientStockError,
    require_amount_cents,
    require_positive_int,
    require_choice,
)
from app.time_utils import utcnow, coerce_datetime
from .concurrency import lock_for_update, run_atomic
from .filters import TransactionFilter, paginate
from .movement_service import (
    apply_product_movement,
    get_transaction_movements,
    INVERSE_MOVEMENT_TYPE,
    MOVEMENT_IN,
    MOVEMENT_OUT,
    MOVEMENT_ADJUSTMENT,
    REASON_SALE,
    REASON_PURCHASE,
    REASON_RETURN,
    REASON_ADJUSTMENT,
)
from .stock_service import (
    get_user_for_company,
    get_customer_for_company,
    get_supplier_for_company,
    get_product_for_company,
    get_products_for_company,
)


# =============================================================================
# TRANSACTION TYPES / STATUSES (CONSTANTS)
# =============================================================================

TYPE_SALE = "SALE"
TYPE_PURCHASE = "PURCHASE"
TYPE_RETURN = "RETURN"
TYPE_ADJUSTMENT = "ADJUSTMENT"
TYPE_TRANSFER = "TRANSFER"
TYPE_DAMAGE = "DAMAGE"
TYPE_EXPIRATION = "EXPIRATION"

VALID_TRANSACTION_TYPES = {
    TYPE_SALE,
    TYPE_PURCHASE,
    TYPE_RETURN,
    TYPE_ADJUSTMENT,
    TYPE_TRANSFER,
    TYPE_DAMAGE,
    TYPE_EXPIRATION,
}

STATUS_PENDING = "PENDING"
STATUS_CONFIRMED = "CONFIRMED"
STATUS_CANCELLED = "CANCELLED"
STATUS_REFUNDED = "REFUNDED"

VALID_STATUSES = {STATUS_PENDING, STATUS_CONFIRMED, STATUS_CANCELLED, STATUS_REFUNDED}

PAYMENT_STATUS_PENDING = "PENDING"
PAYMENT_STATUS_PARTIAL = "PARTIAL"
PAYMENT_STATUS_PAID = "PAID"
PAYMENT_STATUS_OVERDUE = "OVERDUE"
PAYMENT_STATUS_CANCELLED = "CANCELLED"

VALID_PAYMENT_STATUSES = {
    PAYMENT_STATUS_PENDING,
    PAYMENT_STATUS_PARTIAL,
    PAYMENT_STATUS_PAID,
    PAYMENT_STATUS_OVERDUE,
    PAYMENT_STATUS_CANCELLED,
}

VALID_PAYMENT_METHODS = {
    "CASH",
    "CREDIT_CARD",
    "DEBIT_CARD",
    "BANK_TRANSFER",
    "PIX",
    "CHECK",
    "OTHER",
}

# type -> (stock sign, movement type, movement reason); other types move no stock
INVENTORY_EFFECTS = {
    TYPE_SALE: (-1, MOVEMENT_OUT, REASON_SALE),
    TYPE_PURCHASE: (1, MOVEMENT_IN, REASON_PURCHASE),
    TYPE_RETURN: (1, MOVEMENT_IN, REASON_RETURN),
}

UPDATABLE_FIELDS = {
    "status",
    "payment_status",
    "customer_id",
    "supplier_id",
    "reference",
    "notes",
    "discount_cents",
    "tax_cents",
    "shipping_cost_cents",
    "transaction_date",
    "due_date",
}


# =============================================================================
# TOTALS
# =============================================================================

def _item_value(item, key: str) -> int:
    if isinstance(item, dict):
        return item.get(key) or 0
    return getattr(item, key, 0) or 0


def calculate_total(items, discount_cents: int = 0, tax_cents: int = 0, shipping_cost_cents: int = 0) -> int:
    """
    total = sum(quantity * unit_price - item discount)
            - discount + tax + shipping

    No floor is applied: a header discount larger than the subtotal yields
    a negative total.
    """
    subtotal = sum(
        _item_value(item, "quantity") * _item_value(item, "unit_price_cents")
        - _item_value(item, "discount_cents")
        for item in items
    )
    return subtotal - (discount_cents or 0) + (tax_cents or 0) + (shipping_cost_cents or 0)


def _transaction_total(txn: Transaction) -> int:
    return calculate_total(txn.items, txn.discount_cents, txn.tax_cents, txn.shipping_cost_cents)


def get_total_amount(transaction_id: int) -> int:
    txn = db.session.query(Transaction).filter_by(id=transaction_id).first()
    if txn is None:
        return 0
    return _transaction_total(txn)


def get_total_paid(transaction_id: int) -> int:
    total = db.session.query(
        func.coalesce(func.sum(TransactionPayment.amount_cents), 0)
    ).filter(TransactionPayment.transaction_id == transaction_id).scalar()
    return int(total or 0)


def get_balance_due(transaction_id: int, company_id: int) -> int:
    """Remaining amount in cents (negative when overpaid)."""
    txn = _get_transaction_row(transaction_id, company_id)
    return _transaction_total(txn) - get_total_paid(txn.id)


# =============================================================================
# READS
# =============================================================================

def _get_transaction_row(transaction_id: int, company_id: int, *, lock: bool = False) -> Transaction:
    query = db.session.query(Transaction).filter(
        Transaction.id == transaction_id,
        Transaction.company_id == company_id,
        Transaction.deleted_at.is_(None),
    )
    if lock:
        query = lock_for_update(query)
    txn = query.first()
    if txn is None:
        raise NotFoundError("Transaction not found")
    return txn


def serialize_transaction(txn: Transaction) -> dict:
    total = _transaction_total(txn)
    paid = sum(p.amount_cents for p in txn.payments)
    return {
        **txn.to_dict(),
        "customer": txn.customer.to_dict() if txn.customer else None,
        "supplier": txn.supplier.to_dict() if txn.supplier else None,
        "user": txn.user.to_dict() if txn.user else None,
        "items": [item.to_dict() for item in txn.items],
        "payments": [payment.to_dict() for payment in txn.payments],
        "subtotal_cents": calculate_total(txn.items),
        "total_amount_cents": total,
        "total_paid_cents": paid,
        "balance_due_cents": total - paid,
    }


def get_transaction(transaction_id: int, company_id: int) -> dict:
    """Hydrated transaction; NotFoundError if absent, deleted or out of scope."""
    return serialize_transaction(_get_transaction_row(transaction_id, company_id))


def list_transactions(
    company_id: int,
    filters: TransactionFilter | None = None,
    *,
    page: int | None = None,
    per_page: int | None = None,
) -> dict:
    query = db.session.query(Transaction).filter(
        Transaction.company_id == company_id,
        Transaction.deleted_at.is_(None),
    )
    query = (filters or TransactionFilter()).apply(query)
    query = query.options(
        selectinload(Transaction.items).selectinload(TransactionItem.product),
        selectinload(Transaction.payments),
    ).order_by(Transaction.transaction_date.desc(), Transaction.id.desc())
    return paginate(query, page=page, per_page=per_page, serialize=serialize_transaction)


# =============================================================================
# CREATE
# =============================================================================

def _normalize_items(items) -> list[dict]:
    if not items or not isinstance(items, (list, tuple)):
        raise ValidationError("At least one item is required")

    normalized = []
    for index, raw in enumerate(items):
        if not isinstance(raw, dict):
            raise ValidationError(f"items[{index}] must be an object")
        for key in ("product_id", "quantity", "unit_price_cents"):
            if raw.get(key) is None:
                raise ValidationError(f"items[{index}].{key} is required")
        normalized.append({
            "product_id": require_positive_int(raw["product_id"], f"items[{index}].product_id"),
            "quantity": require_positive_int(raw["quantity"], f"items[{index}].quantity"),
            "unit_price_cents": require_amount_cents(raw["unit_price_cents"], f"items[{index}].unit_price_cents"),
            "discount_cents": require_amount_cents(raw.get("discount_cents"), f"items[{index}].discount_cents"),
            "notes": raw.get("notes"),
        })
    return normalized


def _parse_date(value, field: str) -> datetime | None:
    try:
        return coerce_datetime(value, field)
    except ValueError as exc:
        raise ValidationError(str(exc))


def _check_sale_stock(items: list[dict], products: dict) -> None:
    """All-items stock check before any mutation (quantities summed per product)."""
    if current_app.config.get("ALLOW_NEGATIVE_STOCK", False):
        return
    requested = Counter()
    for item in items:
        requested[item["product_id"]] += item["quantity"]
    for product_id, quantity in requested.items():
        on_hand = products[product_id].current_stock or 0
        if on_hand < quantity:
            raise InsufficientStockError(
                f"Insufficient stock for product {product_id}. "
                f"On-hand: {on_hand}, requested: {quantity}"
            )


def _apply_inventory_effects(txn: Transaction, items: list[TransactionItem], user_id: int) -> None:
    effect = INVENTORY_EFFECTS.get(txn.type)
    if effect is None:
        return
    sign, movement_type, reason = effect

    # Sequential: each item reads the stock written by the previous one
    for item in items:
        product = get_product_for_company(item.product_id, txn.company_id, lock=True)
        apply_product_movement(
            product,
            delta=sign * item.quantity,
            movement_type=movement_type,
            reason=reason,
            user_id=user_id,
            unit_cost_cents=item.unit_price_cents,
            transaction_id=txn.id,
            reference=f"Transaction {txn.id}",
            notes=f"Transaction {txn.type.lower()}",
        )


def create_transaction(
    *,
    company_id: int,
    user_id: int,
    type: str,
    items,
    customer_id: int | None = None,
    supplier_id: int | None = None,
    status: str = STATUS_PENDING,
    payment_status: str | None = None,
    reference: str | None = None,
    notes: str | None = None,
    discount_cents: int | None = 0,
    tax_cents: int | None = 0,
    shipping_cost_cents: int | None = 0,
    transaction_date=None,
    due_date=None,
) -> dict:
    """
    Create a transaction with its items and apply its stock effects.

    Args:
        company_id: Tenant scope
        user_id: Acting user (must belong to the company)
        type: SALE, PURCHASE, RETURN, ADJUSTMENT, TRANSFER, DAMAGE, EXPIRATION
        items: [{"product_id", "quantity", "unit_price_cents", "discount_cents"?, "notes"?}]
        customer_id / supplier_id: Optional counterparties (validated in scope)

    Returns:
        Hydrated transaction dict (items, payments, parties, totals)

    Raises:
        ValidationError: Invalid argument
        NotFoundError: Missing customer, supplier, product or user
        InsufficientStockError: SALE quantity exceeds product stock
    """
    require_choice(type, "transaction type", VALID_TRANSACTION_TYPES)
    require_choice(status, "status", VALID_STATUSES)
    payment_status = payment_status or PAYMENT_STATUS_PENDING
    require_choice(payment_status, "payment status", VALID_PAYMENT_STATUSES)

    normalized = _normalize_items(items)
    if customer_id is not None:
        customer_id = require_positive_int(customer_id, "customer_id")
    if supplier_id is not None:
        supplier_id = require_positive_int(supplier_id, "supplier_id")
    discount_cents = require_amount_cents(discount_cents, "discount_cents")
    tax_cents = require_amount_cents(tax_cents, "tax_cents")
    shipping_cost_cents = require_amount_cents(shipping_cost_cents, "shipping_cost_cents")
    txn_date = _parse_date(transaction_date, "transaction_date") or utcnow()
    due = _parse_date(due_date, "due_date")

    def _op():
        get_user_for_company(user_id, company_id)
        if customer_id is not None:
            get_customer_for_company(customer_id, company_id)
        if supplier_id is not None:
            get_supplier_for_company(supplier_id, company_id)

        products = get_products_for_company([i["product_id"] for i in normalized], company_id)
        if type == TYPE_SALE:
            _check_sale_stock(normalized, products)

        txn = Transaction(
            company_id=company_id,
            type=type,
            status=status,
            payment_status=payment_status,
            customer_id=customer_id,
            supplier_id=supplier_id,
            user_id=user_id,
            reference=reference,
            notes=notes,
            discount_cents=discount_cents,
            tax_cents=tax_cents,
            shipping_cost_cents=shipping_cost_cents,
            transaction_date=txn_date,
            due_date=due,
            paid_at=utcnow() if payment_status == PAYMENT_STATUS_PAID else None,
        )
        db.session.add(txn)
        db.session.flush()  # Get ID

        created_items = []
        for item in normalized:
            row = TransactionItem(transaction_id=txn.id, **item)
            db.session.add(row)
            created_items.append(row)
        db.session.flush()

        _apply_inventory_effects(txn, created_items, user_id)
        return txn.id

    txn_id = run_atomic(_op)
    return get_transaction(txn_id, company_id)


# =============================================================================
# UPDATE / DELETE
# =============================================================================

def update_transaction(transaction_id: int, company_id: int, patch: dict) -> dict:
    """
    Update header fields. Items and stock effects are not touched.

    Raises:
        ConflictError: Transaction already PAID
        ValidationError: Unknown field or invalid value
        NotFoundError: Transaction, customer or supplier not in scope
    """
    patch = dict(patch or {})
    for key in patch:
        if key not in UPDATABLE_FIELDS:
            raise ValidationError(f"Field not allowed: {key}")

    if "status" in patch:
        require_choice(patch["status"], "status", VALID_STATUSES)
    if "payment_status" in patch:
        require_choice(patch["payment_status"], "payment status", VALID_PAYMENT_STATUSES)
    for field in ("discount_cents", "tax_cents", "shipping_cost_cents"):
        if field in patch:
            if patch[field] is None:
                raise ValidationError(f"{field} cannot be null")
            patch[field] = require_amount_cents(patch[field], field)
    for field in ("customer_id", "supplier_id"):
        if patch.get(field) is not None:
            patch[field] = require_positive_int(patch[field], field)
    if "transaction_date" in patch:
        patch["transaction_date"] = _parse_date(patch["transaction_date"], "transaction_date")
        if patch["transaction_date"] is None:
            raise ValidationError("transaction_date cannot be null")
    if "due_date" in patch:
        patch["due_date"] = _parse_date(patch["due_date"], "due_date")

    def _op():
        txn = _get_transaction_row(transaction_id, company_id, lock=True)
        if txn.payment_status == PAYMENT_STATUS_PAID:
            raise ConflictError("Cannot update completed transaction")

        if patch.get("customer_id") is not None:
            get_customer_for_company(patch["customer_id"], company_id)
        if patch.get("supplier_id") is not None:
            get_supplier_for_company(patch["supplier_id"], company_id)

        for key, value in patch.items():
            setattr(txn, key, value)

        if txn.payment_status == PAYMENT_STATUS_PAID and txn.paid_at is None:
            txn.paid_at = utcnow()

        db.session.flush()
        return txn.id

    txn_id = run_atomic(_op)
    return get_transaction(txn_id, company_id)


def _reverse_inventory_effects(txn: Transaction, user_id: int) -> list:
    """
    Append one compensating movement per original movement of the transaction.

    The inverse delta is taken from the original row's stock bracket, so the
    product ends where it would have been without the transaction.
    """
    reversals = []
    for movement in get_transaction_movements(txn.id, txn.company_id):
        if movement.product_id is None:
            continue
        product = get_product_for_company(movement.product_id, txn.company_id, lock=True)
        reversals.append(apply_product_movement(
            product,
            delta=-movement.stock_delta,
            movement_type=INVERSE_MOVEMENT_TYPE.get(movement.type, MOVEMENT_ADJUSTMENT),
            reason=REASON_ADJUSTMENT,
            user_id=user_id,
            unit_cost_cents=movement.unit_cost_cents,
            transaction_id=txn.id,
            reference=f"Reversal of transaction {txn.id}",
            notes=f"Reverses movement {movement.id}",
            reverses_movement_id=movement.id,
        ))
    return reversals


def delete_transaction(transaction_id: int, company_id: int, user_id: int | None = None) -> dict:
    """
    Soft-delete a transaction and reverse its stock effects.

    Items, payments and original movements stay in place; compensating
    movements are appended. A second call raises NotFoundError.

    Raises:
        ConflictError: Transaction already PAID
        InsufficientStockError: Reversal would drive stock negative
    """
    def _op():
        txn = _get_transaction_row(transaction_id, company_id, lock=True)
        if txn.payment_status == PAYMENT_STATUS_PAID:
            raise ConflictError("Cannot delete completed transaction")

        _reverse_inventory_effects(txn, user_id or txn.user_id)
        txn.deleted_at = utcnow()
        db.session.flush()
        return txn.id

    txn_id = run_atomic(_op)
    return db.session.get(Transaction, txn_id).to_dict()


# =============================================================================
# PAYMENTS
# =============================================================================

def _update_payment_status(txn: Transaction) -> None:
    total_paid = get_total_paid(txn.id)
    total_amount = _transaction_total(txn)

    if total_paid >= total_amount:
        txn.payment_status = PAYMENT_STATUS_PAID
        txn.paid_at = utcnow()
    elif total_paid > 0 and txn.payment_status == PAYMENT_STATUS_PENDING:
        txn.payment_status = PAYMENT_STATUS_PARTIAL


def add_payment(
    transaction_id: int,
    company_id: int,
    *,
    method: str,
    amount_cents: int,
    reference: str | None = None,
) -> dict:
    """
    Append a payment and flip the transaction to PAID once fully covered.

    Overpayment is accepted (paid >= total).

    Raises:
        ConflictError: Transaction already PAID
        ValidationError: Unknown method or invalid amount
    """
    require_choice(method, "payment method", VALID_PAYMENT_METHODS)
    if amount_cents is None:
        raise ValidationError("amount_cents is required")
    amount_cents = require_amount_cents(amount_cents, "amount_cents")
    if amount_cents == 0:
        raise ValidationError("amount_cents must be > 0")

    def _op():
        txn = _get_transaction_row(transaction_id, company_id, lock=True)
        if txn.payment_status == PAYMENT_STATUS_PAID:
            raise ConflictError("Transaction is already fully paid")

        payment = TransactionPayment(
            transaction_id=txn.id,
            method=method,
            amount_cents=amount_cents,
            reference=reference,
            processed_at=utcnow(),
        )
        db.session.add(payment)
        db.session.flush()

        _update_payment_status(txn)
        db.session.flush()
        return payment.id

    payment_id = run_atomic(_op)
    return db.session.get(TransactionPayment, payment_id).to_dict()


# =============================================================================
# STATISTICS
# =============================================================================

def get_transaction_stats(company_id: int, date_from=None, date_to=None) -> dict:
    """
    Counts and monetary totals over non-deleted transactions in the range.

    Totals are recomputed by walking every matching transaction's items.
    """
    filters = TransactionFilter(
        date_from=_parse_date(date_from, "date_from"),
        date_to=_parse_date(date_to, "date_to"),
    )
    query = db.session.query(Transaction).filter(
        Transaction.company_id == company_id,
        Transaction.deleted_at.is_(None),
    )
    transactions = filters.apply(query).options(selectinload(Transaction.items)).all()

    by_type = Counter()
    by_status = Counter()
    by_payment_status = Counter()
    amount_by_type = Counter()

    for txn in transactions:
        by_type[txn.type] += 1
        by_status[txn.status] += 1
        by_payment_status[txn.payment_status] += 1
        amount_by_type[txn.type] += _transaction_total(txn)

    sales_amount = amount_by_type[TYPE_SALE]
    purchases_amount = amount_by_type[TYPE_PURCHASE]

    return {
        "total_transactions": len(transactions),
        "total_sales": by_type[TYPE_SALE],
        "total_purchases": by_type[TYPE_PURCHASE],
        "total_returns": by_type[TYPE_RETURN],
        "pending_payments": by_payment_status[PAYMENT_STATUS_PENDING],
        "completed_transactions": by_payment_status[PAYMENT_STATUS_PAID],
        "by_type": dict(by_type),
        "by_status": dict(by_status),
        "by_payment_status": dict(by_payment_status),
        "sales_amount_cents": sales_amount,
        "purchases_amount_cents": purchases_amount,
        "returns_amount_cents": amount_by_type[TYPE_RETURN],
        "net_amount_cents": sales_amount - purchases_amount,
    }
