# Overview: Flask API routes for transactions; parses input and returns JSON responses.

"""
Transaction routes.

MULTI-TENANT: Every operation is scoped to g.company_id (set by
@require_scope). Transactions from other companies answer 404.
"""
from flask import Blueprint, request, g, current_app

from ..extensions import db
from ..decorators import require_scope, error_response
from ..services import transaction_service
from ..services.filters import TransactionFilter
from ..validation import NotFoundError, ConflictError

transactions_bp = Blueprint("transactions", __name__, url_prefix="/api/transactions")

_DOMAIN_ERRORS = (NotFoundError, ConflictError, ValueError)


@transactions_bp.get("")
@require_scope
def list_transactions():
    """
    List transactions, newest first.

    Query params:
    - type, status, payment_status, customer_id, supplier_id
    - date_from, date_to: ISO-8601
    - page: int (optional) - page number (1-indexed). If omitted, returns all items.
    - per_page: int (optional) - items per page (default 20, max 100)
    """
    try:
        filters = TransactionFilter.from_args(request.args)
        return transaction_service.list_transactions(
            g.company_id,
            filters,
            page=request.args.get("page", type=int),
            per_page=request.args.get("per_page", type=int),
        )
    except _DOMAIN_ERRORS as e:
        return error_response(e)


@transactions_bp.get("/stats")
@require_scope
def transaction_stats():
    try:
        return transaction_service.get_transaction_stats(
            g.company_id,
            date_from=request.args.get("date_from") or None,
            date_to=request.args.get("date_to") or None,
        )
    except _DOMAIN_ERRORS as e:
        return error_response(e)


@transactions_bp.post("")
@require_scope
def create_transaction():
    """
    Create a transaction and apply its stock effects.

    Request body:
    {
        "type": "SALE" | "PURCHASE" | "RETURN" | ...,
        "items": [{"product_id": int, "quantity": int, "unit_price_cents": int, "discount_cents": int?}],
        "customer_id": int?, "supplier_id": int?,
        "discount_cents": int?, "tax_cents": int?, "shipping_cost_cents": int?,
        "reference": str?, "notes": str?, "transaction_date": iso?, "due_date": iso?
    }

    Returns:
        201: Transaction created
        400: Invalid request
        404: Customer, supplier or product not found
        409: Insufficient stock
    """
    data = request.get_json(silent=True) or {}

    try:
        created = transaction_service.create_transaction(
            company_id=g.company_id,
            user_id=g.user_id,
            type=data.get("type"),
            items=data.get("items"),
            customer_id=data.get("customer_id"),
            supplier_id=data.get("supplier_id"),
            status=data.get("status") or transaction_service.STATUS_PENDING,
            payment_status=data.get("payment_status"),
            reference=data.get("reference"),
            notes=data.get("notes"),
            discount_cents=data.get("discount_cents"),
            tax_cents=data.get("tax_cents"),
            shipping_cost_cents=data.get("shipping_cost_cents"),
            transaction_date=data.get("transaction_date"),
            due_date=data.get("due_date"),
        )
    except _DOMAIN_ERRORS as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create transaction")
        db.session.rollback()
        return {"error": "Internal server error"}, 500

    return created, 201


@transactions_bp.get("/<int:transaction_id>")
@require_scope
def get_transaction(transaction_id: int):
    try:
        return transaction_service.get_transaction(transaction_id, g.company_id)
    except NotFoundError as e:
        return error_response(e)


@transactions_bp.patch("/<int:transaction_id>")
@require_scope
def update_transaction(transaction_id: int):
    """
    Update header fields of an unpaid transaction.

    Returns:
        200: Updated transaction
        400: Invalid field or value
        404: Not found
        409: Transaction already paid
    """
    payload = request.get_json(silent=True) or {}
    if not isinstance(payload, dict):
        return {"error": "Invalid JSON payload"}, 400

    try:
        return transaction_service.update_transaction(transaction_id, g.company_id, payload)
    except _DOMAIN_ERRORS as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update transaction %s", transaction_id)
        db.session.rollback()
        return {"error": "Internal server error"}, 500


@transactions_bp.delete("/<int:transaction_id>")
@require_scope
def delete_transaction(transaction_id: int):
    """
    Soft-delete a transaction and reverse its stock movements.

    Returns:
        200: Deleted transaction
        404: Not found (or already deleted)
        409: Transaction already paid, or reversal would make stock negative
    """
    try:
        deleted = transaction_service.delete_transaction(transaction_id, g.company_id, g.user_id)
    except _DOMAIN_ERRORS as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to delete transaction %s", transaction_id)
        db.session.rollback()
        return {"error": "Internal server error"}, 500

    return deleted, 200


@transactions_bp.post("/<int:transaction_id>/payments")
@require_scope
def add_payment(transaction_id: int):
    """
    Record a payment.

    Request body:
    {
        "method": "CASH" | "CREDIT_CARD" | "DEBIT_CARD" | "BANK_TRANSFER" | "PIX" | "CHECK" | "OTHER",
        "amount_cents": int,
        "reference": str (optional)
    }
    """
    data = request.get_json(silent=True) or {}

    try:
        payment = transaction_service.add_payment(
            transaction_id,
            g.company_id,
            method=data.get("method"),
            amount_cents=data.get("amount_cents"),
            reference=data.get("reference"),
        )
    except _DOMAIN_ERRORS as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to add payment to transaction %s", transaction_id)
        db.session.rollback()
        return {"error": "Internal server error"}, 500

    return payment, 201
