# Overview: Flask API routes for reading the inventory movement ledger.

from flask import Blueprint, request, g

from ..decorators import require_scope, error_response
from ..services import movement_service
from ..services.filters import MovementFilter
from ..validation import NotFoundError, ValidationError

movements_bp = Blueprint("movements", __name__, url_prefix="/api/movements")


@movements_bp.get("")
@require_scope
def list_movements():
    """
    List ledger rows, newest first.

    Query params:
    - product_id, transaction_id, location_id (matches from or to), type, reason
    - date_from, date_to: ISO-8601
    - page / per_page (optional)
    """
    try:
        filters = MovementFilter.from_args(request.args)
    except ValidationError as e:
        return error_response(e)

    return movement_service.list_movements(
        g.company_id,
        filters,
        page=request.args.get("page", type=int),
        per_page=request.args.get("per_page", type=int),
    )


@movements_bp.get("/products/<int:product_id>/verify")
@require_scope
def verify_product_ledger(product_id: int):
    """Check a product's movement chain against its current stock."""
    try:
        return movement_service.verify_product_ledger(product_id, g.company_id)
    except NotFoundError as e:
        return error_response(e)
