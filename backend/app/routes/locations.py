# Overview: Flask API routes for locations and location stock transfers.

"""
Location routes.

MULTI-TENANT: All operations are scoped to g.company_id (set by
@require_scope). Locations in other companies answer 404.
"""
from flask import Blueprint, request, g, current_app

from ..extensions import db
from ..decorators import require_scope, error_response
from ..services import location_service
from ..services.filters import LocationFilter
from ..validation import NotFoundError, ConflictError

locations_bp = Blueprint("locations", __name__, url_prefix="/api/locations")

_DOMAIN_ERRORS = (NotFoundError, ConflictError, ValueError)


@locations_bp.get("")
@require_scope
def list_locations():
    """
    List locations.

    Query params:
    - type, is_active, parent_id
    - search: matches name or code
    - page / per_page (optional)
    """
    try:
        filters = LocationFilter.from_args(request.args)
        return location_service.list_locations(
            g.company_id,
            filters,
            page=request.args.get("page", type=int),
            per_page=request.args.get("per_page", type=int),
        )
    except _DOMAIN_ERRORS as e:
        return error_response(e)


@locations_bp.get("/hierarchy")
@require_scope
def location_hierarchy():
    return {"items": location_service.get_location_hierarchy(g.company_id)}


@locations_bp.get("/stats")
@require_scope
def location_stats():
    return location_service.get_location_stats(g.company_id)


@locations_bp.post("")
@require_scope
def create_location():
    payload = request.get_json(silent=True) or {}

    try:
        created = location_service.create_location(g.company_id, payload)
    except _DOMAIN_ERRORS as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create location")
        db.session.rollback()
        return {"error": "Internal server error"}, 500

    return created, 201


@locations_bp.get("/<int:location_id>")
@require_scope
def get_location(location_id: int):
    try:
        return location_service.get_location(location_id, g.company_id)
    except NotFoundError as e:
        return error_response(e)


@locations_bp.patch("/<int:location_id>")
@require_scope
def update_location(location_id: int):
    payload = request.get_json(silent=True) or {}

    try:
        return location_service.update_location(location_id, g.company_id, payload)
    except _DOMAIN_ERRORS as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update location %s", location_id)
        db.session.rollback()
        return {"error": "Internal server error"}, 500


@locations_bp.post("/<int:location_id>/move")
@require_scope
def move_location(location_id: int):
    """
    Reparent a location.

    Request body:
    {
        "parent_id": int | null  (null makes the location a root)
    }
    """
    data = request.get_json(silent=True) or {}
    if "parent_id" not in data:
        return {"error": "Missing required field: parent_id"}, 400

    try:
        return location_service.move_location(location_id, g.company_id, data["parent_id"])
    except _DOMAIN_ERRORS as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to move location %s", location_id)
        db.session.rollback()
        return {"error": "Internal server error"}, 500


@locations_bp.delete("/<int:location_id>")
@require_scope
def delete_location(location_id: int):
    try:
        location_service.delete_location(location_id, g.company_id)
    except _DOMAIN_ERRORS as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to delete location %s", location_id)
        db.session.rollback()
        return {"error": "Internal server error"}, 500

    return {"ok": True}, 200


@locations_bp.post("/transfer")
@require_scope
def transfer_stock():
    """
    Move stock between two locations.

    Request body:
    {
        "from_location_id": int,
        "to_location_id": int,
        "quantity": int,
        "product_id": int (optional),
        "reason": str (optional),
        "notes": str (optional)
    }

    Returns:
        201: {"movement", "from_location", "to_location"}
        400: Invalid request
        404: Location not found or inactive
        409: Insufficient stock or capacity exceeded
    """
    data = request.get_json(silent=True) or {}

    try:
        result = location_service.transfer_stock(
            company_id=g.company_id,
            user_id=g.user_id,
            from_location_id=data["from_location_id"],
            to_location_id=data["to_location_id"],
            quantity=data["quantity"],
            reason=data.get("reason"),
            notes=data.get("notes"),
            product_id=data.get("product_id"),
        )
    except KeyError as e:
        return {"error": f"Missing required field: {e}"}, 400
    except _DOMAIN_ERRORS as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to transfer stock")
        db.session.rollback()
        return {"error": "Internal server error"}, 500

    return result, 201
