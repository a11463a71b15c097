# Overview: Request scope decorator and domain-error translation for API routes.

from functools import wraps
from flask import request, jsonify, g

from .validation import NotFoundError, ConflictError
from .services.stock_service import get_company, get_user_for_company


def _header_int(name: str):
    raw = request.headers.get(name)
    if raw is None or not raw.strip():
        return None
    try:
        return int(raw)
    except ValueError:
        return None


def require_scope(f):
    """
    Establish tenant context from the upstream auth layer.

    MULTI-TENANT: Sets the following Flask g attributes:
    - g.company_id: Company every query in the request is scoped to
    - g.user_id: Acting user (belongs to g.company_id)

    Returns 401 if either header is missing or malformed, 404 if the company
    is unknown/inactive or the user is not part of it.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        company_id = _header_int("X-Company-Id")
        user_id = _header_int("X-User-Id")

        if company_id is None or user_id is None:
            return jsonify({"error": "X-Company-Id and X-User-Id headers are required"}), 401

        try:
            get_company(company_id)
            get_user_for_company(user_id, company_id)
        except NotFoundError as e:
            return jsonify({"error": str(e)}), 404

        g.company_id = company_id
        g.user_id = user_id

        return f(*args, **kwargs)

    return decorated_function


def error_response(exc: Exception):
    """Map a domain exception onto its JSON error body and status code."""
    if isinstance(exc, NotFoundError):
        return {"error": str(exc)}, 404
    if isinstance(exc, ConflictError):
        return {"error": str(exc)}, 409
    return {"error": str(exc)}, 400
