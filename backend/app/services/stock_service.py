# Overview: Company-scoped lookups for stock-bearing entities and their counterparties.

"""
Stock Ledger Store

Every lookup takes company_id explicitly. A row that exists in another
company is reported exactly like a missing row (NotFoundError), so callers
cannot probe other tenants.

Writers pass lock=True to take a row lock before read-modify-write on
current_stock. Product stock itself is only written through
movement_service.apply_product_movement; location stock through
set_location_stock.
"""

from __future__ import annotations

from ..extensions import db
from ..models import Product, Location, Customer, Supplier, User, Company
from ..validation import NotFoundError, CapacityExceededError, InsufficientStockError
from .concurrency import lock_for_update


def get_company(company_id: int) -> Company:
    company = db.session.query(Company).filter_by(id=company_id).first()
    if company is None or not company.is_active:
        raise NotFoundError("Company not found")
    return company


def get_user_for_company(user_id: int, company_id: int) -> User:
    user = db.session.query(User).filter_by(id=user_id, company_id=company_id).first()
    if user is None or not user.is_active:
        raise NotFoundError("User not found")
    return user


def get_product_for_company(product_id: int, company_id: int, *, lock: bool = False) -> Product:
    query = db.session.query(Product).filter_by(id=product_id, company_id=company_id)
    if lock:
        query = lock_for_update(query)
    product = query.first()
    if product is None:
        raise NotFoundError(f"Product with ID {product_id} not found")
    return product


def get_products_for_company(product_ids, company_id: int) -> dict[int, Product]:
    """Batch lookup; raises NotFoundError naming the first missing id."""
    wanted = list(dict.fromkeys(product_ids))
    if not wanted:
        return {}
    rows = (
        db.session.query(Product)
        .filter(Product.company_id == company_id, Product.id.in_(wanted))
        .all()
    )
    found = {p.id: p for p in rows}
    for product_id in wanted:
        if product_id not in found:
            raise NotFoundError(f"Product with ID {product_id} not found")
    return found


def get_customer_for_company(customer_id: int, company_id: int) -> Customer:
    customer = db.session.query(Customer).filter_by(id=customer_id, company_id=company_id).first()
    if customer is None:
        raise NotFoundError("Customer not found")
    return customer


def get_supplier_for_company(supplier_id: int, company_id: int) -> Supplier:
    supplier = db.session.query(Supplier).filter_by(id=supplier_id, company_id=company_id).first()
    if supplier is None:
        raise NotFoundError("Supplier not found")
    return supplier


def get_location_for_company(
    location_id: int,
    company_id: int,
    *,
    require_active: bool = False,
    lock: bool = False,
    label: str = "Location",
) -> Location:
    query = db.session.query(Location).filter_by(id=location_id, company_id=company_id)
    if lock:
        query = lock_for_update(query)
    location = query.first()
    if location is None:
        raise NotFoundError(f"{label} not found")
    if require_active and not location.is_active:
        raise NotFoundError(f"{label} not found or inactive")
    return location


def set_location_stock(location: Location, new_stock: int) -> Location:
    """
    Write a location's stock, enforcing 0 <= stock <= capacity.

    Caller holds the row lock and owns the unit of work.
    """
    if new_stock < 0:
        raise InsufficientStockError(
            f"Insufficient stock in location {location.code}. "
            f"On-hand: {location.current_stock}, requested: {location.current_stock - new_stock}"
        )
    if location.capacity is not None and new_stock > location.capacity:
        raise CapacityExceededError(
            f"Location {location.code} capacity {location.capacity} would be exceeded "
            f"(resulting stock {new_stock})"
        )
    location.current_stock = new_stock
    db.session.flush()
    return location
