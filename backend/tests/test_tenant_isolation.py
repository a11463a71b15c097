# Overview: Pytest coverage for tenant isolation behavior.

"""
Multi-Tenant Isolation Tests

SECURITY TESTS: Prove that cross-company access is denied for core resources.

These tests create two companies with their own users, products and
locations, then verify that:
1. Company A cannot read/write data in Company B
2. Passing a foreign id is reported exactly like a missing one (NotFound)
3. Lists and stats never include the other company's rows
"""

import pytest

from app.services import transaction_service, location_service, movement_service
from app.services.stock_service import (
    get_product_for_company,
    get_location_for_company,
    get_customer_for_company,
    get_user_for_company,
)
from app.validation import NotFoundError


def _sale(company, user, product, **kwargs):
    return transaction_service.create_transaction(
        company_id=company.id,
        user_id=user.id,
        type="SALE",
        items=[{"product_id": product.id, "quantity": 1, "unit_price_cents": 100}],
        **kwargs,
    )


class TestStockStoreScoping:

    def test_product_lookup(self, db_session, company_a, product_a, product_b):
        assert get_product_for_company(product_a.id, company_a.id).id == product_a.id
        with pytest.raises(NotFoundError, match=f"Product with ID {product_b.id} not found"):
            get_product_for_company(product_b.id, company_a.id)

    def test_location_lookup(self, db_session, company_a, company_b, make_location):
        foreign = make_location(company_b, "B-WH")
        with pytest.raises(NotFoundError):
            get_location_for_company(foreign.id, company_a.id)

    def test_customer_and_user_lookup(self, db_session, company_a, customer_b, user_b):
        with pytest.raises(NotFoundError):
            get_customer_for_company(customer_b.id, company_a.id)
        with pytest.raises(NotFoundError):
            get_user_for_company(user_b.id, company_a.id)


class TestTransactionIsolation:

    def test_foreign_product_rejected(self, db_session, company_a, user_a, product_b):
        with pytest.raises(NotFoundError):
            _sale(company_a, user_a, product_b)
        assert product_b.current_stock == 10

    def test_foreign_customer_rejected(self, db_session, company_a, user_a, product_a, customer_b):
        with pytest.raises(NotFoundError):
            _sale(company_a, user_a, product_a, customer_id=customer_b.id)

    def test_foreign_user_rejected(self, db_session, company_a, user_b, product_a):
        with pytest.raises(NotFoundError):
            _sale(company_a, user_b, product_a)
        assert product_a.current_stock == 10

    def test_cross_company_operations_not_found(self, db_session, company_a, company_b, user_a, product_a):
        sale = _sale(company_a, user_a, product_a)

        with pytest.raises(NotFoundError):
            transaction_service.get_transaction(sale["id"], company_b.id)
        with pytest.raises(NotFoundError):
            transaction_service.update_transaction(sale["id"], company_b.id, {"notes": "hijack"})
        with pytest.raises(NotFoundError):
            transaction_service.delete_transaction(sale["id"], company_b.id)
        with pytest.raises(NotFoundError):
            transaction_service.get_balance_due(sale["id"], company_b.id)

        assert product_a.current_stock == 9

    def test_lists_and_stats_are_scoped(self, db_session, company_a, company_b, user_a, user_b, product_a, product_b):
        _sale(company_a, user_a, product_a)
        _sale(company_b, user_b, product_b)
        _sale(company_b, user_b, product_b)

        assert transaction_service.list_transactions(company_a.id)["count"] == 1
        assert transaction_service.get_transaction_stats(company_b.id)["total_sales"] == 2
        assert movement_service.list_movements(company_a.id)["count"] == 1


class TestLocationIsolation:

    def test_cross_company_location_operations(self, db_session, company_a, company_b, make_location):
        mine = make_location(company_a, "MINE")
        theirs = make_location(company_b, "THEIRS")

        with pytest.raises(NotFoundError):
            location_service.get_location(theirs.id, company_a.id)
        with pytest.raises(NotFoundError):
            location_service.update_location(theirs.id, company_a.id, {"name": "x"})
        with pytest.raises(NotFoundError):
            location_service.move_location(mine.id, company_a.id, theirs.id)
        with pytest.raises(NotFoundError):
            location_service.delete_location(theirs.id, company_a.id)

        assert location_service.list_locations(company_a.id)["count"] == 1
        assert location_service.get_location_stats(company_a.id)["total_locations"] == 1
        assert [node["code"] for node in location_service.get_location_hierarchy(company_a.id)] == ["MINE"]
