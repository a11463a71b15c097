# Overview: Pytest coverage for the movement ledger and its consistency check.

import pytest

from app.models import InventoryMovement
from app.services import movement_service, transaction_service
from app.services.filters import MovementFilter
from app.validation import InsufficientStockError, NotFoundError


def _sale(company, user, product, quantity):
    return transaction_service.create_transaction(
        company_id=company.id,
        user_id=user.id,
        type="SALE",
        items=[{"product_id": product.id, "quantity": quantity, "unit_price_cents": 100}],
    )


class TestApplyProductMovement:

    def test_brackets_delta(self, db_session, company_a, user_a, product_a):
        movement = movement_service.apply_product_movement(
            product_a,
            delta=-4,
            movement_type="OUT",
            reason="DAMAGE",
            user_id=user_a.id,
            unit_cost_cents=250,
        )
        db_session.commit()

        assert product_a.current_stock == 6
        assert (movement.previous_stock, movement.new_stock, movement.quantity) == (10, 6, 4)
        assert movement.total_cost_cents == 1000
        assert movement.stock_delta == -4

    def test_refuses_negative_stock(self, db_session, company_a, user_a, product_a):
        with pytest.raises(InsufficientStockError):
            movement_service.apply_product_movement(
                product_a, delta=-11, movement_type="OUT", reason="THEFT", user_id=user_a.id,
            )
        db_session.rollback()

        assert product_a.current_stock == 10
        assert db_session.query(InventoryMovement).count() == 0

    def test_rejects_unknown_type_and_reason(self, db_session, company_a, user_a):
        with pytest.raises(ValueError):
            movement_service.record_movement(
                company_id=company_a.id, user_id=user_a.id, movement_type="SIDEWAYS", reason="SALE",
                quantity=1, previous_stock=0, new_stock=1,
            )
        with pytest.raises(ValueError):
            movement_service.record_movement(
                company_id=company_a.id, user_id=user_a.id, movement_type="IN", reason="GIFT",
                quantity=1, previous_stock=0, new_stock=1,
            )

    def test_ledger_has_no_update_or_delete_api(self):
        public = {name for name in dir(movement_service) if not name.startswith("_")}
        assert not any(name.startswith(("update_", "delete_", "remove_")) for name in public)


class TestListMovements:

    def test_filters(self, db_session, company_a, company_b, user_a, user_b, product_a, product_b, make_product):
        other = make_product(company_a, "OTHER", stock=5)
        sale = _sale(company_a, user_a, product_a, 2)
        _sale(company_a, user_a, other, 1)
        _sale(company_b, user_b, product_b, 1)

        everything = movement_service.list_movements(company_a.id)
        assert everything["count"] == 2

        by_product = movement_service.list_movements(company_a.id, MovementFilter(product_id=product_a.id))
        assert [m["product_id"] for m in by_product["items"]] == [product_a.id]

        by_txn = movement_service.list_movements(company_a.id, MovementFilter(transaction_id=sale["id"]))
        assert by_txn["count"] == 1

        by_reason = movement_service.list_movements(company_a.id, MovementFilter(reason="PURCHASE"))
        assert by_reason["count"] == 0

    def test_location_filter_matches_both_sides(self, db_session, company_a, user_a, make_location):
        from app.services import location_service

        a = make_location(company_a, "A", stock=10)
        b = make_location(company_a, "B")
        c = make_location(company_a, "C")
        location_service.transfer_stock(company_id=company_a.id, user_id=user_a.id,
                                        from_location_id=a.id, to_location_id=b.id, quantity=3)
        location_service.transfer_stock(company_id=company_a.id, user_id=user_a.id,
                                        from_location_id=b.id, to_location_id=c.id, quantity=1)

        assert movement_service.list_movements(company_a.id, MovementFilter(location_id=b.id))["count"] == 2
        assert movement_service.list_movements(company_a.id, MovementFilter(location_id=a.id))["count"] == 1

    def test_paginated(self, db_session, company_a, user_a, product_a):
        for _ in range(3):
            _sale(company_a, user_a, product_a, 1)

        page = movement_service.list_movements(company_a.id, page=1, per_page=2)

        assert page["count"] == 2
        assert page["pagination"]["total"] == 3
        assert page["pagination"]["has_next"] is True

    def test_negative_page_size_clamped(self, db_session, company_a, user_a, product_a):
        for _ in range(2):
            _sale(company_a, user_a, product_a, 1)

        page = movement_service.list_movements(company_a.id, page=1, per_page=-1)

        assert page["count"] == 1
        assert page["pagination"]["per_page"] == 1
        assert page["pagination"]["total_pages"] == 2


class TestVerifyProductLedger:

    def test_consistent_history(self, db_session, company_a, user_a, product_a):
        sale = _sale(company_a, user_a, product_a, 3)
        _sale(company_a, user_a, product_a, 2)
        transaction_service.delete_transaction(sale["id"], company_a.id)

        report = movement_service.verify_product_ledger(product_a.id, company_a.id)

        assert report["ok"] is True
        assert report["issues"] == []
        assert report["movement_count"] == 3
        assert report["ledger_stock"] == report["current_stock"] == 8

    def test_no_movements_is_consistent(self, db_session, company_a, product_a):
        report = movement_service.verify_product_ledger(product_a.id, company_a.id)

        assert report["ok"] is True
        assert report["ledger_stock"] is None

    def test_detects_out_of_band_stock_write(self, db_session, company_a, user_a, product_a):
        _sale(company_a, user_a, product_a, 3)
        product_a.current_stock = 99
        db_session.commit()

        report = movement_service.verify_product_ledger(product_a.id, company_a.id)

        assert report["ok"] is False
        assert "current_stock 99" in report["issues"][0]["issue"]

    def test_detects_chain_break(self, db_session, company_a, user_a, product_a):
        _sale(company_a, user_a, product_a, 3)
        movement_service.record_movement(
            company_id=company_a.id, user_id=user_a.id, product_id=product_a.id,
            movement_type="OUT", reason="DAMAGE", quantity=1, previous_stock=5, new_stock=4,
        )
        product_a.current_stock = 4
        db_session.commit()

        report = movement_service.verify_product_ledger(product_a.id, company_a.id)

        assert report["ok"] is False
        assert any("chain break" in issue["issue"] for issue in report["issues"])

    def test_unknown_product(self, db_session, company_a, product_b):
        with pytest.raises(NotFoundError):
            movement_service.verify_product_ledger(product_b.id, company_a.id)
