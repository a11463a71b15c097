# Overview: Pytest coverage for transaction payments and payment status transitions.

import pytest

from app.models import TransactionPayment
from app.services import transaction_service
from app.validation import ValidationError, ConflictError, NotFoundError


@pytest.fixture
def sale(db_session, company_a, user_a, product_a):
    """SALE totalling 2700 cents (3 x 1000 - 500 + 200)."""
    return transaction_service.create_transaction(
        company_id=company_a.id,
        user_id=user_a.id,
        type="SALE",
        items=[{"product_id": product_a.id, "quantity": 3, "unit_price_cents": 1000}],
        discount_cents=500,
        tax_cents=200,
    )


class TestAddPayment:

    def test_partial_then_paid(self, db_session, company_a, sale):
        first = transaction_service.add_payment(sale["id"], company_a.id, method="CASH", amount_cents=1000)

        assert first["amount_cents"] == 1000
        assert first["method"] == "CASH"
        fetched = transaction_service.get_transaction(sale["id"], company_a.id)
        assert fetched["payment_status"] == "PARTIAL"
        assert fetched["paid_at"] is None
        assert transaction_service.get_balance_due(sale["id"], company_a.id) == 1700

        transaction_service.add_payment(sale["id"], company_a.id, method="PIX", amount_cents=1700, reference="pix-42")

        fetched = transaction_service.get_transaction(sale["id"], company_a.id)
        assert fetched["payment_status"] == "PAID"
        assert fetched["paid_at"] is not None
        assert fetched["total_paid_cents"] == 2700
        assert transaction_service.get_balance_due(sale["id"], company_a.id) == 0

    def test_paid_transaction_rejects_further_payment(self, db_session, company_a, sale):
        transaction_service.add_payment(sale["id"], company_a.id, method="CREDIT_CARD", amount_cents=2700)

        with pytest.raises(ConflictError, match="already fully paid"):
            transaction_service.add_payment(sale["id"], company_a.id, method="CASH", amount_cents=1)

        assert db_session.query(TransactionPayment).count() == 1

    def test_paid_transaction_is_frozen(self, db_session, company_a, sale):
        transaction_service.add_payment(sale["id"], company_a.id, method="CASH", amount_cents=2700)

        with pytest.raises(ConflictError):
            transaction_service.update_transaction(sale["id"], company_a.id, {"notes": "x"})
        with pytest.raises(ConflictError):
            transaction_service.delete_transaction(sale["id"], company_a.id)

    def test_overpayment_accepted(self, db_session, company_a, sale):
        transaction_service.add_payment(sale["id"], company_a.id, method="CASH", amount_cents=5000)

        fetched = transaction_service.get_transaction(sale["id"], company_a.id)
        assert fetched["payment_status"] == "PAID"
        assert fetched["balance_due_cents"] == -2300

    def test_totals_helpers(self, db_session, company_a, sale):
        transaction_service.add_payment(sale["id"], company_a.id, method="DEBIT_CARD", amount_cents=700)
        transaction_service.add_payment(sale["id"], company_a.id, method="DEBIT_CARD", amount_cents=300)

        assert transaction_service.get_total_amount(sale["id"]) == 2700
        assert transaction_service.get_total_paid(sale["id"]) == 1000

    def test_total_helpers_for_unknown_transaction(self, db_session):
        assert transaction_service.get_total_amount(99999) == 0
        assert transaction_service.get_total_paid(99999) == 0

    @pytest.mark.parametrize("method,amount", [
        ("BITCOIN", 100),
        ("CASH", None),
        ("CASH", 0),
        ("CASH", -10),
        ("CASH", 12.5),
    ])
    def test_invalid_payment(self, db_session, company_a, sale, method, amount):
        with pytest.raises(ValidationError):
            transaction_service.add_payment(sale["id"], company_a.id, method=method, amount_cents=amount)

    def test_payment_on_other_company_transaction(self, db_session, company_b, sale):
        with pytest.raises(NotFoundError):
            transaction_service.add_payment(sale["id"], company_b.id, method="CASH", amount_cents=100)

    def test_payment_on_deleted_transaction(self, db_session, company_a, sale):
        transaction_service.delete_transaction(sale["id"], company_a.id)

        with pytest.raises(NotFoundError):
            transaction_service.add_payment(sale["id"], company_a.id, method="CASH", amount_cents=100)
