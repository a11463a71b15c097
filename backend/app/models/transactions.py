from __future__ import annotations

from ..extensions import db
from app.time_utils import to_utc_z


class Transaction(db.Model):
    """
    Commercial event (sale, purchase, return, ...) with line items and payments.

    TOTALS: the total is derived from items plus header discount/tax/shipping
    (transaction_service.calculate_total); it is never stored.

    SOFT DELETE: deleted_at marks a reversed transaction. Every read path
    filters deleted_at IS NULL; items, payments and movements are kept.
    """
    __tablename__ = "transactions"
    __table_args__ = (
        db.Index("ix_transactions_company_date", "company_id", "transaction_date"),
        db.Index("ix_transactions_company_type", "company_id", "type"),
        db.Index("ix_transactions_company_payment_status", "company_id", "payment_status"),
        db.CheckConstraint("discount_cents >= 0", name="ck_transactions_discount_non_negative"),
        db.CheckConstraint("tax_cents >= 0", name="ck_transactions_tax_non_negative"),
        db.CheckConstraint("shipping_cost_cents >= 0", name="ck_transactions_shipping_non_negative"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    company_id = db.Column(db.Integer, db.ForeignKey("companies.id"), nullable=False, index=True)

    type = db.Column(db.String(16), nullable=False)
    status = db.Column(db.String(16), nullable=False, default="PENDING", index=True)
    payment_status = db.Column(db.String(16), nullable=False, default="PENDING")

    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=True, index=True)
    supplier_id = db.Column(db.Integer, db.ForeignKey("suppliers.id"), nullable=True, index=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    reference = db.Column(db.String(128), nullable=True)
    notes = db.Column(db.Text, nullable=True)

    discount_cents = db.Column(db.Integer, nullable=False, default=0)
    tax_cents = db.Column(db.Integer, nullable=False, default=0)
    shipping_cost_cents = db.Column(db.Integer, nullable=False, default=0)

    transaction_date = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    due_date = db.Column(db.DateTime(timezone=True), nullable=True)
    paid_at = db.Column(db.DateTime(timezone=True), nullable=True)
    deleted_at = db.Column(db.DateTime(timezone=True), nullable=True, index=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    company = db.relationship("Company")
    customer = db.relationship("Customer")
    supplier = db.relationship("Supplier")
    user = db.relationship("User")
    items = db.relationship(
        "TransactionItem",
        backref="transaction",
        lazy=True,
        order_by="TransactionItem.id",
    )
    payments = db.relationship(
        "TransactionPayment",
        backref="transaction",
        lazy=True,
        order_by="TransactionPayment.id",
    )

    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Transaction id={self.id} type={self.type} payment_status={self.payment_status}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "company_id": self.company_id,
            "type": self.type,
            "status": self.status,
            "payment_status": self.payment_status,
            "customer_id": self.customer_id,
            "supplier_id": self.supplier_id,
            "user_id": self.user_id,
            "reference": self.reference,
            "notes": self.notes,
            "discount_cents": self.discount_cents,
            "tax_cents": self.tax_cents,
            "shipping_cost_cents": self.shipping_cost_cents,
            "transaction_date": to_utc_z(self.transaction_date),
            "due_date": to_utc_z(self.due_date) if self.due_date else None,
            "paid_at": to_utc_z(self.paid_at) if self.paid_at else None,
            "deleted_at": to_utc_z(self.deleted_at) if self.deleted_at else None,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class TransactionItem(db.Model):
    """Line item on a transaction. Immutable once the transaction is created."""
    __tablename__ = "transaction_items"
    __table_args__ = (
        db.CheckConstraint("quantity >= 1", name="ck_transaction_items_quantity_positive"),
        db.CheckConstraint("unit_price_cents >= 0", name="ck_transaction_items_price_non_negative"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    transaction_id = db.Column(db.Integer, db.ForeignKey("transactions.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    quantity = db.Column(db.Integer, nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)
    discount_cents = db.Column(db.Integer, nullable=False, default=0)
    notes = db.Column(db.String(255), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    product = db.relationship("Product")

    @property
    def line_total_cents(self) -> int:
        return self.quantity * self.unit_price_cents - (self.discount_cents or 0)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "transaction_id": self.transaction_id,
            "product_id": self.product_id,
            "product": self.product.to_summary() if self.product else None,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
            "discount_cents": self.discount_cents,
            "line_total_cents": self.line_total_cents,
            "notes": self.notes,
            "created_at": to_utc_z(self.created_at),
        }


class TransactionPayment(db.Model):
    """
    Payment applied to a transaction.

    Append-only: the sum of amounts decides when the parent flips to PAID.
    """
    __tablename__ = "transaction_payments"
    __table_args__ = (
        db.CheckConstraint("amount_cents >= 0", name="ck_transaction_payments_amount_non_negative"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    transaction_id = db.Column(db.Integer, db.ForeignKey("transactions.id"), nullable=False, index=True)

    method = db.Column(db.String(32), nullable=False)
    amount_cents = db.Column(db.Integer, nullable=False)
    reference = db.Column(db.String(128), nullable=True)

    processed_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "transaction_id": self.transaction_id,
            "method": self.method,
            "amount_cents": self.amount_cents,
            "reference": self.reference,
            "processed_at": to_utc_z(self.processed_at),
            "created_at": to_utc_z(self.created_at),
        }
