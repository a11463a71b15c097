from __future__ import annotations

from ..extensions import db
from app.time_utils import to_utc_z


class Customer(db.Model):
    """
    Customer master data; the counterparty of SALE and RETURN transactions.

    MULTI-TENANT: Customers are scoped to companies via company_id.
    """
    __tablename__ = "customers"
    __table_args__ = (
        db.Index("ix_customers_company_active", "company_id", "is_active"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    company_id = db.Column(db.Integer, db.ForeignKey("companies.id"), nullable=False, index=True)

    name = db.Column(db.String(255), nullable=False)
    document = db.Column(db.String(64), nullable=True)  # Tax id / registration number
    email = db.Column(db.String(255), nullable=True)
    phone = db.Column(db.String(32), nullable=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    company = db.relationship("Company", backref=db.backref("customers", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "company_id": self.company_id,
            "name": self.name,
            "document": self.document,
            "email": self.email,
            "phone": self.phone,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class Supplier(db.Model):
    """Supplier master data; the counterparty of PURCHASE transactions."""
    __tablename__ = "suppliers"
    __table_args__ = (
        db.Index("ix_suppliers_company_active", "company_id", "is_active"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    company_id = db.Column(db.Integer, db.ForeignKey("companies.id"), nullable=False, index=True)

    name = db.Column(db.String(255), nullable=False)
    document = db.Column(db.String(64), nullable=True)
    email = db.Column(db.String(255), nullable=True)
    phone = db.Column(db.String(32), nullable=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    company = db.relationship("Company", backref=db.backref("suppliers", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "company_id": self.company_id,
            "name": self.name,
            "document": self.document,
            "email": self.email,
            "phone": self.phone,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
