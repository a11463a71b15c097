from __future__ import annotations

from ..extensions import db
from app.time_utils import to_utc_z

class Product(db.Model):
    """
    Product master data.

    MULTI-TENANT: Products are scoped to companies via company_id.
    SKUs are unique within a company.

    STOCK:
    current_stock is the on-hand projection of the inventory movement
    ledger. It is only written through movement_service.apply_product_movement,
    which appends the matching InventoryMovement in the same unit of work.
    version_id_col turns concurrent read-modify-write into StaleDataError.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.UniqueConstraint("company_id", "sku", name="uq_products_company_sku"),
        db.Index("ix_products_company_name", "company_id", "name"),
        db.Index("ix_products_company_active", "company_id", "is_active"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    company_id = db.Column(db.Integer, db.ForeignKey("companies.id"), nullable=False, index=True)

    sku = db.Column(db.String(64), nullable=False)
    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)

    # Authoritative storage in cents
    cost_price_cents = db.Column(db.Integer, nullable=True)
    selling_price_cents = db.Column(db.Integer, nullable=True)

    current_stock = db.Column(db.Integer, nullable=False, default=0)
    min_stock = db.Column(db.Integer, nullable=False, default=0)

    is_active = db.Column(db.Boolean, nullable=False, default=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    company = db.relationship("Company", backref=db.backref("products", lazy=True))
    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Product id={self.id} sku={self.sku!r} stock={self.current_stock} company_id={self.company_id}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "company_id": self.company_id,
            "sku": self.sku,
            "name": self.name,
            "description": self.description,
            "cost_price_cents": self.cost_price_cents,
            "selling_price_cents": self.selling_price_cents,
            "current_stock": self.current_stock,
            "min_stock": self.min_stock,
            "is_active": self.is_active,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }

    def to_summary(self) -> dict:
        return {"id": self.id, "sku": self.sku, "name": self.name}


class InventoryMovement(db.Model):
    """
    Append-only stock ledger row.

    One row per discrete stock change: one per transaction item, one per
    compensating reversal, one per location transfer. previous_stock and
    new_stock bracket the delta applied to the product (or, for transfers,
    to the source location). Rows are never updated or deleted.
    """
    __tablename__ = "inventory_movements"

    id = db.Column(db.Integer, primary_key=True)

    company_id = db.Column(db.Integer, db.ForeignKey("companies.id"), nullable=False, index=True)
    # Nullable: location-pool transfers may not track a product
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=True, index=True)

    type = db.Column(db.String(16), nullable=False, index=True)
    reason = db.Column(db.String(32), nullable=False, index=True)

    quantity = db.Column(db.Integer, nullable=False)
    previous_stock = db.Column(db.Integer, nullable=False)
    new_stock = db.Column(db.Integer, nullable=False)

    unit_cost_cents = db.Column(db.Integer, nullable=True)
    total_cost_cents = db.Column(db.Integer, nullable=True)

    reference = db.Column(db.String(128), nullable=True)
    notes = db.Column(db.String(500), nullable=True)

    transaction_id = db.Column(db.Integer, db.ForeignKey("transactions.id"), nullable=True, index=True)
    from_location_id = db.Column(db.Integer, db.ForeignKey("locations.id"), nullable=True, index=True)
    to_location_id = db.Column(db.Integer, db.ForeignKey("locations.id"), nullable=True, index=True)

    # Set on compensating rows written when a transaction is deleted
    reverses_movement_id = db.Column(
        db.Integer, db.ForeignKey("inventory_movements.id"), nullable=True, index=True
    )

    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    movement_date = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        index=True,
    )
    created_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
    )

    product = db.relationship("Product")
    transaction = db.relationship("Transaction", backref=db.backref("movements", lazy=True))
    from_location = db.relationship("Location", foreign_keys=[from_location_id])
    to_location = db.relationship("Location", foreign_keys=[to_location_id])

    __table_args__ = (
        db.Index("ix_invmov_company_product_id", "company_id", "product_id", "id"),
        db.Index("ix_invmov_company_reason_date", "company_id", "reason", "movement_date"),
        {"sqlite_autoincrement": True},
    )

    @property
    def stock_delta(self) -> int:
        return self.new_stock - self.previous_stock

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "company_id": self.company_id,
            "product_id": self.product_id,
            "type": self.type,
            "reason": self.reason,
            "quantity": self.quantity,
            "previous_stock": self.previous_stock,
            "new_stock": self.new_stock,
            "unit_cost_cents": self.unit_cost_cents,
            "total_cost_cents": self.total_cost_cents,
            "reference": self.reference,
            "notes": self.notes,
            "transaction_id": self.transaction_id,
            "from_location_id": self.from_location_id,
            "to_location_id": self.to_location_id,
            "reverses_movement_id": self.reverses_movement_id,
            "user_id": self.user_id,
            "movement_date": to_utc_z(self.movement_date),
            "created_at": to_utc_z(self.created_at),
        }


class ProductBatch(db.Model):
    """Lot of a product stored at a location (expiry / traceability)."""
    __tablename__ = "product_batches"
    __table_args__ = (
        db.UniqueConstraint("company_id", "product_id", "batch_number", name="uq_batches_company_product_number"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    company_id = db.Column(db.Integer, db.ForeignKey("companies.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    location_id = db.Column(db.Integer, db.ForeignKey("locations.id"), nullable=True, index=True)

    batch_number = db.Column(db.String(64), nullable=False)
    quantity = db.Column(db.Integer, nullable=False, default=0)
    expiration_date = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    product = db.relationship("Product", backref=db.backref("batches", lazy=True))
    location = db.relationship("Location", backref=db.backref("product_batches", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "company_id": self.company_id,
            "product_id": self.product_id,
            "location_id": self.location_id,
            "batch_number": self.batch_number,
            "quantity": self.quantity,
            "expiration_date": to_utc_z(self.expiration_date) if self.expiration_date else None,
            "created_at": to_utc_z(self.created_at),
        }
