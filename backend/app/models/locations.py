from __future__ import annotations

from ..extensions import db
from app.time_utils import to_utc_z


class Location(db.Model):
    """
    Warehouse / zone / shelf / bin.

    MULTI-TENANT: Location codes are unique within a company, not globally.

    HIERARCHY: parent_id forms a tree. location_service walks the ancestor
    chain before every reparent so the tree stays acyclic.

    STOCK: current_stock is a location-level pool, independent of
    Product.current_stock. When capacity is set, current_stock <= capacity.
    """
    __tablename__ = "locations"
    __table_args__ = (
        db.UniqueConstraint("company_id", "code", name="uq_locations_company_code"),
        db.Index("ix_locations_company_type_name", "company_id", "type", "name"),
        db.CheckConstraint("current_stock >= 0", name="ck_locations_stock_non_negative"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    company_id = db.Column(db.Integer, db.ForeignKey("companies.id"), nullable=False, index=True)
    parent_id = db.Column(db.Integer, db.ForeignKey("locations.id"), nullable=True, index=True)

    name = db.Column(db.String(120), nullable=False)
    code = db.Column(db.String(32), nullable=False)
    type = db.Column(db.String(16), nullable=False, default="WAREHOUSE", index=True)
    description = db.Column(db.Text, nullable=True)

    address = db.Column(db.String(255), nullable=True)
    city = db.Column(db.String(120), nullable=True)
    state = db.Column(db.String(64), nullable=True)
    zip_code = db.Column(db.String(16), nullable=True)
    country = db.Column(db.String(64), nullable=True)

    current_stock = db.Column(db.Integer, nullable=False, default=0)
    capacity = db.Column(db.Integer, nullable=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    company = db.relationship("Company", backref=db.backref("locations", lazy=True))
    parent = db.relationship("Location", remote_side=[id], backref=db.backref("children", lazy=True))

    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Location id={self.id} code={self.code!r} stock={self.current_stock} company_id={self.company_id}>"

    @property
    def available_capacity(self) -> int | None:
        if self.capacity is None:
            return None
        return self.capacity - self.current_stock

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "company_id": self.company_id,
            "parent_id": self.parent_id,
            "name": self.name,
            "code": self.code,
            "type": self.type,
            "description": self.description,
            "address": self.address,
            "city": self.city,
            "state": self.state,
            "zip_code": self.zip_code,
            "country": self.country,
            "current_stock": self.current_stock,
            "capacity": self.capacity,
            "available_capacity": self.available_capacity,
            "is_active": self.is_active,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }

    def to_summary(self) -> dict:
        return {"id": self.id, "name": self.name, "code": self.code, "type": self.type}
