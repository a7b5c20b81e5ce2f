from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


LOCATION_TYPES = ("warehouse", "store", "supplier", "customer", "transit", "other")


def _num(value):
    return str(value) if value is not None else None


class Product(db.Model):
    """
    Catalog product, read-mostly from the ledger's point of view.

    The ledger only writes avg_cost and last_purchase_cost (on receipt and
    inbound transfer). min/max levels and stock_unit are owned externally
    and used for stock status and low-stock reporting.

    version_id guards avg_cost against lost updates when two locations
    receive the same product concurrently.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.UniqueConstraint("organization_id", "sku", name="uq_products_org_sku"),
        db.Index("ix_products_org_name", "organization_id", "name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    organization_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)

    sku = db.Column(db.String(64), nullable=False)
    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)
    status = db.Column(db.String(16), nullable=False, default="active")

    stock_unit = db.Column(db.String(32), nullable=False, default="unit")
    min_stock_level = db.Column(db.Numeric(14, 4), nullable=False, default=0)
    max_stock_level = db.Column(db.Numeric(14, 4), nullable=False, default=0)

    avg_cost = db.Column(db.Numeric(14, 4), nullable=False, default=0)
    last_purchase_cost = db.Column(db.Numeric(14, 4), nullable=False, default=0)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Product id={self.id} sku={self.sku!r} organization_id={self.organization_id}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "organization_id": self.organization_id,
            "sku": self.sku,
            "name": self.name,
            "description": self.description,
            "status": self.status,
            "stock_unit": self.stock_unit,
            "min_stock_level": _num(self.min_stock_level),
            "max_stock_level": _num(self.max_stock_level),
            "avg_cost": _num(self.avg_cost),
            "last_purchase_cost": _num(self.last_purchase_cost),
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class Location(db.Model):
    """Stock-holding place. Pure reference data for the ledger."""
    __tablename__ = "locations"
    __table_args__ = (
        db.UniqueConstraint("organization_id", "name", name="uq_locations_org_name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    organization_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)

    name = db.Column(db.String(255), nullable=False)
    # warehouse / store / supplier / customer / transit / other
    type = db.Column(db.String(16), nullable=False, default="warehouse")
    address = db.Column(db.String(255), nullable=True)
    description = db.Column(db.Text, nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def __repr__(self) -> str:
        return f"<Location id={self.id} name={self.name!r} type={self.type}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "organization_id": self.organization_id,
            "name": self.name,
            "type": self.type,
            "address": self.address,
            "description": self.description,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
        }
