from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


TRANSACTION_TYPES = ("purchase", "sale", "adjustment", "transfer_in", "transfer_out", "return", "count")


def _num(value):
    return str(value) if value is not None else None


class Inventory(db.Model):
    """
    Cached stock position for one (product, location) pair.

    INVARIANT: current_stock == SUM(inventory_transactions.quantity) for the
    same pair. Only LedgerStore.apply_delta mutates the two counters.
    available_stock is derived, never stored.
    """
    __tablename__ = "inventories"
    __table_args__ = (
        db.UniqueConstraint("organization_id", "product_id", "location_id", name="uq_inventories_org_product_location"),
        db.Index("ix_inventories_org_location", "organization_id", "location_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    organization_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    location_id = db.Column(db.Integer, db.ForeignKey("locations.id"), nullable=False, index=True)

    current_stock = db.Column(db.Numeric(14, 4), nullable=False, default=0)
    committed_stock = db.Column(db.Numeric(14, 4), nullable=False, default=0)

    shelf_location = db.Column(db.String(64), nullable=True)
    last_count_date = db.Column(db.DateTime(timezone=True), nullable=True)

    created_by = db.Column(db.String(64), nullable=True)
    updated_by = db.Column(db.String(64), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    product = db.relationship("Product")
    location = db.relationship("Location")

    @property
    def available_stock(self):
        return self.current_stock - self.committed_stock

    @property
    def key(self) -> tuple[int, int, int]:
        return (self.organization_id, self.product_id, self.location_id)

    def __repr__(self) -> str:
        return (
            f"<Inventory product_id={self.product_id} location_id={self.location_id} "
            f"current={self.current_stock} committed={self.committed_stock}>"
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "organization_id": self.organization_id,
            "product_id": self.product_id,
            "location_id": self.location_id,
            "current_stock": _num(self.current_stock),
            "committed_stock": _num(self.committed_stock),
            "available_stock": _num(self.available_stock),
            "shelf_location": self.shelf_location,
            "last_count_date": to_utc_z(self.last_count_date),
            "updated_at": to_utc_z(self.updated_at),
        }


class InventoryTransaction(db.Model):
    """
    Append-only ledger record. Never updated or deleted once written.

    quantity is the signed delta applied to Inventory.current_stock.
    Variant-specific columns (reason, source/destination location) are only
    populated for the transaction types that carry them; see
    services/entries.py for the typed view.
    """
    __tablename__ = "inventory_transactions"
    __table_args__ = (
        db.Index("ix_invtx_org_product_location_created", "organization_id", "product_id", "location_id", "created_at"),
        db.Index("ix_invtx_org_reference", "organization_id", "reference_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    organization_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False)
    location_id = db.Column(db.Integer, db.ForeignKey("locations.id"), nullable=False)

    transaction_type = db.Column(db.String(16), nullable=False, index=True)
    quantity = db.Column(db.Numeric(14, 4), nullable=False)

    unit_cost = db.Column(db.Numeric(14, 4), nullable=True)
    total_cost = db.Column(db.Numeric(18, 4), nullable=True)

    reference_id = db.Column(db.String(128), nullable=True)
    reference_type = db.Column(db.String(64), nullable=True)

    # adjustment / count only
    reason = db.Column(db.String(32), nullable=True)

    # transfer legs only
    source_location_id = db.Column(db.Integer, db.ForeignKey("locations.id"), nullable=True)
    destination_location_id = db.Column(db.Integer, db.ForeignKey("locations.id"), nullable=True)

    notes = db.Column(db.String(500), nullable=True)
    created_by = db.Column(db.String(64), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, index=True)

    product = db.relationship("Product", foreign_keys=[product_id])
    location = db.relationship("Location", foreign_keys=[location_id])

    def __repr__(self) -> str:
        return (
            f"<InventoryTransaction id={self.id} type={self.transaction_type} "
            f"product_id={self.product_id} location_id={self.location_id} quantity={self.quantity}>"
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "organization_id": self.organization_id,
            "product_id": self.product_id,
            "location_id": self.location_id,
            "transaction_type": self.transaction_type,
            "quantity": _num(self.quantity),
            "unit_cost": _num(self.unit_cost),
            "total_cost": _num(self.total_cost),
            "reference_id": self.reference_id,
            "reference_type": self.reference_type,
            "reason": self.reason,
            "source_location_id": self.source_location_id,
            "destination_location_id": self.destination_location_id,
            "notes": self.notes,
            "created_by": self.created_by,
            "created_at": to_utc_z(self.created_at),
        }
