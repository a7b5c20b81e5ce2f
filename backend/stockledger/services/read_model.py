# Overview: Read-only projections over cached inventory rows and ledger history.

from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from sqlalchemy import func

from ..errors import NotFoundError, ValidationError
from ..models import Inventory, InventoryTransaction, Location, Product, TRANSACTION_TYPES
from ..time_utils import normalize_datetime, to_utc_z
from ..validation import quantize
from .ledger_store import LedgerStore

"""
Read model rules

- Never mutates anything; safe to call from reporting code.
- available_stock = current_stock - committed_stock.
- inventory_value = current_stock * product.avg_cost.
- as_of filters are inclusive: created_at <= as_of.
"""

STOCK_STATUS_IN_STOCK = "in_stock"
STOCK_STATUS_LOW = "low_stock"
STOCK_STATUS_OUT = "out_of_stock"
STOCK_STATUS_OVERSTOCKED = "overstocked"

LOW_STOCK_OUT = "out"
LOW_STOCK_CRITICAL = "critical"
LOW_STOCK_LOW = "low"

# critical when at or below this share of min_stock_level
CRITICAL_FRACTION = Decimal("0.25")

MAX_TRANSACTION_LIMIT = 1000


def _s(value) -> str | None:
    return str(value) if value is not None else None


def stock_status(current_stock, min_stock_level, max_stock_level) -> str:
    current = Decimal(current_stock or 0)
    min_level = Decimal(min_stock_level or 0)
    max_level = Decimal(max_stock_level or 0)
    if current <= 0:
        return STOCK_STATUS_OUT
    if current < min_level:
        return STOCK_STATUS_LOW
    if max_level > 0 and current > max_level:
        return STOCK_STATUS_OVERSTOCKED
    return STOCK_STATUS_IN_STOCK


def _projection(inv: Inventory, product: Product, location: Location) -> dict:
    current = Decimal(inv.current_stock)
    committed = Decimal(inv.committed_stock)
    avg_cost = Decimal(product.avg_cost or 0)
    return {
        "id": inv.id,
        "organization_id": inv.organization_id,
        "product_id": product.id,
        "product_name": product.name,
        "sku": product.sku,
        "location_id": location.id,
        "location_name": location.name,
        "current_stock": _s(current),
        "committed_stock": _s(committed),
        "available_stock": _s(current - committed),
        "avg_cost": _s(avg_cost),
        "inventory_value": _s(quantize(current * avg_cost)),
        "min_stock_level": _s(product.min_stock_level),
        "max_stock_level": _s(product.max_stock_level),
        "stock_unit": product.stock_unit,
        "shelf_location": inv.shelf_location,
        "last_count_date": to_utc_z(inv.last_count_date),
        "stock_status": stock_status(current, product.min_stock_level, product.max_stock_level),
    }


class InventoryReadModel:
    """Derived views for one organization."""

    def __init__(self, session, *, organization_id: int):
        self.session = session
        self.organization_id = organization_id

    def _rows(self, *, product_id: int | None = None, location_id: int | None = None):
        q = (
            self.session.query(Inventory, Product, Location)
            .join(Product, Product.id == Inventory.product_id)
            .join(Location, Location.id == Inventory.location_id)
            .filter(Inventory.organization_id == self.organization_id)
        )
        if product_id is not None:
            q = q.filter(Inventory.product_id == product_id)
        if location_id is not None:
            q = q.filter(Inventory.location_id == location_id)
        return q.order_by(Product.name, Location.name).all()

    def _product(self, product_id: int) -> Product:
        product = self.session.query(Product).filter_by(id=product_id, organization_id=self.organization_id).first()
        if product is None:
            raise NotFoundError(f"Product {product_id} not found", product_id=product_id)
        return product

    def _location(self, location_id: int) -> Location:
        location = self.session.query(Location).filter_by(id=location_id, organization_id=self.organization_id).first()
        if location is None:
            raise NotFoundError(f"Location {location_id} not found", location_id=location_id)
        return location

    # ------------------------------------------------------------------
    def available_inventory(self, *, product_id: int | None = None, location_id: int | None = None) -> list[dict]:
        return [_projection(inv, p, loc) for inv, p, loc in self._rows(product_id=product_id, location_id=location_id)]

    def get_inventory(self, *, product_id: int, location_id: int) -> dict:
        rows = self.available_inventory(product_id=product_id, location_id=location_id)
        if not rows:
            raise NotFoundError(
                f"No inventory record for product {product_id} at location {location_id}",
                product_id=product_id,
                location_id=location_id,
            )
        return rows[0]

    def low_stock_report(self, *, location_id: int | None = None) -> dict:
        """
        Items whose current stock is below the product's min_stock_level.

        Products with no min level configured are never reported.
        """
        items = []
        for inv, product, location in self._rows(location_id=location_id):
            min_level = Decimal(product.min_stock_level or 0)
            if min_level <= 0:
                continue
            current = Decimal(inv.current_stock)
            if current >= min_level:
                continue

            if current <= 0:
                severity = LOW_STOCK_OUT
            elif current <= min_level * CRITICAL_FRACTION:
                severity = LOW_STOCK_CRITICAL
            else:
                severity = LOW_STOCK_LOW

            row = _projection(inv, product, location)
            row.update({
                "deficit": _s(min_level - current),
                "reorder_quantity": _s(min_level),
                "severity": severity,
            })
            items.append(row)

        return {
            "items": items,
            "counts": {
                LOW_STOCK_OUT: sum(1 for i in items if i["severity"] == LOW_STOCK_OUT),
                LOW_STOCK_CRITICAL: sum(1 for i in items if i["severity"] == LOW_STOCK_CRITICAL),
                LOW_STOCK_LOW: sum(1 for i in items if i["severity"] == LOW_STOCK_LOW),
            },
        }

    def product_summary(self, product_id: int) -> dict:
        product = self._product(product_id)
        rows = self.available_inventory(product_id=product_id)
        current = sum((Decimal(r["current_stock"]) for r in rows), Decimal(0))
        committed = sum((Decimal(r["committed_stock"]) for r in rows), Decimal(0))
        value = sum((Decimal(r["inventory_value"]) for r in rows), Decimal(0))
        return {
            "product": product.to_dict(),
            "total_current_stock": _s(current),
            "total_committed_stock": _s(committed),
            "total_available_stock": _s(current - committed),
            "total_inventory_value": _s(value),
            "stock_status": stock_status(current, product.min_stock_level, product.max_stock_level),
            "locations": rows,
        }

    def location_summary(self, location_id: int) -> dict:
        location = self._location(location_id)
        rows = self.available_inventory(location_id=location_id)
        units = sum((Decimal(r["current_stock"]) for r in rows), Decimal(0))
        value = sum((Decimal(r["inventory_value"]) for r in rows), Decimal(0))
        return {
            "location": location.to_dict(),
            "product_count": len(rows),
            "total_units": _s(units),
            "total_inventory_value": _s(value),
            "low_stock_count": sum(1 for r in rows if r["stock_status"] in (STOCK_STATUS_LOW, STOCK_STATUS_OUT)),
            "items": rows,
        }

    def dashboard_summary(self) -> dict:
        product_count = self.session.query(func.count(Product.id)).filter_by(organization_id=self.organization_id).scalar()
        location_count = self.session.query(func.count(Location.id)).filter_by(organization_id=self.organization_id).scalar()
        rows = self.available_inventory()
        units = sum((Decimal(r["current_stock"]) for r in rows), Decimal(0))
        value = sum((Decimal(r["inventory_value"]) for r in rows), Decimal(0))
        low = self.low_stock_report()
        return {
            "total_products": int(product_count or 0),
            "total_locations": int(location_count or 0),
            "total_stock": _s(units),
            "total_inventory_value": _s(value),
            "low_stock_count": len(low["items"]),
        }

    def list_transactions(
        self,
        *,
        product_id: int | None = None,
        location_id: int | None = None,
        transaction_type: str | None = None,
        reference_id: str | None = None,
        created_from=None,
        created_to=None,
        limit: int = 200,
    ) -> list[InventoryTransaction]:
        """Newest first. created_from/created_to are inclusive bounds."""
        if transaction_type is not None and transaction_type not in TRANSACTION_TYPES:
            raise ValidationError(f"transaction_type must be one of: {', '.join(TRANSACTION_TYPES)}")
        if limit <= 0 or limit > MAX_TRANSACTION_LIMIT:
            raise ValidationError(f"limit must be between 1 and {MAX_TRANSACTION_LIMIT}")

        q = self.session.query(InventoryTransaction).filter(
            InventoryTransaction.organization_id == self.organization_id
        )
        if product_id is not None:
            q = q.filter(InventoryTransaction.product_id == product_id)
        if location_id is not None:
            q = q.filter(InventoryTransaction.location_id == location_id)
        if transaction_type is not None:
            q = q.filter(InventoryTransaction.transaction_type == transaction_type)
        if reference_id is not None:
            q = q.filter(InventoryTransaction.reference_id == reference_id)
        try:
            start = normalize_datetime(created_from)
            end = normalize_datetime(created_to)
        except ValueError:
            raise ValidationError("created_from/created_to must be ISO-8601 datetimes")
        if start is not None:
            q = q.filter(InventoryTransaction.created_at >= start)
        if end is not None:
            q = q.filter(InventoryTransaction.created_at <= end)

        return q.order_by(
            InventoryTransaction.created_at.desc(),
            InventoryTransaction.id.desc(),
        ).limit(limit).all()

    def stock_as_of(self, *, product_id: int, location_id: int, as_of: datetime | str | None = None) -> Decimal:
        """Ledger-derived quantity on hand at as_of (inclusive); now when as_of is None."""
        try:
            as_of_dt = normalize_datetime(as_of)
        except ValueError:
            raise ValidationError("as_of must be an ISO-8601 datetime")
        return LedgerStore(self.session).ledger_sum(
            organization_id=self.organization_id,
            product_id=product_id,
            location_id=location_id,
            as_of=as_of_dt,
        )
