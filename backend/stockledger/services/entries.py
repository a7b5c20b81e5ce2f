"""
Typed ledger entries: one frozen dataclass per transaction_type.

Each variant carries only the fields that make sense for it, so a sale can
never be written with a transfer leg's location links and an adjustment
always states its reason. LedgerStore.append_transaction accepts an entry
and stores it as an InventoryTransaction row; entry_from_row rebuilds the
variant from a stored row.
"""
from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import ClassVar, Union

from ..errors import ValidationError
from ..models import InventoryTransaction


ADJUSTMENT_REASONS = ("count", "damage", "return", "loss", "correction", "other")


@dataclass(frozen=True, kw_only=True)
class _Entry:
    transaction_type: ClassVar[str] = ""

    product_id: int
    location_id: int
    quantity: Decimal
    reference_id: str | None = None
    reference_type: str | None = None
    notes: str | None = None

    def __post_init__(self):
        if self.quantity == 0:
            raise ValidationError(f"{self.transaction_type} entry quantity cannot be zero")

    @property
    def unit_cost(self) -> Decimal | None:
        return None

    def column_values(self) -> dict:
        return {}


@dataclass(frozen=True, kw_only=True)
class PurchaseEntry(_Entry):
    transaction_type: ClassVar[str] = "purchase"

    cost: Decimal

    def __post_init__(self):
        super().__post_init__()
        if self.quantity < 0:
            raise ValidationError("purchase quantity must be positive")

    @property
    def unit_cost(self) -> Decimal:
        return self.cost


@dataclass(frozen=True, kw_only=True)
class SaleEntry(_Entry):
    """quantity is negative; cost_at_sale snapshots avg_cost for COGS reporting."""
    transaction_type: ClassVar[str] = "sale"

    cost_at_sale: Decimal | None = None

    def __post_init__(self):
        super().__post_init__()
        if self.quantity > 0:
            raise ValidationError("sale quantity must be negative")

    @property
    def unit_cost(self) -> Decimal | None:
        return self.cost_at_sale


@dataclass(frozen=True, kw_only=True)
class AdjustmentEntry(_Entry):
    transaction_type: ClassVar[str] = "adjustment"

    reason: str
    valued_at: Decimal | None = None

    def __post_init__(self):
        super().__post_init__()
        if self.reason not in ADJUSTMENT_REASONS:
            raise ValidationError(f"reason must be one of: {', '.join(ADJUSTMENT_REASONS)}")

    @property
    def unit_cost(self) -> Decimal | None:
        return self.valued_at

    def column_values(self) -> dict:
        return {"reason": self.reason}


@dataclass(frozen=True, kw_only=True)
class CountEntry(_Entry):
    transaction_type: ClassVar[str] = "count"

    valued_at: Decimal | None = None

    @property
    def unit_cost(self) -> Decimal | None:
        return self.valued_at

    def column_values(self) -> dict:
        return {"reason": "count"}


@dataclass(frozen=True, kw_only=True)
class ReturnEntry(_Entry):
    transaction_type: ClassVar[str] = "return"

    valued_at: Decimal | None = None

    def __post_init__(self):
        super().__post_init__()
        if self.quantity < 0:
            raise ValidationError("return quantity must be positive")

    @property
    def unit_cost(self) -> Decimal | None:
        return self.valued_at


@dataclass(frozen=True, kw_only=True)
class TransferOutEntry(_Entry):
    transaction_type: ClassVar[str] = "transfer_out"

    destination_location_id: int
    cost: Decimal | None = None

    def __post_init__(self):
        super().__post_init__()
        if self.quantity > 0:
            raise ValidationError("transfer_out quantity must be negative")

    @property
    def unit_cost(self) -> Decimal | None:
        return self.cost

    def column_values(self) -> dict:
        return {"destination_location_id": self.destination_location_id}


@dataclass(frozen=True, kw_only=True)
class TransferInEntry(_Entry):
    transaction_type: ClassVar[str] = "transfer_in"

    source_location_id: int
    cost: Decimal | None = None

    def __post_init__(self):
        super().__post_init__()
        if self.quantity < 0:
            raise ValidationError("transfer_in quantity must be positive")

    @property
    def unit_cost(self) -> Decimal | None:
        return self.cost

    def column_values(self) -> dict:
        return {"source_location_id": self.source_location_id}


LedgerEntry = Union[
    PurchaseEntry,
    SaleEntry,
    AdjustmentEntry,
    CountEntry,
    ReturnEntry,
    TransferOutEntry,
    TransferInEntry,
]

ENTRY_TYPES: dict[str, type] = {
    cls.transaction_type: cls
    for cls in (PurchaseEntry, SaleEntry, AdjustmentEntry, CountEntry, ReturnEntry, TransferOutEntry, TransferInEntry)
}


def entry_from_row(row: InventoryTransaction) -> LedgerEntry:
    """Rebuild the typed entry for a stored transaction row."""
    cls = ENTRY_TYPES.get(row.transaction_type)
    if cls is None:
        raise ValueError(f"unknown transaction_type {row.transaction_type!r}")

    common = dict(
        product_id=row.product_id,
        location_id=row.location_id,
        quantity=row.quantity,
        reference_id=row.reference_id,
        reference_type=row.reference_type,
        notes=row.notes,
    )
    if cls is PurchaseEntry:
        return PurchaseEntry(cost=row.unit_cost, **common)
    if cls is SaleEntry:
        return SaleEntry(cost_at_sale=row.unit_cost, **common)
    if cls is AdjustmentEntry:
        return AdjustmentEntry(reason=row.reason, valued_at=row.unit_cost, **common)
    if cls is TransferOutEntry:
        return TransferOutEntry(destination_location_id=row.destination_location_id, cost=row.unit_cost, **common)
    if cls is TransferInEntry:
        return TransferInEntry(source_location_id=row.source_location_id, cost=row.unit_cost, **common)
    return cls(valued_at=row.unit_cost, **common)
