# Overview: Append-only transaction storage plus the cached Inventory row per (product, location).

from __future__ import annotations

import logging
from contextlib import contextmanager
from datetime import datetime
from decimal import Decimal
from typing import Iterable, Iterator

from sqlalchemy import func
from sqlalchemy import exc as sa_exc

from ..errors import ConcurrencyTimeoutError, IntegrityError
from ..models import Inventory, InventoryTransaction
from ..time_utils import utcnow
from ..validation import quantize
from .concurrency import lock_for_update
from .costing import extended_cost
from .entries import LedgerEntry

logger = logging.getLogger(__name__)

"""
Ledger Store invariants (authoritative)

- inventory_transactions is append-only: rows are inserted, never updated or deleted.
- Inventory.current_stock == SUM(quantity) over the pair's transactions, always.
- apply_delta() is the single mutation point for current_stock/committed_stock.
- A transaction append and its apply_delta() belong to one unit_of_work(): both
  are committed together or both are rolled back.
- created_at is assigned here (system time), so as-of reads are reproducible.
"""


class LedgerStore:
    """
    Repository over one SQLAlchemy session.

    Injected into StockOperations; nothing in here reaches for a global
    session, so tests can hand in any session they like.
    """

    def __init__(self, session):
        self.session = session

    # ------------------------------------------------------------------
    # Unit of work
    # ------------------------------------------------------------------
    @contextmanager
    def unit_of_work(self) -> Iterator["LedgerStore"]:
        """Commit on success; roll back on any exception and re-raise it."""
        try:
            yield self
            self.session.commit()
        except Exception:
            self.session.rollback()
            raise

    # ------------------------------------------------------------------
    # Transactions
    # ------------------------------------------------------------------
    def append_transaction(
        self,
        entry: LedgerEntry,
        *,
        organization_id: int,
        created_by: str | None = None,
        created_at: datetime | None = None,
    ) -> InventoryTransaction:
        """Insert one immutable ledger record and return it with id and timestamp assigned."""
        unit_cost = entry.unit_cost
        tx = InventoryTransaction(
            organization_id=organization_id,
            product_id=entry.product_id,
            location_id=entry.location_id,
            transaction_type=entry.transaction_type,
            quantity=entry.quantity,
            unit_cost=unit_cost,
            total_cost=extended_cost(entry.quantity, unit_cost),
            reference_id=entry.reference_id,
            reference_type=entry.reference_type,
            notes=entry.notes,
            created_by=created_by,
            created_at=created_at or utcnow(),
            **entry.column_values(),
        )
        self.session.add(tx)
        self.session.flush()
        return tx

    def find_by_reference(
        self,
        *,
        organization_id: int,
        product_id: int,
        location_id: int,
        transaction_type: str,
        reference_id: str,
    ) -> list[InventoryTransaction]:
        return (
            self.session.query(InventoryTransaction)
            .filter_by(
                organization_id=organization_id,
                product_id=product_id,
                location_id=location_id,
                transaction_type=transaction_type,
                reference_id=reference_id,
            )
            .order_by(InventoryTransaction.id)
            .all()
        )

    def ledger_sum(
        self,
        *,
        organization_id: int,
        product_id: int,
        location_id: int,
        as_of: datetime | None = None,
    ) -> Decimal:
        """SUM(quantity) for the pair, optionally inclusive as-of created_at."""
        q = self.session.query(
            func.coalesce(func.sum(InventoryTransaction.quantity), 0)
        ).filter(
            InventoryTransaction.organization_id == organization_id,
            InventoryTransaction.product_id == product_id,
            InventoryTransaction.location_id == location_id,
        )
        if as_of is not None:
            q = q.filter(InventoryTransaction.created_at <= as_of)
        return quantize(Decimal(str(q.scalar() or 0)))

    # ------------------------------------------------------------------
    # Cached rows
    # ------------------------------------------------------------------
    def product_on_hand(self, *, organization_id: int, product_id: int) -> Decimal:
        """Positive current_stock summed over every location; the weight behind avg_cost."""
        total = (
            self.session.query(func.coalesce(func.sum(Inventory.current_stock), 0))
            .filter(
                Inventory.organization_id == organization_id,
                Inventory.product_id == product_id,
                Inventory.current_stock > 0,
            )
            .scalar()
        )
        return quantize(Decimal(str(total or 0)))

    def get_inventory_row(
        self,
        *,
        organization_id: int,
        product_id: int,
        location_id: int,
        lock: bool = False,
    ) -> Inventory | None:
        query = self.session.query(Inventory).filter_by(
            organization_id=organization_id,
            product_id=product_id,
            location_id=location_id,
        )
        if lock:
            query = lock_for_update(query)
        return query.first()

    def get_or_create_inventory_row(
        self,
        *,
        organization_id: int,
        product_id: int,
        location_id: int,
        created_by: str | None = None,
        lock: bool = True,
    ) -> Inventory:
        """Return the cached row, creating a zeroed one if none exists."""
        row = self.get_inventory_row(
            organization_id=organization_id,
            product_id=product_id,
            location_id=location_id,
            lock=lock,
        )
        if row is not None:
            return row

        row = Inventory(
            organization_id=organization_id,
            product_id=product_id,
            location_id=location_id,
            current_stock=Decimal(0),
            committed_stock=Decimal(0),
            created_by=created_by,
            updated_by=created_by,
        )
        self.session.add(row)
        try:
            self.session.flush()
        except sa_exc.IntegrityError as exc:
            # Another writer created the row between our read and insert
            raise ConcurrencyTimeoutError(
                "inventory row was created concurrently; retry the operation",
                product_id=product_id,
                location_id=location_id,
            ) from exc
        logger.debug("Created inventory row for product=%s location=%s", product_id, location_id)
        return row

    def apply_delta(
        self,
        row: Inventory,
        delta_current: Decimal,
        delta_committed: Decimal,
        *,
        updated_by: str | None = None,
    ) -> Inventory:
        """
        Update both cached counters of one row.

        Callers validate business rules first; a committed_stock that would
        go negative here means the caller broke that contract.
        """
        new_current = quantize(Decimal(row.current_stock) + delta_current)
        new_committed = quantize(Decimal(row.committed_stock) + delta_committed)
        if new_committed < 0:
            raise IntegrityError(
                "committed stock cannot go negative",
                product_id=row.product_id,
                location_id=row.location_id,
                committed_stock=row.committed_stock,
                delta_committed=delta_committed,
            )
        row.current_stock = new_current
        row.committed_stock = new_committed
        if updated_by is not None:
            row.updated_by = updated_by
        row.updated_at = utcnow()
        self.session.flush()
        return row

    def verify_row(
        self,
        row: Inventory,
        *,
        operation: str,
        pending: Iterable[InventoryTransaction] = (),
    ) -> None:
        """
        Compare the cached row with the ledger sum; raise IntegrityError on mismatch.

        Runs inside the unit of work, so a raise here rolls the whole
        operation back.
        """
        self.session.flush()
        ledger_total = self.ledger_sum(
            organization_id=row.organization_id,
            product_id=row.product_id,
            location_id=row.location_id,
        )
        cached = quantize(Decimal(row.current_stock))
        if cached == ledger_total:
            return

        pending_context = [tx.to_dict() for tx in pending]
        logger.error(
            "Ledger integrity violation during %s: org=%s product=%s location=%s cached=%s ledger_sum=%s pending=%s",
            operation,
            row.organization_id,
            row.product_id,
            row.location_id,
            cached,
            ledger_total,
            pending_context,
        )
        raise IntegrityError(
            "cached inventory does not match the transaction ledger",
            operation=operation,
            product_id=row.product_id,
            location_id=row.location_id,
            cached_stock=cached,
            ledger_sum=ledger_total,
        )
