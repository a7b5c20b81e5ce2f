# Overview: Mutating stock operations; every call validates, appends ledger entries and updates cached rows atomically.

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Callable

from flask import current_app

from ..config import ADJUST_POLICY_REJECT, LedgerSettings
from ..errors import InsufficientStockError, NotFoundError, ValidationError
from ..extensions import db, ledger_locks
from ..models import Inventory, InventoryTransaction, Location, Product
from ..time_utils import utcnow
from ..validation import non_negative_quantity, optional_text, positive_quantity
from .concurrency import KeyLockRegistry, lock_for_update, run_with_retry
from .costing import moving_average_cost
from .entries import (
    ADJUSTMENT_REASONS,
    AdjustmentEntry,
    CountEntry,
    PurchaseEntry,
    ReturnEntry,
    SaleEntry,
    TransferInEntry,
    TransferOutEntry,
)
from .ledger_store import LedgerStore

logger = logging.getLogger(__name__)

"""
Stock operation rules (authoritative)

- Receive: purchase entry (+q), avg_cost recomputed against the product's total positive
  on-hand across all locations, last_purchase_cost set.
- Consume: sale entry (-q); rejected when q > available unless oversell is allowed.
- Reserve / Release: committed_stock only, no ledger entry. Release floors at 0 and
  reports the shortfall.
- Adjust / Count: entry of (target - current); target >= 0. Valued at avg_cost but
  never changes it. Leaving current < committed follows LEDGER_ADJUST_BELOW_COMMITTED.
- Return: return entry (+q) valued at avg_cost, avg_cost unchanged.
- Transfer: transfer_out (-q) at source + transfer_in (+q) at destination in one unit
  of work, carried at the source's avg_cost; avg_cost itself is unchanged.
- Inactive locations accept no inbound stock and no new reservations.
- Keys are locked in sorted order for the whole read -> validate -> write span.
"""


ZERO = Decimal(0)


@dataclass
class StockResult:
    """What a stock operation hands back to its caller."""
    operation: str
    inventory: Inventory
    transactions: list[InventoryTransaction] = field(default_factory=list)
    destination: Inventory | None = None
    released: Decimal | None = None
    shortfall: Decimal = ZERO
    warnings: list[str] = field(default_factory=list)
    deduplicated: bool = False

    @property
    def rows(self) -> list[Inventory]:
        return [r for r in (self.inventory, self.destination) if r is not None]

    def to_dict(self) -> dict:
        payload = {
            "operation": self.operation,
            "inventory": self.inventory.to_dict(),
            "transactions": [tx.to_dict() for tx in self.transactions],
            "warnings": list(self.warnings),
            "deduplicated": self.deduplicated,
        }
        if self.destination is not None:
            payload["destination"] = self.destination.to_dict()
        if self.released is not None:
            payload["released"] = str(self.released)
            payload["shortfall"] = str(self.shortfall)
        return payload


class StockOperations:
    """
    The only legal entry point for changing stock.

    Bound to one organization (tenant) and, optionally, an actor recorded as
    created_by/updated_by. The LedgerStore and lock registry are injected.
    """

    def __init__(
        self,
        store: LedgerStore,
        *,
        organization_id: int,
        actor: str | None = None,
        locks: KeyLockRegistry | None = None,
        settings: LedgerSettings | None = None,
    ):
        self.store = store
        self.organization_id = organization_id
        self.actor = actor
        self.locks = locks if locks is not None else ledger_locks
        self.settings = settings or LedgerSettings()

    # ------------------------------------------------------------------
    # Plumbing
    # ------------------------------------------------------------------
    def _key(self, product_id: int, location_id: int) -> tuple[int, int, int]:
        return (self.organization_id, product_id, location_id)

    def _execute(self, operation: str, keys: list, body: Callable[[], StockResult]) -> StockResult:
        def _op():
            with self.locks.acquire(keys, timeout=self.settings.lock_timeout):
                with self.store.unit_of_work():
                    result = body()
                    if self.settings.verify_on_write:
                        for row in result.rows:
                            self.store.verify_row(row, operation=operation, pending=result.transactions)
                    return result

        try:
            result = run_with_retry(
                _op,
                session=self.store.session,
                attempts=self.settings.retry_attempts,
                backoff_base=self.settings.retry_backoff,
            )
        except (ValidationError, InsufficientStockError, NotFoundError) as exc:
            logger.info("%s rejected for org=%s: %s", operation, self.organization_id, exc)
            raise

        inv = result.inventory
        logger.info(
            "%s committed: org=%s product=%s location=%s current=%s committed=%s transactions=%s%s",
            operation,
            self.organization_id,
            inv.product_id,
            inv.location_id,
            inv.current_stock,
            inv.committed_stock,
            [tx.id for tx in result.transactions],
            " (deduplicated)" if result.deduplicated else "",
        )
        return result

    def _product(self, product_id: int, *, lock: bool = False) -> Product:
        query = self.store.session.query(Product).filter_by(id=product_id, organization_id=self.organization_id)
        if lock:
            query = lock_for_update(query)
        product = query.first()
        if product is None:
            raise NotFoundError(f"Product {product_id} not found", product_id=product_id)
        return product

    def _location(self, location_id: int, *, inbound: bool = False) -> Location:
        location = (
            self.store.session.query(Location)
            .filter_by(id=location_id, organization_id=self.organization_id)
            .first()
        )
        if location is None:
            raise NotFoundError(f"Location {location_id} not found", location_id=location_id)
        if inbound and not location.is_active:
            raise ValidationError(f"Location {location.name!r} is inactive", location_id=location_id)
        return location

    def _row(self, product_id: int, location_id: int) -> Inventory:
        return self.store.get_or_create_inventory_row(
            organization_id=self.organization_id,
            product_id=product_id,
            location_id=location_id,
            created_by=self.actor,
        )

    def _append(self, entry) -> InventoryTransaction:
        return self.store.append_transaction(entry, organization_id=self.organization_id, created_by=self.actor)

    def _previous(
        self,
        *,
        transaction_type: str,
        product_id: int,
        location_id: int,
        reference_id: str | None,
        match: dict | None = None,
    ) -> InventoryTransaction | None:
        """
        Earlier transaction for the same reference, when deduplication is on.

        `match` maps transaction columns to the values this request would
        write; any difference means the reference is being reused for another
        movement, not retried.
        """
        if not (self.settings.deduplicate_references and reference_id):
            return None
        rows = self.store.find_by_reference(
            organization_id=self.organization_id,
            product_id=product_id,
            location_id=location_id,
            transaction_type=transaction_type,
            reference_id=reference_id,
        )
        if not rows:
            return None
        previous = rows[0]
        for column, expected in (match or {}).items():
            recorded = getattr(previous, column)
            if isinstance(expected, Decimal) and recorded is not None:
                recorded = Decimal(recorded)
            if recorded != expected:
                raise ValidationError(
                    f"reference_id {reference_id!r} was already used for a different {transaction_type}",
                    reference_id=reference_id,
                    field=column,
                    recorded=recorded,
                    requested=expected,
                )
        logger.info("Replaying %s for reference_id=%r (transaction %s)", transaction_type, reference_id, previous.id)
        return previous

    def _check_below_committed(self, row: Inventory, target: Decimal, operation: str) -> list[str]:
        committed = Decimal(row.committed_stock)
        if target >= committed:
            return []
        message = (
            f"{operation} leaves current stock {target} below committed stock {committed}"
        )
        if self.settings.adjust_below_committed == ADJUST_POLICY_REJECT:
            raise InsufficientStockError(
                message,
                product_id=row.product_id,
                location_id=row.location_id,
                committed_stock=committed,
                new_quantity=target,
            )
        logger.warning("%s (org=%s product=%s location=%s)", message, self.organization_id, row.product_id, row.location_id)
        return [message]

    # ------------------------------------------------------------------
    # Receive
    # ------------------------------------------------------------------
    def receive(
        self,
        *,
        product_id: int,
        location_id: int,
        quantity,
        unit_cost,
        reference_id: str | None = None,
        reference_type: str | None = None,
        notes: str | None = None,
    ) -> StockResult:
        qty = positive_quantity(quantity)
        cost = non_negative_quantity(unit_cost, "unit_cost")
        reference_id = optional_text(reference_id, "reference_id", 128)

        def body() -> StockResult:
            product = self._product(product_id, lock=True)
            self._location(location_id, inbound=True)
            row = self._row(product_id, location_id)

            previous = self._previous(
                transaction_type="purchase",
                product_id=product_id,
                location_id=location_id,
                reference_id=reference_id,
                match={"quantity": qty, "unit_cost": cost},
            )
            if previous is not None:
                return StockResult("receive", row, [previous], deduplicated=True)

            old_stock = self.store.product_on_hand(organization_id=self.organization_id, product_id=product_id)
            tx = self._append(PurchaseEntry(
                product_id=product_id,
                location_id=location_id,
                quantity=qty,
                cost=cost,
                reference_id=reference_id,
                reference_type=optional_text(reference_type, "reference_type", 64),
                notes=optional_text(notes, "notes", 500),
            ))
            self.store.apply_delta(row, qty, ZERO, updated_by=self.actor)

            product.avg_cost = moving_average_cost(
                old_avg=Decimal(product.avg_cost or 0),
                old_stock=old_stock,
                unit_cost=cost,
                quantity=qty,
            )
            product.last_purchase_cost = cost
            return StockResult("receive", row, [tx])

        return self._execute("receive", [self._key(product_id, location_id)], body)

    # ------------------------------------------------------------------
    # Consume / Sell
    # ------------------------------------------------------------------
    def consume(
        self,
        *,
        product_id: int,
        location_id: int,
        quantity,
        reference_id: str | None = None,
        reference_type: str | None = None,
        notes: str | None = None,
        allow_oversell: bool | None = None,
    ) -> StockResult:
        qty = positive_quantity(quantity)
        reference_id = optional_text(reference_id, "reference_id", 128)
        oversell = self.settings.allow_oversell if allow_oversell is None else bool(allow_oversell)

        def body() -> StockResult:
            product = self._product(product_id)
            self._location(location_id)
            row = self._row(product_id, location_id)

            previous = self._previous(
                transaction_type="sale",
                product_id=product_id,
                location_id=location_id,
                reference_id=reference_id,
                match={"quantity": -qty},
            )
            if previous is not None:
                return StockResult("consume", row, [previous], deduplicated=True)

            available = Decimal(row.current_stock) - Decimal(row.committed_stock)
            warnings = []
            if qty > available:
                if not oversell:
                    raise InsufficientStockError(
                        f"Insufficient available stock: {available} available, {qty} requested",
                        product_id=product_id,
                        location_id=location_id,
                        available_stock=available,
                        requested=qty,
                    )
                warnings.append(f"Oversold by {qty - available}")
                logger.warning(
                    "Oversell: org=%s product=%s location=%s available=%s requested=%s",
                    self.organization_id, product_id, location_id, available, qty,
                )

            tx = self._append(SaleEntry(
                product_id=product_id,
                location_id=location_id,
                quantity=-qty,
                cost_at_sale=Decimal(product.avg_cost or 0),
                reference_id=reference_id,
                reference_type=optional_text(reference_type, "reference_type", 64),
                notes=optional_text(notes, "notes", 500),
            ))
            self.store.apply_delta(row, -qty, ZERO, updated_by=self.actor)
            return StockResult("consume", row, [tx], warnings=warnings)

        return self._execute("consume", [self._key(product_id, location_id)], body)

    sell = consume

    # ------------------------------------------------------------------
    # Reserve / Release
    # ------------------------------------------------------------------
    def reserve(
        self,
        *,
        product_id: int,
        location_id: int,
        quantity,
        reference_id: str | None = None,
        notes: str | None = None,
    ) -> StockResult:
        qty = positive_quantity(quantity)

        def body() -> StockResult:
            self._product(product_id)
            self._location(location_id, inbound=True)
            row = self.store.get_inventory_row(
                organization_id=self.organization_id,
                product_id=product_id,
                location_id=location_id,
                lock=True,
            )
            available = row.available_stock if row is not None else ZERO
            if row is None or qty > available:
                raise InsufficientStockError(
                    f"Cannot reserve {qty}: only {available} available",
                    product_id=product_id,
                    location_id=location_id,
                    available_stock=available,
                    requested=qty,
                )
            self.store.apply_delta(row, ZERO, qty, updated_by=self.actor)
            logger.debug("Reserved %s for reference_id=%r", qty, reference_id)
            return StockResult("reserve", row)

        return self._execute("reserve", [self._key(product_id, location_id)], body)

    def release(
        self,
        *,
        product_id: int,
        location_id: int,
        quantity,
        reference_id: str | None = None,
        notes: str | None = None,
    ) -> StockResult:
        qty = positive_quantity(quantity)

        def body() -> StockResult:
            self._product(product_id)
            self._location(location_id)
            row = self.store.get_inventory_row(
                organization_id=self.organization_id,
                product_id=product_id,
                location_id=location_id,
                lock=True,
            )
            if row is None:
                raise NotFoundError(
                    f"No inventory record for product {product_id} at location {location_id}",
                    product_id=product_id,
                    location_id=location_id,
                )

            committed = Decimal(row.committed_stock)
            released = min(qty, committed)
            shortfall = qty - released
            warnings = []
            if released > 0:
                self.store.apply_delta(row, ZERO, -released, updated_by=self.actor)
            if shortfall > 0:
                warnings.append(f"Only {released} was committed; {shortfall} could not be released")
                logger.info(
                    "Release shortfall: org=%s product=%s location=%s requested=%s released=%s reference_id=%r",
                    self.organization_id, product_id, location_id, qty, released, reference_id,
                )
            return StockResult("release", row, released=released, shortfall=shortfall, warnings=warnings)

        return self._execute("release", [self._key(product_id, location_id)], body)

    # ------------------------------------------------------------------
    # Adjust / Count / Return
    # ------------------------------------------------------------------
    def adjust(
        self,
        *,
        product_id: int,
        location_id: int,
        new_quantity,
        reason: str,
        reference_id: str | None = None,
        reference_type: str | None = None,
        notes: str | None = None,
    ) -> StockResult:
        target = non_negative_quantity(new_quantity, "new_quantity")
        if reason not in ADJUSTMENT_REASONS:
            raise ValidationError(f"reason must be one of: {', '.join(ADJUSTMENT_REASONS)}")
        reference_id = optional_text(reference_id, "reference_id", 128)

        def body() -> StockResult:
            product = self._product(product_id)
            location = self._location(location_id)
            row = self._row(product_id, location_id)

            previous = self._previous(
                transaction_type="adjustment",
                product_id=product_id,
                location_id=location_id,
                reference_id=reference_id,
            )
            if previous is not None:
                return StockResult("adjust", row, [previous], deduplicated=True)

            current = Decimal(row.current_stock)
            delta = target - current
            if delta == 0:
                raise ValidationError("No adjustment to make", current_stock=current)
            if delta > 0 and not location.is_active:
                raise ValidationError(f"Location {location.name!r} is inactive", location_id=location_id)

            warnings = self._check_below_committed(row, target, "adjustment")
            tx = self._append(AdjustmentEntry(
                product_id=product_id,
                location_id=location_id,
                quantity=delta,
                reason=reason,
                valued_at=Decimal(product.avg_cost or 0),
                reference_id=reference_id,
                reference_type=optional_text(reference_type, "reference_type", 64),
                notes=optional_text(notes, "notes", 500) or f"Adjusted from {current} to {target}",
            ))
            self.store.apply_delta(row, delta, ZERO, updated_by=self.actor)
            return StockResult("adjust", row, [tx], warnings=warnings)

        return self._execute("adjust", [self._key(product_id, location_id)], body)

    def count(
        self,
        *,
        product_id: int,
        location_id: int,
        counted_quantity,
        reference_id: str | None = None,
        notes: str | None = None,
    ) -> StockResult:
        counted = non_negative_quantity(counted_quantity, "counted_quantity")
        reference_id = optional_text(reference_id, "reference_id", 128)

        def body() -> StockResult:
            product = self._product(product_id)
            location = self._location(location_id)
            row = self._row(product_id, location_id)

            previous = self._previous(
                transaction_type="count",
                product_id=product_id,
                location_id=location_id,
                reference_id=reference_id,
            )
            if previous is not None:
                return StockResult("count", row, [previous], deduplicated=True)

            row.last_count_date = utcnow()
            current = Decimal(row.current_stock)
            delta = counted - current
            if delta == 0:
                return StockResult("count", row)
            if delta > 0 and not location.is_active:
                raise ValidationError(f"Location {location.name!r} is inactive", location_id=location_id)

            warnings = self._check_below_committed(row, counted, "count")
            tx = self._append(CountEntry(
                product_id=product_id,
                location_id=location_id,
                quantity=delta,
                valued_at=Decimal(product.avg_cost or 0),
                reference_id=reference_id,
                notes=optional_text(notes, "notes", 500) or f"Counted {counted}, system had {current}",
            ))
            self.store.apply_delta(row, delta, ZERO, updated_by=self.actor)
            return StockResult("count", row, [tx], warnings=warnings)

        return self._execute("count", [self._key(product_id, location_id)], body)

    def record_return(
        self,
        *,
        product_id: int,
        location_id: int,
        quantity,
        reference_id: str | None = None,
        reference_type: str | None = None,
        notes: str | None = None,
    ) -> StockResult:
        qty = positive_quantity(quantity)
        reference_id = optional_text(reference_id, "reference_id", 128)

        def body() -> StockResult:
            product = self._product(product_id)
            self._location(location_id, inbound=True)
            row = self._row(product_id, location_id)

            previous = self._previous(
                transaction_type="return",
                product_id=product_id,
                location_id=location_id,
                reference_id=reference_id,
                match={"quantity": qty},
            )
            if previous is not None:
                return StockResult("return", row, [previous], deduplicated=True)

            tx = self._append(ReturnEntry(
                product_id=product_id,
                location_id=location_id,
                quantity=qty,
                valued_at=Decimal(product.avg_cost or 0),
                reference_id=reference_id,
                reference_type=optional_text(reference_type, "reference_type", 64),
                notes=optional_text(notes, "notes", 500),
            ))
            self.store.apply_delta(row, qty, ZERO, updated_by=self.actor)
            return StockResult("return", row, [tx])

        return self._execute("return", [self._key(product_id, location_id)], body)

    # ------------------------------------------------------------------
    # Transfer
    # ------------------------------------------------------------------
    def transfer(
        self,
        *,
        product_id: int,
        source_location_id: int,
        destination_location_id: int,
        quantity,
        reference_id: str | None = None,
        notes: str | None = None,
    ) -> StockResult:
        qty = positive_quantity(quantity)
        if source_location_id == destination_location_id:
            raise ValidationError("Source and destination locations must differ")
        reference_id = optional_text(reference_id, "reference_id", 128)

        def body() -> StockResult:
            product = self._product(product_id, lock=True)
            source = self._location(source_location_id)
            destination = self._location(destination_location_id, inbound=True)

            # Rows are materialized in key order, the same order the locks were taken in
            rows = {
                loc_id: self._row(product_id, loc_id)
                for loc_id in sorted((source_location_id, destination_location_id))
            }
            src_row = rows[source_location_id]
            dst_row = rows[destination_location_id]

            previous = self._previous(
                transaction_type="transfer_out",
                product_id=product_id,
                location_id=source_location_id,
                reference_id=reference_id,
                match={"quantity": -qty, "destination_location_id": destination_location_id},
            )
            if previous is not None:
                legs = [previous] + self.store.find_by_reference(
                    organization_id=self.organization_id,
                    product_id=product_id,
                    location_id=destination_location_id,
                    transaction_type="transfer_in",
                    reference_id=reference_id,
                )[:1]
                return StockResult("transfer", src_row, legs, destination=dst_row, deduplicated=True)

            available = Decimal(src_row.current_stock) - Decimal(src_row.committed_stock)
            if qty > available:
                raise InsufficientStockError(
                    f"Insufficient available stock at {source.name}: {available} available, {qty} requested",
                    product_id=product_id,
                    location_id=source_location_id,
                    available_stock=available,
                    requested=qty,
                )

            cost = Decimal(product.avg_cost or 0)
            note = optional_text(notes, "notes", 500)

            out_tx = self._append(TransferOutEntry(
                product_id=product_id,
                location_id=source_location_id,
                quantity=-qty,
                destination_location_id=destination_location_id,
                cost=cost,
                reference_id=reference_id,
                reference_type="transfer",
                notes=note or f"Transfer to {destination.name}",
            ))
            in_tx = self._append(TransferInEntry(
                product_id=product_id,
                location_id=destination_location_id,
                quantity=qty,
                source_location_id=source_location_id,
                cost=cost,
                reference_id=reference_id,
                reference_type="transfer",
                notes=note or f"Transfer from {source.name}",
            ))
            self.store.apply_delta(src_row, -qty, ZERO, updated_by=self.actor)
            self.store.apply_delta(dst_row, qty, ZERO, updated_by=self.actor)

            # Moving stock between locations leaves the product-wide on-hand and its average unchanged
            return StockResult("transfer", src_row, [out_tx, in_tx], destination=dst_row)

        keys = [self._key(product_id, source_location_id), self._key(product_id, destination_location_id)]
        return self._execute("transfer", keys, body)

    # ------------------------------------------------------------------
    # Shelf tag
    # ------------------------------------------------------------------
    def set_shelf_location(self, *, product_id: int, location_id: int, shelf_location: str | None) -> StockResult:
        shelf = optional_text(shelf_location, "shelf_location", 64)

        def body() -> StockResult:
            self._product(product_id)
            self._location(location_id)
            row = self._row(product_id, location_id)
            row.shelf_location = shelf
            row.updated_by = self.actor
            return StockResult("set_shelf_location", row)

        return self._execute("set_shelf_location", [self._key(product_id, location_id)], body)


def stock_operations_for(organization_id: int, actor: str | None = None) -> StockOperations:
    """Build StockOperations for the current Flask app: its session, config and lock registry."""
    return StockOperations(
        LedgerStore(db.session),
        organization_id=organization_id,
        actor=actor,
        locks=ledger_locks,
        settings=LedgerSettings.from_config(current_app.config),
    )
