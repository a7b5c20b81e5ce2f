# Overview: Ledger audit: recompute every cached row from its transactions and report drift.

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from decimal import Decimal

from ..models import Inventory
from ..validation import quantize
from .ledger_store import LedgerStore

logger = logging.getLogger(__name__)


@dataclass
class LedgerMismatch:
    inventory_id: int
    product_id: int
    location_id: int
    cached_stock: Decimal
    ledger_sum: Decimal

    def to_dict(self) -> dict:
        return {
            "inventory_id": self.inventory_id,
            "product_id": self.product_id,
            "location_id": self.location_id,
            "cached_stock": str(self.cached_stock),
            "ledger_sum": str(self.ledger_sum),
        }


@dataclass
class AuditReport:
    rows_checked: int = 0
    mismatches: list[LedgerMismatch] = field(default_factory=list)
    committed_above_current: list[int] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.mismatches


def verify_ledger(store: LedgerStore, *, organization_id: int | None = None) -> AuditReport:
    """
    Compare every cached Inventory row with SUM(quantity) of its transactions.

    Read-only: drift is reported (and logged at ERROR), never repaired.
    Rows with committed_stock > current_stock are listed separately; they
    are legal only after a "warn" policy adjustment or an oversell.
    """
    q = store.session.query(Inventory)
    if organization_id is not None:
        q = q.filter(Inventory.organization_id == organization_id)

    report = AuditReport()
    for row in q.order_by(Inventory.id):
        report.rows_checked += 1
        ledger_total = store.ledger_sum(
            organization_id=row.organization_id,
            product_id=row.product_id,
            location_id=row.location_id,
        )
        cached = quantize(Decimal(row.current_stock))
        if cached != ledger_total:
            logger.error(
                "Ledger drift: inventory=%s org=%s product=%s location=%s cached=%s ledger_sum=%s",
                row.id, row.organization_id, row.product_id, row.location_id, cached, ledger_total,
            )
            report.mismatches.append(LedgerMismatch(
                inventory_id=row.id,
                product_id=row.product_id,
                location_id=row.location_id,
                cached_stock=cached,
                ledger_sum=ledger_total,
            ))
        if Decimal(row.committed_stock) > Decimal(row.current_stock):
            report.committed_above_current.append(row.id)

    logger.info(
        "Ledger audit finished: rows=%d mismatches=%d committed_above_current=%d",
        report.rows_checked, len(report.mismatches), len(report.committed_above_current),
    )
    return report
