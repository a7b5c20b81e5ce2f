"""
Configurable ledger policies: reference deduplication, oversell,
adjustments below committed stock and inactive locations.
"""
from decimal import Decimal

import pytest

from stockledger.config import ADJUST_POLICY_WARN, LedgerSettings, TestConfig
from stockledger.errors import InsufficientStockError, ValidationError
from stockledger.models import InventoryTransaction, Location


def _count(db_session, transaction_type):
    return db_session.query(InventoryTransaction).filter_by(transaction_type=transaction_type).count()


class TestReferenceDeduplication:
    def test_without_dedup_each_call_is_a_new_movement(self, ops, product, warehouse, db_session):
        ops.receive(product_id=product.id, location_id=warehouse.id, quantity=10, unit_cost=5, reference_id="PO-1")
        result = ops.receive(product_id=product.id, location_id=warehouse.id, quantity=10, unit_cost=5, reference_id="PO-1")

        assert result.deduplicated is False
        assert result.inventory.current_stock == Decimal("20")
        assert _count(db_session, "purchase") == 2

    def test_repeat_reference_is_replayed(self, make_ops, product, warehouse, db_session):
        ops = make_ops(deduplicate_references=True)
        first = ops.receive(product_id=product.id, location_id=warehouse.id, quantity=10, unit_cost=5, reference_id="PO-1")
        first_id = first.transactions[0].id

        again = ops.receive(product_id=product.id, location_id=warehouse.id, quantity=10, unit_cost=5, reference_id="PO-1")

        assert again.deduplicated is True
        assert again.transactions[0].id == first_id
        assert again.inventory.current_stock == Decimal("10")
        assert product.avg_cost == Decimal("5")
        assert _count(db_session, "purchase") == 1

    def test_reused_reference_with_other_quantity_is_rejected(self, make_ops, product, warehouse):
        ops = make_ops(deduplicate_references=True)
        ops.receive(product_id=product.id, location_id=warehouse.id, quantity=10, unit_cost=5, reference_id="PO-1")

        with pytest.raises(ValidationError, match="already used"):
            ops.receive(product_id=product.id, location_id=warehouse.id, quantity=4, unit_cost=5, reference_id="PO-1")

    def test_reused_reference_with_other_unit_cost_is_rejected(self, make_ops, product, warehouse, db_session):
        ops = make_ops(deduplicate_references=True)
        ops.receive(product_id=product.id, location_id=warehouse.id, quantity=10, unit_cost=5, reference_id="PO-1")

        with pytest.raises(ValidationError, match="already used"):
            ops.receive(product_id=product.id, location_id=warehouse.id, quantity=10, unit_cost=9, reference_id="PO-1")

        assert product.avg_cost == Decimal("5")
        assert _count(db_session, "purchase") == 1

    def test_reused_transfer_reference_to_other_destination_is_rejected(
        self, make_ops, db_session, org, product, warehouse, store_front
    ):
        third = Location(organization_id=org.id, name="Overflow Yard", type="warehouse")
        db_session.add(third)
        db_session.commit()
        ops = make_ops(deduplicate_references=True)
        ops.receive(product_id=product.id, location_id=warehouse.id, quantity=10, unit_cost=5)
        ops.transfer(product_id=product.id, source_location_id=warehouse.id,
                     destination_location_id=store_front.id, quantity=3, reference_id="T1")

        with pytest.raises(ValidationError, match="already used"):
            ops.transfer(product_id=product.id, source_location_id=warehouse.id,
                         destination_location_id=third.id, quantity=3, reference_id="T1")

        assert _count(db_session, "transfer_out") == 1
        assert _count(db_session, "transfer_in") == 1

    def test_transfer_replay_returns_both_legs(self, make_ops, product, warehouse, store_front, db_session):
        ops = make_ops(deduplicate_references=True)
        ops.receive(product_id=product.id, location_id=warehouse.id, quantity=10, unit_cost=5)
        kwargs = dict(product_id=product.id, source_location_id=warehouse.id,
                      destination_location_id=store_front.id, quantity=3, reference_id="TR-9")
        ops.transfer(**kwargs)
        again = ops.transfer(**kwargs)

        assert again.deduplicated is True
        assert [tx.transaction_type for tx in again.transactions] == ["transfer_out", "transfer_in"]
        assert again.inventory.current_stock == Decimal("7")
        assert again.destination.current_stock == Decimal("3")
        assert _count(db_session, "transfer_out") == 1

    def test_calls_without_reference_are_never_deduplicated(self, make_ops, product, warehouse, db_session):
        ops = make_ops(deduplicate_references=True)
        ops.receive(product_id=product.id, location_id=warehouse.id, quantity=1, unit_cost=5)
        ops.receive(product_id=product.id, location_id=warehouse.id, quantity=1, unit_cost=5)
        assert _count(db_session, "purchase") == 2


class TestOversell:
    def test_per_call_override(self, ops, product, warehouse):
        ops.receive(product_id=product.id, location_id=warehouse.id, quantity=2, unit_cost=1)

        result = ops.consume(product_id=product.id, location_id=warehouse.id, quantity=5, allow_oversell=True)

        assert result.inventory.current_stock == Decimal("-3")
        assert len(result.warnings) == 1
        assert result.warnings[0].startswith("Oversold by 3")

    def test_configured_default(self, make_ops, product, warehouse):
        ops = make_ops(allow_oversell=True)
        result = ops.consume(product_id=product.id, location_id=warehouse.id, quantity=1)
        assert result.inventory.current_stock == Decimal("-1")

    def test_receive_after_oversell_ignores_negative_weight(self, ops, product, warehouse):
        ops.receive(product_id=product.id, location_id=warehouse.id, quantity=1, unit_cost=100)
        ops.consume(product_id=product.id, location_id=warehouse.id, quantity=3, allow_oversell=True)
        ops.receive(product_id=product.id, location_id=warehouse.id, quantity=4, unit_cost=8)

        assert product.avg_cost == Decimal("8")

    def test_per_call_override_can_forbid(self, make_ops, product, warehouse):
        ops = make_ops(allow_oversell=True)
        with pytest.raises(InsufficientStockError):
            ops.consume(product_id=product.id, location_id=warehouse.id, quantity=1, allow_oversell=False)


class TestAdjustBelowCommitted:
    def test_reject_is_default(self, ops, product, warehouse, db_session):
        ops.receive(product_id=product.id, location_id=warehouse.id, quantity=10, unit_cost=1)
        ops.reserve(product_id=product.id, location_id=warehouse.id, quantity=6)

        with pytest.raises(InsufficientStockError):
            ops.adjust(product_id=product.id, location_id=warehouse.id, new_quantity=4, reason="loss")

        assert _count(db_session, "adjustment") == 0

    def test_warn_applies_and_reports(self, make_ops, product, warehouse, caplog):
        ops = make_ops(adjust_below_committed=ADJUST_POLICY_WARN)
        ops.receive(product_id=product.id, location_id=warehouse.id, quantity=10, unit_cost=1)
        ops.reserve(product_id=product.id, location_id=warehouse.id, quantity=6)

        result = ops.adjust(product_id=product.id, location_id=warehouse.id, new_quantity=4, reason="loss")

        assert result.inventory.current_stock == Decimal("4")
        assert result.inventory.committed_stock == Decimal("6")
        assert len(result.warnings) == 1
        assert "below committed stock" in caplog.text

    def test_count_follows_same_policy(self, ops, product, warehouse):
        ops.receive(product_id=product.id, location_id=warehouse.id, quantity=10, unit_cost=1)
        ops.reserve(product_id=product.id, location_id=warehouse.id, quantity=6)

        with pytest.raises(InsufficientStockError):
            ops.count(product_id=product.id, location_id=warehouse.id, counted_quantity=2)


class TestInactiveLocation:
    @pytest.fixture
    def closed(self, db_session, warehouse):
        warehouse.is_active = False
        db_session.commit()
        return warehouse

    def test_inbound_movements_rejected(self, ops, product, closed):
        with pytest.raises(ValidationError, match="inactive"):
            ops.receive(product_id=product.id, location_id=closed.id, quantity=1, unit_cost=1)
        with pytest.raises(ValidationError, match="inactive"):
            ops.record_return(product_id=product.id, location_id=closed.id, quantity=1)
        with pytest.raises(ValidationError, match="inactive"):
            ops.adjust(product_id=product.id, location_id=closed.id, new_quantity=3, reason="correction")

    def test_outbound_movements_allowed(self, ops, product, warehouse, store_front, db_session):
        ops.receive(product_id=product.id, location_id=warehouse.id, quantity=5, unit_cost=1)
        warehouse.is_active = False
        db_session.commit()

        ops.consume(product_id=product.id, location_id=warehouse.id, quantity=1)
        result = ops.transfer(product_id=product.id, source_location_id=warehouse.id,
                              destination_location_id=store_front.id, quantity=2)
        assert result.inventory.current_stock == Decimal("2")

        with pytest.raises(ValidationError):
            ops.transfer(product_id=product.id, source_location_id=store_front.id,
                         destination_location_id=warehouse.id, quantity=1)


class TestSettingsFromConfig:
    def test_reads_flask_config(self, app):
        settings = LedgerSettings.from_config(app.config)
        assert settings.lock_timeout == TestConfig.LEDGER_LOCK_TIMEOUT_SECONDS
        assert settings.adjust_below_committed == "reject"

    def test_rejects_unknown_policy(self):
        with pytest.raises(ValueError):
            LedgerSettings.from_config({"LEDGER_ADJUST_BELOW_COMMITTED": "ignore"})
