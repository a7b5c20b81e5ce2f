"""
Inventory API Tests

Exercise the /api/inventory blueprint end to end:
1. Tenant header is required
2. Payloads are checked against a per-route allowlist
3. Ledger errors map to stable HTTP status codes and JSON bodies
4. Read endpoints return projections scoped to the caller's organization
"""

from decimal import Decimal

import pytest

from stockledger.extensions import ledger_locks
from stockledger.models import InventoryTransaction


def _post(client, path, headers, **payload):
    return client.post(f"/api/inventory/{path}", json=payload, headers=headers)


@pytest.fixture
def stocked(client, headers, product, warehouse):
    """10 units of WIDGET-001 at the warehouse, received at 5.00."""
    resp = _post(client, "receive", headers, product_id=product.id, location_id=warehouse.id,
                 quantity="10", unit_cost="5.00", reference_id="PO-1")
    assert resp.status_code == 201
    return resp.get_json()


class TestTenantContext:
    def test_missing_header_is_unauthorized(self, client, product, warehouse):
        resp = client.post("/api/inventory/receive", json={})
        assert resp.status_code == 401
        assert resp.get_json()["code"] == "missing_tenant"

    def test_foreign_product_is_not_found(self, client, other_org, product, warehouse):
        """A product from another tenant looks exactly like a missing one."""
        headers = {"X-Organization-Id": str(other_org.id)}
        resp = _post(client, "receive", headers, product_id=product.id, location_id=warehouse.id,
                     quantity=1, unit_cost=1)
        assert resp.status_code == 404
        assert resp.get_json()["code"] == "not_found"


class TestMutations:
    def test_receive_returns_row_and_transaction(self, stocked):
        assert stocked["operation"] == "receive"
        assert Decimal(stocked["inventory"]["current_stock"]) == 10
        (tx,) = stocked["transactions"]
        assert tx["transaction_type"] == "purchase"
        assert tx["created_by"] == "tester"
        assert tx["reference_id"] == "PO-1"
        assert tx["created_at"].endswith("Z")

    def test_unknown_field_rejected(self, client, headers, product, warehouse):
        resp = _post(client, "receive", headers, product_id=product.id, location_id=warehouse.id,
                     quantity=1, unit_cost=1, avg_cost=3)
        assert resp.status_code == 400
        assert "Field not allowed" in resp.get_json()["error"]

    def test_missing_field_rejected(self, client, headers, product, warehouse):
        resp = _post(client, "receive", headers, product_id=product.id, location_id=warehouse.id, quantity=1)
        assert resp.status_code == 400
        assert "unit_cost" in resp.get_json()["error"]

    @pytest.mark.parametrize("quantity", [0, -3, "NaN", "Infinity", True, "lots"])
    def test_bad_quantity_is_validation_error(self, client, headers, product, warehouse, db_session, quantity):
        resp = _post(client, "receive", headers, product_id=product.id, location_id=warehouse.id,
                     quantity=quantity, unit_cost=1)
        assert resp.status_code == 400
        assert resp.get_json()["code"] == "validation_error"
        assert db_session.query(InventoryTransaction).count() == 0

    def test_insufficient_stock_is_conflict(self, client, headers, stocked, product, warehouse):
        resp = _post(client, "consume", headers, product_id=product.id, location_id=warehouse.id, quantity=11)
        assert resp.status_code == 409
        body = resp.get_json()
        assert body["code"] == "insufficient_stock"
        assert Decimal(body["details"]["available_stock"]) == 10

    def test_reserve_release_cycle(self, client, headers, stocked, product, warehouse):
        resp = _post(client, "reserve", headers, product_id=product.id, location_id=warehouse.id, quantity=4)
        assert resp.status_code == 200
        assert Decimal(resp.get_json()["inventory"]["available_stock"]) == 6

        resp = _post(client, "release", headers, product_id=product.id, location_id=warehouse.id, quantity=6)
        body = resp.get_json()
        assert resp.status_code == 200
        assert Decimal(body["released"]) == 4
        assert Decimal(body["shortfall"]) == 2
        assert body["warnings"]

    def test_adjust_count_and_return(self, client, headers, stocked, product, warehouse):
        resp = _post(client, "adjust", headers, product_id=product.id, location_id=warehouse.id,
                     new_quantity=8, reason="damage")
        assert resp.status_code == 201
        assert resp.get_json()["transactions"][0]["reason"] == "damage"

        resp = _post(client, "count", headers, product_id=product.id, location_id=warehouse.id, counted_quantity=7)
        assert resp.status_code == 201
        assert resp.get_json()["inventory"]["last_count_date"] is not None

        resp = _post(client, "return", headers, product_id=product.id, location_id=warehouse.id, quantity=1)
        assert resp.status_code == 201
        assert Decimal(resp.get_json()["inventory"]["current_stock"]) == 8

    def test_adjust_without_change_is_rejected(self, client, headers, stocked, product, warehouse):
        resp = _post(client, "adjust", headers, product_id=product.id, location_id=warehouse.id,
                     new_quantity=10, reason="count")
        assert resp.status_code == 400
        assert resp.get_json()["error"] == "No adjustment to make"

    def test_transfer(self, client, headers, stocked, product, warehouse, store_front):
        resp = _post(client, "transfer", headers, product_id=product.id, source_location_id=warehouse.id,
                     destination_location_id=store_front.id, quantity=3, reference_id="TR-1")
        assert resp.status_code == 201
        body = resp.get_json()
        assert Decimal(body["inventory"]["current_stock"]) == 7
        assert Decimal(body["destination"]["current_stock"]) == 3
        assert [tx["transaction_type"] for tx in body["transactions"]] == ["transfer_out", "transfer_in"]

    def test_shelf_location(self, client, headers, product, warehouse):
        resp = _post(client, "shelf", headers, product_id=product.id, location_id=warehouse.id, shelf_location="B-07")
        assert resp.status_code == 200
        assert resp.get_json()["inventory"]["shelf_location"] == "B-07"

    def test_lock_timeout_is_service_unavailable(self, client, headers, product, warehouse):
        key = (product.organization_id, product.id, warehouse.id)
        with ledger_locks.acquire([key], timeout=0.1):
            resp = _post(client, "receive", headers, product_id=product.id, location_id=warehouse.id,
                         quantity=1, unit_cost=1)
        assert resp.status_code == 503
        body = resp.get_json()
        assert body["code"] == "concurrency_timeout"
        assert body["retryable"] is True


class TestReads:
    def test_levels_and_product_summary(self, client, headers, stocked, product, warehouse):
        resp = client.get("/api/inventory/levels", headers=headers)
        assert resp.status_code == 200
        (row,) = resp.get_json()
        assert row["sku"] == "WIDGET-001"

        resp = client.get(f"/api/inventory/products/{product.id}", headers=headers)
        assert resp.status_code == 200
        assert Decimal(resp.get_json()["total_inventory_value"]) == 50

    def test_location_summary_unknown_location(self, client, headers):
        resp = client.get("/api/inventory/locations/999", headers=headers)
        assert resp.status_code == 404

    def test_low_stock_and_dashboard(self, client, headers, product, warehouse):
        _post(client, "receive", headers, product_id=product.id, location_id=warehouse.id, quantity=3, unit_cost=1)

        low = client.get("/api/inventory/low-stock", headers=headers).get_json()
        assert low["counts"]["low"] == 1

        dashboard = client.get("/api/inventory/dashboard", headers=headers).get_json()
        assert dashboard["low_stock_count"] == 1

    def test_transactions_history(self, client, headers, stocked, product, warehouse):
        _post(client, "consume", headers, product_id=product.id, location_id=warehouse.id, quantity=2)

        resp = client.get("/api/inventory/transactions", headers=headers)
        assert [tx["transaction_type"] for tx in resp.get_json()] == ["sale", "purchase"]

        resp = client.get("/api/inventory/transactions?transaction_type=bogus", headers=headers)
        assert resp.status_code == 400


def test_health(client, db_session):
    resp = client.get("/health")
    assert resp.status_code == 200
    assert resp.get_json()["status"] == "healthy"
