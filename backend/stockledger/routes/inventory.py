# backend/stockledger/routes/inventory.py
"""
Inventory ledger routes.

All routes require tenant context (X-Organization-Id).
Mutating routes return the StockResult payload; ledger errors are mapped
to JSON by the blueprint error handler:
- ValidationError -> 400
- NotFoundError -> 404
- InsufficientStockError -> 409
- ConcurrencyTimeoutError -> 503 (retryable)
- IntegrityError -> 500
"""
import logging

from flask import Blueprint, g, jsonify, request

from ..errors import ConcurrencyTimeoutError, IntegrityError, LedgerError
from ..extensions import db
from ..validation import PayloadPolicy, validate_payload
from ..decorators import require_organization
from ..services.read_model import InventoryReadModel
from ..services.stock_service import stock_operations_for

logger = logging.getLogger(__name__)

inventory_bp = Blueprint("inventory", __name__, url_prefix="/api/inventory")

_REFS = {"reference_id", "reference_type", "notes"}

RECEIVE_POLICY = PayloadPolicy(
    writable_fields={"product_id", "location_id", "quantity", "unit_cost"} | _REFS,
    required={"product_id", "location_id", "quantity", "unit_cost"},
)

CONSUME_POLICY = PayloadPolicy(
    writable_fields={"product_id", "location_id", "quantity", "allow_oversell"} | _REFS,
    required={"product_id", "location_id", "quantity"},
)

RESERVATION_POLICY = PayloadPolicy(
    writable_fields={"product_id", "location_id", "quantity", "reference_id", "notes"},
    required={"product_id", "location_id", "quantity"},
)

ADJUST_POLICY = PayloadPolicy(
    writable_fields={"product_id", "location_id", "new_quantity", "reason"} | _REFS,
    required={"product_id", "location_id", "new_quantity", "reason"},
)

COUNT_POLICY = PayloadPolicy(
    writable_fields={"product_id", "location_id", "counted_quantity", "reference_id", "notes"},
    required={"product_id", "location_id", "counted_quantity"},
)

RETURN_POLICY = PayloadPolicy(
    writable_fields={"product_id", "location_id", "quantity"} | _REFS,
    required={"product_id", "location_id", "quantity"},
)

TRANSFER_POLICY = PayloadPolicy(
    writable_fields={"product_id", "source_location_id", "destination_location_id", "quantity", "reference_id", "notes"},
    required={"product_id", "source_location_id", "destination_location_id", "quantity"},
)

SHELF_POLICY = PayloadPolicy(
    writable_fields={"product_id", "location_id", "shelf_location"},
    required={"product_id", "location_id"},
)


@inventory_bp.errorhandler(LedgerError)
def handle_ledger_error(error: LedgerError):
    db.session.rollback()
    if isinstance(error, IntegrityError):
        logger.error("Integrity failure on %s %s: %s", request.method, request.path, error.context)
    elif isinstance(error, ConcurrencyTimeoutError):
        logger.warning("Concurrency timeout on %s %s", request.method, request.path)
    return jsonify(error.to_dict()), error.status_code


def _payload(policy: PayloadPolicy) -> dict:
    return validate_payload(payload=request.get_json(silent=True), policy=policy)


def _ops():
    return stock_operations_for(g.org_id, actor=g.actor)


def _read_model() -> InventoryReadModel:
    return InventoryReadModel(db.session, organization_id=g.org_id)


@inventory_bp.post("/receive")
@require_organization
def receive_route():
    """Receive purchased stock into a location."""
    data = _payload(RECEIVE_POLICY)
    result = _ops().receive(**data)
    return jsonify(result.to_dict()), 201


@inventory_bp.post("/consume")
@require_organization
def consume_route():
    """Record a sale/consumption (stock decrement)."""
    data = _payload(CONSUME_POLICY)
    result = _ops().consume(**data)
    return jsonify(result.to_dict()), 201


@inventory_bp.post("/reserve")
@require_organization
def reserve_route():
    data = _payload(RESERVATION_POLICY)
    result = _ops().reserve(**data)
    return jsonify(result.to_dict()), 200


@inventory_bp.post("/release")
@require_organization
def release_route():
    data = _payload(RESERVATION_POLICY)
    result = _ops().release(**data)
    return jsonify(result.to_dict()), 200


@inventory_bp.post("/adjust")
@require_organization
def adjust_route():
    """Set the on-hand quantity to new_quantity, recording the difference."""
    data = _payload(ADJUST_POLICY)
    result = _ops().adjust(**data)
    return jsonify(result.to_dict()), 201


@inventory_bp.post("/count")
@require_organization
def count_route():
    data = _payload(COUNT_POLICY)
    result = _ops().count(**data)
    return jsonify(result.to_dict()), 201


@inventory_bp.post("/return")
@require_organization
def return_route():
    data = _payload(RETURN_POLICY)
    result = _ops().record_return(**data)
    return jsonify(result.to_dict()), 201


@inventory_bp.post("/transfer")
@require_organization
def transfer_route():
    """Move stock between two locations as one atomic pair of legs."""
    data = _payload(TRANSFER_POLICY)
    result = _ops().transfer(**data)
    return jsonify(result.to_dict()), 201


@inventory_bp.post("/shelf")
@require_organization
def shelf_route():
    data = _payload(SHELF_POLICY)
    result = _ops().set_shelf_location(**data)
    return jsonify(result.to_dict()), 200


@inventory_bp.get("/levels")
@require_organization
def levels_route():
    product_id = request.args.get("product_id", type=int)
    location_id = request.args.get("location_id", type=int)
    return jsonify(_read_model().available_inventory(product_id=product_id, location_id=location_id)), 200


@inventory_bp.get("/low-stock")
@require_organization
def low_stock_route():
    location_id = request.args.get("location_id", type=int)
    return jsonify(_read_model().low_stock_report(location_id=location_id)), 200


@inventory_bp.get("/dashboard")
@require_organization
def dashboard_route():
    return jsonify(_read_model().dashboard_summary()), 200


@inventory_bp.get("/transactions")
@require_organization
def transactions_route():
    """
    List ledger history, newest first.

    Query params: product_id, location_id, transaction_type, reference_id,
    created_from, created_to (ISO-8601, inclusive), limit.
    """
    rows = _read_model().list_transactions(
        product_id=request.args.get("product_id", type=int),
        location_id=request.args.get("location_id", type=int),
        transaction_type=request.args.get("transaction_type"),
        reference_id=request.args.get("reference_id"),
        created_from=request.args.get("created_from"),
        created_to=request.args.get("created_to"),
        limit=request.args.get("limit", default=200, type=int),
    )
    return jsonify([r.to_dict() for r in rows]), 200


@inventory_bp.get("/products/<int:product_id>")
@require_organization
def product_summary_route(product_id: int):
    return jsonify(_read_model().product_summary(product_id)), 200


@inventory_bp.get("/locations/<int:location_id>")
@require_organization
def location_summary_route(location_id: int):
    return jsonify(_read_model().location_summary(location_id)), 200
