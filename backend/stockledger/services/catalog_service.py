# Overview: Minimal catalog writes used by seeding, the CLI and tests. The catalog is otherwise owned externally.

from __future__ import annotations

from decimal import Decimal

from ..errors import NotFoundError, ValidationError
from ..extensions import db
from ..models import LOCATION_TYPES, Location, Organization, Product
from ..validation import non_negative_quantity, optional_text


def create_organization(*, name: str, code: str | None = None, session=None) -> Organization:
    session = session or db.session
    if not name or not name.strip():
        raise ValidationError("name is required")
    org = Organization(name=name.strip(), code=code)
    session.add(org)
    session.commit()
    return org


def create_product(
    *,
    organization_id: int,
    sku: str,
    name: str,
    stock_unit: str = "unit",
    min_stock_level=0,
    max_stock_level=0,
    avg_cost=0,
    description: str | None = None,
    session=None,
) -> Product:
    session = session or db.session
    sku = optional_text(sku, "sku", 64)
    name = optional_text(name, "name", 255)
    if not sku or not name:
        raise ValidationError("sku and name are required")

    min_level = non_negative_quantity(min_stock_level, "min_stock_level")
    max_level = non_negative_quantity(max_stock_level, "max_stock_level")
    if max_level > 0 and max_level < min_level:
        raise ValidationError("max_stock_level must be >= min_stock_level")

    existing = session.query(Product).filter_by(organization_id=organization_id, sku=sku).first()
    if existing is not None:
        raise ValidationError(f"SKU {sku!r} already exists")

    product = Product(
        organization_id=organization_id,
        sku=sku,
        name=name,
        description=description,
        stock_unit=stock_unit or "unit",
        min_stock_level=min_level,
        max_stock_level=max_level,
        avg_cost=non_negative_quantity(avg_cost, "avg_cost"),
        last_purchase_cost=Decimal(0),
    )
    session.add(product)
    session.commit()
    return product


def create_location(
    *,
    organization_id: int,
    name: str,
    type: str = "warehouse",
    address: str | None = None,
    is_active: bool = True,
    session=None,
) -> Location:
    session = session or db.session
    name = optional_text(name, "name", 255)
    if not name:
        raise ValidationError("name is required")
    if type not in LOCATION_TYPES:
        raise ValidationError(f"type must be one of: {', '.join(LOCATION_TYPES)}")

    location = Location(
        organization_id=organization_id,
        name=name,
        type=type,
        address=address,
        is_active=is_active,
    )
    session.add(location)
    session.commit()
    return location


def set_location_active(*, organization_id: int, location_id: int, is_active: bool, session=None) -> Location:
    session = session or db.session
    location = session.query(Location).filter_by(id=location_id, organization_id=organization_id).first()
    if location is None:
        raise NotFoundError(f"Location {location_id} not found", location_id=location_id)
    location.is_active = is_active
    session.commit()
    return location
