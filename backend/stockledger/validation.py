from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Callable

from .errors import ValidationError


# Quantities and costs are stored as Numeric(14, 4)
QUANTUM = Decimal("0.0001")
MAX_QUANTITY = Decimal("9999999999")


def quantize(value: Decimal) -> Decimal:
    return value.quantize(QUANTUM, rounding=ROUND_HALF_UP)


def to_decimal(value: Any, field_name: str) -> Decimal:
    """
    Coerce caller input to a finite Decimal.

    Rejects bools, NaN/Infinity, scientific-notation overflow, more than four
    decimal places and anything that is not a number or numeric string.
    """
    if value is None:
        raise ValidationError(f"{field_name} is required")
    if isinstance(value, bool):
        raise ValidationError(f"{field_name} must be a number")
    if isinstance(value, Decimal):
        dec = value
    elif isinstance(value, (int, float)):
        dec = Decimal(str(value))
    elif isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            raise ValidationError(f"{field_name} must be a number")
        try:
            dec = Decimal(stripped)
        except InvalidOperation:
            raise ValidationError(f"{field_name} must be a number")
    else:
        raise ValidationError(f"{field_name} must be a number")

    if not dec.is_finite():
        raise ValidationError(f"{field_name} must be a finite number")
    if abs(dec) > MAX_QUANTITY:
        raise ValidationError(f"{field_name} exceeds {MAX_QUANTITY}")
    if dec != dec.quantize(QUANTUM):
        raise ValidationError(f"{field_name} allows at most 4 decimal places")
    return quantize(dec)


def positive_quantity(value: Any, field_name: str = "quantity") -> Decimal:
    dec = to_decimal(value, field_name)
    if dec <= 0:
        raise ValidationError(f"{field_name} must be > 0")
    return dec


def non_negative_quantity(value: Any, field_name: str = "quantity") -> Decimal:
    dec = to_decimal(value, field_name)
    if dec < 0:
        raise ValidationError(f"{field_name} cannot be negative")
    return dec


def optional_text(value: Any, field_name: str, max_length: int) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    if not text:
        return None
    if len(text) > max_length:
        raise ValidationError(f"{field_name} exceeds max length {max_length}")
    return text


def _as_int(value: Any, field_name: str) -> int:
    if isinstance(value, bool):
        raise ValidationError(f"{field_name} must be an integer")
    if isinstance(value, int):
        return value
    if isinstance(value, str) and value.strip().isdigit():
        return int(value.strip())
    raise ValidationError(f"{field_name} must be an integer")


def _as_bool(value: Any, field_name: str) -> bool:
    if isinstance(value, bool):
        return value
    raise ValidationError(f"{field_name} must be true or false")


def _as_str(value: Any, field_name: str) -> str:
    return str(value).strip()


FIELD_COERCERS: dict[str, Callable[[Any, str], Any]] = {
    "product_id": _as_int,
    "location_id": _as_int,
    "source_location_id": _as_int,
    "destination_location_id": _as_int,
    "quantity": to_decimal,
    "new_quantity": to_decimal,
    "counted_quantity": to_decimal,
    "unit_cost": to_decimal,
    "allow_oversell": _as_bool,
    "reference_id": _as_str,
    "reference_type": _as_str,
    "reason": _as_str,
    "notes": _as_str,
    "shelf_location": _as_str,
}


@dataclass(frozen=True)
class PayloadPolicy:
    """
    Central policy layer:
    - writable_fields: what clients are allowed to send (security boundary)
    - required: fields that must be present and non-null
    """
    writable_fields: set[str]
    required: set[str] = field(default_factory=set)


def validate_payload(*, payload: Any, policy: PayloadPolicy) -> dict:
    """
    Validates + normalizes incoming JSON against a policy allowlist.
    Returns a cleaned dict containing only writable fields.
    """
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    missing = sorted(f for f in policy.required if payload.get(f) is None)
    if missing:
        raise ValidationError(f"Missing required fields: {', '.join(missing)}")

    cleaned: dict = {}
    for key, raw in payload.items():
        if key not in policy.writable_fields:
            raise ValidationError(f"Field not allowed: {key}")
        if raw is None:
            cleaned[key] = None
            continue
        coercer = FIELD_COERCERS.get(key, _as_str)
        cleaned[key] = coercer(raw, key)
    return cleaned
