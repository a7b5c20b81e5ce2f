# Overview: Typed ledger errors surfaced to callers and mapped to HTTP responses.

from __future__ import annotations


class LedgerError(Exception):
    """Base class for every error the ledger reports to its callers."""

    status_code = 400
    code = "ledger_error"
    retryable = False

    def __init__(self, message: str, **context):
        super().__init__(message)
        self.message = message
        self.context = context

    def to_dict(self) -> dict:
        payload = {"error": self.message, "code": self.code}
        if self.retryable:
            payload["retryable"] = True
        if self.context:
            payload["details"] = {k: _jsonable(v) for k, v in self.context.items()}
        return payload


class ValidationError(LedgerError, ValueError):
    """Non-positive/non-finite quantity, missing field, bad enum value."""

    status_code = 400
    code = "validation_error"


class InsufficientStockError(LedgerError):
    """The operation would drive available or current stock negative."""

    status_code = 409
    code = "insufficient_stock"


class NotFoundError(LedgerError):
    """Unknown product, location or inventory row within the tenant."""

    status_code = 404
    code = "not_found"


class ConcurrencyTimeoutError(LedgerError):
    """Lock not acquired in time, or database contention outlasted retries."""

    status_code = 503
    code = "concurrency_timeout"
    retryable = True


class IntegrityError(LedgerError):
    """
    Cached inventory row disagrees with the ledger sum.

    Never recovered locally: the offending write is rolled back.
    """

    status_code = 500
    code = "integrity_error"


def _jsonable(value):
    # Decimal and other numerics render as strings to keep precision
    if isinstance(value, (str, int, bool)) or value is None:
        return value
    if isinstance(value, (list, tuple)):
        return [_jsonable(v) for v in value]
    return str(value)
