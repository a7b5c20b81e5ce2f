# backend/stockledger/config.py
from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Mapping


ADJUST_POLICY_REJECT = "reject"
ADJUST_POLICY_WARN = "warn"


def _env_bool(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


class Config:
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/stockledger.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL",  # optional alternative location
        "sqlite:///stockledger.sqlite3",  # default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # Bounded wait for the per-key ledger lock (seconds)
    LEDGER_LOCK_TIMEOUT_SECONDS = float(os.environ.get("LEDGER_LOCK_TIMEOUT_SECONDS", "5"))

    # Retries for database-level lock/serialization failures
    LEDGER_RETRY_ATTEMPTS = int(os.environ.get("LEDGER_RETRY_ATTEMPTS", "3"))
    LEDGER_RETRY_BACKOFF_SECONDS = float(os.environ.get("LEDGER_RETRY_BACKOFF_SECONDS", "0.1"))

    # Treat reference_id as an idempotency key for ledger-writing operations
    LEDGER_DEDUPLICATE_REFERENCES = _env_bool("LEDGER_DEDUPLICATE_REFERENCES", False)

    # Default for Consume(allow_oversell=...) when the caller does not say
    LEDGER_ALLOW_OVERSELL = _env_bool("LEDGER_ALLOW_OVERSELL", False)

    # "reject" or "warn": adjustments/counts that leave current < committed
    LEDGER_ADJUST_BELOW_COMMITTED = os.environ.get("LEDGER_ADJUST_BELOW_COMMITTED", ADJUST_POLICY_REJECT)

    # Re-derive the ledger sum for every touched row before commit
    LEDGER_VERIFY_ON_WRITE = _env_bool("LEDGER_VERIFY_ON_WRITE", True)


class TestConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = "sqlite:///:memory:"
    LEDGER_LOCK_TIMEOUT_SECONDS = 0.5
    LEDGER_RETRY_BACKOFF_SECONDS = 0.0
    LEDGER_DEDUPLICATE_REFERENCES = False
    LEDGER_ALLOW_OVERSELL = False
    LEDGER_ADJUST_BELOW_COMMITTED = ADJUST_POLICY_REJECT
    LEDGER_VERIFY_ON_WRITE = True


@dataclass(frozen=True)
class LedgerSettings:
    """Ledger policy knobs, resolved once from app.config and handed to StockOperations."""
    lock_timeout: float = 5.0
    retry_attempts: int = 3
    retry_backoff: float = 0.1
    deduplicate_references: bool = False
    allow_oversell: bool = False
    adjust_below_committed: str = ADJUST_POLICY_REJECT
    verify_on_write: bool = True

    @classmethod
    def from_config(cls, config: Mapping) -> "LedgerSettings":
        policy = config.get("LEDGER_ADJUST_BELOW_COMMITTED", ADJUST_POLICY_REJECT)
        if policy not in (ADJUST_POLICY_REJECT, ADJUST_POLICY_WARN):
            raise ValueError(f"LEDGER_ADJUST_BELOW_COMMITTED must be 'reject' or 'warn', got {policy!r}")
        return cls(
            lock_timeout=float(config.get("LEDGER_LOCK_TIMEOUT_SECONDS", 5.0)),
            retry_attempts=int(config.get("LEDGER_RETRY_ATTEMPTS", 3)),
            retry_backoff=float(config.get("LEDGER_RETRY_BACKOFF_SECONDS", 0.1)),
            deduplicate_references=bool(config.get("LEDGER_DEDUPLICATE_REFERENCES", False)),
            allow_oversell=bool(config.get("LEDGER_ALLOW_OVERSELL", False)),
            adjust_below_committed=policy,
            verify_on_write=bool(config.get("LEDGER_VERIFY_ON_WRITE", True)),
        )
