# Overview: Per-key serialization and retry helpers for ledger operations.

from __future__ import annotations

import logging
import threading
import time
from contextlib import contextmanager
from typing import Hashable, Iterable, Iterator

from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..errors import ConcurrencyTimeoutError

logger = logging.getLogger(__name__)


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    """
    return query.with_for_update()


class KeyLockRegistry:
    """
    In-process mutual exclusion keyed by (organization, product, location).

    Keys are always acquired in sorted order, whatever order the caller
    lists them in, so two-key operations (transfers) cannot deadlock
    against each other. Acquisition waits at most `timeout` seconds in
    total and then raises ConcurrencyTimeoutError.
    """

    def __init__(self):
        self._guard = threading.Lock()
        self._locks: dict[Hashable, threading.Lock] = {}

    def _lock_for(self, key: Hashable) -> threading.Lock:
        with self._guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = threading.Lock()
                self._locks[key] = lock
            return lock

    @staticmethod
    def ordered(keys: Iterable[Hashable]) -> list:
        return sorted(set(keys))

    @contextmanager
    def acquire(self, keys: Iterable[Hashable], *, timeout: float) -> Iterator[list]:
        ordered = self.ordered(keys)
        deadline = time.monotonic() + timeout
        held: list[threading.Lock] = []
        try:
            for key in ordered:
                remaining = max(0.0, deadline - time.monotonic())
                lock = self._lock_for(key)
                if not lock.acquire(timeout=remaining):
                    logger.warning("Ledger lock wait exceeded %.2fs for key %s", timeout, key)
                    raise ConcurrencyTimeoutError(
                        "timed out waiting for inventory lock; retry the operation",
                        key=list(key) if isinstance(key, tuple) else key,
                        timeout_seconds=timeout,
                    )
                held.append(lock)
            yield ordered
        finally:
            for lock in reversed(held):
                lock.release()


def run_with_retry(func, *, session=None, attempts: int = 3, backoff_base: float = 0.1):
    """
    Execute a DB operation with retry on concurrency-related failures.

    Retries on OperationalError (deadlocks, locks) and StaleDataError
    (optimistic locking conflicts). When the attempts run out the failure
    surfaces as a retryable ConcurrencyTimeoutError.
    """
    attempts = max(1, attempts)
    for attempt in range(attempts):
        try:
            return func()
        except (OperationalError, StaleDataError) as exc:
            if session is not None:
                session.rollback()
            if attempt >= attempts - 1:
                logger.warning("Giving up after %d attempts: %s", attempts, exc)
                raise ConcurrencyTimeoutError(
                    "database contention outlasted retries; retry the operation",
                    attempts=attempts,
                ) from exc
            logger.info("Retrying after concurrency failure (attempt %d/%d): %s", attempt + 1, attempts, exc)
            time.sleep(backoff_base * (2 ** attempt))
