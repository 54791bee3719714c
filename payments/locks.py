"""
Per-billing locks.

Nothing in the gateway protocol serialises two operations on the same
billing record. Hosts that need single-payment-per-record inside one process
can pass KeyedLocks to the gateway; multi-process deployments need a
database-level guard on top (see the unique identifier on db.models.Billing).
"""

import threading
from collections.abc import Iterator
from contextlib import contextmanager
from typing import ContextManager, Protocol


class BillingLocks(Protocol):
    def hold(self, identifier: str) -> ContextManager[None]: ...


class NullLocks:
    @contextmanager
    def hold(self, identifier: str) -> Iterator[None]:
        yield


class KeyedLocks:
    """One threading.Lock per billing identifier, dropped once nobody holds it."""

    def __init__(self):
        self._guard = threading.Lock()
        self._locks: dict[str, tuple[threading.Lock, int]] = {}

    @contextmanager
    def hold(self, identifier: str) -> Iterator[None]:
        with self._guard:
            lock, users = self._locks.get(identifier, (None, 0))
            if lock is None:
                lock = threading.Lock()
            self._locks[identifier] = (lock, users + 1)

        lock.acquire()
        try:
            yield
        finally:
            lock.release()
            with self._guard:
                _, users = self._locks[identifier]
                if users <= 1:
                    del self._locks[identifier]
                else:
                    self._locks[identifier] = (lock, users - 1)

    def __len__(self) -> int:
        return len(self._locks)
