"""Per-document mutual exclusion with first-come, first-served ordering."""

from __future__ import annotations

import threading
from contextlib import contextmanager
from typing import Dict, Iterator


class _TicketLock:
    """FIFO lock: waiters are admitted strictly in the order they arrived."""

    def __init__(self) -> None:
        self._cond = threading.Condition(threading.Lock())
        self._next_ticket = 0
        self._serving = 0
        self.holders = 0

    def acquire(self) -> None:
        with self._cond:
            ticket = self._next_ticket
            self._next_ticket += 1
            while ticket != self._serving:
                self._cond.wait()

    def release(self) -> None:
        with self._cond:
            self._serving += 1
            self._cond.notify_all()


class DocumentLocks:
    """
    Registry of ticket locks keyed by document id.

    Operations on different ids never contend; operations on the same id
    run one at a time in arrival order. Entries are dropped once nobody
    holds or waits on them.
    """

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: Dict[str, _TicketLock] = {}

    @contextmanager
    def hold(self, document_id: str) -> Iterator[None]:
        with self._guard:
            lock = self._locks.get(document_id)
            if lock is None:
                lock = _TicketLock()
                self._locks[document_id] = lock
            lock.holders += 1
        lock.acquire()
        try:
            yield
        finally:
            lock.release()
            with self._guard:
                lock.holders -= 1
                if lock.holders == 0:
                    self._locks.pop(document_id, None)

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)
