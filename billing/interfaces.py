"""Narrow interfaces to the collaborators the ledger depends on."""

from __future__ import annotations

import itertools
import threading
import uuid
from datetime import datetime, timedelta, timezone
from typing import Iterable, Optional, Protocol, Set, Union

from billing.models import Invoice, Quotation, as_utc


class LeadDirectory(Protocol):
    def lead_exists(self, lead_id: str) -> bool: ...


class DocumentRenderer(Protocol):
    """Turns a fully computed quotation or invoice snapshot into bytes (PDF, HTML, ...)."""

    def render(self, document: Union[Quotation, Invoice]) -> bytes: ...


class IdGenerator(Protocol):
    def new_id(self, kind: str) -> str: ...


class Clock(Protocol):
    def now(self) -> datetime: ...


class InMemoryLeadDirectory:
    """Lead lookup backed by a set of known ids."""

    def __init__(self, lead_ids: Optional[Iterable[str]] = None) -> None:
        self._lead_ids: Set[str] = set(lead_ids or [])
        self._lock = threading.Lock()

    def register(self, lead_id: str) -> None:
        with self._lock:
            self._lead_ids.add(lead_id)

    def lead_exists(self, lead_id: str) -> bool:
        with self._lock:
            return lead_id in self._lead_ids


class UuidIdGenerator:
    def new_id(self, kind: str) -> str:
        return f"{kind}_{uuid.uuid4().hex}"


class SequentialIdGenerator:
    """Predictable ids (quotation_1, invoice_2, ...) for tests and fixtures."""

    def __init__(self) -> None:
        self._counter = itertools.count(1)
        self._lock = threading.Lock()

    def new_id(self, kind: str) -> str:
        with self._lock:
            return f"{kind}_{next(self._counter)}"


class SystemClock:
    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class FixedClock:
    """A clock that only moves when told to."""

    def __init__(self, current: datetime) -> None:
        self._current = as_utc(current)
        self._lock = threading.Lock()

    def now(self) -> datetime:
        with self._lock:
            return self._current

    def set(self, current: datetime) -> None:
        with self._lock:
            self._current = as_utc(current)

    def advance(self, **delta: float) -> datetime:
        with self._lock:
            self._current = self._current + timedelta(**delta)
            return self._current
