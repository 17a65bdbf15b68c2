from __future__ import annotations

import os
import threading
from typing import Callable, Dict, FrozenSet, Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer

from backend.security import decode_token
from backend.sql_store import SqlLeadDirectory, SqlLedgerStore
from billing.engine import BillingLedgerEngine
from billing.store import InMemoryLedgerStore

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/token", auto_error=False)

BILLING_READ = "billing:read"
BILLING_WRITE = "billing:write"
BILLING_CANCEL = "billing:cancel"
BILLING_PERMISSIONS = frozenset({BILLING_READ, BILLING_WRITE, BILLING_CANCEL})

ROLE_PERMISSIONS: Dict[str, FrozenSet[str]] = {
    "admin": BILLING_PERMISSIONS,
    "salesRep": frozenset({BILLING_READ, BILLING_WRITE}),
}

_engine: Optional[BillingLedgerEngine] = None
_engine_lock = threading.Lock()


def _auth_bypass() -> bool:
    return os.getenv("AUTH_BYPASS", "false").lower() == "true"


def get_token_payload(token: Optional[str] = Depends(oauth2_scheme)) -> dict:
    if _auth_bypass():
        return {"sub": "demo-user", "role": "admin"}
    if not token:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing authentication token.",
            headers={"WWW-Authenticate": "Bearer"},
        )
    try:
        payload = decode_token(token)
    except ValueError as exc:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
            headers={"WWW-Authenticate": "Bearer"},
        ) from exc
    return payload


def permissions_for(payload: dict) -> FrozenSet[str]:
    """
    Billing permissions granted by a token payload.

    An admin token that carries an explicit permission list only gets the
    full set when the list includes `manage_billing`.
    """
    role = payload.get("role")
    explicit = payload.get("permissions")
    granted = set(BILLING_PERMISSIONS.intersection(explicit or []))
    if role == "admin" and explicit is not None and "manage_billing" not in explicit:
        return frozenset(granted)
    granted.update(ROLE_PERMISSIONS.get(role, frozenset()))
    return frozenset(granted)


def require_permission(name: str) -> Callable[[dict], dict]:
    def checker(payload: dict = Depends(get_token_payload)) -> dict:
        if name not in permissions_for(payload):
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=f"Missing permission: {name}")
        return payload

    return checker


def build_engine() -> BillingLedgerEngine:
    backend = os.getenv("BILLING_STORE", "memory").lower()
    if backend == "sql":
        store = SqlLedgerStore()
    elif backend == "memory":
        store = InMemoryLedgerStore()
    else:
        raise ValueError(f"Unknown BILLING_STORE: {backend}")
    return BillingLedgerEngine(store, leads=SqlLeadDirectory())


def get_engine() -> BillingLedgerEngine:
    global _engine
    with _engine_lock:
        if _engine is None:
            _engine = build_engine()
        return _engine


def reset_engine() -> None:
    """Drop the shared engine so the next request builds a fresh one."""
    global _engine
    with _engine_lock:
        _engine = None
