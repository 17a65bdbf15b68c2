"""FastAPI service exposing the billing ledger.

Quotations, invoices, payments and credit notes all go through a single
`BillingLedgerEngine`; this module only wires routers, CORS and the mapping
from ledger errors to HTTP responses.
"""

from __future__ import annotations

import logging
import os
from typing import Any, Dict

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware

from backend.db import init_db
from backend.routers import invoices as invoices_router
from backend.routers import quotations as quotations_router
from backend.routers import reports as reports_router
from backend.seed import seed_demo_data
from billing.errors import (
    BillingError,
    CurrencyMismatchError,
    NotFoundError,
    ValidationError,
)

logger = logging.getLogger("billing-api")
logging.basicConfig(level=os.getenv("LOG_LEVEL", "INFO"))


def get_settings() -> Dict[str, Any]:
    allowed_raw = os.getenv("ALLOWED_ORIGINS", "*")
    allowed_list = [o.strip() for o in allowed_raw.split(",") if o.strip()]
    return {
        "database_url": os.getenv("DATABASE_URL", "sqlite:///./billing.db"),
        "billing_store": os.getenv("BILLING_STORE", "memory").lower(),
        "allowed_origins": allowed_list,
        "allow_origin_regex": os.getenv("ALLOWED_ORIGIN_REGEX", None),
        "auth_bypass": os.getenv("AUTH_BYPASS", "false").lower() == "true",
        "port": int(os.getenv("PORT", "8000")),
    }


settings = get_settings()

app = FastAPI(
    title="Billing Ledger API",
    description="Quotations, invoices, payments and credit notes for the travel back-office.",
    version="0.1.0",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings["allowed_origins"] or ["*"],
    allow_origin_regex=settings["allow_origin_regex"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(quotations_router.router)
app.include_router(invoices_router.router)
app.include_router(reports_router.router)


@app.on_event("startup")
async def startup_event() -> None:
    init_db()
    seed_demo_data()
    logger.info("Billing API started with %s store", settings["billing_store"])


@app.get("/health")
def health() -> Dict[str, str]:
    return {"status": "ok"}


@app.get("/")
async def root() -> Dict[str, str]:
    return {"service": "billing-ledger", "status": "ok"}


def status_for(exc: BillingError) -> int:
    if isinstance(exc, (ValidationError, CurrencyMismatchError)):
        return 400
    if isinstance(exc, NotFoundError):
        return 404
    return 409


@app.exception_handler(BillingError)
async def billing_error_handler(request: Request, exc: BillingError):  # type: ignore[override]
    status_code = status_for(exc)
    logger.info("%s %s -> %s %s", request.method, request.url.path, status_code, exc.code)
    return fastapi_response(status_code, exc.to_dict())


@app.exception_handler(RequestValidationError)
async def request_validation_handler(_, exc: RequestValidationError):  # type: ignore[override]
    problems = []
    for err in exc.errors():
        location = ".".join(str(part) for part in err.get("loc", ()) if part != "body")
        problems.append(f"{location}: {err.get('msg')}" if location else str(err.get("msg")))
    body = ValidationError("; ".join(problems), details={"errors": problems}).to_dict()
    return fastapi_response(400, body)


@app.exception_handler(HTTPException)
async def http_error_handler(_, exc: HTTPException):  # type: ignore[override]
    return fastapi_response(exc.status_code, {"detail": exc.detail}, headers=exc.headers)


@app.exception_handler(Exception)
async def unhandled_error_handler(_, exc: Exception):  # type: ignore[override]
    logger.exception("Unhandled error: %s", exc)
    return fastapi_response(500, {"detail": "Internal server error"})


def fastapi_response(status_code: int, payload: Dict[str, Any], headers: Dict[str, str] | None = None):
    from fastapi.responses import JSONResponse

    return JSONResponse(status_code=status_code, content=payload, headers=headers)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("backend.app:app", host="0.0.0.0", port=settings["port"], reload=True)
