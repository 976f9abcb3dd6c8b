from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from invoicer.core.config import settings
from invoicer.core.database import init_db
from invoicer.core.errors import (
    InvalidStateError,
    InvoicerError,
    LedgerError,
    NotConnectedError,
    NotFoundError,
    ValidationError,
)
from invoicer.core.logging_config import configure_logging
from invoicer.routers import billing_plans, invoices, ledger

configure_logging(settings.LOG_LEVEL)

OPENAPI_TAGS = [
    {"name": "Billing Plans", "description": "Manage recurring billing plans and their items."},
    {"name": "Invoices", "description": "Generate, post, render and email invoices."},
    {"name": "Ledger", "description": "Ledger connection and lookups."},
]

ERROR_STATUS: list[tuple[type[InvoicerError], int]] = [
    (ValidationError, 400),
    (NotConnectedError, 401),
    (NotFoundError, 404),
    (InvalidStateError, 409),
    (LedgerError, 502),
]


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    init_db()
    yield


app = FastAPI(
    title=settings.APP_NAME,
    version=settings.version,
    description="Recurring billing with invoice synchronization to an external ledger.",
    openapi_tags=OPENAPI_TAGS,
    lifespan=lifespan,
    debug=settings.DEBUG,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[o.strip() for o in settings.CORS_ORIGINS.split(",") if o.strip()],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _error_body(exc: InvoicerError) -> dict[str, object]:
    body: dict[str, object] = {"detail": str(exc)}
    if isinstance(exc, ValidationError) and exc.fields:
        body["fields"] = exc.fields
    if isinstance(exc, InvalidStateError) and exc.current_status:
        body["current_status"] = exc.current_status
    return body


def _make_handler(status_code: int):  # type: ignore[no-untyped-def]
    async def handler(request: Request, exc: InvoicerError) -> JSONResponse:
        return JSONResponse(status_code=status_code, content=_error_body(exc))

    return handler


for error_type, error_status in ERROR_STATUS:
    app.add_exception_handler(error_type, _make_handler(error_status))


app.include_router(billing_plans.router, prefix="/v1/billing_plans", tags=["Billing Plans"])
app.include_router(invoices.router, prefix="/v1/invoices", tags=["Invoices"])
app.include_router(ledger.router, prefix="/v1/ledger", tags=["Ledger"])


@app.get("/")
async def root() -> dict[str, str]:
    return {
        "app": settings.APP_NAME,
        "version": settings.version,
        "status": "running",
    }
