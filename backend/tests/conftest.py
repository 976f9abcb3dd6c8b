"""Shared test fixtures for all test modules."""

import contextlib
from datetime import UTC, date, datetime, timedelta
from decimal import Decimal
from itertools import count
from typing import Any
from unittest.mock import patch

import httpx
import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, text
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

import invoicer.models  # noqa: F401
from invoicer.core import database as db_module
from invoicer.core.config import settings
from invoicer.core.database import Base, get_db
from invoicer.models.billing_plan import BillingPlan, BillingPlanItem
from invoicer.models.ledger_token import LedgerToken
from invoicer.repositories.ledger_token_repository import LedgerTokenRepository
from invoicer.schemas.ledger import (
    LedgerCustomer,
    LedgerInvoice,
    LedgerInvoiceCreate,
    LedgerItem,
    LedgerTaxCode,
    LedgerTaxRate,
)
from invoicer.services.invoice_orchestrator import InvoiceOrchestrator
from invoicer.services.ports import InvoiceReportData, NotificationResult
from invoicer.services.token_vault import TokenVault

# Create an in-memory SQLite engine with StaticPool so all connections
# share the same database state and there are no file-locking issues.
_test_engine = create_engine(
    "sqlite://",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
_TestSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=_test_engine)

CUSTOMER_ID = "58"
STANDARD_ITEM_ID = "7"
ZERO_ITEM_ID = "9"
STANDARD_TAX_CODE = "TC20"
ZERO_TAX_CODE = "TC0"


@pytest.fixture(autouse=True)
def setup_database():
    """Create tables before each test and truncate all data after.

    Patches the module-level engine and SessionLocal so all application code
    uses the in-memory test database. Clears data after each test.
    """
    original_engine = db_module.engine
    original_session = db_module.SessionLocal
    db_module.engine = _test_engine
    db_module.SessionLocal = _TestSessionLocal

    Base.metadata.create_all(bind=_test_engine)

    yield
    with _test_engine.connect() as conn:
        conn.execute(text("PRAGMA foreign_keys = OFF"))
        for table in reversed(Base.metadata.sorted_tables):
            with contextlib.suppress(OperationalError):
                conn.execute(table.delete())
        conn.execute(text("PRAGMA foreign_keys = ON"))
        conn.commit()

    db_module.engine = original_engine
    db_module.SessionLocal = original_session


@pytest.fixture
def db_session():
    """Create a database session for direct repository testing."""
    gen = get_db()
    db = next(gen)
    try:
        yield db
    finally:
        with contextlib.suppress(StopIteration):
            next(gen)


# ---------------------------------------------------------------------------
# Ledger wire-shape builders
# ---------------------------------------------------------------------------


def make_customer(**overrides: Any) -> LedgerCustomer:
    data: dict[str, Any] = {
        "Id": CUSTOMER_ID,
        "DisplayName": "Acme Ltd",
        "CompanyName": "Acme Holdings Ltd",
        "PrimaryEmailAddr": {"Address": "accounts@acme.example"},
        "BillAddr": {
            "Line1": "1 High Street",
            "City": "Leeds",
            "CountrySubDivisionCode": "West Yorkshire",
            "PostalCode": "LS1 1AA",
            "Country": "UK",
        },
    }
    data.update(overrides)
    return LedgerCustomer.model_validate(data)


def make_item(item_id: str, name: str, tax_code_id: str | None) -> LedgerItem:
    data: dict[str, Any] = {"Id": item_id, "Name": name, "Type": "Service"}
    if tax_code_id:
        data["SalesTaxCodeRef"] = {"value": tax_code_id}
    return LedgerItem.model_validate(data)


def make_tax_code(code_id: str, name: str, rate_ids: list[str]) -> LedgerTaxCode:
    return LedgerTaxCode.model_validate(
        {
            "Id": code_id,
            "Name": name,
            "SalesTaxRateList": {
                "TaxRateDetail": [{"TaxRateRef": {"value": rate_id}} for rate_id in rate_ids]
            },
        }
    )


def make_tax_rate(rate_id: str, value: str) -> LedgerTaxRate:
    return LedgerTaxRate.model_validate(
        {"Id": rate_id, "Name": f"Rate {rate_id}", "RateValue": value}
    )


# ---------------------------------------------------------------------------
# Test doubles for the orchestrator ports
# ---------------------------------------------------------------------------


class FakeLedger:
    """In-memory ledger that echoes invoices back with tax computed per line."""

    def __init__(self) -> None:
        self.customers: dict[str, LedgerCustomer] = {}
        self.items: dict[str, LedgerItem] = {}
        self.tax_codes: dict[str, LedgerTaxCode] = {}
        self.tax_rates: dict[str, LedgerTaxRate] = {}
        self.created: list[LedgerInvoiceCreate] = []
        self.create_error: Exception | None = None
        self.invoice_response: LedgerInvoice | None = None
        self._ids = count(1001)

    def list_customers(self) -> list[LedgerCustomer]:
        return list(self.customers.values())

    def get_customer(self, customer_id: str) -> LedgerCustomer | None:
        return self.customers.get(customer_id)

    def list_items(self) -> list[LedgerItem]:
        return list(self.items.values())

    def get_item(self, item_id: str) -> LedgerItem | None:
        return self.items.get(item_id)

    def get_tax_code(self, tax_code_id: str) -> LedgerTaxCode | None:
        return self.tax_codes.get(tax_code_id)

    def get_tax_rate(self, tax_rate_id: str) -> LedgerTaxRate | None:
        return self.tax_rates.get(tax_rate_id)

    def _rate_for(self, tax_code_id: str | None) -> Decimal:
        code = self.tax_codes.get(tax_code_id or "")
        if code is None:
            return Decimal("0")
        return sum(
            (self.tax_rates[r].rate_value for r in code.sales_tax_rate_ids() if r in self.tax_rates),
            Decimal("0"),
        )

    def create_invoice(self, invoice: LedgerInvoiceCreate) -> LedgerInvoice:
        self.created.append(invoice)
        if self.create_error is not None:
            raise self.create_error
        if self.invoice_response is not None:
            return self.invoice_response

        lines = []
        total_tax = Decimal("0")
        for line in invoice.line:
            detail = line.sales_item_line_detail
            code = detail.tax_code_ref.value if detail and detail.tax_code_ref else None
            tax = (Decimal(line.amount) * self._rate_for(code) / 100).quantize(Decimal("0.01"))
            total_tax += tax
            lines.append(
                {
                    "Amount": str(line.amount),
                    "DetailType": "SalesItemLineDetail",
                    "SalesItemLineDetail": {
                        "ItemRef": {"value": line.item_code},
                        "TaxInclusiveAmt": str(Decimal(line.amount) + tax),
                    },
                }
            )
        net = sum((Decimal(line.amount) for line in invoice.line), Decimal("0"))
        return LedgerInvoice.model_validate(
            {
                "Id": str(next(self._ids)),
                "DocNumber": invoice.doc_number,
                "TotalAmt": str(net + total_tax),
                "TxnTaxDetail": {"TotalTax": str(total_tax)},
                "Line": lines,
            }
        )


class FakeRenderer:
    def __init__(self) -> None:
        self.reports: list[InvoiceReportData] = []
        self.error: Exception | None = None

    def render_invoice(self, report: InvoiceReportData) -> bytes:
        self.reports.append(report)
        if self.error is not None:
            raise self.error
        return f"%PDF-fake {report.invoice_number} {report.status}".encode()


class FakeNotifier:
    def __init__(self) -> None:
        self.sent: list[dict[str, Any]] = []
        self.result = NotificationResult(success=True, provider_message_id="<msg-1@example>")

    def send_invoice(
        self,
        recipient: str,
        recipient_name: str,
        invoice_number: str,
        total_amount: Decimal,
        pdf_content: bytes,
    ) -> NotificationResult:
        self.sent.append(
            {
                "recipient": recipient,
                "recipient_name": recipient_name,
                "invoice_number": invoice_number,
                "total_amount": total_amount,
                "pdf_content": pdf_content,
            }
        )
        return self.result


@pytest.fixture
def fake_ledger() -> FakeLedger:
    ledger = FakeLedger()
    ledger.customers[CUSTOMER_ID] = make_customer()
    ledger.items[STANDARD_ITEM_ID] = make_item(STANDARD_ITEM_ID, "Consulting", STANDARD_TAX_CODE)
    ledger.items[ZERO_ITEM_ID] = make_item(ZERO_ITEM_ID, "Postage", ZERO_TAX_CODE)
    ledger.tax_codes[STANDARD_TAX_CODE] = make_tax_code(STANDARD_TAX_CODE, "20.0% S", ["R20"])
    ledger.tax_codes[ZERO_TAX_CODE] = make_tax_code(ZERO_TAX_CODE, "0.0% Z", ["R0"])
    ledger.tax_rates["R20"] = make_tax_rate("R20", "20")
    ledger.tax_rates["R0"] = make_tax_rate("R0", "0")
    return ledger


@pytest.fixture
def fake_renderer() -> FakeRenderer:
    return FakeRenderer()


@pytest.fixture
def fake_notifier() -> FakeNotifier:
    return FakeNotifier()


@pytest.fixture
def orchestrator(db_session: Session, fake_ledger, fake_renderer, fake_notifier):
    return InvoiceOrchestrator(db_session, fake_ledger, fake_renderer, fake_notifier)


@pytest.fixture
def client(fake_ledger, fake_renderer, fake_notifier):
    """Create test client with the ledger, renderer and notifier faked."""
    from invoicer.core.dependencies import get_ledger_api, get_notifier, get_renderer
    from invoicer.main import app

    app.dependency_overrides[get_ledger_api] = lambda: fake_ledger
    app.dependency_overrides[get_renderer] = lambda: fake_renderer
    app.dependency_overrides[get_notifier] = lambda: fake_notifier
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


def create_plan(
    db: Session,
    items: list[dict[str, Any]] | None = None,
    **overrides: Any,
) -> BillingPlan:
    """Insert a plan and its items directly, bypassing ledger lookups."""
    fields: dict[str, Any] = {
        "name": "Acme retainer",
        "ledger_customer_id": CUSTOMER_ID,
        "frequency": "monthly",
        "start_date": date(2025, 1, 1),
        "is_active": True,
    }
    fields.update(overrides)
    plan = BillingPlan(**fields)
    db.add(plan)
    db.flush()

    if items is None:
        items = [
            {
                "ledger_item_id": STANDARD_ITEM_ID,
                "item_name": "Consulting",
                "quantity": Decimal("1"),
                "rate": Decimal("99.00"),
                "tax_code_id": STANDARD_TAX_CODE,
                "tax_rate": Decimal("20"),
            }
        ]
    for sort_order, item in enumerate(items):
        item_fields: dict[str, Any] = {
            "sort_order": sort_order,
            "from_date": date(2025, 1, 1),
        }
        item_fields.update(item)
        db.add(BillingPlanItem(billing_plan_id=plan.id, **item_fields))

    db.commit()
    db.refresh(plan)
    return plan


# ---------------------------------------------------------------------------
# Ledger HTTP harness
# ---------------------------------------------------------------------------

LEDGER_NOW = datetime(2025, 3, 1, 12, 0, tzinfo=UTC)
LEDGER_REALM = "9130350000000000"


class LedgerStub:
    """Routes MockTransport requests to queued token-endpoint or API responses.

    A queued exception is raised instead of returned, which is how a
    transport failure reaches the client.
    """

    def __init__(self) -> None:
        self.token_requests: list[httpx.Request] = []
        self.api_requests: list[httpx.Request] = []
        self.token_responses: list[httpx.Response | Exception] = []
        self.api_responses: list[httpx.Response | Exception] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        if str(request.url) == settings.LEDGER_TOKEN_URL:
            self.token_requests.append(request)
            queued = self.token_responses.pop(0)
        else:
            self.api_requests.append(request)
            queued = self.api_responses.pop(0)
        if isinstance(queued, Exception):
            raise queued
        return queued


def token_response(access: str, refresh: str, expires_in: int = 3600) -> httpx.Response:
    return httpx.Response(
        200,
        json={
            "access_token": access,
            "refresh_token": refresh,
            "token_type": "bearer",
            "expires_in": expires_in,
            "x_refresh_token_expires_in": 8726400,
        },
    )


def store_ledger_token(
    vault: TokenVault,
    access: str = "old-access",
    refresh: str = "old-refresh",
    access_expires_at: datetime = LEDGER_NOW + timedelta(hours=1),
    refresh_expires_at: datetime = LEDGER_NOW + timedelta(days=100),
) -> LedgerToken:
    """Write a credential for LEDGER_REALM the way a completed authorization would."""
    db = db_module.SessionLocal()
    try:
        return LedgerTokenRepository(db).upsert(
            LEDGER_REALM,
            vault.encrypt(access),
            vault.encrypt(refresh),
            access_expires_at,
            refresh_expires_at,
        )
    finally:
        db.close()


@pytest.fixture
def ledger_settings():
    with patch.multiple(
        settings,
        LEDGER_CLIENT_ID="client-abc",
        LEDGER_CLIENT_SECRET="secret-xyz",
        LEDGER_REDIRECT_URI="https://billing.example/v1/ledger/callback",
    ):
        yield settings


@pytest.fixture
def vault() -> TokenVault:
    return TokenVault("test-master-key")


@pytest.fixture
def stub() -> LedgerStub:
    return LedgerStub()
