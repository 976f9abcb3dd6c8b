"""Capability interfaces the invoice orchestrator depends on.

Production implementations are ``PdfService``, ``EmailService`` and
``LedgerClient``; tests substitute in-memory doubles.
"""

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Protocol

from invoicer.schemas.ledger import (
    LedgerCustomer,
    LedgerInvoice,
    LedgerInvoiceCreate,
    LedgerItem,
    LedgerTaxCode,
    LedgerTaxRate,
)


@dataclass
class InvoiceReportLine:
    description: str
    quantity: Decimal
    rate: Decimal
    amount: Decimal
    sub_description: str | None = None
    tax_rate: Decimal = Decimal("0")
    vat_amount: Decimal = Decimal("0")


@dataclass
class InvoiceReportData:
    """Everything printed on an invoice document."""

    invoice_number: str
    invoice_date: date
    due_date: date
    customer_name: str
    sub_total: Decimal
    vat_total: Decimal
    total: Decimal
    status: str = "draft"
    customer_company: str | None = None
    customer_email: str | None = None
    address_lines: list[str] = field(default_factory=list)
    your_reference: str | None = None
    our_reference: str | None = None
    account_handler: str | None = None
    payment_terms_days: int = 14
    lines: list[InvoiceReportLine] = field(default_factory=list)


@dataclass
class NotificationResult:
    success: bool
    provider_message_id: str | None = None
    error_message: str | None = None


class InvoiceRenderer(Protocol):
    def render_invoice(self, report: InvoiceReportData) -> bytes: ...


class InvoiceNotifier(Protocol):
    def send_invoice(
        self,
        recipient: str,
        recipient_name: str,
        invoice_number: str,
        total_amount: Decimal,
        pdf_content: bytes,
    ) -> NotificationResult: ...


class LedgerApi(Protocol):
    def list_customers(self) -> list[LedgerCustomer]: ...

    def get_customer(self, customer_id: str) -> LedgerCustomer | None: ...

    def list_items(self) -> list[LedgerItem]: ...

    def get_item(self, item_id: str) -> LedgerItem | None: ...

    def get_tax_code(self, tax_code_id: str) -> LedgerTaxCode | None: ...

    def get_tax_rate(self, tax_rate_id: str) -> LedgerTaxRate | None: ...

    def create_invoice(self, invoice: LedgerInvoiceCreate) -> LedgerInvoice: ...
