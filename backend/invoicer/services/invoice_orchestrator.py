"""Invoice lifecycle: draft construction, ledger posting and delivery.

Status flow::

    draft --claim--> posting --ledger accepts--> posted --render--> generated
      |                 |                          (render failure leaves it posted)
      |                 +--ledger failure--> failed --reset_failed_to_draft--> draft

The claim is a conditional status update committed before the ledger call,
so only one caller can post a given draft.

Amounts on a draft are our own estimate. Once the ledger accepts the
invoice its totals are authoritative and overwrite the estimate.
"""

import logging
from collections import defaultdict, deque
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from decimal import ROUND_HALF_UP, Decimal
from typing import Any
from uuid import UUID

from sqlalchemy.orm import Session

from invoicer.core.config import settings
from invoicer.core.errors import InvalidStateError, NotFoundError, ValidationError
from invoicer.models.billing_plan import BillingPlan, BillingPlanItem
from invoicer.models.email_delivery import EmailDeliveryRecord, EmailDeliveryStatus
from invoicer.models.invoice import Invoice, InvoiceItem, InvoiceStatus
from invoicer.models.shared import utc_now
from invoicer.repositories.billing_plan_repository import BillingPlanRepository
from invoicer.repositories.email_delivery_repository import EmailDeliveryRepository
from invoicer.repositories.invoice_repository import InvoiceRepository
from invoicer.schemas.invoice import InvoiceItemEdit
from invoicer.schemas.ledger import (
    LedgerCustomer,
    LedgerInvoice,
    LedgerInvoiceCreate,
    LedgerInvoiceLine,
    LedgerReference,
    LedgerSalesItemLineDetail,
)
from invoicer.services.ports import (
    InvoiceNotifier,
    InvoiceRenderer,
    InvoiceReportData,
    InvoiceReportLine,
    LedgerApi,
    NotificationResult,
)

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")
EMAIL_SKIPPED = "skipped"


def round_money(value: Decimal) -> Decimal:
    """Round to cents, halves away from zero."""
    return Decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def compute_line(
    quantity: Decimal, rate: Decimal, tax_rate: Decimal
) -> tuple[Decimal, Decimal, Decimal]:
    """Return (net, vat, total) for one line; VAT is rounded per line."""
    net = round_money(Decimal(quantity) * Decimal(rate))
    vat = round_money(net * Decimal(tax_rate) / Decimal(100))
    return net, vat, net + vat


@dataclass
class GeneratedItem:
    item_code: str
    description: str
    quantity: Decimal
    rate: Decimal
    tax_rate: Decimal
    net_amount: Decimal
    vat_amount: Decimal
    line_total: Decimal


@dataclass
class GenerateInvoiceResult:
    """Outcome of generating a draft invoice."""

    invoice_id: UUID
    invoice_number: str
    subtotal: Decimal
    vat_amount: Decimal
    total_amount: Decimal
    items: list[GeneratedItem] = field(default_factory=list)
    pdf_rendered: bool = False
    pdf_error: str | None = None
    email_status: str | None = None


@dataclass
class PostInvoiceResult:
    """Outcome of posting a draft to the ledger."""

    invoice_id: UUID
    invoice_number: str
    status: str
    ledger_invoice_id: str
    subtotal: Decimal
    vat_amount: Decimal
    total_amount: Decimal
    pdf_rendered: bool = False
    pdf_error: str | None = None


@dataclass
class ResendResult:
    success: bool
    recipient_email: str
    provider_message_id: str | None = None
    error_message: str | None = None


class InvoiceOrchestrator:
    def __init__(
        self,
        db: Session,
        ledger: LedgerApi,
        renderer: InvoiceRenderer,
        notifier: InvoiceNotifier,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.db = db
        self.ledger = ledger
        self.renderer = renderer
        self.notifier = notifier
        self.clock = clock
        self.plan_repo = BillingPlanRepository(db)
        self.invoice_repo = InvoiceRepository(db)
        self.email_repo = EmailDeliveryRepository(db)

    # -- reads -----------------------------------------------------------

    def get_invoice(self, invoice_id: UUID) -> Invoice:
        invoice = self.invoice_repo.get_by_id(invoice_id)
        if not invoice:
            raise NotFoundError(f"Invoice {invoice_id} not found")
        return invoice

    def get_items(self, invoice_id: UUID) -> list[InvoiceItem]:
        return self.invoice_repo.get_items(invoice_id)

    def get_email_deliveries(self, invoice_id: UUID) -> list[EmailDeliveryRecord]:
        return self.email_repo.get_by_invoice(invoice_id)

    def list_invoices_for_plan(self, plan_id: UUID) -> list[Invoice]:
        self._get_plan(plan_id)
        return self.invoice_repo.get_by_plan(plan_id)

    def get_invoice_pdf(self, invoice_id: UUID) -> bytes | None:
        invoice = self.get_invoice(invoice_id)
        return bytes(invoice.pdf_content) if invoice.pdf_content else None

    # -- generation ------------------------------------------------------

    def generate_draft(
        self,
        plan_id: UUID,
        invoice_date: date | None = None,
        your_reference: str | None = None,
        our_reference: str | None = None,
        account_handler: str | None = None,
        send_email: bool = False,
    ) -> GenerateInvoiceResult:
        """Build, persist and render a draft invoice from a billing plan.

        Validation failures (missing or inactive plan, unknown customer,
        incomplete billing address) raise before anything is written.
        Rendering and emailing happen after the draft is committed and
        their failures are reported in the result rather than raised.
        """
        plan = self._get_plan(plan_id)
        if not plan.is_active:
            raise ValidationError(f"Billing plan {plan.name} is not active")

        plan_items = self.plan_repo.get_items(plan_id)
        if not plan_items:
            raise ValidationError(f"Billing plan {plan.name} has no items")

        customer = self._get_customer(str(plan.ledger_customer_id))
        missing = customer.missing_address_fields()
        if missing:
            raise ValidationError(
                f"Customer {customer.display_name} is missing billing address fields: "
                f"{', '.join(missing)}",
                fields=missing,
            )

        now = self.clock()
        invoice_date = invoice_date or now.date()
        due_date = invoice_date + timedelta(days=settings.PAYMENT_TERMS_DAYS)

        generated: list[GeneratedItem] = []
        item_rows: list[dict[str, Any]] = []
        for plan_item in plan_items:
            net, vat, total = compute_line(plan_item.quantity, plan_item.rate, plan_item.tax_rate)
            generated.append(
                GeneratedItem(
                    item_code=str(plan_item.ledger_item_id),
                    description=str(plan_item.item_name),
                    quantity=Decimal(plan_item.quantity),
                    rate=Decimal(plan_item.rate),
                    tax_rate=Decimal(plan_item.tax_rate),
                    net_amount=net,
                    vat_amount=vat,
                    line_total=total,
                )
            )
            item_rows.append(
                {
                    "description": plan_item.item_name,
                    "sub_description": plan_item.description,
                    "item_code": plan_item.ledger_item_id,
                    "quantity": plan_item.quantity,
                    "rate": plan_item.rate,
                    "tax_rate": plan_item.tax_rate,
                    "net_amount": net,
                    "vat_amount": vat,
                    "line_total": total,
                    "sort_order": plan_item.sort_order,
                }
            )

        subtotal = sum((g.net_amount for g in generated), Decimal("0"))
        vat_amount = sum((g.vat_amount for g in generated), Decimal("0"))
        address = customer.bill_address

        invoice = self.invoice_repo.create_draft(
            settings.INVOICE_NUMBER_PREFIX,
            {
                "billing_plan_id": plan.id,
                "status": InvoiceStatus.DRAFT.value,
                "generated_at": now,
                "invoice_date": invoice_date,
                "due_date": due_date,
                "subtotal": subtotal,
                "vat_amount": vat_amount,
                "total_amount": subtotal + vat_amount,
                "your_reference": your_reference,
                "our_reference": our_reference,
                "account_handler": account_handler,
                "customer_name": customer.display_name,
                "customer_company": customer.company_name,
                "customer_email": customer.email,
                "address_line1": address.line1 if address else None,
                "address_city": address.city if address else None,
                "address_region": address.region if address else None,
                "address_postal_code": address.postal_code if address else None,
                "address_country": address.country if address else None,
            },
            item_rows,
        )
        logger.info(
            "Generated draft invoice %s for plan %s (total %s)",
            invoice.invoice_number,
            plan.id,
            invoice.total_amount,
        )

        pdf_error = self._render(invoice)

        email_status: str | None = None
        if send_email:
            if not customer.email or not invoice.pdf_content:
                logger.info("Skipping email for invoice %s", invoice.invoice_number)
                email_status = EMAIL_SKIPPED
            else:
                record = self._send_email(invoice, customer.email)
                email_status = str(record.status)

        return GenerateInvoiceResult(
            invoice_id=invoice.id,
            invoice_number=str(invoice.invoice_number),
            subtotal=Decimal(invoice.subtotal),
            vat_amount=Decimal(invoice.vat_amount),
            total_amount=Decimal(invoice.total_amount),
            items=generated,
            pdf_rendered=pdf_error is None,
            pdf_error=pdf_error,
            email_status=email_status,
        )

    # -- posting ---------------------------------------------------------

    def post_to_ledger(self, invoice_id: UUID) -> PostInvoiceResult:
        """Submit a draft to the ledger and adopt the ledger's amounts.

        A ledger-side failure marks the invoice failed and re-raises. A failure
        to save after the ledger accepted it leaves the invoice in posting.
        """
        invoice = self.get_invoice(invoice_id)
        self._require_status(invoice, InvoiceStatus.DRAFT, "posted")
        invoice_number = str(invoice.invoice_number)

        # Claim the draft so a concurrent post cannot reach the ledger too
        if not self.invoice_repo.transition(
            invoice.id, InvoiceStatus.DRAFT.value, InvoiceStatus.POSTING.value
        ):
            self.db.refresh(invoice)
            raise InvalidStateError(
                f"Invoice {invoice_number} is {invoice.status} and cannot be posted",
                current_status=str(invoice.status),
            )

        items = self.invoice_repo.get_items(invoice.id)
        try:
            plan = self._get_plan(invoice.billing_plan_id)
            plan_items = self.plan_repo.get_items(plan.id)
            customer = self._get_customer(str(plan.ledger_customer_id))
            payload = self._build_ledger_invoice(invoice, items, plan_items, customer)
            ledger_invoice = self.ledger.create_invoice(payload)
        except Exception as exc:
            self._mark_failed(invoice, str(exc))
            raise

        try:
            self._apply_ledger_amounts(invoice, items, ledger_invoice)
        except Exception:
            self.db.rollback()
            logger.error(
                "Invoice %s was accepted by the ledger as %s but saving the result failed; "
                "it stays %s and must be reconciled by hand",
                invoice_number,
                ledger_invoice.id,
                InvoiceStatus.POSTING.value,
            )
            raise
        logger.info(
            "Posted invoice %s to ledger as %s", invoice.invoice_number, invoice.ledger_invoice_id
        )

        pdf_error = self._render(invoice)
        if pdf_error is None:
            invoice.status = InvoiceStatus.GENERATED.value
            self.invoice_repo.save(invoice)

        return PostInvoiceResult(
            invoice_id=invoice.id,
            invoice_number=str(invoice.invoice_number),
            status=str(invoice.status),
            ledger_invoice_id=str(invoice.ledger_invoice_id),
            subtotal=Decimal(invoice.subtotal),
            vat_amount=Decimal(invoice.vat_amount),
            total_amount=Decimal(invoice.total_amount),
            pdf_rendered=pdf_error is None,
            pdf_error=pdf_error,
        )

    def reset_failed_to_draft(self, invoice_id: UUID) -> Invoice:
        invoice = self.get_invoice(invoice_id)
        self._require_status(invoice, InvoiceStatus.FAILED, "reset to draft")
        invoice.status = InvoiceStatus.DRAFT.value
        invoice.error_message = None
        self.invoice_repo.save(invoice)
        logger.info("Invoice %s reset from failed to draft", invoice.invoice_number)
        return invoice

    # -- edits and delivery ----------------------------------------------

    def update_draft_items(self, invoice_id: UUID, edits: list[InvoiceItemEdit]) -> Invoice:
        invoice = self.get_invoice(invoice_id)
        self._require_status(invoice, InvoiceStatus.DRAFT, "edited")

        items = {item.id: item for item in self.invoice_repo.get_items(invoice.id)}
        unknown = [str(edit.item_id) for edit in edits if edit.item_id not in items]
        if unknown:
            raise NotFoundError(
                f"Invoice items not found on invoice {invoice.invoice_number}: {', '.join(unknown)}"
            )

        for edit in edits:
            item = items[edit.item_id]
            item.description = edit.description
            item.sub_description = edit.sub_description
        self.invoice_repo.save(invoice)

        self._render(invoice)
        return invoice

    def resend_email(self, invoice_id: UUID, recipient: str | None = None) -> ResendResult:
        invoice = self.get_invoice(invoice_id)
        if not invoice.pdf_content:
            raise InvalidStateError(
                f"Invoice {invoice.invoice_number} has no rendered PDF to send",
                current_status=str(invoice.status),
            )

        recipient = recipient or invoice.customer_email
        if not recipient:
            plan = self.plan_repo.get_by_id(invoice.billing_plan_id)
            if plan is not None:
                customer = self.ledger.get_customer(str(plan.ledger_customer_id))
                recipient = customer.email if customer else None
        if not recipient:
            raise ValidationError(
                f"No email address for invoice {invoice.invoice_number}",
                fields=["recipient_email"],
            )

        record = self._send_email(invoice, recipient)
        return ResendResult(
            success=record.status == EmailDeliveryStatus.SENT.value,
            recipient_email=recipient,
            provider_message_id=record.provider_message_id,
            error_message=record.error_message,
        )

    # -- internals -------------------------------------------------------

    def _get_plan(self, plan_id: UUID) -> BillingPlan:
        plan = self.plan_repo.get_by_id(plan_id)
        if not plan:
            raise NotFoundError(f"Billing plan {plan_id} not found")
        return plan

    def _get_customer(self, customer_id: str) -> LedgerCustomer:
        customer = self.ledger.get_customer(customer_id)
        if customer is None:
            raise NotFoundError(f"Ledger customer {customer_id} not found")
        return customer

    @staticmethod
    def _require_status(invoice: Invoice, expected: InvoiceStatus, action: str) -> None:
        if invoice.status != expected.value:
            raise InvalidStateError(
                f"Invoice {invoice.invoice_number} is {invoice.status} and cannot be {action}",
                current_status=str(invoice.status),
            )

    def _mark_failed(self, invoice: Invoice, message: str) -> None:
        self.db.rollback()
        invoice.status = InvoiceStatus.FAILED.value
        invoice.error_message = message
        self.invoice_repo.save(invoice)
        logger.error("Posting invoice %s failed: %s", invoice.invoice_number, message)

    def _build_ledger_invoice(
        self,
        invoice: Invoice,
        items: list[InvoiceItem],
        plan_items: list[BillingPlanItem],
        customer: LedgerCustomer,
    ) -> LedgerInvoiceCreate:
        by_order = {p.sort_order: p for p in plan_items}
        by_code = {p.ledger_item_id: p for p in plan_items}

        lines: list[LedgerInvoiceLine] = []
        for line_num, item in enumerate(items, start=1):
            plan_item = by_order.get(item.sort_order)
            if plan_item is None or plan_item.ledger_item_id != item.item_code:
                plan_item = by_code.get(item.item_code)
            tax_code_id = plan_item.tax_code_id if plan_item is not None else None

            lines.append(
                LedgerInvoiceLine(
                    line_num=line_num,
                    amount=Decimal(item.net_amount),
                    description=item.description,
                    sales_item_line_detail=LedgerSalesItemLineDetail(
                        item_ref=LedgerReference(value=str(item.item_code)),
                        qty=Decimal(item.quantity),
                        unit_price=Decimal(item.rate),
                        tax_code_ref=LedgerReference(value=tax_code_id) if tax_code_id else None,
                    ),
                )
            )

        return LedgerInvoiceCreate(
            customer_ref=LedgerReference(value=customer.id, name=customer.display_name),
            line=lines,
            txn_date=invoice.invoice_date,
            due_date=invoice.due_date,
            doc_number=invoice.invoice_number,
        )

    def _apply_ledger_amounts(
        self, invoice: Invoice, items: list[InvoiceItem], ledger_invoice: LedgerInvoice
    ) -> None:
        """Write ledger id, status and reconciled amounts in one commit."""
        total = round_money(ledger_invoice.total_amt)
        vat = round_money(ledger_invoice.total_tax)

        invoice.ledger_invoice_id = ledger_invoice.id
        invoice.posted_at = self.clock()
        invoice.status = InvoiceStatus.POSTED.value
        invoice.total_amount = total
        invoice.vat_amount = vat
        invoice.subtotal = total - vat
        invoice.error_message = None

        # Lines sharing an item code are matched in order
        ledger_lines: defaultdict[str, deque[LedgerInvoiceLine]] = defaultdict(deque)
        for line in ledger_invoice.sales_lines():
            ledger_lines[str(line.item_code)].append(line)

        for item in items:
            queue = ledger_lines.get(str(item.item_code))
            if not queue:
                continue
            line = queue.popleft()
            net = round_money(line.amount)
            detail = line.sales_item_line_detail
            if detail is not None and detail.tax_inclusive_amt is not None:
                line_vat = round_money(Decimal(detail.tax_inclusive_amt) - Decimal(line.amount))
            else:
                line_vat = Decimal(item.vat_amount)
            item.net_amount = net
            item.vat_amount = line_vat
            item.line_total = net + line_vat

        self.invoice_repo.save(invoice)

    def _report(self, invoice: Invoice) -> InvoiceReportData:
        address_lines = [
            str(part)
            for part in (
                invoice.address_line1,
                invoice.address_city,
                invoice.address_region,
                invoice.address_postal_code,
                invoice.address_country,
            )
            if part
        ]
        lines = [
            InvoiceReportLine(
                description=str(item.description),
                sub_description=item.sub_description,
                quantity=Decimal(item.quantity),
                rate=Decimal(item.rate),
                amount=Decimal(item.net_amount),
                tax_rate=Decimal(item.tax_rate),
                vat_amount=Decimal(item.vat_amount),
            )
            for item in self.invoice_repo.get_items(invoice.id)
        ]
        return InvoiceReportData(
            invoice_number=str(invoice.invoice_number),
            invoice_date=invoice.invoice_date,
            due_date=invoice.due_date,
            status=str(invoice.status),
            customer_name=str(invoice.customer_name),
            customer_company=invoice.customer_company,
            customer_email=invoice.customer_email,
            address_lines=address_lines,
            your_reference=invoice.your_reference,
            our_reference=invoice.our_reference,
            account_handler=invoice.account_handler,
            payment_terms_days=settings.PAYMENT_TERMS_DAYS,
            sub_total=Decimal(invoice.subtotal),
            vat_total=Decimal(invoice.vat_amount),
            total=Decimal(invoice.total_amount),
            lines=lines,
        )

    def _render(self, invoice: Invoice) -> str | None:
        """Render and store the PDF; return the error message on failure."""
        try:
            pdf = self.renderer.render_invoice(self._report(invoice))
        except Exception as exc:
            logger.exception("Rendering invoice %s failed", invoice.invoice_number)
            return str(exc) or exc.__class__.__name__

        invoice.pdf_content = pdf
        self.invoice_repo.save(invoice)
        return None

    def _send_email(self, invoice: Invoice, recipient: str) -> EmailDeliveryRecord:
        try:
            result = self.notifier.send_invoice(
                recipient,
                str(invoice.customer_name),
                str(invoice.invoice_number),
                Decimal(invoice.total_amount),
                bytes(invoice.pdf_content),
            )
        except Exception as exc:
            logger.exception("Notifier raised for invoice %s", invoice.invoice_number)
            result = NotificationResult(success=False, error_message=str(exc))

        status = EmailDeliveryStatus.SENT if result.success else EmailDeliveryStatus.FAILED
        record = self.email_repo.create(
            invoice_id=invoice.id,
            recipient_email=recipient,
            status=status,
            sent_at=self.clock() if result.success else None,
            provider_message_id=result.provider_message_id,
            error_message=result.error_message,
        )
        logger.info(
            "Invoice %s email to %s recorded as %s", invoice.invoice_number, recipient, status.value
        )
        return record
