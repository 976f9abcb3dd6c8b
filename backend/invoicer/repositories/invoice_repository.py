import logging
from typing import Any
from uuid import UUID

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from invoicer.models.invoice import Invoice, InvoiceItem, InvoiceNumberSequence

logger = logging.getLogger(__name__)

MAX_NUMBER_ATTEMPTS = 5


def format_invoice_number(prefix: str, value: int) -> str:
    return f"{prefix}{value:04d}"


def parse_invoice_number(prefix: str, invoice_number: str) -> int | None:
    """Return the numeric suffix of *invoice_number*, or None if it has none."""
    if not invoice_number.startswith(prefix):
        return None
    suffix = invoice_number[len(prefix) :]
    if not suffix.isdigit():
        return None
    return int(suffix)


class InvoiceRepository:
    def __init__(self, db: Session):
        self.db = db

    def get_by_id(self, invoice_id: UUID) -> Invoice | None:
        return self.db.query(Invoice).filter(Invoice.id == invoice_id).first()

    def get_by_invoice_number(self, invoice_number: str) -> Invoice | None:
        return self.db.query(Invoice).filter(Invoice.invoice_number == invoice_number).first()

    def get_by_plan(self, plan_id: UUID) -> list[Invoice]:
        return (
            self.db.query(Invoice)
            .filter(Invoice.billing_plan_id == plan_id)
            .order_by(Invoice.generated_at.desc(), Invoice.invoice_number.desc())
            .all()
        )

    def get_items(self, invoice_id: UUID) -> list[InvoiceItem]:
        return (
            self.db.query(InvoiceItem)
            .filter(InvoiceItem.invoice_id == invoice_id)
            .order_by(InvoiceItem.sort_order)
            .all()
        )

    def _highest_existing_number(self, prefix: str) -> int:
        rows = (
            self.db.query(Invoice.invoice_number)
            .filter(Invoice.invoice_number.like(f"{prefix}%"))
            .all()
        )
        values = [parse_invoice_number(prefix, row[0]) for row in rows]
        return max((v for v in values if v is not None), default=0)

    def _next_number(self, prefix: str) -> str:
        """Advance the counter row for *prefix* and return the new number.

        The counter is seeded from existing invoices on first use. The
        increment is a conditional update on the value just read, so two
        writers can never both claim the same number.
        """
        exists = (
            self.db.query(InvoiceNumberSequence.prefix)
            .filter(InvoiceNumberSequence.prefix == prefix)
            .first()
        )
        if exists is None:
            self.db.add(
                InvoiceNumberSequence(
                    prefix=prefix, last_value=self._highest_existing_number(prefix)
                )
            )
            self.db.flush()

        for _ in range(MAX_NUMBER_ATTEMPTS):
            current = (
                self.db.query(InvoiceNumberSequence.last_value)
                .filter(InvoiceNumberSequence.prefix == prefix)
                .scalar()
            )
            result = self.db.execute(
                update(InvoiceNumberSequence)
                .where(
                    InvoiceNumberSequence.prefix == prefix,
                    InvoiceNumberSequence.last_value == current,
                )
                .values(last_value=current + 1)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 1:  # type: ignore[attr-defined]
                return format_invoice_number(prefix, current + 1)

        raise RuntimeError(f"Could not allocate an invoice number for prefix {prefix!r}")

    def _resync_sequence(self, prefix: str) -> None:
        """Move the counter past numbers inserted without it."""
        highest = self._highest_existing_number(prefix)
        self.db.execute(
            update(InvoiceNumberSequence)
            .where(
                InvoiceNumberSequence.prefix == prefix,
                InvoiceNumberSequence.last_value < highest,
            )
            .values(last_value=highest)
            .execution_options(synchronize_session=False)
        )
        self.db.commit()

    def create_draft(
        self,
        prefix: str,
        fields: dict[str, Any],
        items: list[dict[str, Any]],
    ) -> Invoice:
        """Insert a draft invoice and its items in one transaction.

        The number is allocated inside the same transaction; a unique
        violation on insert is retried with a fresh number.
        """
        for attempt in range(1, MAX_NUMBER_ATTEMPTS + 1):
            try:
                invoice = Invoice(invoice_number=self._next_number(prefix), **fields)
                self.db.add(invoice)
                self.db.flush()
                for item_fields in items:
                    self.db.add(InvoiceItem(invoice_id=invoice.id, **item_fields))
                self.db.commit()
            except IntegrityError:
                self.db.rollback()
                logger.warning(
                    "Invoice number collision on attempt %d for prefix %s", attempt, prefix
                )
                self._resync_sequence(prefix)
                continue
            self.db.refresh(invoice)
            return invoice

        raise RuntimeError(f"Could not insert invoice after {MAX_NUMBER_ATTEMPTS} attempts")

    def transition(self, invoice_id: UUID, from_status: str, to_status: str) -> bool:
        """Move the invoice to *to_status* only if it is still in *from_status*.

        Commits immediately; False means another writer changed the status first.
        """
        result = self.db.execute(
            update(Invoice)
            .where(Invoice.id == invoice_id, Invoice.status == from_status)
            .values(status=to_status)
            .execution_options(synchronize_session=False)
        )
        self.db.commit()
        return result.rowcount == 1

    def save(self, invoice: Invoice) -> Invoice:
        self.db.commit()
        self.db.refresh(invoice)
        return invoice
