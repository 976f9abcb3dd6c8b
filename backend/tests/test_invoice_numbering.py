"""Tests for invoice number allocation."""

from datetime import UTC, date, datetime
from decimal import Decimal
from unittest.mock import patch

import pytest

from invoicer.models.invoice import Invoice, InvoiceNumberSequence
from invoicer.repositories.invoice_repository import (
    InvoiceRepository,
    format_invoice_number,
    parse_invoice_number,
)
from tests.conftest import create_plan


def _fields(plan_id):  # type: ignore[no-untyped-def]
    return {
        "billing_plan_id": plan_id,
        "status": "draft",
        "generated_at": datetime(2025, 3, 1, tzinfo=UTC),
        "invoice_date": date(2025, 3, 1),
        "due_date": date(2025, 3, 15),
        "subtotal": Decimal("10.00"),
        "vat_amount": Decimal("2.00"),
        "total_amount": Decimal("12.00"),
        "customer_name": "Acme Ltd",
    }


def _item():  # type: ignore[no-untyped-def]
    return {
        "description": "Consulting",
        "item_code": "7",
        "quantity": Decimal("1"),
        "rate": Decimal("10.00"),
        "tax_rate": Decimal("20"),
        "net_amount": Decimal("10.00"),
        "vat_amount": Decimal("2.00"),
        "line_total": Decimal("12.00"),
        "sort_order": 0,
    }


class TestFormatting:
    def test_format_pads_to_four(self) -> None:
        assert format_invoice_number("INV-", 7) == "INV-0007"

    def test_format_wider_numbers(self) -> None:
        assert format_invoice_number("INV-", 12345) == "INV-12345"

    def test_parse(self) -> None:
        assert parse_invoice_number("INV-", "INV-0042") == 42

    def test_parse_other_prefix(self) -> None:
        assert parse_invoice_number("INV-", "CN-0042") is None

    def test_parse_non_numeric_suffix(self) -> None:
        assert parse_invoice_number("INV-", "INV-20250101-0001") is None


class TestCreateDraft:
    def test_first_number(self, db_session) -> None:
        plan = create_plan(db_session)
        repo = InvoiceRepository(db_session)

        invoice = repo.create_draft("INV-", _fields(plan.id), [_item()])

        assert invoice.invoice_number == "INV-0001"
        assert len(repo.get_items(invoice.id)) == 1
        assert repo.get_by_invoice_number("INV-0001").id == invoice.id
        sequence = db_session.get(InvoiceNumberSequence, "INV-")
        assert sequence.last_value == 1

    def test_seeded_from_existing_invoices(self, db_session) -> None:
        plan = create_plan(db_session)
        for number in ("INV-0041", "INV-0007", "LEGACY-9999"):
            db_session.add(Invoice(invoice_number=number, **_fields(plan.id)))
        db_session.commit()
        repo = InvoiceRepository(db_session)

        invoice = repo.create_draft("INV-", _fields(plan.id), [])

        assert invoice.invoice_number == "INV-0042"

    def test_prefixes_count_independently(self, db_session) -> None:
        plan = create_plan(db_session)
        repo = InvoiceRepository(db_session)

        repo.create_draft("INV-", _fields(plan.id), [])
        other = repo.create_draft("PRO-", _fields(plan.id), [])

        assert other.invoice_number == "PRO-0001"

    def test_collision_retries_with_next_number(self, db_session) -> None:
        plan = create_plan(db_session)
        repo = InvoiceRepository(db_session)
        repo.create_draft("INV-", _fields(plan.id), [])
        # Another writer inserted INV-0002 without advancing the counter
        db_session.add(Invoice(invoice_number="INV-0002", **_fields(plan.id)))
        db_session.commit()

        invoice = repo.create_draft("INV-", _fields(plan.id), [])

        assert invoice.invoice_number == "INV-0003"
        assert db_session.query(Invoice).count() == 3

    def test_gives_up_after_bounded_attempts(self, db_session) -> None:
        plan = create_plan(db_session)
        db_session.add(Invoice(invoice_number="INV-0001", **_fields(plan.id)))
        db_session.commit()
        repo = InvoiceRepository(db_session)

        with (
            patch.object(repo, "_next_number", return_value="INV-0001") as next_number,
            pytest.raises(RuntimeError, match="5 attempts"),
        ):
            repo.create_draft("INV-", _fields(plan.id), [])

        assert next_number.call_count == 5
        assert db_session.query(Invoice).count() == 1
