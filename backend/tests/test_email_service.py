"""Tests for EmailService – invoice email composition and SMTP delivery."""

from decimal import Decimal
from unittest.mock import AsyncMock, patch

import pytest

from invoicer.services.email_service import EmailService, _format_amount


def _configure(mock_settings, host: str = "smtp.example.com") -> None:  # type: ignore[no-untyped-def]
    mock_settings.SMTP_HOST = host
    mock_settings.SMTP_PORT = 587
    mock_settings.SMTP_USERNAME = "user"
    mock_settings.SMTP_PASSWORD = "pass"
    mock_settings.SMTP_USE_TLS = True
    mock_settings.SMTP_TIMEOUT_SECONDS = 30.0
    mock_settings.SMTP_FROM_EMAIL = "invoices@billing.example"
    mock_settings.SMTP_FROM_NAME = "Billing"
    mock_settings.COMPANY_NAME = "Invoicer Ltd"
    mock_settings.PAYMENT_TERMS_DAYS = 14


def _send(service: EmailService):  # type: ignore[no-untyped-def]
    return service.send_invoice(
        recipient="accounts@acme.example",
        recipient_name="Acme Ltd",
        invoice_number="INV-0007",
        total_amount=Decimal("118.8"),
        pdf_content=b"%PDF-1.4 fake",
    )


class TestFormatAmount:
    def test_none_returns_zero(self) -> None:
        assert _format_amount(None) == "0.00"

    def test_pads_decimals(self) -> None:
        assert _format_amount(Decimal("118.8")) == "118.80"


class TestBuildMessage:
    def test_headers_and_attachment(self) -> None:
        with patch("invoicer.services.email_service.settings") as mock_settings:
            _configure(mock_settings)
            msg = EmailService().build_message(
                "accounts@acme.example", "Acme Ltd", "INV-0007", Decimal("118.80"), b"%PDF"
            )

        assert msg["To"] == "accounts@acme.example"
        assert msg["From"] == "Billing <invoices@billing.example>"
        assert msg["Subject"] == "Invoice INV-0007 from Invoicer Ltd"
        assert msg["Message-ID"].endswith("@billing.example>")

        attachments = list(msg.iter_attachments())
        assert len(attachments) == 1
        assert attachments[0].get_filename() == "invoice-INV-0007.pdf"
        assert attachments[0].get_content() == b"%PDF"

    def test_bodies_mention_invoice(self) -> None:
        with patch("invoicer.services.email_service.settings") as mock_settings:
            _configure(mock_settings)
            msg = EmailService().build_message(
                "accounts@acme.example", "", "INV-0007", Decimal("118.80"), b"%PDF"
            )

        text = msg.get_body(preferencelist=("plain",)).get_content()
        html = msg.get_body(preferencelist=("html",)).get_content()
        assert "Dear Customer" in text
        assert "118.80" in text
        assert "14 days" in text
        assert "<h2>Invoice INV-0007</h2>" in html


class TestSendInvoice:
    def test_noop_when_smtp_unconfigured(self) -> None:
        mock_send = AsyncMock()
        with (
            patch("invoicer.services.email_service.settings") as mock_settings,
            patch("aiosmtplib.send", mock_send),
        ):
            _configure(mock_settings, host="")
            result = _send(EmailService())

        assert result.success is True
        assert result.provider_message_id is None
        mock_send.assert_not_called()

    def test_sends_via_smtp(self) -> None:
        mock_send = AsyncMock()
        with (
            patch("invoicer.services.email_service.settings") as mock_settings,
            patch("aiosmtplib.send", mock_send),
        ):
            _configure(mock_settings)
            result = _send(EmailService())

        assert result.success is True
        assert result.provider_message_id
        mock_send.assert_called_once()
        message = mock_send.call_args[0][0]
        assert result.provider_message_id == message["Message-ID"]
        call_kwargs = mock_send.call_args[1]
        assert call_kwargs["hostname"] == "smtp.example.com"
        assert call_kwargs["port"] == 587
        assert call_kwargs["username"] == "user"
        assert call_kwargs["password"] == "pass"
        assert call_kwargs["start_tls"] is True

    def test_empty_credentials_sent_as_none(self) -> None:
        mock_send = AsyncMock()
        with (
            patch("invoicer.services.email_service.settings") as mock_settings,
            patch("aiosmtplib.send", mock_send),
        ):
            _configure(mock_settings)
            mock_settings.SMTP_USERNAME = ""
            mock_settings.SMTP_PASSWORD = ""
            _send(EmailService())

        call_kwargs = mock_send.call_args[1]
        assert call_kwargs["username"] is None
        assert call_kwargs["password"] is None

    @pytest.mark.parametrize("error", [ConnectionRefusedError("refused"), TimeoutError("slow")])
    def test_failure_is_returned_not_raised(self, error: Exception) -> None:
        mock_send = AsyncMock(side_effect=error)
        with (
            patch("invoicer.services.email_service.settings") as mock_settings,
            patch("aiosmtplib.send", mock_send),
        ):
            _configure(mock_settings)
            result = _send(EmailService())

        assert result.success is False
        assert result.provider_message_id is None
        assert result.error_message == str(error)
