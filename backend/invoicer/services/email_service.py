"""Invoice email delivery over SMTP."""

from __future__ import annotations

import asyncio
import logging
from decimal import Decimal
from email.message import EmailMessage
from email.utils import make_msgid

from invoicer.core.config import settings
from invoicer.services.ports import NotificationResult

logger = logging.getLogger(__name__)


def _format_amount(value: object) -> str:
    """Format a monetary amount to two decimal places."""
    if value is None:
        return "0.00"
    return f"{Decimal(str(value)):.2f}"


class EmailService:
    """Sends invoice emails via SMTP.

    Failures are returned in the NotificationResult, never raised.
    """

    def build_message(
        self,
        recipient: str,
        recipient_name: str,
        invoice_number: str,
        total_amount: Decimal,
        pdf_content: bytes,
    ) -> EmailMessage:
        company = settings.COMPANY_NAME
        msg = EmailMessage()
        msg["From"] = f"{settings.SMTP_FROM_NAME} <{settings.SMTP_FROM_EMAIL}>"
        msg["To"] = recipient
        msg["Subject"] = f"Invoice {invoice_number} from {company}"
        msg["Message-ID"] = make_msgid(domain=settings.SMTP_FROM_EMAIL.partition("@")[2] or None)
        msg.set_content(
            f"Dear {recipient_name or 'Customer'},\n\n"
            f"Please find attached invoice {invoice_number} for "
            f"{_format_amount(total_amount)}.\n\n"
            f"Payment is due within {settings.PAYMENT_TERMS_DAYS} days.\n\n"
            f"Thank you for your business.\n{company}\n"
        )
        msg.add_alternative(
            f"<h2>Invoice {invoice_number}</h2>"
            f"<p>Dear {recipient_name or 'Customer'},</p>"
            f"<p>Please find attached invoice {invoice_number} from {company}.</p>"
            f"<table>"
            f"<tr><td><strong>Invoice #:</strong></td><td>{invoice_number}</td></tr>"
            f"<tr><td><strong>Amount:</strong></td><td>{_format_amount(total_amount)}</td></tr>"
            f"<tr><td><strong>Terms:</strong></td>"
            f"<td>{settings.PAYMENT_TERMS_DAYS} days</td></tr>"
            f"</table>"
            f"<p>Thank you for your business.</p>",
            subtype="html",
        )
        msg.add_attachment(
            pdf_content,
            maintype="application",
            subtype="pdf",
            filename=f"invoice-{invoice_number}.pdf",
        )
        return msg

    async def _send(self, msg: EmailMessage) -> None:
        import aiosmtplib

        await aiosmtplib.send(
            msg,
            hostname=settings.SMTP_HOST,
            port=settings.SMTP_PORT,
            username=settings.SMTP_USERNAME or None,
            password=settings.SMTP_PASSWORD or None,
            start_tls=settings.SMTP_USE_TLS,
            timeout=settings.SMTP_TIMEOUT_SECONDS,
        )

    def send_invoice(
        self,
        recipient: str,
        recipient_name: str,
        invoice_number: str,
        total_amount: Decimal,
        pdf_content: bytes,
    ) -> NotificationResult:
        """Email the invoice PDF to *recipient*.

        Returns:
            A successful result with no message id when SMTP is unconfigured.
        """
        if not settings.SMTP_HOST:
            logger.info("SMTP not configured, skipping invoice %s to %s", invoice_number, recipient)
            return NotificationResult(success=True)

        msg = self.build_message(
            recipient, recipient_name, invoice_number, total_amount, pdf_content
        )
        try:
            asyncio.run(self._send(msg))
        except Exception as exc:
            logger.warning("Failed to send invoice %s to %s: %s", invoice_number, recipient, exc)
            return NotificationResult(success=False, error_message=str(exc))

        logger.info("Invoice %s sent to %s", invoice_number, recipient)
        return NotificationResult(success=True, provider_message_id=str(msg["Message-ID"]))
