"""PDF rendering for invoices."""

from __future__ import annotations

from decimal import Decimal
from html import escape
from string import Template

from invoicer.core.config import settings
from invoicer.services.ports import InvoiceReportData, InvoiceReportLine

_INVOICE_TEMPLATE = Template("""\
<!DOCTYPE html>
<html>
<head>
<style>
  body { font-family: Helvetica, Arial, sans-serif; font-size: 12px; color: #333; margin: 40px; }
  h1 { font-size: 24px; margin-bottom: 4px; }
  .header { display: flex; justify-content: space-between; margin-bottom: 30px; }
  .header-left, .header-right { width: 48%; }
  .meta td { padding: 2px 8px 2px 0; }
  table.items { width: 100%; border-collapse: collapse; margin: 20px 0; }
  table.items th { text-align: left; border-bottom: 2px solid #333; padding: 6px 8px; }
  table.items td { padding: 6px 8px; border-bottom: 1px solid #ddd; vertical-align: top; }
  table.items .right { text-align: right; }
  .sub { color: #666; font-size: 10px; }
  .totals { width: 300px; margin-left: auto; }
  .totals td { padding: 4px 8px; }
  .totals .label { text-align: right; }
  .totals .total-row { font-weight: bold; border-top: 2px solid #333; }
  .footer { margin-top: 40px; font-size: 10px; color: #666; }
</style>
</head>
<body>
<div class="header">
  <div class="header-left">
    <h1>${company_name}</h1>
    <p>${company_address}</p>
  </div>
  <div class="header-right" style="text-align: right;">
    <h1>INVOICE</h1>
    <p>${status}</p>
  </div>
</div>
<table class="meta">
  <tr><td><strong>Invoice #:</strong></td><td>${invoice_number}</td></tr>
  <tr><td><strong>Date:</strong></td><td>${invoice_date}</td></tr>
  <tr><td><strong>Due:</strong></td><td>${due_date}</td></tr>
  <tr><td><strong>Your Ref:</strong></td><td>${your_reference}</td></tr>
  <tr><td><strong>Our Ref:</strong></td><td>${our_reference}</td></tr>
  <tr><td><strong>Account Handler:</strong></td><td>${account_handler}</td></tr>
</table>
<table class="meta">
  <tr><td><strong>Bill To:</strong></td></tr>
  <tr><td>${customer_name}</td></tr>
  <tr><td>${customer_address}</td></tr>
</table>
<table class="items">
  <thead>
    <tr>
      <th>Description</th>
      <th class="right">Qty</th>
      <th class="right">Rate</th>
      <th class="right">VAT %</th>
      <th class="right">Amount</th>
    </tr>
  </thead>
  <tbody>
    ${line_rows}
  </tbody>
</table>
<table class="totals">
  <tr><td class="label">Subtotal:</td><td class="right">${sub_total}</td></tr>
  <tr><td class="label">VAT:</td><td class="right">${vat_total}</td></tr>
  <tr class="total-row"><td class="label">Total:</td><td class="right">${total}</td></tr>
</table>
<div class="footer">
  <p>Payment terms: ${payment_terms_days} days.</p>
  <p>${bank_details}</p>
  <p>${company_footer}</p>
</div>
</body>
</html>
""")

_LINE_ROW_TEMPLATE = Template(
    '<tr><td>${description}${sub_description}</td><td class="right">${quantity}</td>'
    '<td class="right">${rate}</td><td class="right">${tax_rate}</td>'
    '<td class="right">${amount}</td></tr>'
)


def _format_amount(value: object) -> str:
    """Format a monetary amount to two decimal places."""
    if value is None:
        return "0.00"
    return f"{Decimal(str(value)):.2f}"


def _format_quantity(value: Decimal) -> str:
    normalized = value.normalize()
    return f"{normalized:f}"


def _text(value: str | None) -> str:
    return escape(value or "")


def _line_row(line: InvoiceReportLine) -> str:
    sub = f'<br><span class="sub">{_text(line.sub_description)}</span>' if line.sub_description else ""
    return _LINE_ROW_TEMPLATE.substitute(
        description=_text(line.description),
        sub_description=sub,
        quantity=_format_quantity(Decimal(line.quantity)),
        rate=_format_amount(line.rate),
        tax_rate=_format_quantity(Decimal(line.tax_rate)),
        amount=_format_amount(line.amount),
    )


def _bank_details() -> str:
    parts = [
        f"{label}: {escape(value)}"
        for label, value in (
            ("Bank", settings.BANK_NAME),
            ("Sort code", settings.BANK_SORT_CODE),
            ("Account", settings.BANK_ACCOUNT_NUMBER),
        )
        if value
    ]
    return " | ".join(parts)


def _company_footer() -> str:
    parts = [
        escape(value)
        for value in (
            settings.COMPANY_EMAIL,
            settings.COMPANY_PHONE,
            settings.COMPANY_WEBSITE,
            settings.COMPANY_REGISTRATION,
        )
        if value
    ]
    return " | ".join(parts)


class PdfService:
    """Renders invoice report data to PDF with WeasyPrint."""

    def build_html(self, report: InvoiceReportData) -> str:
        customer_name = _text(report.customer_name)
        if report.customer_company and report.customer_company != report.customer_name:
            customer_name = f"{customer_name}<br>{_text(report.customer_company)}"

        return _INVOICE_TEMPLATE.substitute(
            company_name=_text(settings.COMPANY_NAME),
            company_address=_text(settings.COMPANY_ADDRESS),
            status=_text(report.status.upper()),
            invoice_number=_text(report.invoice_number),
            invoice_date=report.invoice_date.isoformat(),
            due_date=report.due_date.isoformat(),
            your_reference=_text(report.your_reference),
            our_reference=_text(report.our_reference),
            account_handler=_text(report.account_handler),
            customer_name=customer_name,
            customer_address="<br>".join(_text(line) for line in report.address_lines),
            line_rows="\n    ".join(_line_row(line) for line in report.lines),
            sub_total=_format_amount(report.sub_total),
            vat_total=_format_amount(report.vat_total),
            total=_format_amount(report.total),
            payment_terms_days=report.payment_terms_days,
            bank_details=_bank_details(),
            company_footer=_company_footer(),
        )

    def render_invoice(self, report: InvoiceReportData) -> bytes:
        """Render *report* to PDF bytes.

        Args:
            report: Invoice data to print.

        Returns:
            Raw PDF bytes.
        """
        html = self.build_html(report)

        import weasyprint

        pdf_bytes: bytes = weasyprint.HTML(string=html).write_pdf()
        return pdf_bytes
