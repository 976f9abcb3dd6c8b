from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from pydantic import BaseModel, Field


class GenerateInvoiceRequest(BaseModel):
    billing_plan_id: UUID
    invoice_date: date | None = None
    your_reference: str | None = Field(default=None, max_length=255)
    our_reference: str | None = Field(default=None, max_length=255)
    account_handler: str | None = Field(default=None, max_length=255)
    send_email: bool = False


class InvoiceItemEdit(BaseModel):
    item_id: UUID
    description: str = Field(min_length=1)
    sub_description: str | None = None


class UpdateDraftItemsRequest(BaseModel):
    items: list[InvoiceItemEdit] = Field(min_length=1)


class ResendInvoiceRequest(BaseModel):
    recipient_email: str | None = Field(default=None, max_length=255)


class InvoiceItemResponse(BaseModel):
    id: UUID
    description: str
    sub_description: str | None
    item_code: str
    quantity: Decimal
    rate: Decimal
    tax_rate: Decimal
    net_amount: Decimal
    vat_amount: Decimal
    line_total: Decimal
    sort_order: int

    model_config = {"from_attributes": True}


class EmailDeliveryResponse(BaseModel):
    id: UUID
    recipient_email: str
    status: str
    sent_at: datetime | None
    delivered_at: datetime | None
    provider_message_id: str | None
    error_message: str | None
    retry_count: int

    model_config = {"from_attributes": True}


class InvoiceResponse(BaseModel):
    id: UUID
    billing_plan_id: UUID
    invoice_number: str
    status: str
    generated_at: datetime
    invoice_date: date
    due_date: date
    posted_at: datetime | None
    subtotal: Decimal
    vat_amount: Decimal
    total_amount: Decimal
    ledger_invoice_id: str | None
    error_message: str | None
    your_reference: str | None
    our_reference: str | None
    account_handler: str | None
    customer_name: str
    customer_email: str | None
    has_pdf: bool = False
    items: list[InvoiceItemResponse] = Field(default_factory=list)
    email_deliveries: list[EmailDeliveryResponse] = Field(default_factory=list)

    model_config = {"from_attributes": True}


class GeneratedItemResponse(BaseModel):
    item_code: str
    description: str
    quantity: Decimal
    rate: Decimal
    tax_rate: Decimal
    net_amount: Decimal
    vat_amount: Decimal
    line_total: Decimal

    model_config = {"from_attributes": True}


class GenerateInvoiceResponse(BaseModel):
    invoice_id: UUID
    invoice_number: str
    subtotal: Decimal
    vat_amount: Decimal
    total_amount: Decimal
    items: list[GeneratedItemResponse]
    pdf_rendered: bool
    pdf_error: str | None = None
    email_status: str | None = None

    model_config = {"from_attributes": True}


class PostInvoiceResponse(BaseModel):
    invoice_id: UUID
    invoice_number: str
    status: str
    ledger_invoice_id: str
    subtotal: Decimal
    vat_amount: Decimal
    total_amount: Decimal
    pdf_rendered: bool
    pdf_error: str | None = None

    model_config = {"from_attributes": True}


class ResendInvoiceResponse(BaseModel):
    success: bool
    recipient_email: str
    provider_message_id: str | None = None
    error_message: str | None = None

    model_config = {"from_attributes": True}
