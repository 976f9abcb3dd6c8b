"""Invoice and invoice item models."""

from enum import Enum

from sqlalchemy import (
    Column,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    LargeBinary,
    Numeric,
    String,
    Text,
    func,
)

from invoicer.core.database import Base
from invoicer.models.shared import UUIDType, generate_uuid


class InvoiceStatus(str, Enum):
    DRAFT = "draft"
    POSTING = "posting"
    POSTED = "posted"
    GENERATED = "generated"
    FAILED = "failed"
    CANCELLED = "cancelled"


class Invoice(Base):
    __tablename__ = "invoices"

    id = Column(UUIDType, primary_key=True, default=generate_uuid)
    billing_plan_id = Column(
        UUIDType, ForeignKey("billing_plans.id", ondelete="RESTRICT"), nullable=False, index=True
    )
    invoice_number = Column(String(50), unique=True, index=True, nullable=False)
    status = Column(String(20), nullable=False, default=InvoiceStatus.DRAFT.value)

    # Dates
    generated_at = Column(DateTime(timezone=True), nullable=False)
    invoice_date = Column(Date, nullable=False)
    due_date = Column(Date, nullable=False)
    posted_at = Column(DateTime(timezone=True), nullable=True)

    # Amounts; ledger figures overwrite the draft estimate once posted
    subtotal = Column(Numeric(12, 2), nullable=False, default=0)
    vat_amount = Column(Numeric(12, 2), nullable=False, default=0)
    total_amount = Column(Numeric(12, 2), nullable=False, default=0)

    ledger_invoice_id = Column(String(100), nullable=True, index=True)
    pdf_content = Column(LargeBinary, nullable=True)
    error_message = Column(Text, nullable=True)

    your_reference = Column(String(255), nullable=True)
    our_reference = Column(String(255), nullable=True)
    account_handler = Column(String(255), nullable=True)

    # Customer snapshot taken at generation time
    customer_name = Column(String(255), nullable=False)
    customer_company = Column(String(255), nullable=True)
    customer_email = Column(String(255), nullable=True)
    address_line1 = Column(String(255), nullable=True)
    address_city = Column(String(100), nullable=True)
    address_region = Column(String(100), nullable=True)
    address_postal_code = Column(String(20), nullable=True)
    address_country = Column(String(100), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())


class InvoiceItem(Base):
    __tablename__ = "invoice_items"

    id = Column(UUIDType, primary_key=True, default=generate_uuid)
    invoice_id = Column(
        UUIDType, ForeignKey("invoices.id", ondelete="CASCADE"), nullable=False, index=True
    )
    description = Column(Text, nullable=False)
    sub_description = Column(Text, nullable=True)
    item_code = Column(String(100), nullable=False)
    quantity = Column(Numeric(12, 4), nullable=False, default=0)
    rate = Column(Numeric(12, 2), nullable=False, default=0)
    tax_rate = Column(Numeric(7, 4), nullable=False, default=0)
    net_amount = Column(Numeric(12, 2), nullable=False, default=0)
    vat_amount = Column(Numeric(12, 2), nullable=False, default=0)
    line_total = Column(Numeric(12, 2), nullable=False, default=0)
    sort_order = Column(Integer, nullable=False, default=0)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())


class InvoiceNumberSequence(Base):
    """Counter row backing invoice number allocation, one per prefix."""

    __tablename__ = "invoice_number_sequences"

    prefix = Column(String(20), primary_key=True)
    last_value = Column(Integer, nullable=False, default=0)
