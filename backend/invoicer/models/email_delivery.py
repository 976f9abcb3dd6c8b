"""Email delivery audit records for invoice sends."""

from enum import Enum

from sqlalchemy import Column, DateTime, ForeignKey, Integer, String, Text, func

from invoicer.core.database import Base
from invoicer.models.shared import UUIDType, generate_uuid


class EmailDeliveryStatus(str, Enum):
    PENDING = "pending"
    SENT = "sent"
    DELIVERED = "delivered"
    FAILED = "failed"
    BOUNCED = "bounced"


class EmailDeliveryRecord(Base):
    """Append-only record of one attempt to email an invoice."""

    __tablename__ = "email_delivery_records"

    id = Column(UUIDType, primary_key=True, default=generate_uuid)
    invoice_id = Column(
        UUIDType, ForeignKey("invoices.id", ondelete="CASCADE"), nullable=False, index=True
    )
    recipient_email = Column(String(255), nullable=False)
    status = Column(String(20), nullable=False, default=EmailDeliveryStatus.PENDING.value)
    sent_at = Column(DateTime(timezone=True), nullable=True)
    delivered_at = Column(DateTime(timezone=True), nullable=True)
    provider_message_id = Column(String(255), nullable=True)
    error_message = Column(Text, nullable=True)
    retry_count = Column(Integer, nullable=False, default=0)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
