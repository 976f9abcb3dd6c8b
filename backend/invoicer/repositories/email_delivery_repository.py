from datetime import datetime
from uuid import UUID

from sqlalchemy.orm import Session

from invoicer.models.email_delivery import EmailDeliveryRecord, EmailDeliveryStatus


class EmailDeliveryRepository:
    def __init__(self, db: Session):
        self.db = db

    def get_by_invoice(self, invoice_id: UUID) -> list[EmailDeliveryRecord]:
        return (
            self.db.query(EmailDeliveryRecord)
            .filter(EmailDeliveryRecord.invoice_id == invoice_id)
            .order_by(EmailDeliveryRecord.created_at)
            .all()
        )

    def create(
        self,
        invoice_id: UUID,
        recipient_email: str,
        status: EmailDeliveryStatus,
        sent_at: datetime | None = None,
        provider_message_id: str | None = None,
        error_message: str | None = None,
    ) -> EmailDeliveryRecord:
        record = EmailDeliveryRecord(
            invoice_id=invoice_id,
            recipient_email=recipient_email,
            status=status.value,
            sent_at=sent_at,
            provider_message_id=provider_message_id,
            error_message=error_message,
        )
        self.db.add(record)
        self.db.commit()
        self.db.refresh(record)
        return record
