"""Billing plan and billing plan item models."""

from enum import Enum

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    func,
)

from invoicer.core.database import Base
from invoicer.models.shared import UUIDType, generate_uuid


class BillingFrequency(str, Enum):
    MONTHLY = "monthly"
    QUARTERLY = "quarterly"
    ANNUALLY = "annually"
    BIENNIAL = "biennial"


class BillingPlan(Base):
    __tablename__ = "billing_plans"

    id = Column(UUIDType, primary_key=True, default=generate_uuid)
    name = Column(String(255), nullable=False)
    ledger_customer_id = Column(String(100), nullable=False, index=True)
    frequency = Column(String(20), nullable=False, default=BillingFrequency.MONTHLY.value)
    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())


class BillingPlanItem(Base):
    __tablename__ = "billing_plan_items"
    __table_args__ = (
        CheckConstraint("quantity >= 0", name="ck_billing_plan_items_quantity"),
        CheckConstraint("rate >= 0", name="ck_billing_plan_items_rate"),
        CheckConstraint("tax_rate >= 0 AND tax_rate <= 100", name="ck_billing_plan_items_tax_rate"),
    )

    id = Column(UUIDType, primary_key=True, default=generate_uuid)
    billing_plan_id = Column(
        UUIDType, ForeignKey("billing_plans.id", ondelete="CASCADE"), nullable=False, index=True
    )
    ledger_item_id = Column(String(100), nullable=False)
    item_name = Column(String(255), nullable=False)
    quantity = Column(Numeric(12, 4), nullable=False, default=1)
    rate = Column(Numeric(12, 2), nullable=False, default=0)
    description = Column(Text, nullable=True)
    sort_order = Column(Integer, nullable=False, default=0)
    from_date = Column(Date, nullable=False)
    to_date = Column(Date, nullable=True)

    # Tax captured when the item was last saved, not a live lookup
    tax_code_id = Column(String(100), nullable=True)
    tax_rate = Column(Numeric(7, 4), nullable=False, default=0)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
