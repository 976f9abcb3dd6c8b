from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from pydantic import BaseModel, Field, computed_field, model_validator

from invoicer.models.billing_plan import BillingFrequency


class BillingPlanCreate(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    ledger_customer_id: str = Field(min_length=1, max_length=100)
    frequency: BillingFrequency = BillingFrequency.MONTHLY
    start_date: date
    end_date: date | None = None

    @model_validator(mode="after")
    def check_dates(self) -> "BillingPlanCreate":
        if self.end_date is not None and self.end_date < self.start_date:
            raise ValueError("end_date must not be before start_date")
        return self


class BillingPlanUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=255)
    frequency: BillingFrequency | None = None
    start_date: date | None = None
    end_date: date | None = None
    is_active: bool | None = None


class BillingPlanItemCreate(BaseModel):
    ledger_item_id: str = Field(min_length=1, max_length=100)
    item_name: str | None = Field(default=None, max_length=255)
    quantity: Decimal = Field(default=Decimal("1"), ge=0)
    rate: Decimal = Field(ge=0)
    description: str | None = None
    sort_order: int | None = None
    from_date: date
    to_date: date | None = None

    @model_validator(mode="after")
    def check_dates(self) -> "BillingPlanItemCreate":
        if self.to_date is not None and self.to_date < self.from_date:
            raise ValueError("to_date must not be before from_date")
        return self


class BillingPlanItemUpdate(BaseModel):
    ledger_item_id: str | None = Field(default=None, min_length=1, max_length=100)
    item_name: str | None = Field(default=None, max_length=255)
    quantity: Decimal | None = Field(default=None, ge=0)
    rate: Decimal | None = Field(default=None, ge=0)
    description: str | None = None
    sort_order: int | None = None
    from_date: date | None = None
    to_date: date | None = None


class BillingPlanItemResponse(BaseModel):
    id: UUID
    billing_plan_id: UUID
    ledger_item_id: str
    item_name: str
    quantity: Decimal
    rate: Decimal
    description: str | None
    sort_order: int
    from_date: date
    to_date: date | None
    tax_code_id: str | None
    tax_rate: Decimal

    model_config = {"from_attributes": True}

    @computed_field  # type: ignore[prop-decorator]
    @property
    def line_total(self) -> Decimal:
        return self.quantity * self.rate


class BillingPlanResponse(BaseModel):
    id: UUID
    name: str
    ledger_customer_id: str
    frequency: str
    start_date: date
    end_date: date | None
    is_active: bool
    created_at: datetime | None
    updated_at: datetime | None
    items: list[BillingPlanItemResponse] = Field(default_factory=list)

    model_config = {"from_attributes": True}
