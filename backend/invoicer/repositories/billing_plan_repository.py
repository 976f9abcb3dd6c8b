from typing import Any
from uuid import UUID

from sqlalchemy import func
from sqlalchemy.orm import Session

from invoicer.models.billing_plan import BillingPlan, BillingPlanItem
from invoicer.models.invoice import Invoice
from invoicer.schemas.billing_plan import BillingPlanCreate, BillingPlanUpdate


class BillingPlanRepository:
    def __init__(self, db: Session):
        self.db = db

    def get_all(self, active_only: bool = False) -> list[BillingPlan]:
        query = self.db.query(BillingPlan)
        if active_only:
            query = query.filter(BillingPlan.is_active.is_(True))
        return query.order_by(BillingPlan.name).all()

    def get_by_id(self, plan_id: UUID) -> BillingPlan | None:
        return self.db.query(BillingPlan).filter(BillingPlan.id == plan_id).first()

    def create(self, data: BillingPlanCreate) -> BillingPlan:
        plan = BillingPlan(
            name=data.name,
            ledger_customer_id=data.ledger_customer_id,
            frequency=data.frequency.value,
            start_date=data.start_date,
            end_date=data.end_date,
            is_active=True,
        )
        self.db.add(plan)
        self.db.commit()
        self.db.refresh(plan)
        return plan

    def update(self, plan_id: UUID, data: BillingPlanUpdate) -> BillingPlan | None:
        plan = self.get_by_id(plan_id)
        if not plan:
            return None

        update_data = data.model_dump(exclude_unset=True)
        if update_data.get("frequency") is not None:
            update_data["frequency"] = update_data["frequency"].value

        for key, value in update_data.items():
            setattr(plan, key, value)

        self.db.commit()
        self.db.refresh(plan)
        return plan

    def delete(self, plan_id: UUID) -> bool:
        plan = self.get_by_id(plan_id)
        if not plan:
            return False
        # SQLite only cascades with foreign keys enabled, so remove items explicitly
        self.db.query(BillingPlanItem).filter(BillingPlanItem.billing_plan_id == plan_id).delete()
        self.db.delete(plan)
        self.db.commit()
        return True

    def has_invoices(self, plan_id: UUID) -> bool:
        count = (
            self.db.query(func.count(Invoice.id))
            .filter(Invoice.billing_plan_id == plan_id)
            .scalar()
        )
        return bool(count)

    def get_items(self, plan_id: UUID) -> list[BillingPlanItem]:
        return (
            self.db.query(BillingPlanItem)
            .filter(BillingPlanItem.billing_plan_id == plan_id)
            .order_by(BillingPlanItem.sort_order, BillingPlanItem.created_at)
            .all()
        )

    def get_item(self, plan_id: UUID, item_id: UUID) -> BillingPlanItem | None:
        return (
            self.db.query(BillingPlanItem)
            .filter(BillingPlanItem.id == item_id, BillingPlanItem.billing_plan_id == plan_id)
            .first()
        )

    def next_sort_order(self, plan_id: UUID) -> int:
        current = (
            self.db.query(func.max(BillingPlanItem.sort_order))
            .filter(BillingPlanItem.billing_plan_id == plan_id)
            .scalar()
        )
        return 0 if current is None else int(current) + 1

    def create_item(self, plan_id: UUID, fields: dict[str, Any]) -> BillingPlanItem:
        item = BillingPlanItem(billing_plan_id=plan_id, **fields)
        self.db.add(item)
        self.db.commit()
        self.db.refresh(item)
        return item

    def update_item(self, item: BillingPlanItem, fields: dict[str, Any]) -> BillingPlanItem:
        for key, value in fields.items():
            setattr(item, key, value)
        self.db.commit()
        self.db.refresh(item)
        return item

    def delete_item(self, item: BillingPlanItem) -> None:
        self.db.delete(item)
        self.db.commit()
