"""Billing plan and plan item management."""

import logging
from typing import Any
from uuid import UUID

from sqlalchemy.orm import Session

from invoicer.core.errors import NotFoundError, ValidationError
from invoicer.models.billing_plan import BillingPlan, BillingPlanItem
from invoicer.repositories.billing_plan_repository import BillingPlanRepository
from invoicer.schemas.billing_plan import (
    BillingPlanCreate,
    BillingPlanItemCreate,
    BillingPlanItemUpdate,
    BillingPlanUpdate,
)
from invoicer.services.ports import LedgerApi
from invoicer.services.tax_resolver import TaxResolver

logger = logging.getLogger(__name__)


class BillingPlanService:
    """CRUD over plans and their items.

    Item writes look the ledger item up to cache its name and sales tax
    code, and refresh the cached tax rate.
    """

    def __init__(self, db: Session, ledger: LedgerApi):
        self.db = db
        self.ledger = ledger
        self.repo = BillingPlanRepository(db)
        self.tax_resolver = TaxResolver(ledger)

    def list_plans(self, active_only: bool = False) -> list[BillingPlan]:
        return self.repo.get_all(active_only=active_only)

    def get_plan(self, plan_id: UUID) -> BillingPlan:
        plan = self.repo.get_by_id(plan_id)
        if not plan:
            raise NotFoundError(f"Billing plan {plan_id} not found")
        return plan

    def create_plan(self, data: BillingPlanCreate) -> BillingPlan:
        plan = self.repo.create(data)
        logger.info("Created billing plan %s for customer %s", plan.id, plan.ledger_customer_id)
        return plan

    def update_plan(self, plan_id: UUID, data: BillingPlanUpdate) -> BillingPlan:
        plan = self.get_plan(plan_id)
        start = data.start_date if data.start_date is not None else plan.start_date
        fields_set = data.model_fields_set
        end = data.end_date if "end_date" in fields_set else plan.end_date
        if end is not None and end < start:
            raise ValidationError("end_date must not be before start_date", fields=["end_date"])

        updated = self.repo.update(plan_id, data)
        if updated is None:
            raise NotFoundError(f"Billing plan {plan_id} not found")
        return updated

    def delete_plan(self, plan_id: UUID) -> None:
        self.get_plan(plan_id)
        if self.repo.has_invoices(plan_id):
            raise ValidationError(
                "Billing plan has invoices and cannot be deleted; deactivate it instead"
            )
        self.repo.delete(plan_id)
        logger.info("Deleted billing plan %s", plan_id)

    def list_items(self, plan_id: UUID) -> list[BillingPlanItem]:
        self.get_plan(plan_id)
        return self.repo.get_items(plan_id)

    def get_item(self, plan_id: UUID, item_id: UUID) -> BillingPlanItem:
        item = self.repo.get_item(plan_id, item_id)
        if not item:
            raise NotFoundError(f"Billing plan item {item_id} not found")
        return item

    def _ledger_fields(self, ledger_item_id: str, item_name: str | None) -> dict[str, Any]:
        ledger_item = self.ledger.get_item(ledger_item_id)
        if ledger_item is None:
            raise NotFoundError(f"Ledger item {ledger_item_id} not found")
        tax_code_id = ledger_item.sales_tax_code_id
        return {
            "ledger_item_id": ledger_item.id,
            "item_name": item_name or ledger_item.name,
            "tax_code_id": tax_code_id,
            "tax_rate": self.tax_resolver.rate_or_zero(tax_code_id),
        }

    def add_item(self, plan_id: UUID, data: BillingPlanItemCreate) -> BillingPlanItem:
        self.get_plan(plan_id)
        fields = self._ledger_fields(data.ledger_item_id, data.item_name)
        fields.update(
            quantity=data.quantity,
            rate=data.rate,
            description=data.description,
            from_date=data.from_date,
            to_date=data.to_date,
            sort_order=(
                data.sort_order
                if data.sort_order is not None
                else self.repo.next_sort_order(plan_id)
            ),
        )
        return self.repo.create_item(plan_id, fields)

    def update_item(
        self, plan_id: UUID, item_id: UUID, data: BillingPlanItemUpdate
    ) -> BillingPlanItem:
        item = self.get_item(plan_id, item_id)
        update_data = data.model_dump(exclude_unset=True)

        from_date = update_data.get("from_date") or item.from_date
        to_date = update_data["to_date"] if "to_date" in update_data else item.to_date
        if to_date is not None and to_date < from_date:
            raise ValidationError("to_date must not be before from_date", fields=["to_date"])

        ledger_item_id = update_data.pop("ledger_item_id", None) or item.ledger_item_id
        item_name = update_data.pop("item_name", None)
        if not item_name and ledger_item_id == item.ledger_item_id:
            item_name = item.item_name
        fields = self._ledger_fields(ledger_item_id, item_name)

        # Drop explicit nulls for non-nullable columns
        for key in ("quantity", "rate", "sort_order", "from_date"):
            if key in update_data and update_data[key] is None:
                del update_data[key]
        fields.update(update_data)
        return self.repo.update_item(item, fields)

    def delete_item(self, plan_id: UUID, item_id: UUID) -> None:
        item = self.get_item(plan_id, item_id)
        self.repo.delete_item(item)
