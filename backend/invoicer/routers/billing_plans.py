from typing import Any
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from invoicer.core.database import get_db
from invoicer.core.dependencies import get_ledger_api
from invoicer.models.billing_plan import BillingPlan
from invoicer.schemas.billing_plan import (
    BillingPlanCreate,
    BillingPlanItemCreate,
    BillingPlanItemResponse,
    BillingPlanItemUpdate,
    BillingPlanResponse,
    BillingPlanUpdate,
)
from invoicer.services.billing_plan_service import BillingPlanService
from invoicer.services.ports import LedgerApi

router = APIRouter()


def _service(db: Session, ledger: LedgerApi) -> BillingPlanService:
    return BillingPlanService(db, ledger)


def _plan_to_response(service: BillingPlanService, plan: BillingPlan) -> dict[str, Any]:
    """Convert BillingPlan model to response dict with its items."""
    return {
        "id": plan.id,
        "name": plan.name,
        "ledger_customer_id": plan.ledger_customer_id,
        "frequency": plan.frequency,
        "start_date": plan.start_date,
        "end_date": plan.end_date,
        "is_active": plan.is_active,
        "created_at": plan.created_at,
        "updated_at": plan.updated_at,
        "items": service.repo.get_items(plan.id),
    }


@router.get(
    "/",
    response_model=list[BillingPlanResponse],
    summary="List billing plans",
)
def list_plans(
    active_only: bool = Query(default=False),
    db: Session = Depends(get_db),
    ledger: LedgerApi = Depends(get_ledger_api),
) -> list[dict[str, Any]]:
    service = _service(db, ledger)
    return [_plan_to_response(service, plan) for plan in service.list_plans(active_only)]


@router.post(
    "/",
    response_model=BillingPlanResponse,
    status_code=201,
    summary="Create billing plan",
    responses={422: {"description": "Validation error"}},
)
def create_plan(
    data: BillingPlanCreate,
    db: Session = Depends(get_db),
    ledger: LedgerApi = Depends(get_ledger_api),
) -> dict[str, Any]:
    service = _service(db, ledger)
    return _plan_to_response(service, service.create_plan(data))


@router.get(
    "/{plan_id}",
    response_model=BillingPlanResponse,
    summary="Get billing plan",
    responses={404: {"description": "Billing plan not found"}},
)
def get_plan(
    plan_id: UUID,
    db: Session = Depends(get_db),
    ledger: LedgerApi = Depends(get_ledger_api),
) -> dict[str, Any]:
    service = _service(db, ledger)
    return _plan_to_response(service, service.get_plan(plan_id))


@router.put(
    "/{plan_id}",
    response_model=BillingPlanResponse,
    summary="Update billing plan",
    responses={
        400: {"description": "Invalid date range"},
        404: {"description": "Billing plan not found"},
    },
)
def update_plan(
    plan_id: UUID,
    data: BillingPlanUpdate,
    db: Session = Depends(get_db),
    ledger: LedgerApi = Depends(get_ledger_api),
) -> dict[str, Any]:
    service = _service(db, ledger)
    return _plan_to_response(service, service.update_plan(plan_id, data))


@router.delete(
    "/{plan_id}",
    status_code=204,
    summary="Delete billing plan",
    responses={
        400: {"description": "Billing plan has invoices"},
        404: {"description": "Billing plan not found"},
    },
)
def delete_plan(
    plan_id: UUID,
    db: Session = Depends(get_db),
    ledger: LedgerApi = Depends(get_ledger_api),
) -> None:
    _service(db, ledger).delete_plan(plan_id)


@router.get(
    "/{plan_id}/items",
    response_model=list[BillingPlanItemResponse],
    summary="List billing plan items",
    responses={404: {"description": "Billing plan not found"}},
)
def list_items(
    plan_id: UUID,
    db: Session = Depends(get_db),
    ledger: LedgerApi = Depends(get_ledger_api),
) -> list[Any]:
    return list(_service(db, ledger).list_items(plan_id))


@router.post(
    "/{plan_id}/items",
    response_model=BillingPlanItemResponse,
    status_code=201,
    summary="Add billing plan item",
    responses={404: {"description": "Billing plan or ledger item not found"}},
)
def add_item(
    plan_id: UUID,
    data: BillingPlanItemCreate,
    db: Session = Depends(get_db),
    ledger: LedgerApi = Depends(get_ledger_api),
) -> Any:
    return _service(db, ledger).add_item(plan_id, data)


@router.put(
    "/{plan_id}/items/{item_id}",
    response_model=BillingPlanItemResponse,
    summary="Update billing plan item",
    responses={404: {"description": "Billing plan item or ledger item not found"}},
)
def update_item(
    plan_id: UUID,
    item_id: UUID,
    data: BillingPlanItemUpdate,
    db: Session = Depends(get_db),
    ledger: LedgerApi = Depends(get_ledger_api),
) -> Any:
    return _service(db, ledger).update_item(plan_id, item_id, data)


@router.delete(
    "/{plan_id}/items/{item_id}",
    status_code=204,
    summary="Delete billing plan item",
    responses={404: {"description": "Billing plan item not found"}},
)
def delete_item(
    plan_id: UUID,
    item_id: UUID,
    db: Session = Depends(get_db),
    ledger: LedgerApi = Depends(get_ledger_api),
) -> None:
    _service(db, ledger).delete_item(plan_id, item_id)
