from typing import Any

from fastapi import APIRouter, Depends, Query

from invoicer.core.dependencies import get_ledger_api, get_ledger_session
from invoicer.core.errors import NotFoundError
from invoicer.schemas.ledger import (
    AuthorizationUrlResponse,
    LedgerConnectionStatus,
    LedgerCustomer,
    LedgerItem,
    TaxInfoResponse,
)
from invoicer.services.ledger.session import LedgerSession
from invoicer.services.ports import LedgerApi
from invoicer.services.tax_resolver import TaxResolver

router = APIRouter()


@router.get(
    "/authorize",
    response_model=AuthorizationUrlResponse,
    summary="Start ledger OAuth authorization",
    responses={400: {"description": "Ledger OAuth client not configured"}},
)
def authorize(session: LedgerSession = Depends(get_ledger_session)) -> dict[str, str]:
    return {"authorization_url": session.begin_authorization()}


@router.get(
    "/callback",
    response_model=LedgerConnectionStatus,
    summary="Complete ledger OAuth authorization",
    responses={400: {"description": "Invalid, expired or replayed state"}},
)
def callback(
    code: str | None = Query(default=None),
    state: str | None = Query(default=None),
    realm_id: str | None = Query(default=None, alias="realmId"),
    session: LedgerSession = Depends(get_ledger_session),
) -> LedgerConnectionStatus:
    return session.complete_authorization(code, realm_id, state)


@router.get(
    "/status",
    response_model=LedgerConnectionStatus,
    summary="Ledger connection status",
)
def status(session: LedgerSession = Depends(get_ledger_session)) -> LedgerConnectionStatus:
    return session.status()


@router.post(
    "/disconnect",
    response_model=LedgerConnectionStatus,
    summary="Forget stored ledger credentials",
)
def disconnect(session: LedgerSession = Depends(get_ledger_session)) -> LedgerConnectionStatus:
    session.disconnect()
    return session.status()


@router.get(
    "/customers",
    response_model=list[LedgerCustomer],
    summary="List active ledger customers",
    responses={401: {"description": "Ledger not connected"}},
)
def list_customers(ledger: LedgerApi = Depends(get_ledger_api)) -> list[LedgerCustomer]:
    return ledger.list_customers()


@router.get(
    "/customers/{customer_id}",
    response_model=LedgerCustomer,
    summary="Get a ledger customer",
    responses={404: {"description": "Customer not found"}},
)
def get_customer(customer_id: str, ledger: LedgerApi = Depends(get_ledger_api)) -> LedgerCustomer:
    customer = ledger.get_customer(customer_id)
    if customer is None:
        raise NotFoundError(f"Ledger customer {customer_id} not found")
    return customer


@router.get(
    "/items",
    response_model=list[LedgerItem],
    summary="List active ledger items",
    responses={401: {"description": "Ledger not connected"}},
)
def list_items(ledger: LedgerApi = Depends(get_ledger_api)) -> list[LedgerItem]:
    return ledger.list_items()


@router.get(
    "/items/{item_id}",
    response_model=LedgerItem,
    summary="Get a ledger item",
    responses={404: {"description": "Item not found"}},
)
def get_item(item_id: str, ledger: LedgerApi = Depends(get_ledger_api)) -> LedgerItem:
    item = ledger.get_item(item_id)
    if item is None:
        raise NotFoundError(f"Ledger item {item_id} not found")
    return item


@router.get(
    "/tax_codes/{tax_code_id}",
    response_model=TaxInfoResponse,
    summary="Resolve a tax code to its effective rate",
    responses={404: {"description": "Tax code not found"}},
)
def get_tax_code(tax_code_id: str, ledger: LedgerApi = Depends(get_ledger_api)) -> Any:
    info = TaxResolver(ledger).resolve_rate(tax_code_id)
    if info is None:
        raise NotFoundError(f"Tax code {tax_code_id} not found")
    return info
