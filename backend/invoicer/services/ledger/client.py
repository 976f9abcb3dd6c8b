"""Typed ledger API calls on top of an authenticated ``LedgerSession``."""

import logging
from typing import Any
from urllib.parse import quote

import httpx

from invoicer.core.errors import LedgerError, LedgerRejectionError
from invoicer.schemas.ledger import (
    LedgerCustomer,
    LedgerInvoice,
    LedgerInvoiceCreate,
    LedgerItem,
    LedgerTaxCode,
    LedgerTaxRate,
)
from invoicer.services.ledger.session import LedgerSession

logger = logging.getLogger(__name__)

ACTIVE_CUSTOMERS_QUERY = "SELECT * FROM Customer WHERE Active = true"
ACTIVE_ITEMS_QUERY = "SELECT * FROM Item WHERE Active = true"


def _fault_message(response: httpx.Response) -> str:
    """Pull the first fault message out of a ledger error body."""
    try:
        body = response.json()
    except ValueError:
        return response.text or f"HTTP {response.status_code}"
    errors = (body.get("Fault") or {}).get("Error") or []
    if errors:
        first = errors[0]
        detail = first.get("Detail")
        message = first.get("Message") or "Ledger error"
        return f"{message}: {detail}" if detail else message
    return f"HTTP {response.status_code}"


class LedgerClient:
    def __init__(self, session: LedgerSession):
        self.session = session

    def _query(self, statement: str, entity: str) -> list[dict[str, Any]]:
        response = self.session.request("GET", "query", params={"query": statement})
        self._raise_for_status(response, f"query {entity}")
        rows: list[dict[str, Any]] = response.json().get("QueryResponse", {}).get(entity, [])
        return rows

    def _lookup(self, entity: str, entity_id: str) -> dict[str, Any] | None:
        response = self.session.request("GET", f"{entity.lower()}/{quote(entity_id, safe='')}")
        if response.status_code == 404:
            return None
        self._raise_for_status(response, f"get {entity} {entity_id}")
        data: dict[str, Any] | None = response.json().get(entity)
        return data

    @staticmethod
    def _raise_for_status(response: httpx.Response, action: str) -> None:
        if response.is_success:
            return
        message = _fault_message(response)
        logger.error("Ledger %s failed with HTTP %d: %s", action, response.status_code, message)
        raise LedgerError(f"Ledger {action} failed: {message}", status_code=response.status_code)

    def list_customers(self) -> list[LedgerCustomer]:
        return [
            LedgerCustomer.model_validate(row)
            for row in self._query(ACTIVE_CUSTOMERS_QUERY, "Customer")
        ]

    def get_customer(self, customer_id: str) -> LedgerCustomer | None:
        data = self._lookup("Customer", customer_id)
        return LedgerCustomer.model_validate(data) if data else None

    def list_items(self) -> list[LedgerItem]:
        return [LedgerItem.model_validate(row) for row in self._query(ACTIVE_ITEMS_QUERY, "Item")]

    def get_item(self, item_id: str) -> LedgerItem | None:
        data = self._lookup("Item", item_id)
        return LedgerItem.model_validate(data) if data else None

    def get_tax_code(self, tax_code_id: str) -> LedgerTaxCode | None:
        data = self._lookup("TaxCode", tax_code_id)
        return LedgerTaxCode.model_validate(data) if data else None

    def get_tax_rate(self, tax_rate_id: str) -> LedgerTaxRate | None:
        data = self._lookup("TaxRate", tax_rate_id)
        return LedgerTaxRate.model_validate(data) if data else None

    def create_invoice(self, invoice: LedgerInvoiceCreate) -> LedgerInvoice:
        payload = invoice.model_dump(by_alias=True, exclude_none=True, mode="json")
        response = self.session.request("POST", "invoice", json=payload)
        if not response.is_success:
            message = _fault_message(response)
            logger.error(
                "Ledger rejected invoice %s with HTTP %d: %s",
                invoice.doc_number,
                response.status_code,
                message,
            )
            raise LedgerRejectionError(
                f"Ledger rejected invoice: {message}", status_code=response.status_code
            )
        return LedgerInvoice.model_validate(response.json()["Invoice"])
