from invoicer.schemas.billing_plan import (
    BillingPlanCreate,
    BillingPlanItemCreate,
    BillingPlanItemResponse,
    BillingPlanItemUpdate,
    BillingPlanResponse,
    BillingPlanUpdate,
)
from invoicer.schemas.invoice import (
    EmailDeliveryResponse,
    GenerateInvoiceRequest,
    GenerateInvoiceResponse,
    InvoiceItemEdit,
    InvoiceItemResponse,
    InvoiceResponse,
    PostInvoiceResponse,
    ResendInvoiceRequest,
    ResendInvoiceResponse,
    UpdateDraftItemsRequest,
)
from invoicer.schemas.ledger import (
    LedgerAddress,
    LedgerConnectionStatus,
    LedgerCustomer,
    LedgerInvoice,
    LedgerInvoiceCreate,
    LedgerInvoiceLine,
    LedgerItem,
    LedgerReference,
    LedgerTaxCode,
    LedgerTaxRate,
    OAuthTokenResponse,
)

__all__ = [
    "BillingPlanCreate",
    "BillingPlanItemCreate",
    "BillingPlanItemResponse",
    "BillingPlanItemUpdate",
    "BillingPlanResponse",
    "BillingPlanUpdate",
    "EmailDeliveryResponse",
    "GenerateInvoiceRequest",
    "GenerateInvoiceResponse",
    "InvoiceItemEdit",
    "InvoiceItemResponse",
    "InvoiceResponse",
    "LedgerAddress",
    "LedgerConnectionStatus",
    "LedgerCustomer",
    "LedgerInvoice",
    "LedgerInvoiceCreate",
    "LedgerInvoiceLine",
    "LedgerItem",
    "LedgerReference",
    "LedgerTaxCode",
    "LedgerTaxRate",
    "OAuthTokenResponse",
    "PostInvoiceResponse",
    "ResendInvoiceRequest",
    "ResendInvoiceResponse",
    "UpdateDraftItemsRequest",
]
