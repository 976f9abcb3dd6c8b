from invoicer.repositories.billing_plan_repository import BillingPlanRepository
from invoicer.repositories.email_delivery_repository import EmailDeliveryRepository
from invoicer.repositories.invoice_repository import InvoiceRepository
from invoicer.repositories.ledger_token_repository import LedgerTokenRepository
from invoicer.repositories.oauth_state_repository import OAuthStateRepository

__all__ = [
    "BillingPlanRepository",
    "EmailDeliveryRepository",
    "InvoiceRepository",
    "LedgerTokenRepository",
    "OAuthStateRepository",
]
