from invoicer.models.billing_plan import BillingFrequency, BillingPlan, BillingPlanItem
from invoicer.models.email_delivery import EmailDeliveryRecord, EmailDeliveryStatus
from invoicer.models.invoice import Invoice, InvoiceItem, InvoiceNumberSequence, InvoiceStatus
from invoicer.models.ledger_token import LedgerToken
from invoicer.models.oauth_state import OAuthState

__all__ = [
    "BillingFrequency",
    "BillingPlan",
    "BillingPlanItem",
    "EmailDeliveryRecord",
    "EmailDeliveryStatus",
    "Invoice",
    "InvoiceItem",
    "InvoiceNumberSequence",
    "InvoiceStatus",
    "LedgerToken",
    "OAuthState",
]
