from invoicer.services.ledger.client import LedgerClient
from invoicer.services.ledger.session import CachedToken, LedgerSession

__all__ = ["CachedToken", "LedgerClient", "LedgerSession"]
