"""FastAPI dependency providers for ledger access, rendering and email."""

import threading

from fastapi import Depends

from invoicer.services.email_service import EmailService
from invoicer.services.ledger.client import LedgerClient
from invoicer.services.ledger.session import LedgerSession
from invoicer.services.pdf_service import PdfService
from invoicer.services.ports import InvoiceNotifier, InvoiceRenderer, LedgerApi

_ledger_session: LedgerSession | None = None
_ledger_session_lock = threading.Lock()


def get_ledger_session() -> LedgerSession:
    """Return the process-wide ledger session, creating it on first use.

    Sync routes run in a thread pool, so creation is guarded by a lock.
    """
    global _ledger_session
    if _ledger_session is None:
        with _ledger_session_lock:
            if _ledger_session is None:
                _ledger_session = LedgerSession()
    return _ledger_session


def get_ledger_api(session: LedgerSession = Depends(get_ledger_session)) -> LedgerApi:
    return LedgerClient(session)


def get_renderer() -> InvoiceRenderer:
    return PdfService()


def get_notifier() -> InvoiceNotifier:
    return EmailService()
