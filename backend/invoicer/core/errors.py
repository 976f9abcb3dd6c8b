"""Typed error hierarchy shared by services and the HTTP layer.

Services raise these; ``invoicer.main`` maps each type to an HTTP status so
routers never translate errors by hand.

    InvoicerError
    +-- ValidationError          rejected before any write
    |   +-- OAuthStateError      missing, expired or replayed CSRF state
    +-- InvalidStateError        operation not allowed in the invoice's status
    +-- NotFoundError            plan, invoice, customer or item absent
    +-- NotConnectedError        no usable ledger credential
    |   +-- TokenDecryptionError stored credential cannot be decrypted
    +-- LedgerError              ledger-side failure
        +-- LedgerRejectionError ledger refused the document
        +-- LedgerUnauthorizedError
"""


class InvoicerError(Exception):
    """Base class for all application errors."""


class ValidationError(InvoicerError):
    """Missing or invalid input."""

    def __init__(self, message: str, fields: list[str] | None = None) -> None:
        super().__init__(message)
        self.fields = fields or []


class OAuthStateError(ValidationError):
    """The OAuth callback state is unknown, expired, or already consumed."""


class InvalidStateError(InvoicerError):
    """The invoice is not in a status that permits the operation."""

    def __init__(self, message: str, current_status: str | None = None) -> None:
        super().__init__(message)
        self.current_status = current_status


class NotFoundError(InvoicerError):
    """A referenced record does not exist."""


class NotConnectedError(InvoicerError):
    """No usable ledger credential; the ledger must be re-authorized."""


class TokenDecryptionError(NotConnectedError):
    """A stored ledger token could not be decrypted."""


class LedgerError(InvoicerError):
    """The ledger request failed."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class LedgerRejectionError(LedgerError):
    """The ledger refused the submitted document."""


class LedgerUnauthorizedError(LedgerError):
    """The ledger rejected the access token even after a refresh."""
