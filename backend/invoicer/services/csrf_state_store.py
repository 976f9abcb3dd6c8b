"""Single-use CSRF state tokens for the ledger OAuth flow."""

import logging
import secrets
from datetime import timedelta

from invoicer.core import database
from invoicer.core.errors import OAuthStateError
from invoicer.models.shared import utc_now
from invoicer.repositories.oauth_state_repository import OAuthStateRepository

logger = logging.getLogger(__name__)

STATE_TTL = timedelta(minutes=15)
SWEEP_GRACE = timedelta(hours=1)
DEFAULT_PROVIDER = "quickbooks"


class CsrfStateStore:
    """Issues state tokens and consumes each one at most once.

    Each call opens its own session so the store can be shared across
    requests.
    """

    def __init__(self, provider: str = DEFAULT_PROVIDER, ttl: timedelta = STATE_TTL):
        self.provider = provider
        self.ttl = ttl

    def issue(self) -> str:
        now = utc_now()
        state = secrets.token_urlsafe(32)
        db = database.SessionLocal()
        try:
            repo = OAuthStateRepository(db)
            swept = repo.delete_expired_before(now - SWEEP_GRACE)
            if swept:
                logger.debug("Swept %d stale OAuth states", swept)
            repo.create(state, self.provider, created_at=now, expires_at=now + self.ttl)
        finally:
            db.close()
        return state

    def consume(self, state: str | None) -> None:
        """Validate and consume *state*, raising OAuthStateError on any failure."""
        if not state:
            raise OAuthStateError("Missing OAuth state parameter")

        db = database.SessionLocal()
        try:
            repo = OAuthStateRepository(db)
            if repo.consume(state, self.provider, utc_now()):
                return
            # Drop an expired row for this state too
            repo.delete_state(state)
        finally:
            db.close()

        logger.warning("Rejected unknown, expired or replayed OAuth state")
        raise OAuthStateError("Invalid or expired OAuth state")
