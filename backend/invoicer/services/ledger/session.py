"""OAuth credential lifecycle and authenticated transport for the ledger.

``LedgerSession`` owns the single ledger connection: it runs the
authorization-code flow, keeps the encrypted token pair in the database,
refreshes the access token shortly before it expires, and retries a
request exactly once when the ledger answers 401.
"""

import logging
import threading
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any

import httpx

from invoicer.core import database
from invoicer.core.config import settings
from invoicer.core.errors import (
    LedgerError,
    LedgerUnauthorizedError,
    NotConnectedError,
    ValidationError,
)
from invoicer.models.ledger_token import LedgerToken
from invoicer.models.shared import ensure_utc, utc_now
from invoicer.repositories.ledger_token_repository import LedgerTokenRepository
from invoicer.schemas.ledger import LedgerConnectionStatus, OAuthTokenResponse
from invoicer.services.csrf_state_store import CsrfStateStore
from invoicer.services.token_vault import TokenVault

logger = logging.getLogger(__name__)

EXPIRY_MARGIN = timedelta(minutes=5)
MAX_ATTEMPTS = 2


@dataclass(frozen=True)
class CachedToken:
    """Decrypted snapshot of the stored credential."""

    realm_id: str
    access_token: str
    refresh_token: str
    access_token_expires_at: datetime
    refresh_token_expires_at: datetime
    version: int


class LedgerSession:
    def __init__(
        self,
        http_client: httpx.Client | None = None,
        vault: TokenVault | None = None,
        state_store: CsrfStateStore | None = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self._http = http_client or httpx.Client(timeout=settings.LEDGER_HTTP_TIMEOUT_SECONDS)
        self._vault = vault or TokenVault()
        self._states = state_store or CsrfStateStore()
        self._clock = clock
        self._cache: CachedToken | None = None
        self._locks: dict[str, threading.Lock] = {}
        self._locks_guard = threading.Lock()

    # -- authorization ---------------------------------------------------

    def begin_authorization(self) -> str:
        """Issue a CSRF state and return the ledger consent URL."""
        if not settings.ledger_configured:
            raise ValidationError("Ledger OAuth client is not configured")

        state = self._states.issue()
        params = {
            "client_id": settings.LEDGER_CLIENT_ID,
            "redirect_uri": settings.LEDGER_REDIRECT_URI,
            "response_type": "code",
            "scope": settings.LEDGER_SCOPE,
            "state": state,
        }
        return str(httpx.URL(settings.LEDGER_AUTHORIZATION_URL, params=params))

    def complete_authorization(
        self, code: str | None, realm_id: str | None, state: str | None
    ) -> LedgerConnectionStatus:
        """Consume *state*, exchange *code* and store the encrypted token pair."""
        self._states.consume(state)

        if not code or not realm_id:
            missing = [name for name, value in (("code", code), ("realm_id", realm_id)) if not value]
            raise ValidationError("Missing OAuth callback parameters", fields=missing)

        tokens = self._token_grant(
            {
                "grant_type": "authorization_code",
                "code": code,
                "redirect_uri": settings.LEDGER_REDIRECT_URI,
            }
        )
        if tokens is None:
            raise LedgerError("Ledger rejected the authorization code", status_code=400)

        access_expires, refresh_expires = self._expiries(tokens)
        db = database.SessionLocal()
        try:
            row = LedgerTokenRepository(db).upsert(
                realm_id,
                self._vault.encrypt(tokens.access_token),
                self._vault.encrypt(tokens.refresh_token),
                access_expires,
                refresh_expires,
            )
            version = int(row.version)
        finally:
            db.close()

        self._cache = CachedToken(
            realm_id=realm_id,
            access_token=tokens.access_token,
            refresh_token=tokens.refresh_token,
            access_token_expires_at=access_expires,
            refresh_token_expires_at=refresh_expires,
            version=version,
        )
        logger.info("Ledger connected for realm %s", realm_id)
        return self.status()

    # -- token access ----------------------------------------------------

    def get_valid_access_token(self) -> str:
        return self._valid_token().access_token

    def refresh(self) -> str:
        """Force a refresh of the current credential and return the new access token."""
        token = self._current()
        return self._refresh(token.realm_id, token.version).access_token

    def status(self) -> LedgerConnectionStatus:
        try:
            token = self._current()
        except NotConnectedError:
            return LedgerConnectionStatus(connected=False)
        return LedgerConnectionStatus(
            connected=True,
            realm_id=token.realm_id,
            access_token_expires_at=token.access_token_expires_at,
        )

    def disconnect(self) -> None:
        db = database.SessionLocal()
        try:
            removed = LedgerTokenRepository(db).delete_all()
        finally:
            db.close()
        self._cache = None
        logger.info("Ledger disconnected (%d credential rows removed)", removed)

    # -- transport -------------------------------------------------------

    def request(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, Any] | None = None,
        json: Any = None,
    ) -> httpx.Response:
        """Send an authenticated request to the ledger API.

        A 401 triggers one forced refresh and one retry; a second 401
        raises LedgerUnauthorizedError.
        """
        for attempt in range(1, MAX_ATTEMPTS + 1):
            token = self._valid_token()
            url = f"{settings.LEDGER_API_BASE_URL}/{token.realm_id}/{path.lstrip('/')}"
            try:
                response = self._http.request(
                    method,
                    url,
                    params=params,
                    json=json,
                    headers={
                        "Authorization": f"Bearer {token.access_token}",
                        "Accept": "application/json",
                    },
                )
            except httpx.HTTPError as exc:
                logger.error("Ledger request %s %s failed: %s", method, path, exc)
                raise LedgerError(f"Ledger request failed: {exc}") from exc
            if response.status_code != 401:
                return response

            if attempt < MAX_ATTEMPTS:
                logger.info("Ledger returned 401 for %s %s, refreshing token", method, path)
                self._refresh(token.realm_id, token.version)

        logger.error("Ledger rejected refreshed token for %s %s", method, path)
        raise LedgerUnauthorizedError(
            "Ledger rejected the access token after refresh", status_code=401
        )

    # -- internals -------------------------------------------------------

    def _lock_for(self, realm_id: str) -> threading.Lock:
        with self._locks_guard:
            lock = self._locks.get(realm_id)
            if lock is None:
                lock = threading.Lock()
                self._locks[realm_id] = lock
            return lock

    def _snapshot(self, row: LedgerToken) -> CachedToken:
        return CachedToken(
            realm_id=str(row.realm_id),
            access_token=self._vault.decrypt(str(row.access_token)),
            refresh_token=self._vault.decrypt(str(row.refresh_token)),
            access_token_expires_at=ensure_utc(row.access_token_expires_at),
            refresh_token_expires_at=ensure_utc(row.refresh_token_expires_at),
            version=int(row.version),
        )

    def _load(self, realm_id: str | None = None) -> CachedToken | None:
        db = database.SessionLocal()
        try:
            repo = LedgerTokenRepository(db)
            row = repo.get_by_realm(realm_id) if realm_id else repo.get_current()
            return self._snapshot(row) if row is not None else None
        finally:
            db.close()

    def _current(self) -> CachedToken:
        if self._cache is None:
            self._cache = self._load()
        if self._cache is None:
            raise NotConnectedError("Ledger is not connected; authorize it first")
        return self._cache

    def _valid_token(self) -> CachedToken:
        token = self._current()
        if self._clock() < token.access_token_expires_at - EXPIRY_MARGIN:
            return token
        return self._refresh(token.realm_id, token.version)

    def _refresh(self, realm_id: str, seen_version: int) -> CachedToken:
        """Refresh the credential that was at *seen_version*.

        Serialized per realm. If the stored version has moved on, another
        refresh already won and its pair is adopted without calling the
        token endpoint.
        """
        with self._lock_for(realm_id):
            stored = self._load(realm_id)
            if stored is None:
                self._cache = None
                raise NotConnectedError("Ledger is not connected; authorize it first")

            if stored.version != seen_version:
                logger.debug("Adopting newer ledger token version %d", stored.version)
                self._cache = stored
                return stored

            if self._clock() >= stored.refresh_token_expires_at:
                self._drop_credential(realm_id)
                raise NotConnectedError("Ledger refresh token expired; re-authorize the ledger")

            tokens = self._token_grant(
                {"grant_type": "refresh_token", "refresh_token": stored.refresh_token}
            )
            if tokens is None:
                self._drop_credential(realm_id)
                raise NotConnectedError("Ledger refused the refresh token; re-authorize the ledger")

            access_expires, refresh_expires = self._expiries(tokens)
            db = database.SessionLocal()
            try:
                written = LedgerTokenRepository(db).compare_and_swap(
                    realm_id,
                    stored.version,
                    self._vault.encrypt(tokens.access_token),
                    self._vault.encrypt(tokens.refresh_token),
                    access_expires,
                    refresh_expires,
                )
            finally:
                db.close()

            if not written:
                # A writer outside this process got there first
                newer = self._load(realm_id)
                if newer is None:
                    self._cache = None
                    raise NotConnectedError("Ledger is not connected; authorize it first")
                self._cache = newer
                return newer

            self._cache = CachedToken(
                realm_id=realm_id,
                access_token=tokens.access_token,
                refresh_token=tokens.refresh_token,
                access_token_expires_at=access_expires,
                refresh_token_expires_at=refresh_expires,
                version=stored.version + 1,
            )
            logger.info("Refreshed ledger access token for realm %s", realm_id)
            return self._cache

    def _drop_credential(self, realm_id: str) -> None:
        db = database.SessionLocal()
        try:
            LedgerTokenRepository(db).delete_by_realm(realm_id)
        finally:
            db.close()
        self._cache = None
        logger.warning("Deleted ledger credential for realm %s", realm_id)

    def _token_grant(self, form: dict[str, str]) -> OAuthTokenResponse | None:
        """POST a grant to the token endpoint; None when the grant is refused."""
        try:
            response = self._http.post(
                settings.LEDGER_TOKEN_URL,
                data=form,
                auth=(settings.LEDGER_CLIENT_ID, settings.LEDGER_CLIENT_SECRET),
                headers={"Accept": "application/json"},
            )
        except httpx.HTTPError as exc:
            logger.error("Token endpoint request failed: %s", exc)
            raise LedgerError(f"Token endpoint request failed: {exc}") from exc
        if response.status_code in (400, 401):
            logger.warning(
                "Token endpoint refused %s grant with HTTP %d",
                form.get("grant_type"),
                response.status_code,
            )
            return None
        if not response.is_success:
            raise LedgerError(
                f"Token endpoint returned HTTP {response.status_code}",
                status_code=response.status_code,
            )
        return OAuthTokenResponse.model_validate(response.json())

    def _expiries(self, tokens: OAuthTokenResponse) -> tuple[datetime, datetime]:
        now = self._clock()
        refresh_lifetime = (
            timedelta(seconds=tokens.x_refresh_token_expires_in)
            if tokens.x_refresh_token_expires_in
            else timedelta(days=settings.LEDGER_REFRESH_TOKEN_LIFETIME_DAYS)
        )
        return now + timedelta(seconds=tokens.expires_in), now + refresh_lifetime
