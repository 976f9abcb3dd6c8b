"""At-rest encryption for ledger OAuth tokens.

Tokens are encrypted with Fernet (AES-128-CBC with HMAC-SHA256). The Fernet
key is derived from the configured master key with HKDF-SHA256, using a
purpose string as the HKDF ``info`` so that keys for different purposes are
unrelated even when they share a master key.
"""

import base64
import logging

from cryptography.fernet import Fernet, InvalidToken
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.hkdf import HKDF

from invoicer.core.config import settings
from invoicer.core.errors import TokenDecryptionError

logger = logging.getLogger(__name__)

LEDGER_TOKEN_PURPOSE = "invoicer.ledger-token.v1"


def derive_key(master_key: str, purpose: str) -> bytes:
    """Derive a urlsafe-base64 Fernet key for *purpose* from *master_key*."""
    hkdf = HKDF(
        algorithm=hashes.SHA256(),
        length=32,
        salt=None,
        info=purpose.encode("utf-8"),
    )
    return base64.urlsafe_b64encode(hkdf.derive(master_key.encode("utf-8")))


class TokenVault:
    """Encrypts and decrypts token strings for a single purpose."""

    def __init__(self, master_key: str | None = None, purpose: str = LEDGER_TOKEN_PURPOSE):
        key = master_key if master_key is not None else settings.TOKEN_ENCRYPTION_KEY
        if not key:
            raise ValueError("TOKEN_ENCRYPTION_KEY must be set")
        self.purpose = purpose
        self._fernet = Fernet(derive_key(key, purpose))

    def encrypt(self, plaintext: str) -> str:
        if not plaintext:
            return plaintext
        return self._fernet.encrypt(plaintext.encode("utf-8")).decode("ascii")

    def decrypt(self, ciphertext: str) -> str:
        if not ciphertext:
            return ciphertext
        try:
            return self._fernet.decrypt(ciphertext.encode("ascii")).decode("utf-8")
        except (InvalidToken, UnicodeError) as exc:
            logger.error("Stored token could not be decrypted for purpose %s", self.purpose)
            raise TokenDecryptionError(
                "Stored ledger credentials could not be decrypted; re-authorize the ledger"
            ) from exc
