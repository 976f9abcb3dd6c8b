"""Encrypted ledger OAuth credentials, one row per realm."""

from sqlalchemy import Column, DateTime, Integer, String, Text, func

from invoicer.core.database import Base


class LedgerToken(Base):
    __tablename__ = "ledger_tokens"

    id = Column(Integer, primary_key=True, autoincrement=True)
    realm_id = Column(String(100), unique=True, index=True, nullable=False)

    # Fernet ciphertext, never plaintext
    access_token = Column(Text, nullable=False)
    refresh_token = Column(Text, nullable=False)
    access_token_expires_at = Column(DateTime(timezone=True), nullable=False)
    refresh_token_expires_at = Column(DateTime(timezone=True), nullable=False)

    # Bumped on every write; refresh writes are conditional on it
    version = Column(Integer, nullable=False, default=1)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
