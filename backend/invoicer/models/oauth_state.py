"""Single-use CSRF state tokens for the OAuth authorization flow."""

from sqlalchemy import Column, DateTime, Integer, String

from invoicer.core.database import Base


class OAuthState(Base):
    __tablename__ = "oauth_states"

    id = Column(Integer, primary_key=True, autoincrement=True)
    state = Column(String(128), unique=True, index=True, nullable=False)
    provider = Column(String(50), nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False)
    expires_at = Column(DateTime(timezone=True), nullable=False, index=True)
