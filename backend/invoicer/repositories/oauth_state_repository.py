from datetime import datetime

from sqlalchemy.orm import Session

from invoicer.models.oauth_state import OAuthState


class OAuthStateRepository:
    def __init__(self, db: Session):
        self.db = db

    def create(
        self, state: str, provider: str, created_at: datetime, expires_at: datetime
    ) -> OAuthState:
        record = OAuthState(
            state=state, provider=provider, created_at=created_at, expires_at=expires_at
        )
        self.db.add(record)
        self.db.commit()
        self.db.refresh(record)
        return record

    def consume(self, state: str, provider: str, now: datetime) -> bool:
        """Delete a live state row; True only for the caller whose delete hit it."""
        count = (
            self.db.query(OAuthState)
            .filter(
                OAuthState.state == state,
                OAuthState.provider == provider,
                OAuthState.expires_at >= now,
            )
            .delete(synchronize_session=False)
        )
        self.db.commit()
        return count == 1

    def delete_state(self, state: str) -> int:
        count = (
            self.db.query(OAuthState)
            .filter(OAuthState.state == state)
            .delete(synchronize_session=False)
        )
        self.db.commit()
        return count

    def delete_expired_before(self, cutoff: datetime) -> int:
        count = (
            self.db.query(OAuthState)
            .filter(OAuthState.expires_at < cutoff)
            .delete(synchronize_session=False)
        )
        self.db.commit()
        return count
