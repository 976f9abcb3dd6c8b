from datetime import datetime

from sqlalchemy import update
from sqlalchemy.orm import Session

from invoicer.models.ledger_token import LedgerToken


class LedgerTokenRepository:
    def __init__(self, db: Session):
        self.db = db

    def get_by_realm(self, realm_id: str) -> LedgerToken | None:
        return self.db.query(LedgerToken).filter(LedgerToken.realm_id == realm_id).first()

    def get_current(self) -> LedgerToken | None:
        """Return the most recently written credential (single-connection deployment)."""
        return self.db.query(LedgerToken).order_by(LedgerToken.updated_at.desc()).first()

    def upsert(
        self,
        realm_id: str,
        access_token: str,
        refresh_token: str,
        access_token_expires_at: datetime,
        refresh_token_expires_at: datetime,
    ) -> LedgerToken:
        token = self.get_by_realm(realm_id)
        if token is None:
            token = LedgerToken(realm_id=realm_id, version=1)
            self.db.add(token)
        else:
            token.version = token.version + 1

        token.access_token = access_token
        token.refresh_token = refresh_token
        token.access_token_expires_at = access_token_expires_at
        token.refresh_token_expires_at = refresh_token_expires_at

        self.db.commit()
        self.db.refresh(token)
        return token

    def compare_and_swap(
        self,
        realm_id: str,
        expected_version: int,
        access_token: str,
        refresh_token: str,
        access_token_expires_at: datetime,
        refresh_token_expires_at: datetime,
    ) -> bool:
        """Write a refreshed pair only if the stored version is still *expected_version*."""
        result = self.db.execute(
            update(LedgerToken)
            .where(LedgerToken.realm_id == realm_id, LedgerToken.version == expected_version)
            .values(
                access_token=access_token,
                refresh_token=refresh_token,
                access_token_expires_at=access_token_expires_at,
                refresh_token_expires_at=refresh_token_expires_at,
                version=expected_version + 1,
            )
            .execution_options(synchronize_session=False)
        )
        self.db.commit()
        return result.rowcount == 1  # type: ignore[attr-defined]

    def delete_by_realm(self, realm_id: str) -> bool:
        count = self.db.query(LedgerToken).filter(LedgerToken.realm_id == realm_id).delete()
        self.db.commit()
        return count > 0

    def delete_all(self) -> int:
        count = self.db.query(LedgerToken).delete()
        self.db.commit()
        return count
