"""
Credentials Repository for Chainflow.

Provides database operations for encrypted credentials. Lookups used during
execution always match on the (id, user_id, is_active) triple.
"""

import logging
from typing import List, Optional

from sqlalchemy.orm import Session

from chainflow.database.models.credentials import Credential

logger = logging.getLogger(__name__)


class CredentialsRepository:
    """Repository for credential database operations."""

    def __init__(self, session: Session):
        self.session = session

    def create_credential(self, user_id: str, name: str, type_: str, encrypted_data: str) -> Credential:
        try:
            credential = Credential(
                user_id=user_id, name=name, type=type_, data=encrypted_data, is_active=True
            )
            self.session.add(credential)
            self.session.commit()
            self.session.refresh(credential)
            logger.info(f"Created {type_} credential {credential.id} for user {user_id}")
            return credential
        except Exception as e:
            self.session.rollback()
            logger.error(f"Error creating credential: {e}")
            raise

    def get_active_credential(self, credential_id: str, user_id: str) -> Optional[Credential]:
        """
        Retrieve an active credential owned by ``user_id``.

        Args:
            credential_id: The credential identifier.
            user_id: The caller; credentials of other users are never returned.

        Returns:
            The Credential if the triple matches, None otherwise.
        """
        return (
            self.session.query(Credential)
            .filter(
                Credential.id == credential_id,
                Credential.user_id == user_id,
                Credential.is_active.is_(True),
            )
            .first()
        )

    def list_credentials(self, user_id: str) -> List[Credential]:
        return (
            self.session.query(Credential)
            .filter(Credential.user_id == user_id, Credential.is_active.is_(True))
            .order_by(Credential.created_at.desc())
            .all()
        )

    def deactivate(self, credential: Credential) -> Credential:
        try:
            credential.is_active = False
            self.session.commit()
            self.session.refresh(credential)
            return credential
        except Exception as e:
            self.session.rollback()
            logger.error(f"Error deactivating credential {credential.id}: {e}")
            raise
