"""
Credential repository: stored passkeys and the accounts that own them.

Uniqueness of credential IDs is enforced by the database's unique index, so a
duplicate registration fails atomically with Conflict and leaves no trace.
"""

import logging
from datetime import datetime
from uuid import UUID

from .db import Account, Credential, DatabaseInterface
from .errors import VerificationFailed
from .util.timeutil import utcnow

logger = logging.getLogger(__name__)


class CredentialRepository:
    def __init__(self, db: DatabaseInterface):
        self.db = db

    async def find_by_credential_id(self, credential_id: bytes) -> Credential:
        """Raises CredentialNotFound if the authenticator was never registered here."""
        return await self.db.get_credential_by_id(credential_id)

    async def insert(self, credential: Credential) -> None:
        """Store a credential for an existing account. Raises Conflict on duplicates."""
        await self.db.create_credential(credential)

    async def create_account_with_credential(
        self, account: Account, credential: Credential
    ) -> None:
        """Create an account together with its first credential, all or nothing."""
        await self.db.create_account_and_credential(account, credential)
        logger.info(
            "Created account %s (%s) with credential %s",
            account.uuid,
            account.display_name,
            credential.uuid,
        )

    async def update_after_authentication(
        self,
        credential_id: bytes,
        sign_count: int,
        timestamp: datetime | None = None,
    ) -> None:
        """Record a successful login.

        Raises CredentialNotFound if the row is gone, VerificationFailed if the
        stored counter already reached sign_count (another login got there first).
        """
        try:
            await self.db.login(credential_id, sign_count, timestamp or utcnow())
        except VerificationFailed:
            logger.warning(
                "Signature counter %d not above stored value, possible cloned"
                " authenticator",
                sign_count,
            )
            raise

    async def get_account(self, account_uuid: UUID) -> Account:
        return await self.db.get_account(account_uuid)

    async def create_account(self, account: Account) -> None:
        """Create an account without any passkey (development login only)."""
        await self.db.create_account(account)
