"""
Database module for Sabzzi passkey authentication.

This module provides record structs and the database abstraction for managing
accounts, credentials, pending ceremony challenges and revoked sessions.
"""

from abc import ABC, abstractmethod
from datetime import datetime
from uuid import UUID, uuid4

import msgspec

from ..util.timeutil import utcnow


def default_preferences() -> dict:
    return {"hapticsEnabled": True}


class Account(msgspec.Struct, kw_only=True):
    """Household member owning shopping lists."""

    uuid: UUID
    display_name: str
    lists: list[str] = msgspec.field(default_factory=list)
    shared_lists: list[str] = msgspec.field(default_factory=list)
    preferences: dict = msgspec.field(default_factory=default_preferences)
    created_at: datetime = msgspec.field(default_factory=utcnow)
    last_seen: datetime | None = None
    visits: int = 0


class Credential(msgspec.Struct, kw_only=True):
    uuid: UUID
    credential_id: bytes  # Long binary ID passed from the authenticator
    account_uuid: UUID
    display_name: str
    aaguid: UUID
    public_key: bytes
    sign_count: int
    transports: list[str] = msgspec.field(default_factory=list)
    created_at: datetime = msgspec.field(default_factory=utcnow)
    last_used: datetime | None = None

    @classmethod
    def create(cls, **kwargs) -> "Credential":
        """Create a new Credential with an auto-generated uuid."""
        return cls(uuid=uuid4(), **kwargs)


class Challenge(msgspec.Struct, kw_only=True):
    """Pending ceremony challenge, keyed by a temporary pending_id."""

    pending_id: str
    challenge: bytes
    created_at: datetime
    expires: datetime
    # User handle of a registration ceremony, None for authentication
    user_uuid: UUID | None = None
    # Name bound into the registration options
    display_name: str | None = None


class DatabaseInterface(ABC):
    """Abstract base class defining the database interface."""

    @abstractmethod
    async def init_db(self) -> None:
        """Initialize database tables."""

    @abstractmethod
    async def close(self) -> None:
        """Release pooled connections."""

    # Challenge operations
    @abstractmethod
    async def create_challenge(self, challenge: Challenge) -> None:
        """Store a new pending challenge."""

    @abstractmethod
    async def pop_challenge(self, pending_id: str) -> Challenge | None:
        """Atomically delete and return a challenge (regardless of expiry)."""

    @abstractmethod
    async def delete_expired_challenges(self, now: datetime) -> int:
        """Delete challenges expired at `now`, returning how many were removed."""

    # Account operations
    @abstractmethod
    async def get_account(self, account_uuid: UUID) -> Account:
        """Get account by uuid."""

    @abstractmethod
    async def create_account(self, account: Account) -> None:
        """Create an account without credentials."""

    @abstractmethod
    async def count_accounts(self) -> int:
        """Number of accounts."""

    @abstractmethod
    async def create_account_and_credential(
        self, account: Account, credential: Credential
    ) -> None:
        """Create a new account and its first credential in a transaction."""

    # Credential operations
    @abstractmethod
    async def create_credential(self, credential: Credential) -> None:
        """Store a credential for an existing account."""

    @abstractmethod
    async def get_credential_by_id(self, credential_id: bytes) -> Credential:
        """Get credential by credential ID."""

    @abstractmethod
    async def login(
        self, credential_id: bytes, sign_count: int, timestamp: datetime
    ) -> None:
        """Update credential counter/last_used and account last_seen/visits.

        The counter is only written if it strictly increases (or stays at zero),
        otherwise VerificationFailed. CredentialNotFound if the row is gone.
        """

    # Session revocation
    @abstractmethod
    async def revoke_session(self, jti: str, expires: datetime) -> None:
        """Record a session id as revoked until it would have expired."""

    @abstractmethod
    async def is_session_revoked(self, jti: str) -> bool:
        """Check the revocation list."""

    @abstractmethod
    async def cleanup(self, now: datetime) -> None:
        """Called periodically to clean up expired records."""


__all__ = [
    "Account",
    "Credential",
    "Challenge",
    "DatabaseInterface",
    "default_preferences",
]
