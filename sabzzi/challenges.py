"""
Short-lived challenge storage for WebAuthn ceremonies.

Challenges live in the shared database rather than process memory, so a
ceremony may begin on one server instance and complete on another. They are
one-time-use: ``consume`` deletes the record in the same statement that reads
it. Expired entries are swept on every ``issue``.
"""

import logging
from datetime import datetime, timedelta
from uuid import UUID

from .config import CHALLENGE_LIFETIME
from .db import Challenge, DatabaseInterface
from .errors import ChallengeNotFound
from .util.timeutil import utcnow
from .util.tokens import create_challenge

logger = logging.getLogger(__name__)


class ChallengeStore:
    def __init__(
        self, db: DatabaseInterface, lifetime: timedelta = CHALLENGE_LIFETIME
    ):
        self.db = db
        self.lifetime = lifetime

    async def issue(
        self,
        pending_id: str,
        user_uuid: UUID | None = None,
        display_name: str | None = None,
    ) -> bytes:
        """Create and store a fresh challenge for the given pending ceremony.

        Args:
            pending_id: Unique, caller generated ceremony identifier
            user_uuid: User handle to remember for a registration ceremony
            display_name: Name bound into registration options

        Returns:
            The challenge bytes to embed into the ceremony options.
        """
        await self.sweep()
        now = utcnow()
        challenge = create_challenge()
        await self.db.create_challenge(
            Challenge(
                pending_id=pending_id,
                challenge=challenge,
                created_at=now,
                expires=now + self.lifetime,
                user_uuid=user_uuid,
                display_name=display_name,
            )
        )
        return challenge

    async def consume(self, pending_id: str, now: datetime | None = None) -> Challenge:
        """Retrieve and delete a challenge; at most one caller ever gets it.

        Raises ChallengeNotFound if the challenge was never issued, was already
        consumed or has expired.
        """
        record = await self.db.pop_challenge(pending_id)
        if record is None:
            logger.info("Challenge %s not found", pending_id)
            raise ChallengeNotFound()
        if record.expires <= (now or utcnow()):
            logger.info("Challenge %s expired at %s", pending_id, record.expires)
            raise ChallengeNotFound()
        return record

    async def sweep(self) -> int:
        """Delete all expired challenges. Hygiene only, consume checks expiry itself."""
        removed = await self.db.delete_expired_challenges(utcnow())
        if removed:
            logger.debug("Swept %d expired challenges", removed)
        return removed
