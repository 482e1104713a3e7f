"""
Application context: every long-lived handle, constructed once at startup.

The context is passed explicitly (held on ``app.state`` by the web layer)
instead of living in module globals, so tests and multiple apps in one process
never share state by accident.
"""

import asyncio
import logging
from dataclasses import dataclass, field

from .authsession import SessionIssuer, load_or_create_secret
from .ceremony import CeremonyOrchestrator, RegistrationGate
from .challenges import ChallengeStore
from .config import Settings
from .credentials import CredentialRepository
from .db import DatabaseInterface
from .db import background
from .sansio import Passkey

logger = logging.getLogger(__name__)


@dataclass
class AppContext:
    settings: Settings
    db: DatabaseInterface
    passkey: Passkey
    challenges: ChallengeStore
    credentials: CredentialRepository
    sessions: SessionIssuer
    ceremonies: CeremonyOrchestrator
    _cleanup_task: asyncio.Task | None = field(default=None, repr=False)

    @classmethod
    def build(cls, settings: Settings, db: DatabaseInterface) -> "AppContext":
        """Wire up the components around an already created database."""
        passkey = Passkey(
            rp_id=settings.rp_id,
            rp_name=settings.rp_name,
            origin=settings.origin,
        )
        secret = settings.secret or load_or_create_secret(settings.secret_file)
        challenges = ChallengeStore(db)
        credentials = CredentialRepository(db)
        sessions = SessionIssuer(db, secret)
        ceremonies = CeremonyOrchestrator(
            passkey=passkey,
            challenges=challenges,
            credentials=credentials,
            sessions=sessions,
            gate=RegistrationGate(settings.invite_codes),
        )
        return cls(
            settings=settings,
            db=db,
            passkey=passkey,
            challenges=challenges,
            credentials=credentials,
            sessions=sessions,
            ceremonies=ceremonies,
        )

    def start_background(self) -> None:
        self._cleanup_task = background.start_background(self.db)

    async def close(self) -> None:
        await background.stop_background(self._cleanup_task)
        self._cleanup_task = None
        await self.db.close()


async def create_context(settings: Settings) -> AppContext:
    """Open the SQL database, create tables and build the application context."""
    from .db.sql import DB

    db = DB(settings.db_url)
    await db.init_db()
    ctx = AppContext.build(settings, db)
    logger.info(
        "WebAuthn configuration: rp_id=%s origin=%s accounts=%d",
        settings.rp_id,
        settings.origin,
        await db.count_accounts(),
    )
    if not settings.invite_codes:
        logger.warning("No invite codes configured, registration is disabled")
    if settings.dev:
        logger.warning("Development login is enabled")
    return ctx
