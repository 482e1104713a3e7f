"""
Session issuing for completed passkey ceremonies.

Sessions are HS256 JWTs carrying the account and its display name. They are
stateless apart from a revocation list written at logout, which keeps a
logged-out token from being replayed until its natural expiry.
"""

import logging
import os
import secrets
from datetime import datetime, timezone
from pathlib import Path
from uuid import UUID

import jwt
import msgspec

from .config import SESSION_LIFETIME
from .db import DatabaseInterface
from .errors import InvalidSession
from .util.tokens import create_token

logger = logging.getLogger(__name__)

EXPIRES = SESSION_LIFETIME
ISSUER = "sabzzi"


def load_or_create_secret(path: str | Path) -> bytes:
    """Load the signing secret from file or create a new one."""
    secret_file = Path(path)
    try:
        # Created owner-only; O_EXCL leaves an existing file untouched
        fd = os.open(secret_file, os.O_WRONLY | os.O_CREAT | os.O_EXCL, 0o600)
    except FileExistsError:
        return secret_file.read_bytes()
    # Generate a new 32-byte secret
    secret = secrets.token_bytes(32)
    with os.fdopen(fd, "wb") as f:
        f.write(secret)
    logger.info("Created new session secret in %s", secret_file)
    return secret


class SessionData(msgspec.Struct, kw_only=True):
    account_uuid: UUID
    display_name: str
    issued_at: datetime
    expires: datetime
    jti: str


class SessionIssuer:
    """Creates, validates and revokes session tokens."""

    def __init__(
        self, db: DatabaseInterface, secret_key: bytes, algorithm: str = "HS256"
    ):
        self.db = db
        self.secret_key = secret_key
        self.algorithm = algorithm
        self.token_expiry = EXPIRES

    def issue(self, account_uuid: UUID, display_name: str) -> str:
        """
        Create a signed session token.

        Args:
            account_uuid: The account the ceremony authenticated
            display_name: Name shown by the client without another lookup

        Returns:
            JWT token string
        """
        now = datetime.now(timezone.utc)
        payload = {
            "sub": str(account_uuid),
            "name": display_name,
            "iat": now,
            "exp": now + self.token_expiry,
            "jti": create_token(),
            "iss": ISSUER,
        }
        return jwt.encode(payload, self.secret_key, algorithm=self.algorithm)

    def decode(self, token: str) -> SessionData:
        """Check signature, expiry and issuer, without the revocation list."""
        try:
            payload = jwt.decode(
                token,
                self.secret_key,
                algorithms=[self.algorithm],
                issuer=ISSUER,
                options={"require": ["sub", "exp", "iat", "jti"]},
            )
            return SessionData(
                account_uuid=UUID(payload["sub"]),
                display_name=payload.get("name", ""),
                issued_at=datetime.fromtimestamp(payload["iat"], timezone.utc),
                expires=datetime.fromtimestamp(payload["exp"], timezone.utc),
                jti=payload["jti"],
            )
        except jwt.ExpiredSignatureError as e:
            raise InvalidSession() from e
        except (jwt.InvalidTokenError, ValueError) as e:
            raise InvalidSession("Invalid session") from e

    async def verify(self, token: str) -> SessionData:
        """Validate a session token and return its data. Raises InvalidSession."""
        session = self.decode(token)
        if await self.db.is_session_revoked(session.jti):
            raise InvalidSession()
        return session

    async def revoke(self, token: str) -> bool:
        """Revoke a token until its natural expiry. Invalid tokens are ignored."""
        try:
            session = self.decode(token)
        except InvalidSession:
            return False
        await self.db.revoke_session(
            session.jti, session.expires.astimezone(timezone.utc).replace(tzinfo=None)
        )
        logger.info("Revoked session %s of account %s", session.jti, session.account_uuid)
        return True
