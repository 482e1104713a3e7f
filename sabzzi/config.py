import os
from datetime import timedelta

import msgspec

# Shared configuration constants for session and ceremony management.
SESSION_LIFETIME = timedelta(days=30)

# A ceremony must be completed within this window after its options were issued
CHALLENGE_LIFETIME = timedelta(minutes=5)

RP_NAME = "Sabzzi - Grocery Tracker"

DEV_ACCOUNT_NAME = "Localhost Dev"

DEFAULT_DB = "sqlite+aiosqlite:///sabzzi.sqlite"
DEFAULT_SECRET_FILE = "sabzzi-secret.bin"


def default_origin(rp_id: str) -> str:
    if rp_id == "localhost":
        return "http://localhost:3000"
    return f"https://{rp_id}"


class Settings(msgspec.Struct, kw_only=True):
    """Runtime configuration, normally read from SABZZI_* environment variables."""

    rp_id: str = "localhost"
    rp_name: str = RP_NAME
    origin: str = ""
    db_url: str = DEFAULT_DB
    invite_codes: frozenset[str] = frozenset()
    secret: bytes | None = None
    secret_file: str = DEFAULT_SECRET_FILE
    dev: bool = False

    def __post_init__(self):
        if not self.origin:
            self.origin = default_origin(self.rp_id)

    @classmethod
    def from_env(cls) -> "Settings":
        """Build settings from the environment (the CLI exports its options there)."""
        rp_id = os.getenv("SABZZI_RP_ID") or "localhost"
        codes = os.getenv("SABZZI_INVITE_CODES", "")
        secret = os.getenv("SABZZI_SECRET")
        return cls(
            rp_id=rp_id,
            rp_name=os.getenv("SABZZI_RP_NAME") or RP_NAME,
            origin=os.getenv("SABZZI_ORIGIN") or default_origin(rp_id),
            db_url=os.getenv("SABZZI_DB") or DEFAULT_DB,
            invite_codes=frozenset(c.strip() for c in codes.split(",") if c.strip()),
            secret=secret.encode() if secret else None,
            secret_file=os.getenv("SABZZI_SECRET_FILE") or DEFAULT_SECRET_FILE,
            dev=os.getenv("SABZZI_DEV") == "1",
        )
