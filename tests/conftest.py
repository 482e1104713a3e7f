"""
Pytest configuration and fixtures for Sabzzi tests.

FastAPI provides excellent testing support through httpx.ASGITransport,
which allows us to make async requests directly to the ASGI app without
running a server. ASGITransport does not run the lifespan, so the fixtures
build the application context themselves and attach it to the app.

Passkeys are emulated by a software authenticator (tests/softauthn.py) that
produces responses py_webauthn accepts, so the ceremonies run for real.
"""

from __future__ import annotations

from collections.abc import AsyncGenerator

import httpx
import pytest
import pytest_asyncio

from sabzzi.config import Settings
from sabzzi.context import AppContext
from sabzzi.db.sql import DB
from sabzzi.fastapi.mainapp import app
from sabzzi.fastapi.session import AUTH_COOKIE_NAME
from tests.softauthn import SoftAuthenticator

RP_ID = "localhost"
ORIGIN = "https://localhost"
INVITE_CODE = "4452"


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        rp_id=RP_ID,
        rp_name="Test RP",
        origin=ORIGIN,
        db_url=f"sqlite+aiosqlite:///{tmp_path / 'test.sqlite'}",
        invite_codes=frozenset({INVITE_CODE}),
        secret=b"test-secret-0123456789abcdef0123",
        dev=False,
    )


@pytest_asyncio.fixture
async def test_db(settings: Settings) -> AsyncGenerator[DB, None]:
    """Create a fresh SQLite database file for each test."""
    db = DB(settings.db_url)
    await db.init_db()
    yield db
    await db.close()


@pytest_asyncio.fixture
async def ctx(settings: Settings, test_db: DB) -> AppContext:
    return AppContext.build(settings, test_db)


@pytest.fixture
def authenticator() -> SoftAuthenticator:
    return SoftAuthenticator()


@pytest_asyncio.fixture
async def client(ctx: AppContext) -> AsyncGenerator[httpx.AsyncClient, None]:
    """Create an async test client for the FastAPI app."""
    app.state.ctx = ctx
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(
        transport=transport,
        base_url=ORIGIN,
    ) as client:
        yield client
    del app.state.ctx


def auth_headers(token: str) -> dict[str, str]:
    """Return headers with auth cookie set."""
    return {"Cookie": f"{AUTH_COOKIE_NAME}={token}"}


async def register(
    ctx: AppContext, authenticator: SoftAuthenticator, name: str = "Alice"
):
    """Run a full registration ceremony. Returns (account, token, credential_id)."""
    options, pending_id = await ctx.ceremonies.begin_registration(INVITE_CODE, name)
    response = authenticator.create(options, ORIGIN)
    account, token = await ctx.ceremonies.complete_registration(
        pending_id, name, response
    )
    credential_id = next(reversed(authenticator.passkeys))
    return account, token, credential_id


async def login(
    ctx: AppContext,
    authenticator: SoftAuthenticator,
    credential_id: bytes | None = None,
    **kwargs,
):
    """Run a full authentication ceremony. Returns (account, token)."""
    options, pending_id = await ctx.ceremonies.begin_authentication()
    response = authenticator.get(options, ORIGIN, credential_id, **kwargs)
    return await ctx.ceremonies.complete_authentication(pending_id, response)
