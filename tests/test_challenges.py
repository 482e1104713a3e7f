"""Tests for the one-time challenge store."""

import asyncio
from datetime import timedelta
from uuid import uuid4

import pytest

from sabzzi.challenges import ChallengeStore
from sabzzi.db.sql import DB
from sabzzi.errors import ChallengeNotFound
from sabzzi.util.timeutil import utcnow


class TestChallengeStore:
    @pytest.mark.asyncio
    async def test_consume_never_issued(self, test_db: DB):
        store = ChallengeStore(test_db)
        with pytest.raises(ChallengeNotFound):
            await store.consume("never-issued")

    @pytest.mark.asyncio
    async def test_consume_exactly_once(self, test_db: DB):
        store = ChallengeStore(test_db)
        challenge = await store.issue("p1")
        assert len(challenge) == 32

        record = await store.consume("p1")
        assert record.challenge == challenge
        assert record.user_uuid is None

        with pytest.raises(ChallengeNotFound):
            await store.consume("p1")

    @pytest.mark.asyncio
    async def test_challenges_are_unique(self, test_db: DB):
        store = ChallengeStore(test_db)
        first = await store.issue("p1")
        second = await store.issue("p2")
        assert first != second
        assert (await store.consume("p2")).challenge == second
        assert (await store.consume("p1")).challenge == first

    @pytest.mark.asyncio
    async def test_registration_keeps_user_handle(self, test_db: DB):
        store = ChallengeStore(test_db)
        user_uuid = uuid4()
        await store.issue("reg", user_uuid=user_uuid)
        record = await store.consume("reg")
        assert record.user_uuid == user_uuid

    @pytest.mark.asyncio
    async def test_expired_challenge_is_rejected(self, test_db: DB):
        store = ChallengeStore(test_db, lifetime=timedelta(0))
        await store.issue("old")
        with pytest.raises(ChallengeNotFound):
            await store.consume("old")

    @pytest.mark.asyncio
    async def test_consume_after_lifetime(self, test_db: DB):
        store = ChallengeStore(test_db)
        await store.issue("p1")
        with pytest.raises(ChallengeNotFound):
            await store.consume("p1", now=utcnow() + timedelta(minutes=6))
        # The failed attempt still used it up
        with pytest.raises(ChallengeNotFound):
            await store.consume("p1")

    @pytest.mark.asyncio
    async def test_concurrent_consume_single_winner(self, test_db: DB):
        store = ChallengeStore(test_db)
        await store.issue("race")
        results = await asyncio.gather(
            *(store.consume("race") for _ in range(5)), return_exceptions=True
        )
        winners = [r for r in results if not isinstance(r, BaseException)]
        losers = [r for r in results if isinstance(r, ChallengeNotFound)]
        assert len(winners) == 1
        assert len(losers) == 4

    @pytest.mark.asyncio
    async def test_sweep_removes_only_expired(self, test_db: DB):
        expired = ChallengeStore(test_db, lifetime=timedelta(0))
        live = ChallengeStore(test_db)
        await live.issue("live")
        await expired.issue("gone")

        assert await live.sweep() == 1
        assert await live.sweep() == 0
        assert (await live.consume("live")).pending_id == "live"
