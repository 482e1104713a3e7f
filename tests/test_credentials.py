"""Tests for the credential repository and its SQL storage."""

import os
from uuid import UUID, uuid4

import pytest

from sabzzi.context import AppContext
from sabzzi.db import Account, Credential
from sabzzi.errors import Conflict, CredentialNotFound, NotFound, VerificationFailed
from sabzzi.util.timeutil import utcnow


def make_credential(account_uuid: UUID, credential_id: bytes | None = None):
    return Credential.create(
        credential_id=credential_id or os.urandom(32),
        account_uuid=account_uuid,
        display_name="Test",
        aaguid=UUID(int=0),
        public_key=os.urandom(64),
        sign_count=0,
    )


class TestCredentialRepository:
    @pytest.mark.asyncio
    async def test_create_and_find(self, ctx: AppContext):
        account = Account(uuid=uuid4(), display_name="Asha")
        credential = make_credential(account.uuid)
        await ctx.credentials.create_account_with_credential(account, credential)

        found = await ctx.credentials.find_by_credential_id(credential.credential_id)
        assert found.uuid == credential.uuid
        assert found.account_uuid == account.uuid
        assert found.public_key == credential.public_key

        stored = await ctx.credentials.get_account(account.uuid)
        assert stored.display_name == "Asha"
        assert stored.preferences == {"hapticsEnabled": True}
        assert stored.visits == 0

    @pytest.mark.asyncio
    async def test_insert_second_credential(self, ctx: AppContext):
        account = Account(uuid=uuid4(), display_name="Asha")
        await ctx.credentials.create_account_with_credential(
            account, make_credential(account.uuid)
        )
        second = make_credential(account.uuid)
        await ctx.credentials.insert(second)
        found = await ctx.credentials.find_by_credential_id(second.credential_id)
        assert found.account_uuid == account.uuid

    @pytest.mark.asyncio
    async def test_insert_duplicate(self, ctx: AppContext):
        account = Account(uuid=uuid4(), display_name="Asha")
        credential = make_credential(account.uuid)
        await ctx.credentials.create_account_with_credential(account, credential)
        with pytest.raises(Conflict):
            await ctx.credentials.insert(
                make_credential(account.uuid, credential.credential_id)
            )

    @pytest.mark.asyncio
    async def test_duplicate_rolls_back_account(self, ctx: AppContext):
        first = Account(uuid=uuid4(), display_name="Asha")
        credential = make_credential(first.uuid)
        await ctx.credentials.create_account_with_credential(first, credential)

        second = Account(uuid=uuid4(), display_name="Ravi")
        with pytest.raises(Conflict):
            await ctx.credentials.create_account_with_credential(
                second, make_credential(second.uuid, credential.credential_id)
            )
        assert await ctx.db.count_accounts() == 1
        with pytest.raises(NotFound):
            await ctx.credentials.get_account(second.uuid)

    @pytest.mark.asyncio
    async def test_unknown(self, ctx: AppContext):
        with pytest.raises(CredentialNotFound):
            await ctx.credentials.find_by_credential_id(b"missing")
        with pytest.raises(CredentialNotFound):
            await ctx.credentials.update_after_authentication(b"missing", 1)
        with pytest.raises(NotFound):
            await ctx.credentials.get_account(uuid4())

    @pytest.mark.asyncio
    async def test_update_after_authentication(self, ctx: AppContext):
        account = Account(uuid=uuid4(), display_name="Asha", lists=["weekly"])
        credential = make_credential(account.uuid)
        await ctx.credentials.create_account_with_credential(account, credential)

        now = utcnow()
        await ctx.credentials.update_after_authentication(
            credential.credential_id, 7, now
        )
        found = await ctx.credentials.find_by_credential_id(credential.credential_id)
        assert found.sign_count == 7
        assert found.last_used == now

        stored = await ctx.credentials.get_account(account.uuid)
        assert stored.display_name == "Asha"
        assert stored.lists == ["weekly"]
        assert stored.last_seen == now
        assert stored.visits == 1

    @pytest.mark.asyncio
    async def test_update_rejects_counter_not_above_stored(self, ctx: AppContext):
        account = Account(uuid=uuid4(), display_name="Asha")
        credential = make_credential(account.uuid)
        await ctx.credentials.create_account_with_credential(account, credential)
        await ctx.credentials.update_after_authentication(credential.credential_id, 5)

        for stale in (5, 4, 0):
            with pytest.raises(VerificationFailed):
                await ctx.credentials.update_after_authentication(
                    credential.credential_id, stale
                )
        found = await ctx.credentials.find_by_credential_id(credential.credential_id)
        assert found.sign_count == 5
        stored = await ctx.credentials.get_account(account.uuid)
        assert stored.visits == 1

    @pytest.mark.asyncio
    async def test_update_zero_counter_stays_zero(self, ctx: AppContext):
        account = Account(uuid=uuid4(), display_name="Asha")
        credential = make_credential(account.uuid)
        await ctx.credentials.create_account_with_credential(account, credential)
        await ctx.credentials.update_after_authentication(credential.credential_id, 0)
        await ctx.credentials.update_after_authentication(credential.credential_id, 0)

        stored = await ctx.credentials.get_account(account.uuid)
        assert stored.visits == 2
