"""
Async database implementation for Sabzzi passkey authentication.

This module provides an async database layer using SQLAlchemy async mode
for managing accounts, credentials, ceremony challenges and revoked sessions.
Any SQLAlchemy async driver works; SQLite through aiosqlite is the default.
"""

from contextlib import asynccontextmanager
from datetime import datetime
from uuid import UUID

from sqlalchemy import (
    JSON,
    DateTime,
    ForeignKey,
    Integer,
    LargeBinary,
    String,
    delete,
    func,
    select,
    update,
)
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from ..config import DEFAULT_DB
from ..errors import Conflict, CredentialNotFound, NotFound, VerificationFailed
from . import Account, Challenge, Credential, DatabaseInterface


# SQLAlchemy Models
class Base(DeclarativeBase):
    pass


class AccountModel(Base):
    __tablename__ = "accounts"

    uuid: Mapped[bytes] = mapped_column(LargeBinary(16), primary_key=True)
    display_name: Mapped[str] = mapped_column(String, nullable=False)
    lists: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    shared_lists: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    preferences: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    last_seen: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    visits: Mapped[int] = mapped_column(Integer, nullable=False, default=0)


class CredentialModel(Base):
    __tablename__ = "credentials"

    uuid: Mapped[bytes] = mapped_column(LargeBinary(16), primary_key=True)
    # The unique index is what prevents registering one authenticator twice
    credential_id: Mapped[bytes] = mapped_column(
        LargeBinary(1023), unique=True, index=True, nullable=False
    )
    account_uuid: Mapped[bytes] = mapped_column(
        LargeBinary(16), ForeignKey("accounts.uuid", ondelete="CASCADE")
    )
    display_name: Mapped[str] = mapped_column(String, nullable=False)
    aaguid: Mapped[bytes] = mapped_column(LargeBinary(16), nullable=False)
    public_key: Mapped[bytes] = mapped_column(LargeBinary, nullable=False)
    sign_count: Mapped[int] = mapped_column(Integer, nullable=False)
    transports: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    last_used: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)


class ChallengeModel(Base):
    __tablename__ = "challenges"

    pending_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    challenge: Mapped[bytes] = mapped_column(LargeBinary(64), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    expires: Mapped[datetime] = mapped_column(DateTime, nullable=False, index=True)
    user_uuid: Mapped[bytes | None] = mapped_column(LargeBinary(16), nullable=True)
    display_name: Mapped[str | None] = mapped_column(String, nullable=True)


class RevokedSessionModel(Base):
    __tablename__ = "revoked_sessions"

    jti: Mapped[str] = mapped_column(String(32), primary_key=True)
    expires: Mapped[datetime] = mapped_column(DateTime, nullable=False, index=True)


def _account(m: AccountModel) -> Account:
    return Account(
        uuid=UUID(bytes=m.uuid),
        display_name=m.display_name,
        lists=list(m.lists or []),
        shared_lists=list(m.shared_lists or []),
        preferences=dict(m.preferences or {}),
        created_at=m.created_at,
        last_seen=m.last_seen,
        visits=m.visits,
    )


def _credential(m: CredentialModel) -> Credential:
    return Credential(
        uuid=UUID(bytes=m.uuid),
        credential_id=m.credential_id,
        account_uuid=UUID(bytes=m.account_uuid),
        display_name=m.display_name,
        aaguid=UUID(bytes=m.aaguid),
        public_key=m.public_key,
        sign_count=m.sign_count,
        transports=list(m.transports or []),
        created_at=m.created_at,
        last_used=m.last_used,
    )


def _account_model(account: Account) -> AccountModel:
    return AccountModel(
        uuid=account.uuid.bytes,
        display_name=account.display_name,
        lists=list(account.lists),
        shared_lists=list(account.shared_lists),
        preferences=dict(account.preferences),
        created_at=account.created_at,
        last_seen=account.last_seen,
        visits=account.visits,
    )


def _credential_model(credential: Credential) -> CredentialModel:
    return CredentialModel(
        uuid=credential.uuid.bytes,
        credential_id=credential.credential_id,
        account_uuid=credential.account_uuid.bytes,
        display_name=credential.display_name,
        aaguid=credential.aaguid.bytes,
        public_key=credential.public_key,
        sign_count=credential.sign_count,
        transports=list(credential.transports),
        created_at=credential.created_at,
        last_used=credential.last_used,
    )


class DB(DatabaseInterface):
    """Database class that handles its own connections."""

    def __init__(self, db_path: str = DEFAULT_DB):
        """Initialize with a SQLAlchemy async database URL."""
        self.engine = create_async_engine(db_path, echo=False)
        self.async_session_factory = async_sessionmaker(
            self.engine, expire_on_commit=False
        )

    @asynccontextmanager
    async def session(self):
        """Async context manager that provides a database session with transaction."""
        async with self.async_session_factory() as session:
            async with session.begin():
                yield session

    async def init_db(self) -> None:
        """Initialize database tables."""
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def close(self) -> None:
        await self.engine.dispose()

    # Challenge operations
    async def create_challenge(self, challenge: Challenge) -> None:
        async with self.session() as session:
            session.add(
                ChallengeModel(
                    pending_id=challenge.pending_id,
                    challenge=challenge.challenge,
                    created_at=challenge.created_at,
                    expires=challenge.expires,
                    user_uuid=challenge.user_uuid.bytes
                    if challenge.user_uuid
                    else None,
                    display_name=challenge.display_name,
                )
            )

    async def pop_challenge(self, pending_id: str) -> Challenge | None:
        # A single DELETE ... RETURNING, so concurrent callers cannot both get the row
        stmt = (
            delete(ChallengeModel)
            .where(ChallengeModel.pending_id == pending_id)
            .returning(
                ChallengeModel.challenge,
                ChallengeModel.created_at,
                ChallengeModel.expires,
                ChallengeModel.user_uuid,
                ChallengeModel.display_name,
            )
            .execution_options(synchronize_session=False)
        )
        async with self.session() as session:
            row = (await session.execute(stmt)).one_or_none()
        if row is None:
            return None
        return Challenge(
            pending_id=pending_id,
            challenge=row.challenge,
            created_at=row.created_at,
            expires=row.expires,
            user_uuid=UUID(bytes=row.user_uuid) if row.user_uuid else None,
            display_name=row.display_name,
        )

    async def delete_expired_challenges(self, now: datetime) -> int:
        stmt = (
            delete(ChallengeModel)
            .where(ChallengeModel.expires <= now)
            .execution_options(synchronize_session=False)
        )
        async with self.session() as session:
            result = await session.execute(stmt)
            return result.rowcount or 0

    # Account operations
    async def get_account(self, account_uuid: UUID) -> Account:
        async with self.session() as session:
            stmt = select(AccountModel).where(AccountModel.uuid == account_uuid.bytes)
            account_model = (await session.execute(stmt)).scalar_one_or_none()
            if not account_model:
                raise NotFound("Account not found")
            return _account(account_model)

    async def create_account(self, account: Account) -> None:
        try:
            async with self.session() as session:
                session.add(_account_model(account))
        except IntegrityError as e:
            raise Conflict("Account already exists") from e

    async def count_accounts(self) -> int:
        async with self.session() as session:
            stmt = select(func.count()).select_from(AccountModel)
            return (await session.execute(stmt)).scalar_one()

    async def create_account_and_credential(
        self, account: Account, credential: Credential
    ) -> None:
        try:
            async with self.session() as session:
                session.add(_account_model(account))
                # Flush the account first so the credential's foreign key resolves
                await session.flush()
                session.add(_credential_model(credential))
        except IntegrityError as e:
            raise Conflict() from e

    # Credential operations
    async def create_credential(self, credential: Credential) -> None:
        try:
            async with self.session() as session:
                session.add(_credential_model(credential))
        except IntegrityError as e:
            raise Conflict() from e

    async def get_credential_by_id(self, credential_id: bytes) -> Credential:
        async with self.session() as session:
            stmt = select(CredentialModel).where(
                CredentialModel.credential_id == credential_id
            )
            credential_model = (await session.execute(stmt)).scalar_one_or_none()
            if not credential_model:
                raise CredentialNotFound()
            return _credential(credential_model)

    async def login(
        self, credential_id: bytes, sign_count: int, timestamp: datetime
    ) -> None:
        # Counter policy checked in the same statement that writes the counter
        if sign_count == 0:
            counter_ok = CredentialModel.sign_count == 0
        else:
            counter_ok = CredentialModel.sign_count < sign_count
        async with self.session() as session:
            stmt = (
                update(CredentialModel)
                .where(CredentialModel.credential_id == credential_id, counter_ok)
                .values(sign_count=sign_count, last_used=timestamp)
                .returning(CredentialModel.account_uuid)
                .execution_options(synchronize_session=False)
            )
            account_uuid = (await session.execute(stmt)).scalar_one_or_none()
            if account_uuid is None:
                exists = await session.execute(
                    select(CredentialModel.sign_count).where(
                        CredentialModel.credential_id == credential_id
                    )
                )
                if exists.scalar_one_or_none() is None:
                    raise CredentialNotFound()
                raise VerificationFailed("Authentication verification failed")

            # Update account's last_seen and increment visits
            await session.execute(
                update(AccountModel)
                .where(AccountModel.uuid == account_uuid)
                .values(last_seen=timestamp, visits=AccountModel.visits + 1)
                .execution_options(synchronize_session=False)
            )

    # Session revocation
    async def revoke_session(self, jti: str, expires: datetime) -> None:
        async with self.session() as session:
            await session.merge(RevokedSessionModel(jti=jti, expires=expires))

    async def is_session_revoked(self, jti: str) -> bool:
        async with self.session() as session:
            stmt = select(RevokedSessionModel.jti).where(
                RevokedSessionModel.jti == jti
            )
            return (await session.execute(stmt)).scalar_one_or_none() is not None

    async def cleanup(self, now: datetime) -> None:
        async with self.session() as session:
            await session.execute(
                delete(ChallengeModel)
                .where(ChallengeModel.expires <= now)
                .execution_options(synchronize_session=False)
            )
            await session.execute(
                delete(RevokedSessionModel)
                .where(RevokedSessionModel.expires < now)
                .execution_options(synchronize_session=False)
            )
