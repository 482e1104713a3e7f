"""
Passkey ceremony orchestration.

Each ceremony is two requests: ``begin_*`` issues a challenge stored under a
fresh pending id and returns the WebAuthn options, ``complete_*`` consumes
that challenge, verifies the authenticator's response and issues a session.
The ceremony's state is nothing but the challenge record: present while
options are outstanding, gone once a completion was attempted. Any failure is
final and the client must start over.
"""

import hmac
import logging
from collections.abc import Iterable
from uuid import uuid4

from .authsession import SessionIssuer
from .challenges import ChallengeStore
from .credentials import CredentialRepository
from .db import Account
from .errors import Forbidden, InvalidArgument, VerificationFailed
from .sansio import Passkey
from .util.tokens import create_pending_id

logger = logging.getLogger(__name__)


class RegistrationGate:
    """Restricts who may create accounts to holders of an invite code."""

    def __init__(self, invite_codes: Iterable[str]):
        self.invite_codes = [c.encode() for c in invite_codes]

    def check(self, code: object) -> None:
        # Non-string values (e.g. a JSON number) never match
        candidate = code.encode() if isinstance(code, str) else b""
        # Compare against every code to keep timing independent of the match
        matched = False
        for valid in self.invite_codes:
            matched |= hmac.compare_digest(candidate, valid)
        if not matched:
            raise Forbidden("Invalid PIN")


def _clean_name(name: object) -> str:
    name = name.strip() if isinstance(name, str) else ""
    if not name:
        raise InvalidArgument("Name is required")
    return name


class CeremonyOrchestrator:
    def __init__(
        self,
        passkey: Passkey,
        challenges: ChallengeStore,
        credentials: CredentialRepository,
        sessions: SessionIssuer,
        gate: RegistrationGate,
    ):
        self.passkey = passkey
        self.challenges = challenges
        self.credentials = credentials
        self.sessions = sessions
        self.gate = gate

    ### Registration ###

    async def begin_registration(self, pin: object, name: object) -> tuple[dict, str]:
        """Validate the invite and name, then issue registration options.

        Returns (options, pending_id).
        """
        self.gate.check(pin)
        name = _clean_name(name)
        pending_id = create_pending_id()
        user_uuid = uuid4()
        challenge = await self.challenges.issue(
            pending_id, user_uuid=user_uuid, display_name=name
        )
        options = self.passkey.reg_generate_options(user_uuid, name, challenge)
        logger.info("Registration options issued for %r (%s)", name, pending_id)
        return options, pending_id

    async def complete_registration(
        self, pending_id: str, name: object, credential: dict | str
    ) -> tuple[Account, str]:
        """Verify the attestation and create the account with its first passkey.

        Returns (account, session token).
        """
        name = _clean_name(name)
        record = await self.challenges.consume(pending_id)
        if record.user_uuid is None:
            # An authentication challenge submitted to registration
            logger.warning("Pending id %s does not belong to a registration", pending_id)
            raise VerificationFailed("Registration verification failed")
        if record.display_name is not None and name != record.display_name:
            # The authenticator stored the begin-time name as user.name
            raise InvalidArgument("Name does not match the registration request")
        stored = self.passkey.reg_verify(
            credential, record.challenge, record.user_uuid, name
        )
        account = Account(uuid=record.user_uuid, display_name=name)
        await self.credentials.create_account_with_credential(account, stored)
        token = self.sessions.issue(account.uuid, account.display_name)
        return account, token

    ### Authentication ###

    async def begin_authentication(self) -> tuple[dict, str]:
        """Issue options for a discoverable credential login.

        Returns (options, pending_id).
        """
        pending_id = create_pending_id()
        challenge = await self.challenges.issue(pending_id)
        return self.passkey.auth_generate_options(challenge), pending_id

    async def complete_authentication(
        self, pending_id: str, credential: dict | str
    ) -> tuple[Account, str]:
        """Verify the assertion of a registered passkey.

        Returns (account, session token).
        """
        record = await self.challenges.consume(pending_id)
        if record.user_uuid is not None:
            logger.warning(
                "Pending id %s does not belong to an authentication", pending_id
            )
            raise VerificationFailed("Authentication verification failed")
        parsed = self.passkey.auth_parse(credential)
        # Fetch from the database by credential ID
        stored = await self.credentials.find_by_credential_id(parsed.raw_id)
        sign_count = self.passkey.auth_verify(parsed, record.challenge, stored)
        await self.credentials.update_after_authentication(
            stored.credential_id, sign_count
        )
        account = await self.credentials.get_account(stored.account_uuid)
        token = self.sessions.issue(account.uuid, account.display_name)
        logger.info("Login verified for account %s", account.uuid)
        return account, token
