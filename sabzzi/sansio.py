"""
WebAuthn handler class that combines registration and authentication functionality.

This module provides a unified interface for WebAuthn operations including:
- Registration options generation and attestation verification
- Authentication options generation and assertion verification
- Signature counter policy

It performs no I/O; challenges are generated and stored by the caller.
"""

import json
import logging
from uuid import UUID

from webauthn import (
    generate_authentication_options,
    generate_registration_options,
    verify_authentication_response,
    verify_registration_response,
)
from webauthn.helpers import (
    options_to_json,
    parse_authentication_credential_json,
    parse_registration_credential_json,
)
from webauthn.helpers.cose import COSEAlgorithmIdentifier
from webauthn.helpers.structs import (
    AuthenticationCredential,
    AuthenticatorAttachment,
    AuthenticatorSelectionCriteria,
    ResidentKeyRequirement,
    UserVerificationRequirement,
)

from .db import Credential
from .errors import VerificationFailed

logger = logging.getLogger(__name__)


def sign_count_acceptable(stored: int, received: int) -> bool:
    """Counter policy: the counter must strictly increase.

    Authenticators without a counter (most synced passkeys) always report zero;
    zero after zero is accepted. Zero after a non-zero value is a regression.
    """
    if stored == 0 and received == 0:
        return True
    return received > stored


class Passkey:
    """WebAuthn handler for registration and authentication operations."""

    def __init__(
        self,
        rp_id: str,
        rp_name: str,
        origin: str,
        supported_pub_key_algs: list[COSEAlgorithmIdentifier] | None = None,
    ):
        """
        Initialize the WebAuthn handler.

        Args:
            rp_id: Your security domain (e.g. "example.com")
            rp_name: The relying party name (e.g., "My Application" - visible to users)
            origin: The origin URL of the application (e.g. "https://app.example.com"). Must be a subdomain or same as rp_id, with port and scheme but no path included.
            supported_pub_key_algs: List of supported COSE algorithms (default is EDDSA, ECDSA_SHA_256, RSASSA_PKCS1_v1_5_SHA_256).
        """
        self.rp_id = rp_id
        self.rp_name = rp_name
        self.origin = origin
        self.supported_pub_key_algs = supported_pub_key_algs or [
            COSEAlgorithmIdentifier.EDDSA,
            COSEAlgorithmIdentifier.ECDSA_SHA_256,
            COSEAlgorithmIdentifier.RSASSA_PKCS1_v1_5_SHA_256,
        ]

    ### Registration Methods ###

    def reg_generate_options(
        self,
        user_id: UUID,
        user_name: str,
        challenge: bytes,
    ) -> dict:
        """
        Generate registration options for a platform passkey.

        Args:
            user_id: The user handle the authenticator stores with the credential
            user_name: The display name, also used as the user name
            challenge: Challenge bytes issued by the challenge store

        Returns:
            JSON dict containing options to be sent to client.
        """
        options = generate_registration_options(
            rp_id=self.rp_id,
            rp_name=self.rp_name,
            user_id=user_id.bytes,
            user_name=user_name,
            user_display_name=user_name,
            challenge=challenge,
            authenticator_selection=AuthenticatorSelectionCriteria(
                authenticator_attachment=AuthenticatorAttachment.PLATFORM,
                resident_key=ResidentKeyRequirement.REQUIRED,
                user_verification=UserVerificationRequirement.REQUIRED,
            ),
            supported_pub_key_algs=self.supported_pub_key_algs,
        )
        return json.loads(options_to_json(options))

    def reg_verify(
        self,
        response_json: dict | str,
        expected_challenge: bytes,
        account_uuid: UUID,
        display_name: str,
    ) -> Credential:
        """
        Verify a registration response.

        Checks origin, RP ID, challenge, attestation signature and that the
        user was verified. Any failure raises VerificationFailed with a generic
        message; the reason is only logged.

        Returns:
            The credential record to store (not yet persisted).
        """
        try:
            credential = parse_registration_credential_json(response_json)
            registration = verify_registration_response(
                credential=credential,
                expected_challenge=expected_challenge,
                expected_origin=self.origin,
                expected_rp_id=self.rp_id,
                require_user_verification=True,
                supported_pub_key_algs=self.supported_pub_key_algs,
            )
        except Exception as e:
            logger.warning("Registration verification failed: %s", e)
            raise VerificationFailed("Registration verification failed") from e
        return Credential.create(
            credential_id=registration.credential_id,
            account_uuid=account_uuid,
            display_name=display_name,
            aaguid=UUID(registration.aaguid),
            public_key=registration.credential_public_key,
            sign_count=registration.sign_count,
            transports=[t.value for t in credential.response.transports or []],
        )

    ### Authentication Methods ###

    def auth_generate_options(self, challenge: bytes) -> dict:
        """
        Generate options for discoverable credential authentication.

        No allowCredentials are sent: the authenticator picks the passkey and
        reveals the identity only in its assertion.
        """
        options = generate_authentication_options(
            rp_id=self.rp_id,
            challenge=challenge,
            user_verification=UserVerificationRequirement.REQUIRED,
        )
        return json.loads(options_to_json(options))

    def auth_parse(self, response: dict | str) -> AuthenticationCredential:
        try:
            return parse_authentication_credential_json(response)
        except Exception as e:
            logger.warning("Malformed authentication response: %s", e)
            raise VerificationFailed("Authentication verification failed") from e

    def auth_verify(
        self,
        credential: AuthenticationCredential,
        expected_challenge: bytes,
        stored_cred: Credential,
    ) -> int:
        """
        Verify an assertion against locally stored credential data.

        Args:
            credential: The authentication credential response from the client
            expected_challenge: The earlier generated challenge bytes
            stored_cred: The server stored credential record

        Returns:
            The new signature counter to store.
        """
        try:
            # Counter checking is done below so that it only applies to
            # otherwise valid signatures and follows our own policy
            verification = verify_authentication_response(
                credential=credential,
                expected_challenge=expected_challenge,
                expected_origin=self.origin,
                expected_rp_id=self.rp_id,
                credential_public_key=stored_cred.public_key,
                credential_current_sign_count=0,
                require_user_verification=True,
            )
        except Exception as e:
            logger.warning(
                "Authentication verification failed for credential %s: %s",
                stored_cred.uuid,
                e,
            )
            raise VerificationFailed("Authentication verification failed") from e
        if not sign_count_acceptable(stored_cred.sign_count, verification.new_sign_count):
            logger.warning(
                "Signature counter regression on credential %s (stored %d, received %d),"
                " possible cloned authenticator",
                stored_cred.uuid,
                stored_cred.sign_count,
                verification.new_sign_count,
            )
            raise VerificationFailed("Authentication verification failed")
        return verification.new_sign_count
