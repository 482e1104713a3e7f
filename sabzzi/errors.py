"""
Error taxonomy for the authentication core.

Every failure a client can cause is an ``AuthError`` subclass carrying the
HTTP status it maps to. Anything else escaping a request is an internal error.
"""


class AuthError(Exception):
    status_code = 400
    default_detail = "Bad request"

    def __init__(self, detail: str | None = None):
        self.detail = detail or self.default_detail
        super().__init__(self.detail)


class InvalidArgument(AuthError):
    status_code = 400
    default_detail = "Invalid request"


class Forbidden(AuthError):
    status_code = 403
    default_detail = "Forbidden"


class Conflict(AuthError):
    # Reported as a plain bad request, matching the existing client
    status_code = 400
    default_detail = "This passkey is already registered"


class NotFound(AuthError):
    status_code = 404
    default_detail = "Not found"


class CredentialNotFound(NotFound):
    default_detail = (
        "No passkey found on this device. Please register first or use a"
        " device where you previously registered a passkey."
    )


class ChallengeNotFound(NotFound):
    status_code = 400
    default_detail = "Challenge expired or not found"


class VerificationFailed(AuthError):
    status_code = 400
    default_detail = "Verification failed"


class InvalidSession(AuthError):
    status_code = 401
    default_detail = "Your session has expired. Please sign in again!"
