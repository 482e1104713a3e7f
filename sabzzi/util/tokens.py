import secrets


def create_token() -> str:
    return secrets.token_urlsafe(12)  # 16 characters Base64


def create_pending_id() -> str:
    """Temporary identifier binding a ceremony's options request to its completion."""
    return secrets.token_urlsafe(18)  # 24 characters Base64


def create_challenge() -> bytes:
    return secrets.token_bytes(32)
