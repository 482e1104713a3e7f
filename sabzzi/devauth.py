"""Development login: a fixed account usable without a passkey, never in production."""

import logging
from uuid import UUID

from .config import DEV_ACCOUNT_NAME
from .credentials import CredentialRepository
from .db import Account
from .errors import NotFound

logger = logging.getLogger(__name__)

DEV_ACCOUNT_UUID = UUID("00000000-0000-4000-8000-00000000de00")


async def ensure_dev_account(credentials: CredentialRepository) -> Account:
    """Create or get the localhost development account."""
    try:
        return await credentials.get_account(DEV_ACCOUNT_UUID)
    except NotFound:
        pass
    account = Account(uuid=DEV_ACCOUNT_UUID, display_name=DEV_ACCOUNT_NAME)
    await credentials.create_account(account)
    logger.info("Created development account %s", account.uuid)
    return account
