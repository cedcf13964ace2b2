"""Caller authentication against the store."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from chat_relay.relay.errors import AuthError

if TYPE_CHECKING:
    from chat_relay.relay.models import AuthenticatedUser
    from chat_relay.relay.store import StoreClient

logger = logging.getLogger("chat_relay.relay.auth")


def require_authorization(header: str | None) -> str:
    """Return the forwarded authorization header or fail when it is absent."""
    if not header or not header.strip():
        msg = "Unauthorized"
        raise AuthError(msg)
    scheme, _, token = header.strip().partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        msg = "Unauthorized"
        raise AuthError(msg)
    return header.strip()


async def authenticate(store: StoreClient) -> AuthenticatedUser:
    """Resolve the acting user; raises ``AuthError`` when the store rejects the token."""
    try:
        user = await store.get_user()
    except AuthError:
        logger.info("Rejected request with invalid or expired credentials")
        raise
    logger.debug("Authenticated user %s", user.id)
    return user
