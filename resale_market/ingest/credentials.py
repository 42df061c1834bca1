"""Bearer token lookup for marketplace accounts."""

import logging
from typing import Optional

from resale_market.config import settings

logger = logging.getLogger(__name__)


class MissingCredentialsError(RuntimeError):
    """Raised when no token is available for a marketplace account."""

    def __init__(self, marketplace: str):
        super().__init__(f"No credentials configured for {marketplace}")
        self.marketplace = marketplace


class TokenProvider:
    """
    Returns a bearer token per marketplace.

    The OAuth handshake that mints these tokens lives outside this service;
    this provider only hands out what it was configured with.
    """

    def __init__(self, tokens: Optional[dict[str, str]] = None):
        if tokens is None:
            tokens = {
                "stockx": settings.stockx_access_token,
                "alias": settings.alias_pat,
            }
        self._tokens = {k: v for k, v in tokens.items() if v}

    async def get_token(self, marketplace: str) -> str:
        token = self._tokens.get(marketplace)
        if not token:
            logger.warning(f"No access token configured for {marketplace}")
            raise MissingCredentialsError(marketplace)
        return token

