"""Fixed-interval rate limiting per marketplace account."""

import asyncio
import logging
import time
from collections import defaultdict

logger = logging.getLogger(__name__)


class RateLimiter:
    """Enforces a minimum spacing between requests for each account key."""

    def __init__(self):
        self.locks: dict[str, asyncio.Lock] = defaultdict(asyncio.Lock)
        self.last_request: dict[str, float] = {}
        self.account_cooldowns: dict[str, float] = {}  # account -> cooldown until (monotonic)

    async def acquire(self, account: str, min_interval: float) -> float:
        """
        Wait until ``min_interval`` seconds have passed since the previous
        request for ``account``.

        Args:
            account: Rate limit key (marketplace + credential)
            min_interval: Minimum seconds between requests

        Returns:
            Seconds actually waited
        """
        async with self.locks[account]:
            now = time.monotonic()
            waited = 0.0

            cooldown_until = self.account_cooldowns.get(account, 0.0)
            if now < cooldown_until:
                wait_time = cooldown_until - now
                logger.debug(f"Account {account} in cooldown, waiting {wait_time:.1f}s")
                await asyncio.sleep(wait_time)
                waited += wait_time
                now = time.monotonic()

            last_time = self.last_request.get(account)
            if last_time is not None:
                wait_needed = max(0.0, min_interval - (now - last_time))
                if wait_needed > 0:
                    await asyncio.sleep(wait_needed)
                    waited += wait_needed

            self.last_request[account] = time.monotonic()
            return waited

    def set_cooldown(self, account: str, seconds: float) -> None:
        """Block requests for ``account`` for the next ``seconds`` seconds."""
        self.account_cooldowns[account] = time.monotonic() + seconds

    def reset(self, account: str | None = None) -> None:
        if account is None:
            self.last_request.clear()
            self.account_cooldowns.clear()
        else:
            self.last_request.pop(account, None)
            self.account_cooldowns.pop(account, None)


# Global rate limiter instance
rate_limiter = RateLimiter()
