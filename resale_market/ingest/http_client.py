"""Rate-limited marketplace HTTP client with failure classification."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Optional

import httpx

from resale_market import metrics
from resale_market.ingest.credentials import TokenProvider
from resale_market.ingest.rate_limiter import RateLimiter, rate_limiter

logger = logging.getLogger(__name__)

# Transport errors that mean "try again on a later run"
TRANSIENT_EXC = (
    httpx.TimeoutException,
    httpx.NetworkError,
    httpx.RemoteProtocolError,
)

THROTTLE_MARKERS = ("rate limit", "too many requests", "throttl")


class FetchError(RuntimeError):
    """Base class for classified marketplace request failures."""

    kind = "transient"

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class RateLimitedError(FetchError):
    """Provider throttled the request (429 or a throttle message)."""

    kind = "rate_limited"

    def __init__(self, message: str = "Rate limited", retry_after: Optional[int] = None,
                 status_code: Optional[int] = 429):
        super().__init__(message, status_code)
        self.retry_after = retry_after


class NotFoundError(FetchError):
    """Item is absent from the provider catalog (terminal)."""

    kind = "not_found"


class TransientFetchError(FetchError):
    """Network failure, 5xx, rejected token or other retry-later failure."""

    kind = "transient"


class MalformedResponseError(TransientFetchError):
    """Response body did not match the expected payload shape."""


@dataclass(frozen=True)
class MarketplacePolicy:
    """Per-marketplace request policy."""

    name: str
    base_url: str
    min_interval: float = 1.1
    timeout: httpx.Timeout = None  # Set to default if None
    headers: dict[str, str] = field(default_factory=dict)
    max_cooldown_seconds: float = 30.0

    def __post_init__(self):
        if self.timeout is None:
            object.__setattr__(
                self,
                'timeout',
                httpx.Timeout(connect=10.0, read=30.0, write=10.0, pool=10.0)
            )


def _parse_retry_after(value: Optional[str]) -> Optional[int]:
    if not value:
        return None
    try:
        return int(value)
    except (ValueError, TypeError):
        return None


def classify_response(resp: httpx.Response, policy_name: str, url: str) -> Optional[FetchError]:
    """
    Map a non-success response to a FetchError, or None for 2xx.

    401/403 mean the token was rejected or expired; the credential
    collaborator refreshes it before the next run, so they are transient.
    """
    sc = resp.status_code
    if 200 <= sc < 300:
        return None

    if sc == 429:
        return RateLimitedError(
            f"{policy_name}: 429 rate limited for {url}",
            retry_after=_parse_retry_after(resp.headers.get("Retry-After")),
        )

    body = resp.text[:500].lower() if resp.content else ""
    if 400 <= sc < 500 and any(marker in body for marker in THROTTLE_MARKERS):
        return RateLimitedError(
            f"{policy_name}: {sc} throttled for {url}",
            retry_after=_parse_retry_after(resp.headers.get("Retry-After")),
            status_code=sc,
        )

    if sc == 404:
        return NotFoundError(f"{policy_name}: 404 for {url}", status_code=sc)

    if sc in (401, 403):
        return TransientFetchError(f"{policy_name}: {sc} token rejected for {url}", status_code=sc)

    return TransientFetchError(f"{policy_name}: status {sc} for {url}", status_code=sc)


class MarketplaceHttpClient:
    """
    Issues JSON GET requests for one marketplace account.

    Every request waits on the shared rate limiter so consecutive calls for
    the same account are at least ``policy.min_interval`` apart. Failures
    are raised as FetchError subclasses and never retried here; retrying is
    the job of the next scheduled run.
    """

    def __init__(
        self,
        policy: MarketplacePolicy,
        token_provider: TokenProvider,
        limiter: Optional[RateLimiter] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        account: Optional[str] = None,
    ):
        self.policy = policy
        self.token_provider = token_provider
        self.limiter = limiter or rate_limiter
        self.account = account or policy.name
        self._transport = transport
        self._http_client: Optional[httpx.AsyncClient] = None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(
                base_url=self.policy.base_url,
                timeout=self.policy.timeout,
                transport=self._transport,
                headers={"Accept": "application/json", **self.policy.headers},
            )
        return self._http_client

    async def close(self):
        """Close HTTP client."""
        if self._http_client:
            await self._http_client.aclose()
            self._http_client = None

    async def fetch(self, endpoint: str, params: Optional[dict[str, Any]] = None) -> Any:
        """
        GET ``endpoint`` and return the decoded JSON body.

        Raises:
            MissingCredentialsError: If no token exists for the marketplace
            RateLimitedError: On 429 or a provider throttle message
            NotFoundError: On 404
            TransientFetchError: On network errors, 5xx, 401/403 and bad JSON
        """
        token = await self.token_provider.get_token(self.policy.name)
        client = await self._get_client()

        await self.limiter.acquire(self.account, self.policy.min_interval)

        started = time.monotonic()
        try:
            resp = await client.get(
                endpoint,
                params=params,
                headers={"Authorization": f"Bearer {token}"},
            )
        except TRANSIENT_EXC as e:
            metrics.record_fetch_error(self.policy.name, "transient", time.monotonic() - started)
            raise TransientFetchError(f"{self.policy.name}: {type(e).__name__} for {endpoint}") from e

        duration = time.monotonic() - started
        error = classify_response(resp, self.policy.name, endpoint)
        if error is not None:
            metrics.record_fetch_error(self.policy.name, error.kind, duration)
            if isinstance(error, RateLimitedError):
                logger.warning(f"{self.policy.name}: rate limited on {endpoint}")
                if error.retry_after:
                    self.limiter.set_cooldown(
                        self.account, min(float(error.retry_after), self.policy.max_cooldown_seconds)
                    )
            raise error

        try:
            data = resp.json()
        except ValueError as e:
            metrics.record_fetch_error(self.policy.name, "transient", duration)
            raise MalformedResponseError(
                f"{self.policy.name}: invalid JSON from {endpoint}", status_code=resp.status_code
            ) from e

        metrics.record_fetch_success(self.policy.name, duration)
        return data
