"""
Base classes for pricing provider adapters.

Defines the card query shape, the adapter-boundary error taxonomy and the
interface every provider adapter implements.
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Optional

import httpx
import structlog

from pokeprice.core.config import settings
from pokeprice.core.constants import Language
from pokeprice.core.rate_limit import DEFAULT_BLOCK_SECONDS, RateLimiter
from pokeprice.core.request_queue import RequestQueue
from pokeprice.services.normalization import is_known_set, normalize_card_number

logger = structlog.get_logger()


@dataclass
class CardQuery:
    """
    Card identity to price.

    ``card_number`` and ``set_name`` only act as a lookup key together:
    ``has_number_key`` is False unless both are present and the set is not
    the "Unknown Set" sentinel.
    """
    title: str
    card_id: Optional[str] = None
    card_number: Optional[str] = None
    set_name: Optional[str] = None
    language: Language = Language.ENGLISH
    include_pricing: bool = True

    @property
    def has_known_set(self) -> bool:
        return is_known_set(self.set_name)

    @property
    def has_number_key(self) -> bool:
        return bool(self.card_number and self.card_number.strip()) and self.has_known_set

    @property
    def normalized_number(self) -> str:
        return normalize_card_number(self.card_number)

    def describe(self) -> dict[str, Any]:
        """Identity fields for log events."""
        return {
            "title": self.title,
            "card_id": self.card_id,
            "card_number": self.card_number,
            "set_name": self.set_name,
            "language": self.language.value,
        }


class ProviderError(Exception):
    """Base class for failures at a provider boundary."""

    def __init__(self, provider: str, message: str = ""):
        self.provider = provider
        self.message = message or self.__class__.__name__
        super().__init__(f"{provider}: {self.message}")


class ProviderNotFoundError(ProviderError):
    """Provider has no record matching the identity."""


class ProviderRateLimitedError(ProviderError):
    """Provider throttled us, or the local budget is spent."""

    def __init__(self, provider: str, message: str = "", retry_in: Optional[float] = None):
        super().__init__(provider, message or "Rate limited")
        self.retry_in = retry_in


class ProviderUnavailableError(ProviderError):
    """Timeout, connection failure, error status or malformed body."""

    def __init__(self, provider: str, message: str = "", status_code: Optional[int] = None):
        super().__init__(provider, message or "Unavailable")
        self.status_code = status_code


class ProviderNotConfiguredError(ProviderError):
    """Required credential is missing."""


@dataclass
class AdapterConfig:
    """Configuration for a pricing provider adapter."""
    base_url: str
    api_key: Optional[str] = None
    requires_api_key: bool = False
    rate_limit_requests: int = 60
    rate_limit_window_seconds: float = 60.0
    default_block_seconds: float = DEFAULT_BLOCK_SECONDS
    queue_delay_seconds: float = 0.1
    timeout_seconds: float = settings.external_api_timeout
    user_agent: str = settings.user_agent
    extra: dict[str, Any] = field(default_factory=dict)


class ProviderAdapter(ABC):
    """
    Abstract base class for pricing provider adapters.

    Every outbound call goes through ``_request``, which checks the shared
    RateLimiter, runs the call on this provider's RequestQueue and maps HTTP
    outcomes onto the ProviderError taxonomy. Public adapter methods catch
    ProviderError and return "N/A" records, so only programming errors
    escape an adapter.
    """

    def __init__(
        self,
        config: AdapterConfig,
        rate_limiter: Optional[RateLimiter] = None,
        queue: Optional[RequestQueue] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Initialize the adapter with configuration.

        Args:
            config: Adapter configuration including URL and credential.
            rate_limiter: Shared per-provider budget tracker.
            queue: This provider's request queue.
            transport: Optional httpx transport (tests pass a MockTransport).
        """
        self.config = config
        self.rate_limiter = rate_limiter or RateLimiter()
        self.queue = queue or RequestQueue(self.provider_slug, config.queue_delay_seconds)
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

        self._configured = bool(config.api_key) or not config.requires_api_key
        if not self._configured:
            logger.warning(
                "Provider API key not configured - adapter disabled",
                provider=self.provider_slug,
            )

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Human-readable provider name."""
        pass

    @property
    @abstractmethod
    def provider_slug(self) -> str:
        """Provider key used for rate limits, queues and logs."""
        pass

    @property
    def is_configured(self) -> bool:
        """False when a required credential was missing at construction."""
        return self._configured

    def _auth_headers(self) -> dict[str, str]:
        """Provider-specific authentication headers."""
        return {}

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None or self._client.is_closed:
            headers = {"User-Agent": self.config.user_agent, "Accept": "application/json"}
            headers.update(self._auth_headers())
            self._client = httpx.AsyncClient(
                base_url=self.config.base_url,
                timeout=httpx.Timeout(self.config.timeout_seconds),
                headers=headers,
                follow_redirects=True,
                transport=self._transport,
            )
        return self._client

    async def _request(
        self,
        method: str,
        path: str,
        params: Optional[dict[str, Any]] = None,
        json: Optional[dict[str, Any]] = None,
    ) -> Any:
        """
        Make a budgeted, queued request and decode the JSON body.

        Returns:
            Decoded JSON, or None for a 404.

        Raises:
            ProviderNotConfiguredError: Credential missing.
            ProviderRateLimitedError: Blocked locally or answered 429.
            ProviderUnavailableError: Network failure, error status or bad JSON.
        """
        slug = self.provider_slug
        if not self.is_configured:
            raise ProviderNotConfiguredError(slug, "API key not configured")

        if self.rate_limiter.is_rate_limited(slug):
            raise ProviderRateLimitedError(slug, retry_in=self.rate_limiter.get_reset_time(slug))

        budget = self.rate_limiter.check_limit(
            slug,
            self.config.rate_limit_requests,
            self.config.rate_limit_window_seconds,
        )
        if not budget.allowed:
            logger.warning("Provider request budget exhausted", provider=slug, path=path)
            raise ProviderRateLimitedError(
                slug,
                "Request budget exhausted",
                retry_in=self.rate_limiter.get_reset_time(slug),
            )

        client = await self._get_client()
        try:
            response = await self.queue.submit(client.request, method, path, params=params, json=json)
        except httpx.TimeoutException as e:
            logger.warning("Provider request timed out", provider=slug, path=path)
            raise ProviderUnavailableError(slug, "Request timed out") from e
        except httpx.HTTPError as e:
            logger.warning("Provider request failed", provider=slug, path=path, error=str(e))
            raise ProviderUnavailableError(slug, f"Request failed: {e}") from e

        self._log_budget_headers(response)

        if response.status_code == 404:
            logger.debug("Provider returned 404", provider=slug, path=path)
            return None

        if response.status_code == 429:
            self.rate_limiter.handle_rate_limit_response(
                slug,
                response.headers.get("Retry-After"),
                self.config.default_block_seconds,
            )
            raise ProviderRateLimitedError(slug, retry_in=self.rate_limiter.get_reset_time(slug))

        if response.status_code >= 400:
            logger.warning(
                "Provider API error",
                provider=slug,
                path=path,
                status=response.status_code,
            )
            raise ProviderUnavailableError(
                slug,
                f"API error: {response.status_code}",
                status_code=response.status_code,
            )

        try:
            return response.json()
        except ValueError as e:
            logger.warning("Provider returned malformed JSON", provider=slug, path=path)
            raise ProviderUnavailableError(slug, "Malformed response") from e

    def _log_budget_headers(self, response: httpx.Response) -> None:
        remaining = response.headers.get("X-RateLimit-Remaining")
        if remaining is not None:
            logger.debug(
                "Provider rate limit headers",
                provider=self.provider_slug,
                remaining=remaining,
                limit=response.headers.get("X-RateLimit-Limit"),
            )

    @staticmethod
    def failure_note(error: ProviderError) -> str:
        """Human-readable note for an "N/A" record."""
        if isinstance(error, ProviderRateLimitedError):
            return "Rate limited, try again later"
        return error.message

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client and not self._client.is_closed:
            await self._client.aclose()
