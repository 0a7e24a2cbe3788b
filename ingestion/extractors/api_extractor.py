"""
Remote API source adapters with rate limiting, retry and cache fallback.

This module provides resilient API extraction with:
- Per-source token-bucket admission control before every attempt
- Exponential backoff retry for transient failures (429, 5xx, timeouts)
- Last-known-good snapshot fallback when retries are exhausted
- Error classification with custom exceptions
"""

import httpx
import asyncio
from typing import List, Dict, Any, Optional
from ingestion.base import DataSource, ExtractResult, SnapshotCache
from ingestion.rate_limiter import RateLimiterRegistry
from models.base import SourceType
from core.exceptions import (
    ETLException,
    APIExtractionError,
    NetworkError,
    RateLimitError,
    AuthenticationError,
    ResourceNotFoundError,
    RetryableError,
    DataFormatError
)
import logging

logger = logging.getLogger(__name__)


class RemoteAPIExtractor(DataSource):
    """
    Extract a list of items from a REST endpoint.

    Retry policy:
        Attempt the call. On a retryable failure with retries remaining,
        wait ``backoff`` seconds, double it and try again, so the k-th retry
        waits ``retry_delay * 2 ** (k - 1)``. On a non-retryable failure or
        when retries are exhausted, serve the last cached snapshot if there
        is one, otherwise raise.

    Attributes:
        max_retries: Retries after the first attempt (default: 3)
        retry_delay: Wait before the first retry in seconds (default: 1.0)
        timeout: Request timeout in seconds (default: 30.0)
    """

    # Envelope keys that may wrap the item list, in priority order
    envelope_keys = ("data", "results", "tickers", "result")

    def __init__(
        self,
        source_type: SourceType,
        api_url: str,
        rate_limiter: RateLimiterRegistry,
        api_key: Optional[str] = None,
        max_retries: int = 3,
        retry_delay: float = 1.0,
        timeout: float = 30.0,
        cache: Optional[SnapshotCache] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        super().__init__(source_type)
        self.api_url = api_url
        self.rate_limiter = rate_limiter
        self.api_key = api_key
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self.timeout = timeout
        self.cache = cache or SnapshotCache(max_entries=1)
        self.transport = transport

    def _headers(self) -> Dict[str, str]:
        headers = {"Accept": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    def _context(self, **extra) -> Dict[str, Any]:
        context = {"source": self.source_name, "api_url": self.api_url}
        context.update(extra)
        return context

    async def extract(self, offset: int = 0) -> ExtractResult:
        retries_remaining = self.max_retries
        backoff = self.retry_delay
        throttled = 0
        attempt = 0
        error: Optional[ETLException] = None

        async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
            while True:
                attempt += 1
                throttled += await self.rate_limiter.acquire(self.source_name)

                try:
                    logger.debug(f"Request attempt {attempt} to {self.api_url}")
                    records = await self._fetch_once(client, attempt)

                except RetryableError as e:
                    if retries_remaining > 0:
                        logger.warning(
                            f"{self.source_name}: {e.message}. "
                            f"Retrying in {backoff} seconds ({retries_remaining} retries left)"
                        )
                        await asyncio.sleep(backoff)
                        retries_remaining -= 1
                        backoff *= 2
                        continue
                    error = e

                except ETLException as e:
                    # Non-retryable: fall through to the cache immediately
                    error = e

                else:
                    self.cache.put(self.source_name, records)
                    logger.info(f"Fetched {len(records)} records from {self.source_name}")
                    return ExtractResult(
                        source=self.source_type,
                        records=records,
                        throttle_events=throttled
                    )

                break

        error.context["retry_count"] = attempt - 1
        return self._fallback(error, throttled)

    async def _fetch_once(self, client: httpx.AsyncClient, attempt: int) -> List[Dict[str, Any]]:
        """
        Make a single request and classify the outcome.

        Raises:
            NetworkError / RateLimitError: retryable failures
            AuthenticationError / ResourceNotFoundError / APIExtractionError /
            DataFormatError: non-retryable failures
        """
        try:
            response = await client.get(self.api_url, headers=self._headers())
        except httpx.TimeoutException as e:
            raise NetworkError(
                "Request timeout",
                context=self._context(timeout=self.timeout, attempt=attempt),
                original_exception=e
            )
        except httpx.TransportError as e:
            raise NetworkError(
                "Network error",
                context=self._context(attempt=attempt),
                original_exception=e
            )

        status = response.status_code

        if status in (401, 403):
            raise AuthenticationError(
                f"Authentication failed for {self.api_url}",
                context=self._context(status_code=status)
            )

        if status == 404:
            raise ResourceNotFoundError(
                f"Resource not found: {self.api_url}",
                context=self._context(status_code=status)
            )

        if status == 429:
            raise RateLimitError(
                "Rate limited by source",
                context=self._context(status_code=status, attempt=attempt)
            )

        if status >= 500:
            raise NetworkError(
                f"Server error {status}",
                context=self._context(
                    status_code=status,
                    attempt=attempt,
                    response_body=response.text[:500]
                )
            )

        if status >= 400:
            raise APIExtractionError(
                f"Request rejected with status {status}",
                context=self._context(status_code=status, response_body=response.text[:500])
            )

        try:
            payload = response.json()
        except ValueError as e:
            raise DataFormatError(
                "Failed to parse JSON response",
                context=self._context(response_body=response.text[:500]),
                original_exception=e
            )

        return self.parse_payload(payload)

    def parse_payload(self, payload: Any) -> List[Dict[str, Any]]:
        """Unwrap the item list from a bare list or a known envelope."""
        items = payload
        if isinstance(payload, dict):
            items = next(
                (payload[k] for k in self.envelope_keys if isinstance(payload.get(k), list)),
                None
            )

        if not isinstance(items, list):
            raise DataFormatError(
                "Unexpected response shape",
                context=self._context(payload_type=type(payload).__name__)
            )

        return [item for item in items if isinstance(item, dict)]

    def _fallback(self, error: ETLException, throttled: int) -> ExtractResult:
        cached = self.cache.get(self.source_name)

        if cached is not None:
            logger.warning(
                f"{self.source_name} unavailable ({error.message}); serving snapshot "
                f"cached at {self.cache.cached_at(self.source_name).isoformat()}"
            )
            return ExtractResult(
                source=self.source_type,
                records=cached,
                from_cache=True,
                throttle_events=throttled
            )

        logger.error(
            f"{self.source_name} failed with no cached snapshot: {error.message}",
            extra={"error_context": error.to_dict()}
        )
        raise error


class AssetsAPIExtractor(RemoteAPIExtractor):
    """
    Source A: asset list API (CoinCap style).

    Response shape: ``{"data": [{"symbol": ..., "priceUsd": ...}], "timestamp": <ms>}``.
    Items without their own timestamp inherit the envelope's.
    """

    def __init__(self, api_url: str, rate_limiter: RateLimiterRegistry, **kwargs):
        super().__init__(SourceType.API_A, api_url, rate_limiter, **kwargs)

    def parse_payload(self, payload: Any) -> List[Dict[str, Any]]:
        records = super().parse_payload(payload)

        envelope_ts = payload.get("timestamp") if isinstance(payload, dict) else None
        if envelope_ts is not None:
            for record in records:
                record.setdefault("timestamp", envelope_ts)

        return records


class TickersAPIExtractor(RemoteAPIExtractor):
    """
    Source C: ticker list API with heterogeneous field names.

    Accepts a bare list, an envelope, or a mapping keyed by market name
    (``{"BTC-USD": {...}}``), in which case the key becomes the symbol.
    """

    def __init__(self, api_url: str, rate_limiter: RateLimiterRegistry, **kwargs):
        super().__init__(SourceType.API_C, api_url, rate_limiter, **kwargs)

    def parse_payload(self, payload: Any) -> List[Dict[str, Any]]:
        if (
            isinstance(payload, dict)
            and payload
            and not any(k in payload for k in self.envelope_keys)
            and all(isinstance(v, dict) for v in payload.values())
        ):
            return [{"symbol": market, **ticker} for market, ticker in payload.items()]

        return super().parse_payload(payload)
