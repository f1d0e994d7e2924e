"""
source_client.py — One-shot HTTP reader for a single alert feed.

Each SourceClient owns one feed URL. ``fetch()`` performs one GET, parses
the JSON list and returns a FetchResult; it never raises for feed problems
and never touches shared state — the caller stores the result.

Error Handling Strategy
========================
    NetworkError — transport failure (DNS, refused, timeout) or non-2xx
        → retried only when FETCH_MAX_RETRIES > 0, with exponential
          backoff base × 2^(attempt-1)
    ParseError   — body is not JSON, or JSON that is not a list
        → never retried; a contract mismatch does not fix itself

With the default FETCH_MAX_RETRIES = 0 every fetch is exactly one round
trip, and with FETCH_TIMEOUT_SECONDS = None no timeout is enforced.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, List, Optional

import httpx

from backend.app.alerts.models import SourceKind
from backend.app.core.config import Settings
from backend.app.core.errors import FetchError, NetworkError, ParseError

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Data structures
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class RetryPolicy:
    """Bounded retry for network errors."""
    max_retries: int = 0
    backoff_base_seconds: float = 1.0

    def compute_backoff(self, attempt: int) -> float:
        """Delay before retry number ``attempt`` (1-based)."""
        return self.backoff_base_seconds * (2 ** (attempt - 1))


@dataclass
class FetchResult:
    """
    Outcome of one ``SourceClient.fetch()``.

    Callers check ``success`` before using ``records``.
    """
    source: SourceKind
    success: bool
    records: List[Any] = field(default_factory=list)
    error: Optional[FetchError] = None
    attempts: int = 0
    duration_ms: int = 0

    @property
    def error_message(self) -> str:
        return self.error.message if self.error else ""

    @property
    def error_kind(self) -> Optional[str]:
        return self.error.kind if self.error else None


# ---------------------------------------------------------------------------
# Client
# ---------------------------------------------------------------------------

class SourceClient:
    """
    Reads one alert feed.

    Usage:
        client = SourceClient(SourceKind.PRIMARY, "http://127.0.0.1:5000/alerts")
        result = await client.fetch()
        if result.success:
            alerts = normalize_batch(result.records, SourceKind.PRIMARY)
    """

    def __init__(
        self,
        source: SourceKind,
        url: str,
        *,
        timeout: Optional[float] = None,
        retry: Optional[RetryPolicy] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.source = source
        self.url = url
        self.timeout = timeout
        self.retry = retry or RetryPolicy()
        self._transport = transport
        self._sleep = sleep

    @classmethod
    def from_settings(
        cls,
        source: SourceKind,
        settings: Settings,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> "SourceClient":
        url = (
            settings.SOS_ALERTS_URL if source == SourceKind.PRIMARY
            else settings.EMERGENCY_ALERTS_URL
        )
        return cls(
            source,
            url,
            timeout=settings.FETCH_TIMEOUT_SECONDS,
            retry=RetryPolicy(
                max_retries=max(settings.FETCH_MAX_RETRIES, 0),
                backoff_base_seconds=settings.FETCH_BACKOFF_BASE_SECONDS,
            ),
            transport=transport,
        )

    async def fetch(self) -> FetchResult:
        """Fetch the feed. Returns a FetchResult; feed errors are not raised."""
        start = time.perf_counter()
        attempt = 0

        while True:
            attempt += 1
            try:
                records = await self._fetch_once()
            except NetworkError as e:
                if attempt <= self.retry.max_retries:
                    delay = self.retry.compute_backoff(attempt)
                    logger.warning(
                        "%s feed attempt %d failed (%s); retrying in %.1fs",
                        self.source.value, attempt, e.message, delay,
                        extra={"source": self.source.value, "attempt": attempt},
                    )
                    await self._sleep(delay)
                    continue
                return self._failure(e, attempt, start)
            except ParseError as e:
                return self._failure(e, attempt, start)

            duration_ms = int((time.perf_counter() - start) * 1000)
            logger.info(
                "Fetched %d %s alerts in %dms",
                len(records), self.source.value, duration_ms,
                extra={
                    "source": self.source.value,
                    "record_count": len(records),
                    "duration_ms": duration_ms,
                },
            )
            return FetchResult(
                source=self.source,
                success=True,
                records=records,
                attempts=attempt,
                duration_ms=duration_ms,
            )

    async def _fetch_once(self) -> List[Any]:
        """One GET round trip; raises NetworkError or ParseError."""
        label = self.source.label
        try:
            async with httpx.AsyncClient(
                timeout=self.timeout, transport=self._transport,
            ) as client:
                response = await client.get(
                    self.url, headers={"Accept": "application/json"},
                )
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            raise NetworkError(
                self.source.value,
                f"Failed to fetch {label}: {str(e) or type(e).__name__}",
                url=self.url,
            ) from e

        if not response.is_success:
            raise NetworkError(
                self.source.value,
                f"Failed to fetch {label} (HTTP {response.status_code})",
                url=self.url,
                status_code=response.status_code,
            )

        try:
            data = response.json()
        except ValueError as e:
            raise ParseError(
                self.source.value,
                f"Malformed JSON from {label}: {e}",
                url=self.url,
            ) from e

        if not isinstance(data, list):
            raise ParseError(
                self.source.value,
                f"Expected a JSON list from {label}, got {type(data).__name__}",
                url=self.url,
            )
        return data

    def _failure(self, error: FetchError, attempts: int, start: float) -> FetchResult:
        duration_ms = int((time.perf_counter() - start) * 1000)
        logger.error(
            "%s feed failed after %d attempt(s): %s",
            self.source.value, attempts, error.message,
            extra={"source": self.source.value, "duration_ms": duration_ms},
        )
        return FetchResult(
            source=self.source,
            success=False,
            error=error,
            attempts=attempts,
            duration_ms=duration_ms,
        )
