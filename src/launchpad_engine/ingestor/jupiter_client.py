"""Async client for the Jupiter data API with rate limiting and retry logic.

Covers the lookups the engine consumes: recent trades per subject, asset
search (market-data enrichment and bonding-curve progress), holder lists and
USD prices for the payout asset.
"""

from __future__ import annotations

import logging
from decimal import Decimal
from typing import Any

import httpx

from launchpad_engine.ingestor.models import Holder, MarketSnapshot, TradeRecord
from launchpad_engine.ratelimit import (
    DEFAULT_MAX_RETRIES,
    DEFAULT_RETRY_BASE_DELAY,
    RETRY_STATUS_CODES,
    RateLimiter,
    RetryError,
    retry_async,
)

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://datapi.jup.ag"
DEFAULT_PAGE_SIZE = 100
DEFAULT_TIMEOUT_SECONDS = 10.0


class JupiterClientError(Exception):
    """Base exception for Jupiter client errors."""


class JupiterNotFoundError(JupiterClientError):
    """Raised when a requested resource does not exist."""


class JupiterTransientError(JupiterClientError):
    """Raised for retryable errors (429/5xx, network issues) after retries."""


class _RetryableStatus(Exception):
    def __init__(self, status_code: int, url: str) -> None:
        super().__init__(f"HTTP {status_code} from {url}")
        self.status_code = status_code


class JupiterClient:
    """Jupiter data API client.

    Example:
        ```python
        client = JupiterClient()
        trades = await client.fetch_trades(mint, limit=100)
        snapshot = await client.get_market_snapshot(mint)
        await client.aclose()
        ```
    """

    def __init__(
        self,
        *,
        base_url: str = DEFAULT_BASE_URL,
        requests_per_second: float = 10.0,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
        max_retries: int = DEFAULT_MAX_RETRIES,
        retry_base_delay: float = DEFAULT_RETRY_BASE_DELAY,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        """Initialize the client.

        Args:
            base_url: Data API host.
            requests_per_second: Client-side rate limit.
            timeout_seconds: Per-request timeout.
            max_retries: Retries for transient failures.
            retry_base_delay: Backoff base delay in seconds.
            http_client: Pre-built httpx client, mainly for tests.
        """
        self._base_url = base_url.rstrip("/")
        self._rate_limiter = RateLimiter(requests_per_second)
        self._max_retries = max_retries
        self._retry_base_delay = retry_base_delay
        self._owns_client = http_client is None
        self._http = http_client or httpx.AsyncClient(timeout=timeout_seconds)

    async def aclose(self) -> None:
        if self._owns_client:
            await self._http.aclose()

    async def _get_json(self, path: str, params: dict[str, Any] | None = None) -> Any:
        url = f"{self._base_url}{path}"

        async def attempt() -> Any:
            await self._rate_limiter.acquire()
            response = await self._http.get(url, params=params)
            if response.status_code in RETRY_STATUS_CODES:
                raise _RetryableStatus(response.status_code, url)
            if response.status_code == 404:
                raise JupiterNotFoundError(f"Not found: {url}")
            if response.status_code >= 400:
                raise JupiterClientError(f"HTTP {response.status_code} from {url}")
            return response.json()

        try:
            return await retry_async(
                attempt,
                retry_on=(_RetryableStatus, httpx.TransportError),
                max_retries=self._max_retries,
                base_delay=self._retry_base_delay,
                description=f"GET {path}",
            )
        except RetryError as e:
            raise JupiterTransientError(str(e.last_exception or e)) from e
        except ValueError as e:
            raise JupiterClientError(f"Invalid JSON from {url}: {e}") from e

    async def fetch_trades(self, mint: str, *, limit: int = DEFAULT_PAGE_SIZE) -> list[TradeRecord]:
        """Latest trades for a subject, newest first as the feed returns them.

        Malformed rows are skipped with a warning.
        """
        data = await self._get_json(f"/v1/txs/{mint}", params={"limit": limit})
        rows = data.get("txs", data.get("data", [])) if isinstance(data, dict) else data
        if not isinstance(rows, list):
            raise JupiterClientError(f"Unexpected trades payload for {mint}")

        records: list[TradeRecord] = []
        for row in rows[:limit]:
            try:
                records.append(TradeRecord.from_jupiter(row, subject_id=mint))
            except (ValueError, TypeError, AttributeError) as e:
                logger.warning("Skipping malformed trade row for %s: %s", mint, e)
        return records

    async def search_asset(self, mint: str) -> dict[str, Any] | None:
        """Raw asset search result for an exact mint, or None."""
        data = await self._get_json("/v1/assets/search", params={"query": mint})
        if not isinstance(data, list) or not data:
            return None
        for item in data:
            if isinstance(item, dict) and item.get("id") == mint:
                return item
        first = data[0]
        return first if isinstance(first, dict) else None

    async def get_market_snapshot(self, mint: str) -> MarketSnapshot:
        asset = await self.search_asset(mint)
        if asset is None:
            return MarketSnapshot.empty(mint)
        return MarketSnapshot.from_jupiter({**asset, "id": asset.get("id") or mint})

    async def get_curve_progress(self, mint: str) -> Decimal:
        """Bonding-curve fill as a fraction in [0, 1].

        Raises:
            JupiterNotFoundError: If the asset is unknown.
        """
        asset = await self.search_asset(mint)
        if asset is None:
            raise JupiterNotFoundError(f"Unknown asset {mint}")
        snapshot = MarketSnapshot.from_jupiter(asset)
        if snapshot.graduated:
            return Decimal(1)
        if snapshot.bonding_curve is None:
            return Decimal(0)
        progress = snapshot.bonding_curve / Decimal(100)
        return min(Decimal(1), max(Decimal(0), progress))

    async def get_holders(self, mint: str, *, limit: int | None = None) -> list[Holder]:
        data = await self._get_json(f"/v1/holders/{mint}")
        rows = data.get("holders") if isinstance(data, dict) else None
        if not isinstance(rows, list):
            raise JupiterClientError(f"Unexpected holders payload for {mint}")
        if limit is not None:
            rows = rows[:limit]
        return [Holder.from_jupiter(row, index=i) for i, row in enumerate(rows) if isinstance(row, dict)]

    async def get_usd_price(self, mint: str) -> Decimal:
        """USD price of a token.

        Raises:
            JupiterNotFoundError: If the price is missing from the response.
        """
        data = await self._get_json(
            "/v2/search",
            params={"query": mint, "tokenExactCaseInsensitive": "false"},
        )
        items = data if isinstance(data, list) else []
        for item in items:
            token = item.get("token", item) if isinstance(item, dict) else None
            if isinstance(token, dict) and token.get("id") == mint and token.get("usdPrice"):
                return Decimal(str(token["usdPrice"]))
        raise JupiterNotFoundError(f"No USD price for {mint}")
