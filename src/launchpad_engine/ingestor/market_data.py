"""Cached market-data enrichment and price lookups."""

from __future__ import annotations

import logging
from decimal import Decimal
from typing import TYPE_CHECKING

from launchpad_engine.cache import CacheStore, RateLimitedCache
from launchpad_engine.ingestor.models import MarketSnapshot

if TYPE_CHECKING:
    from launchpad_engine.ingestor.jupiter_client import JupiterClient

logger = logging.getLogger(__name__)

DEFAULT_SNAPSHOT_TTL_SECONDS = 120
DEFAULT_PRICE_TTL_SECONDS = 10


class MarketDataService:
    """Market snapshots and prices behind ``RateLimitedCache``.

    Lookups never raise: an upstream failure yields the last cached value or
    the documented default (an empty snapshot, or the caller's fallback price).
    """

    def __init__(
        self,
        client: JupiterClient,
        *,
        snapshot_ttl_seconds: float = DEFAULT_SNAPSHOT_TTL_SECONDS,
        price_ttl_seconds: float = DEFAULT_PRICE_TTL_SECONDS,
        store: CacheStore | None = None,
        price_store: CacheStore | None = None,
    ) -> None:
        self._client = client
        self._snapshots: RateLimitedCache[dict] = RateLimitedCache(
            ttl_seconds=snapshot_ttl_seconds,
            store=store,
            name="market-data",
        )
        self._prices: RateLimitedCache[str] = RateLimitedCache(
            ttl_seconds=price_ttl_seconds,
            store=price_store,
            name="price",
        )

    async def lookup(self, mint: str) -> MarketSnapshot:
        """Enrichment for a subject (cached for the snapshot TTL)."""

        async def fetch() -> dict:
            snapshot = await self._client.get_market_snapshot(mint)
            return snapshot.to_dict()

        payload = await self._snapshots.get(
            f"snapshot:{mint}", fetch, default=MarketSnapshot.empty(mint).to_dict()
        )
        return MarketSnapshot.from_dict(payload)

    async def usd_price(self, mint: str, *, fallback: Decimal) -> Decimal:
        """USD price of a token (cached for the price TTL)."""

        async def fetch() -> str:
            return str(await self._client.get_usd_price(mint))

        raw = await self._prices.get(f"price:{mint}", fetch, default=str(fallback))
        try:
            return Decimal(str(raw))
        except ArithmeticError:
            logger.warning("Discarding unparseable cached price for %s: %r", mint, raw)
            return fallback
