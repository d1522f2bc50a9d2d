"""Tests for the Jupiter data API client."""

import time
from decimal import Decimal

import httpx
import pytest

from launchpad_engine.ingestor.jupiter_client import (
    JupiterClient,
    JupiterClientError,
    JupiterNotFoundError,
    JupiterTransientError,
)
from launchpad_engine.ingestor.models import TradeSide
from launchpad_engine.ratelimit import RateLimiter, RetryError, retry_async

MINT = "Mint11111111111111111111111111111111111111"


def make_client(handler, **kwargs) -> JupiterClient:
    return JupiterClient(
        requests_per_second=1000,
        retry_base_delay=0,
        http_client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
        **kwargs,
    )


class TestRateLimiter:
    """Tests for RateLimiter."""

    @pytest.mark.asyncio
    async def test_acquire_no_wait_first_call(self) -> None:
        limiter = RateLimiter(max_requests_per_second=10)
        start = time.monotonic()
        await limiter.acquire()
        assert time.monotonic() - start < 0.05

    @pytest.mark.asyncio
    async def test_acquire_enforces_rate(self) -> None:
        limiter = RateLimiter(max_requests_per_second=10)  # 100ms between calls
        await limiter.acquire()
        start = time.monotonic()
        await limiter.acquire()
        assert time.monotonic() - start >= 0.08


class TestRetryAsync:
    """Tests for retry_async."""

    @pytest.mark.asyncio
    async def test_success_after_retries(self) -> None:
        calls = 0

        async def flaky() -> str:
            nonlocal calls
            calls += 1
            if calls < 3:
                raise ConnectionError("flaky")
            return "ok"

        assert await retry_async(flaky, retry_on=(ConnectionError,), base_delay=0) == "ok"
        assert calls == 3

    @pytest.mark.asyncio
    async def test_exhausted(self) -> None:
        async def broken() -> str:
            raise ConnectionError("down")

        with pytest.raises(RetryError) as exc_info:
            await retry_async(broken, retry_on=(ConnectionError,), max_retries=2, base_delay=0)
        assert isinstance(exc_info.value.last_exception, ConnectionError)

    @pytest.mark.asyncio
    async def test_non_retryable_propagates(self) -> None:
        async def bad() -> str:
            raise KeyError("nope")

        with pytest.raises(KeyError):
            await retry_async(bad, retry_on=(ConnectionError,), base_delay=0)


class TestJupiterClient:
    """Tests for JupiterClient."""

    @pytest.mark.asyncio
    async def test_fetch_trades(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.path == f"/v1/txs/{MINT}"
            assert request.url.params["limit"] == "4"
            return httpx.Response(
                200,
                json={
                    "txs": [
                        {
                            "txHash": "sig-1",
                            "traderAddress": "WalletA",
                            "type": "sell",
                            "nativeVolume": "-1.5",
                            "usdVolume": 225,
                            "timestamp": "2026-01-01T00:00:00Z",
                        },
                        {"txHash": "sig-2", "type": "buy"},
                        {
                            "txHash": "sig-3",
                            "traderAddress": "WalletB",
                            "type": "transfer",
                            "nativeVolume": "2",
                            "timestamp": "2026-01-01T00:00:01Z",
                        },
                        {
                            "txHash": "sig-4",
                            "traderAddress": "WalletC",
                            "nativeVolume": "2",
                            "timestamp": "2026-01-01T00:00:02Z",
                        },
                    ]
                },
            )

        trades = await make_client(handler).fetch_trades(MINT, limit=4)

        assert [t.signature for t in trades] == ["sig-1"]
        assert trades[0].side == TradeSide.SELL
        assert trades[0].native_volume == Decimal("1.5")
        assert trades[0].subject_id == MINT
        assert trades[0].timestamp.year == 2026

    @pytest.mark.asyncio
    async def test_transient_errors_retried(self) -> None:
        responses = [httpx.Response(503), httpx.Response(200, json={"txs": []})]

        trades = await make_client(lambda request: responses.pop(0)).fetch_trades(MINT)

        assert trades == []

    @pytest.mark.asyncio
    async def test_transient_errors_exhausted(self) -> None:
        client = make_client(lambda request: httpx.Response(429), max_retries=1)
        with pytest.raises(JupiterTransientError):
            await client.fetch_trades(MINT)

    @pytest.mark.asyncio
    async def test_not_found(self) -> None:
        client = make_client(lambda request: httpx.Response(404))
        with pytest.raises(JupiterNotFoundError):
            await client.get_holders(MINT)

    @pytest.mark.asyncio
    async def test_client_error_not_retried(self) -> None:
        calls = 0

        def handler(request: httpx.Request) -> httpx.Response:
            nonlocal calls
            calls += 1
            return httpx.Response(400)

        with pytest.raises(JupiterClientError):
            await make_client(handler).fetch_trades(MINT)
        assert calls == 1

    @pytest.mark.asyncio
    async def test_market_snapshot(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(
                200,
                json=[
                    {"id": "Other", "mcap": 1},
                    {
                        "id": MINT,
                        "name": "Test Token",
                        "symbol": "TEST",
                        "usdPrice": 0.0021,
                        "mcap": 21000,
                        "holderCount": 42,
                        "bondingCurve": 55.5,
                        "stats24h": {"priceChange": 3.2},
                    },
                ],
            )

        snapshot = await make_client(handler).get_market_snapshot(MINT)

        assert snapshot.symbol == "TEST"
        assert snapshot.market_cap == Decimal("21000")
        assert snapshot.holder_count == 42
        assert snapshot.stats_24h == {"priceChange": 3.2}

    @pytest.mark.asyncio
    async def test_unknown_asset_snapshot_is_empty(self) -> None:
        snapshot = await make_client(lambda request: httpx.Response(200, json=[])).get_market_snapshot(MINT)
        assert snapshot.mint == MINT
        assert snapshot.market_cap == Decimal(0)

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        ("asset", "expected"),
        [
            ({"id": MINT, "bondingCurve": 50}, Decimal("0.5")),
            ({"id": MINT, "bondingCurve": 120}, Decimal(1)),
            ({"id": MINT, "bondingCurve": 40, "graduatedPool": "PoolX"}, Decimal(1)),
            ({"id": MINT}, Decimal(0)),
        ],
    )
    async def test_curve_progress(self, asset: dict, expected: Decimal) -> None:
        client = make_client(lambda request: httpx.Response(200, json=[asset]))
        assert await client.get_curve_progress(MINT) == expected

    @pytest.mark.asyncio
    async def test_curve_progress_unknown_asset(self) -> None:
        client = make_client(lambda request: httpx.Response(200, json=[]))
        with pytest.raises(JupiterNotFoundError):
            await client.get_curve_progress(MINT)

    @pytest.mark.asyncio
    async def test_holders(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(
                200,
                json={
                    "holders": [
                        {"address": "H1", "amount": 100, "amountDisplay": "100"},
                        {"address": "H2", "amount": 50, "name": "Raydium Pool"},
                        {"amount": 1},
                    ]
                },
            )

        holders = await make_client(handler).get_holders(MINT, limit=3)

        assert [h.address for h in holders] == ["H1", "H2", "UnknownHolder3"]
        assert holders[1].is_pool

    @pytest.mark.asyncio
    async def test_usd_price(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json=[{"id": MINT, "usdPrice": 187.25}])

        assert await make_client(handler).get_usd_price(MINT) == Decimal("187.25")

    @pytest.mark.asyncio
    async def test_usd_price_missing(self) -> None:
        client = make_client(lambda request: httpx.Response(200, json=[{"id": "Other", "usdPrice": 1}]))
        with pytest.raises(JupiterNotFoundError):
            await client.get_usd_price(MINT)
