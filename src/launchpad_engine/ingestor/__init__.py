"""Data ingestion layer - Trade polling, market data and quest aggregation."""

from launchpad_engine.ingestor.aggregator import (
    AggregatorStats,
    IngestionAggregator,
    IngestionError,
    IngestResult,
    PersistenceError,
)
from launchpad_engine.ingestor.jupiter_client import (
    JupiterClient,
    JupiterClientError,
    JupiterNotFoundError,
    JupiterTransientError,
)
from launchpad_engine.ingestor.market_data import MarketDataService
from launchpad_engine.ingestor.migration import MigrationWatcher
from launchpad_engine.ingestor.models import Holder, MarketSnapshot, TradeRecord, TradeSide

__all__ = [
    "AggregatorStats",
    "Holder",
    "IngestResult",
    "IngestionAggregator",
    "IngestionError",
    "JupiterClient",
    "JupiterClientError",
    "JupiterNotFoundError",
    "JupiterTransientError",
    "MarketDataService",
    "MarketSnapshot",
    "MigrationWatcher",
    "PersistenceError",
    "TradeRecord",
    "TradeSide",
]
