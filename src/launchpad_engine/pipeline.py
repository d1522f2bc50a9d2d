"""Main pipeline orchestrator for the launchpad engine.

This module provides the Pipeline class that builds the application context
and drives the periodic jobs: trade ingestion, market-cap milestones,
leaderboard ranks and bonding-curve migration. It optionally starts the
agentic terminals and the WebSocket subscription gateway.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from launchpad_engine.config import Settings, get_settings
from launchpad_engine.context import AppContext, create_context
from launchpad_engine.realtime.gateway import SubscriptionGateway
from launchpad_engine.storage.repos import SubjectDTO, SubjectRepository
from launchpad_engine.terminal.models import SubjectDescriptor

logger = logging.getLogger(__name__)


class PipelineState(str, Enum):
    """Pipeline lifecycle states."""

    STOPPED = "stopped"
    STARTING = "starting"
    RUNNING = "running"
    STOPPING = "stopping"
    ERROR = "error"


@dataclass
class PipelineStats:
    """Statistics for the pipeline."""

    started_at: datetime | None = None
    job_runs: dict[str, int] = field(default_factory=dict)
    trades_ingested: int = 0
    achievements_unlocked: int = 0
    subjects_migrated: int = 0
    errors: int = 0
    last_error: str | None = None


class Pipeline:
    """Run the engine's periodic jobs until stopped.

    Example:
        ```python
        from launchpad_engine.config import get_settings
        from launchpad_engine.pipeline import Pipeline

        pipeline = Pipeline(get_settings())
        await pipeline.start()
        # Pipeline runs until stop() is called
        await pipeline.stop()
        ```
    """

    def __init__(
        self,
        settings: Settings | None = None,
        *,
        context: AppContext | None = None,
    ) -> None:
        """Initialize the pipeline.

        Args:
            settings: Application settings. If not provided, uses get_settings().
            context: Pre-built context; the pipeline then leaves it open on stop.
        """
        self._settings = settings or (context.settings if context else get_settings())
        self._context = context
        self._owns_context = context is None

        self._state = PipelineState.STOPPED
        self._stats = PipelineStats()

        self._gateway: SubscriptionGateway | None = None
        self._stop_event: asyncio.Event | None = None
        self._tasks: list[asyncio.Task[None]] = []

    @property
    def state(self) -> PipelineState:
        """Current pipeline state."""
        return self._state

    @property
    def stats(self) -> PipelineStats:
        """Current pipeline statistics."""
        return self._stats

    @property
    def is_running(self) -> bool:
        """Check if pipeline is running."""
        return self._state == PipelineState.RUNNING

    @property
    def context(self) -> AppContext | None:
        return self._context

    async def start(self) -> None:
        """Start the pipeline.

        Raises:
            RuntimeError: If pipeline is already running.
            Exception: If any component fails to initialize.
        """
        if self._state != PipelineState.STOPPED:
            raise RuntimeError(f"Cannot start pipeline in state {self._state}")

        self._state = PipelineState.STARTING
        self._stop_event = asyncio.Event()
        logger.info("Starting pipeline...")

        try:
            if self._context is None:
                self._context = create_context(self._settings)
            await self._start_background_services()
            self._stats.started_at = datetime.now(UTC)
            self._state = PipelineState.RUNNING
            logger.info("Pipeline started successfully")
        except Exception as e:
            self._state = PipelineState.ERROR
            self._stats.last_error = str(e)
            logger.error("Failed to start pipeline: %s", e)
            await self._stop_background_services()
            await self._cleanup()
            raise

    async def stop(self) -> None:
        """Stop the pipeline gracefully."""
        if self._state == PipelineState.STOPPED:
            return

        self._state = PipelineState.STOPPING
        logger.info("Stopping pipeline...")

        if self._stop_event:
            self._stop_event.set()

        await self._stop_background_services()
        await self._cleanup()

        self._state = PipelineState.STOPPED
        logger.info("Pipeline stopped")

    def _require_context(self) -> AppContext:
        if self._context is None:
            raise RuntimeError("pipeline not started")
        return self._context

    async def _start_background_services(self) -> None:
        ctx = self._require_context()
        engine = self._settings.engine

        self._spawn("ingestion", engine.ingestion_interval_seconds, self._ingest)
        self._spawn("market_cap", engine.market_cap_interval_seconds, self._check_market_caps)
        self._spawn("leaderboard", engine.leaderboard_interval_seconds, self._check_leaderboard)
        self._spawn("migration", engine.migration_interval_seconds, self._check_migrations)

        if self._settings.terminal.autostart:
            await self._start_terminals()
            ctx.aggregator.add_launch_listener(self._on_launch)

        if self._settings.gateway.enabled:
            self._gateway = SubscriptionGateway(
                trades=ctx.trade_feed,
                terminals=ctx.terminals,
                chat=ctx.chat,
                host=self._settings.gateway.host,
                port=self._settings.gateway.port,
            )
            await self._gateway.start()

    async def _stop_background_services(self) -> None:
        if self._gateway:
            await self._gateway.stop()
            self._gateway = None

        for task in self._tasks:
            task.cancel()
        for task in self._tasks:
            with contextlib.suppress(asyncio.CancelledError):
                await task
        self._tasks.clear()

        if self._context:
            self._context.aggregator.remove_launch_listener(self._on_launch)
            await self._context.terminals.stop_all()

    async def _cleanup(self) -> None:
        if self._context and self._owns_context:
            await self._context.close()
            self._context = None
        logger.debug("Resources cleaned up")

    def _spawn(self, name: str, interval: float, job: Callable[[], Awaitable[None]]) -> None:
        task = asyncio.create_task(self._run_loop(name, interval, job), name=f"launchpad-{name}")
        self._tasks.append(task)

    async def _run_loop(self, name: str, interval: float, job: Callable[[], Awaitable[None]]) -> None:
        """Run ``job`` every ``interval`` seconds until the stop event is set.

        A failed run is logged and counted; the loop keeps its schedule.
        """
        if not self._stop_event:
            return
        stop_event = self._stop_event

        while not stop_event.is_set():
            try:
                try:
                    await asyncio.wait_for(stop_event.wait(), timeout=interval)
                    break
                except TimeoutError:
                    pass

                await job()
                self._stats.job_runs[name] = self._stats.job_runs.get(name, 0) + 1
            except asyncio.CancelledError:
                break
            except Exception as e:
                self._stats.errors += 1
                self._stats.last_error = str(e)
                logger.warning("%s loop error: %s", name, e)

    async def _ingest(self) -> None:
        results = await self._require_context().aggregator.ingest_all()
        for result in results:
            self._stats.trades_ingested += result.new_trades
            self._stats.achievements_unlocked += result.unlock_count
            if result.error:
                self._stats.errors += 1
        logger.debug("Ingestion pass covered %d subjects", len(results))

    async def _check_market_caps(self) -> None:
        aggregator = self._require_context().aggregator
        self._stats.achievements_unlocked += await aggregator.check_market_cap_achievements()

    async def _check_leaderboard(self) -> None:
        aggregator = self._require_context().aggregator
        self._stats.achievements_unlocked += await aggregator.check_leaderboard_achievements()

    async def _check_migrations(self) -> None:
        migrated = await self._require_context().migration.check_all()
        self._stats.subjects_migrated += len(migrated)

    async def _start_terminals(self) -> None:
        ctx = self._require_context()
        async with ctx.db.get_async_session() as session:
            subjects = await SubjectRepository(session).list_all()

        for subject in subjects:
            try:
                await ctx.terminals.start(SubjectDescriptor.from_subject(subject))
            except Exception as e:
                logger.error("Failed to start terminal for %s: %s", subject.mint, e)
        logger.info("Started %d agentic terminals", len(ctx.terminals.running()))

    async def _on_launch(self, subject: SubjectDTO) -> None:
        await self._require_context().terminals.start_subject(subject.mint)

    def request_stop(self) -> None:
        """Ask a running ``run()`` to return; safe from a signal handler."""
        if self._stop_event:
            self._stop_event.set()

    async def run(self) -> None:
        """Start the pipeline and run until interrupted."""
        await self.start()

        try:
            if self._stop_event:
                await self._stop_event.wait()
        except asyncio.CancelledError:
            pass
        finally:
            await self.stop()

    async def __aenter__(self) -> Pipeline:
        """Async context manager entry."""
        await self.start()
        return self

    async def __aexit__(self, *args: Any) -> None:
        """Async context manager exit."""
        await self.stop()
