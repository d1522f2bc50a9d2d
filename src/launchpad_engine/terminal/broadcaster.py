"""Per-subject scheduled content terminals.

Each ``ScheduledBroadcaster`` owns one repeating timer task. Every tick picks
the next content type in the rotation, asks the generator for text (falling
back to deterministic content on failure), appends the entry to the bounded
live history and archive, and fans it out to the subject's subscribers.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections import deque
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import UTC, datetime
from enum import Enum
from typing import TYPE_CHECKING, Any

from launchpad_engine.storage.repos import SubjectRepository
from launchpad_engine.terminal.generator import ContentGenerator, fallback_content
from launchpad_engine.terminal.models import CONTENT_TYPES, ArchivedEntry, ContentEntry, SubjectDescriptor

if TYPE_CHECKING:
    from launchpad_engine.realtime.registry import SubscriptionRegistry
    from launchpad_engine.storage.database import DatabaseManager

logger = logging.getLogger(__name__)

DEFAULT_INTERVAL_SECONDS = 90.0
DEFAULT_HISTORY_SIZE = 50
DEFAULT_ARCHIVE_SIZE = 1000

DescribeFn = Callable[[SubjectDescriptor], Awaitable[SubjectDescriptor]]


class BroadcasterState(str, Enum):
    """Terminal lifecycle states."""

    STOPPED = "stopped"
    RUNNING = "running"


@dataclass
class BroadcasterStats:
    """Counters for one terminal."""

    ticks: int = 0
    generated: int = 0
    fallbacks: int = 0
    discarded: int = 0
    started_at: datetime | None = None
    last_error: str | None = None


class ScheduledBroadcaster:
    """Content terminal for a single subject.

    Example:
        ```python
        terminal = ScheduledBroadcaster(subject, generator, terminal_feed)
        await terminal.start()
        ...
        await terminal.stop()
        ```
    """

    def __init__(
        self,
        subject: SubjectDescriptor,
        generator: ContentGenerator,
        registry: SubscriptionRegistry,
        *,
        interval_seconds: float = DEFAULT_INTERVAL_SECONDS,
        history_size: int = DEFAULT_HISTORY_SIZE,
        archive_size: int = DEFAULT_ARCHIVE_SIZE,
        describe: DescribeFn | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        """Initialize the terminal.

        Args:
            subject: Subject identity; refreshed through ``describe`` per tick.
            generator: Content source.
            registry: Terminal-feed registry, keyed by subject mint.
            interval_seconds: Seconds between ticks.
            history_size: Live history cap.
            archive_size: Archive cap.
            describe: Optional refresh of the subject's market attributes.
            clock: Timestamp source; defaults to UTC now.
        """
        if history_size <= 0 or archive_size <= 0:
            raise ValueError("history and archive sizes must be positive")
        self._subject = subject
        self._generator = generator
        self._registry = registry
        self._interval = interval_seconds
        self._describe = describe
        self._clock = clock or (lambda: datetime.now(UTC))

        self._state = BroadcasterState.STOPPED
        self._stats = BroadcasterStats()
        self._history: deque[ContentEntry] = deque(maxlen=history_size)
        self._archive: deque[ArchivedEntry] = deque(maxlen=archive_size)
        self._next_index = 0
        self._stop_event: asyncio.Event | None = None
        self._timer_task: asyncio.Task[None] | None = None

    @property
    def subject(self) -> SubjectDescriptor:
        return self._subject

    @property
    def subject_id(self) -> str:
        return self._subject.mint

    @property
    def state(self) -> BroadcasterState:
        return self._state

    @property
    def stats(self) -> BroadcasterStats:
        return self._stats

    @property
    def is_running(self) -> bool:
        return self._state == BroadcasterState.RUNNING

    def history(self) -> list[ContentEntry]:
        """Live history, oldest first."""
        return list(self._history)

    def archive(self, limit: int | None = None) -> list[ArchivedEntry]:
        """Archived entries, oldest first; ``limit`` keeps the most recent."""
        entries = list(self._archive)
        if limit is not None:
            entries = entries[-limit:] if limit > 0 else []
        return entries

    async def start(self) -> None:
        """Start the timer and generate the first entry right away.

        No-op when already running.
        """
        if self._state == BroadcasterState.RUNNING:
            return

        self._state = BroadcasterState.RUNNING
        self._stats.started_at = self._clock()
        self._stop_event = asyncio.Event()
        self._history.append(ContentEntry.boot(self._subject, self._clock()))
        self._timer_task = asyncio.create_task(
            self._run_timer(self._stop_event), name=f"terminal-{self.subject_id}"
        )
        logger.info("Terminal started for %s (%s)", self._subject.symbol, self.subject_id)

        await self.tick()

    async def stop(self) -> None:
        """Cancel the timer; idempotent."""
        if self._state == BroadcasterState.STOPPED:
            return

        self._state = BroadcasterState.STOPPED
        if self._stop_event:
            self._stop_event.set()
        task, self._timer_task = self._timer_task, None
        if task is not None and task is not asyncio.current_task():
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task
        logger.info("Terminal stopped for %s (%s)", self._subject.symbol, self.subject_id)

    async def _run_timer(self, stop_event: asyncio.Event) -> None:
        while not stop_event.is_set():
            try:
                try:
                    await asyncio.wait_for(stop_event.wait(), timeout=self._interval)
                    break
                except TimeoutError:
                    pass

                await self.tick()
            except asyncio.CancelledError:
                break
            except Exception as e:
                self._stats.last_error = str(e)
                logger.warning("Terminal tick error for %s: %s", self.subject_id, e)

    async def tick(self) -> ContentEntry | None:
        """Run one generation cycle.

        Returns:
            The appended entry, or None when the terminal is (or became)
            stopped before the result could be recorded.
        """
        if self._state != BroadcasterState.RUNNING:
            return None

        run = self._stop_event
        content_type = CONTENT_TYPES[self._next_index % len(CONTENT_TYPES)]
        self._next_index += 1
        self._stats.ticks += 1

        subject = await self._refresh_subject()
        fallback = False
        try:
            text = await self._generator.generate(subject, content_type)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.warning("Generation of %s for %s failed, using fallback: %s", content_type, subject.symbol, e)
            self._stats.last_error = str(e)
            text = fallback_content(content_type, subject, self._clock())
            fallback = True

        # A restart between dispatch and completion also invalidates the result.
        if self._state != BroadcasterState.RUNNING or self._stop_event is not run:
            self._stats.discarded += 1
            logger.debug("Discarding %s for stopped terminal %s", content_type, self.subject_id)
            return None

        entry = ContentEntry(
            subject_id=self.subject_id,
            content_type=content_type,
            content=text,
            created_at=self._clock(),
            symbol=subject.symbol,
            fallback=fallback,
        )
        self._append(entry, subject)
        if fallback:
            self._stats.fallbacks += 1
        else:
            self._stats.generated += 1

        await self._registry.broadcast(self.subject_id, self.update_message(entry))
        return entry

    def update_message(self, entry: ContentEntry) -> dict[str, Any]:
        return {"type": "agentic_update", "tokenMint": self.subject_id, "data": entry.to_dict()}

    def history_message(self) -> dict[str, Any]:
        return {
            "type": "agentic_history",
            "tokenMint": self.subject_id,
            "history": [entry.to_dict() for entry in self._history],
        }

    def _append(self, entry: ContentEntry, subject: SubjectDescriptor) -> None:
        self._history.append(entry)
        self._archive.append(
            ArchivedEntry(
                entry=entry,
                token_name=subject.name,
                token_symbol=subject.symbol,
                archived_at=self._clock(),
            )
        )

    async def _refresh_subject(self) -> SubjectDescriptor:
        if self._describe is None:
            return self._subject
        try:
            self._subject = await self._describe(self._subject)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.debug("Could not refresh descriptor for %s: %s", self.subject_id, e)
        return self._subject


class BroadcasterManager:
    """Owns the terminals of all subjects.

    Terminals are created on first access and kept for the lifetime of the
    manager; idle terminals are not reaped.
    """

    def __init__(
        self,
        generator: ContentGenerator,
        registry: SubscriptionRegistry,
        *,
        interval_seconds: float = DEFAULT_INTERVAL_SECONDS,
        history_size: int = DEFAULT_HISTORY_SIZE,
        archive_size: int = DEFAULT_ARCHIVE_SIZE,
        describe: DescribeFn | None = None,
        db: DatabaseManager | None = None,
    ) -> None:
        self._generator = generator
        self._registry = registry
        self._interval = interval_seconds
        self._history_size = history_size
        self._archive_size = archive_size
        self._describe = describe
        self._db = db
        self._terminals: dict[str, ScheduledBroadcaster] = {}

    def __len__(self) -> int:
        return len(self._terminals)

    @property
    def registry(self) -> SubscriptionRegistry:
        return self._registry

    def get(self, subject_id: str) -> ScheduledBroadcaster | None:
        return self._terminals.get(subject_id)

    def get_or_create(self, subject: SubjectDescriptor) -> ScheduledBroadcaster:
        terminal = self._terminals.get(subject.mint)
        if terminal is None:
            terminal = ScheduledBroadcaster(
                subject,
                self._generator,
                self._registry,
                interval_seconds=self._interval,
                history_size=self._history_size,
                archive_size=self._archive_size,
                describe=self._describe,
            )
            self._terminals[subject.mint] = terminal
        return terminal

    async def start(self, subject: SubjectDescriptor) -> ScheduledBroadcaster:
        terminal = self.get_or_create(subject)
        await terminal.start()
        return terminal

    async def start_subject(self, subject_id: str) -> ScheduledBroadcaster | None:
        """Start the terminal of a stored subject; a running terminal is returned as is.

        Returns None when no subject with that mint is stored.

        Raises:
            RuntimeError: If the manager was built without a database.
        """
        terminal = self._terminals.get(subject_id)
        if terminal is not None and terminal.is_running:
            return terminal
        if self._db is None:
            raise RuntimeError("terminal manager has no database to load subjects from")

        async with self._db.get_async_session() as session:
            subject = await SubjectRepository(session).get(subject_id)
        if subject is None:
            logger.warning("Cannot start terminal for unknown subject %s", subject_id)
            return None
        return await self.start(SubjectDescriptor.from_subject(subject))

    async def stop(self, subject_id: str) -> bool:
        terminal = self._terminals.get(subject_id)
        if terminal is None:
            return False
        await terminal.stop()
        return True

    def history(self, subject_id: str) -> list[dict[str, Any]]:
        terminal = self._terminals.get(subject_id)
        return [e.to_dict() for e in terminal.history()] if terminal else []

    def archive(self, subject_id: str, limit: int | None = None) -> list[dict[str, Any]]:
        terminal = self._terminals.get(subject_id)
        return [e.to_dict() for e in terminal.archive(limit)] if terminal else []

    def running(self) -> list[str]:
        return [mint for mint, t in self._terminals.items() if t.is_running]

    async def stop_all(self) -> None:
        for terminal in list(self._terminals.values()):
            await terminal.stop()
