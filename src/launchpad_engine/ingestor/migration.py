"""Bonding-curve graduation watcher."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from datetime import UTC, datetime
from decimal import Decimal
from typing import TYPE_CHECKING, Protocol

from sqlalchemy.exc import SQLAlchemyError

from launchpad_engine.storage.repos import SubjectRepository

if TYPE_CHECKING:
    from launchpad_engine.storage.database import DatabaseManager

logger = logging.getLogger(__name__)

FULL_PROGRESS = Decimal(1)


class CurveProgressSource(Protocol):
    """Reports a subject's bonding-curve fill as a fraction in [0, 1]."""

    async def get_curve_progress(self, mint: str) -> Decimal: ...


class MigrationWatcher:
    """Flip a subject's migration flag once its curve is full.

    The flag is written with a guarded update, so it flips exactly once no
    matter how many watchers observe the full curve.
    """

    def __init__(
        self,
        db: DatabaseManager,
        source: CurveProgressSource,
        *,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._db = db
        self._source = source
        self._clock = clock or (lambda: datetime.now(UTC))

    async def check_all(self) -> list[str]:
        """Poll every pending subject.

        Returns:
            Mints migrated by this call.
        """
        async with self._db.get_async_session() as session:
            pending = await SubjectRepository(session).list_pending_migration()

        migrated: list[str] = []
        for subject in pending:
            try:
                progress = await self._source.get_curve_progress(subject.mint)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.warning("Curve progress for %s unavailable: %s", subject.mint, e)
                continue

            if progress < FULL_PROGRESS:
                continue

            try:
                async with self._db.get_async_session() as session:
                    flipped = await SubjectRepository(session).mark_migrated(
                        subject.mint, migrated_at=self._clock()
                    )
            except SQLAlchemyError as e:
                logger.error("Failed to mark %s migrated: %s", subject.mint, e)
                continue

            if flipped:
                migrated.append(subject.mint)
                logger.info("Subject %s (%s) migrated", subject.symbol, subject.mint)
        return migrated
