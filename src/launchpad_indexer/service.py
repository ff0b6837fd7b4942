"""Long-running indexer service.

This module provides the IndexerService class that wires the database,
realtime transport and orchestrator together and runs passes on a schedule.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import time
from dataclasses import dataclass
from datetime import UTC, datetime
from enum import Enum
from typing import TYPE_CHECKING, Any

from redis.asyncio import Redis

from launchpad_indexer.config import Settings, get_settings
from launchpad_indexer.indexer.orchestrator import Orchestrator, PassReport
from launchpad_indexer.indexer.publisher import RealtimePublisher
from launchpad_indexer.storage.database import DatabaseManager

if TYPE_CHECKING:
    from launchpad_indexer.indexer.windows import ScanMode

logger = logging.getLogger(__name__)


class ServiceState(str, Enum):
    """Service lifecycle states."""

    STOPPED = "stopped"
    STARTING = "starting"
    RUNNING = "running"
    STOPPING = "stopping"
    ERROR = "error"


@dataclass
class ServiceStats:
    """Statistics for the service."""

    started_at: datetime | None = None
    passes_completed: int = 0
    repair_passes_completed: int = 0
    trades_inserted: int = 0
    campaigns_failed: int = 0
    errors: int = 0
    last_pass_at: datetime | None = None
    last_error: str | None = None


class IndexerService:
    """Schedules normal and repair passes.

    A normal pass runs every ``interval_seconds``. When a repair pass is due
    it runs in place of the next normal pass, so passes never overlap.
    Errors from a pass are logged and the loop carries on.

    Example:
        ```python
        from launchpad_indexer.config import get_settings
        from launchpad_indexer.service import IndexerService

        service = IndexerService(get_settings())
        await service.start()
        # Service runs until stop() is called
        await service.stop()
        ```
    """

    def __init__(
        self,
        settings: Settings | None = None,
        *,
        dry_run: bool | None = None,
    ) -> None:
        """Initialize the service.

        Args:
            settings: Application settings. If not provided, uses get_settings().
            dry_run: If True, skip realtime publishing. Overrides settings.dry_run.
        """
        self._settings = settings or get_settings()
        self._dry_run = dry_run if dry_run is not None else self._settings.dry_run

        self._state = ServiceState.STOPPED
        self._stats = ServiceStats()

        # Components (initialized in start())
        self._redis: Redis | None = None
        self._db_manager: DatabaseManager | None = None
        self._publisher: RealtimePublisher | None = None
        self._orchestrator: Orchestrator | None = None

        # Synchronization
        self._stop_event: asyncio.Event | None = None
        self._loop_task: asyncio.Task[None] | None = None
        self._next_repair_at: float | None = None

    @property
    def state(self) -> ServiceState:
        """Current service state."""
        return self._state

    @property
    def stats(self) -> ServiceStats:
        """Current service statistics."""
        return self._stats

    @property
    def is_running(self) -> bool:
        """Check if service is running."""
        return self._state == ServiceState.RUNNING

    async def start(self) -> None:
        """Start the service and its scheduling loop.

        Raises:
            RuntimeError: If service is already running.
            Exception: If any component fails to initialize.
        """
        if self._state != ServiceState.STOPPED:
            raise RuntimeError(f"Cannot start service in state {self._state}")

        self._state = ServiceState.STARTING
        self._stop_event = asyncio.Event()
        logger.info("Starting indexer service...")

        try:
            await self._initialize_components()
            self._loop_task = asyncio.create_task(self._run_loop())
            self._stats.started_at = datetime.now(UTC)
            self._state = ServiceState.RUNNING
            logger.info("Indexer service started")
        except Exception as e:
            self._state = ServiceState.ERROR
            self._stats.last_error = str(e)
            logger.error("Failed to start indexer service: %s", e)
            await self._cleanup()
            raise

    async def stop(self) -> None:
        """Stop the service gracefully.

        An in-flight pass is cancelled; its current chunk is rolled back and
        replayed by the next run.
        """
        if self._state == ServiceState.STOPPED:
            return

        self._state = ServiceState.STOPPING
        logger.info("Stopping indexer service...")

        if self._stop_event:
            self._stop_event.set()

        if self._loop_task:
            self._loop_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._loop_task
            self._loop_task = None

        await self._cleanup()

        self._state = ServiceState.STOPPED
        logger.info("Indexer service stopped")

    async def run_once(self, mode: ScanMode = "normal") -> PassReport:
        """Run a single pass without starting the scheduling loop."""
        if self._orchestrator is None:
            await self._initialize_components()
        try:
            return await self._run_pass(mode)
        finally:
            await self._cleanup()

    async def _initialize_components(self) -> None:
        """Initialize database, realtime transport and orchestrator."""
        self._db_manager = DatabaseManager(
            self._settings.database.url,
            pool_size=self._settings.database.pool_size,
            max_overflow=self._settings.database.max_overflow,
        )

        if self._dry_run:
            logger.info("Dry run: realtime publishing disabled")
        else:
            self._redis = Redis.from_url(self._settings.redis.url)
        self._publisher = RealtimePublisher(self._redis, enabled=not self._dry_run)

        self._orchestrator = Orchestrator(
            self._settings,
            self._db_manager.session_factory,
            self._publisher,
        )

        interval = self._settings.indexer.repair_interval_seconds
        self._next_repair_at = time.monotonic() + interval if interval > 0 else None

    def _repair_due(self) -> bool:
        return self._next_repair_at is not None and time.monotonic() >= self._next_repair_at

    async def _run_pass(self, mode: ScanMode) -> PassReport:
        if self._orchestrator is None:
            raise RuntimeError("Service components are not initialized")
        report = await self._orchestrator.run_pass(mode)
        self._stats.passes_completed += 1
        if mode == "repair":
            self._stats.repair_passes_completed += 1
        self._stats.trades_inserted += report.trades_inserted
        self._stats.campaigns_failed += report.campaigns_failed
        self._stats.last_pass_at = report.finished_at
        return report

    async def _run_loop(self) -> None:
        if not self._stop_event:
            return

        interval = self._settings.indexer.interval_seconds
        while not self._stop_event.is_set():
            mode: ScanMode = "repair" if self._repair_due() else "normal"
            try:
                await self._run_pass(mode)
            except asyncio.CancelledError:
                break
            except Exception as e:
                self._stats.errors += 1
                self._stats.last_error = str(e)
                logger.exception("Indexer %s pass failed", mode)
            finally:
                if mode == "repair":
                    self._next_repair_at = time.monotonic() + self._settings.indexer.repair_interval_seconds

            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=interval)
                break
            except TimeoutError:
                pass

    async def _cleanup(self) -> None:
        """Clean up resources."""
        if self._db_manager:
            await self._db_manager.dispose_async()
            self._db_manager = None

        if self._publisher:
            await self._publisher.aclose()
            self._publisher = None
            self._redis = None

        self._orchestrator = None
        logger.debug("Resources cleaned up")

    async def run(self) -> None:
        """Start the service and run until interrupted."""
        await self.start()

        try:
            if self._stop_event:
                await self._stop_event.wait()
        except asyncio.CancelledError:
            pass
        finally:
            await self.stop()

    async def __aenter__(self) -> IndexerService:
        """Async context manager entry."""
        await self.start()
        return self

    async def __aexit__(self, *args: Any) -> None:
        """Async context manager exit."""
        await self.stop()
