"""Worker runner and composition root.

build_runner() wires settings into explicitly constructed components;
nothing in the pipeline reads settings or holds process-wide state on
its own. WorkerRunner ties their lifecycle to start()/stop() and drives
them either once or on independent interval loops:
- run_worker_once(): Single processing cycle
- run_worker_loop(): Continuous processing until shutdown
"""

import asyncio
import logging
import signal
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any
from zoneinfo import ZoneInfo

from sqlalchemy.ext.asyncio import AsyncEngine

from notifier.config import Settings, get_settings
from notifier.db.session import create_engine, create_session_factory, init_db
from notifier.delivery import (
    ChannelRouter,
    DeliveryProvider,
    DiscordWebhookProvider,
    LoggingProvider,
)
from notifier.events.channel import EventChannel
from notifier.events.types import NotificationRequest, ReminderDue
from notifier.models import NotificationChannel, utcnow
from notifier.services.cache import CacheProvider, MemoryCacheProvider, RedisCacheProvider
from notifier.services.templates import PlaceholderTemplateRenderer
from notifier.stores import (
    CachedNotificationStore,
    NotificationStore,
    SqlNotificationStore,
    SqlReminderScheduleStore,
)
from notifier.workers.base import Worker, WorkerResult, WorkerStatus
from notifier.workers.batcher import DispatchBatcher
from notifier.workers.dispatcher import RETENTION_DAYS, NotificationDispatcher
from notifier.workers.intake import NotificationIntake, ReminderFactory
from notifier.workers.scheduler import ReminderScheduler

logger = logging.getLogger(__name__)

INTAKE_INTERVAL_SECONDS = 1.0
CLEANUP_INTERVAL_SECONDS = 3600.0
CLEANUP_WORKER_NAME = "RetentionCleanup"


@dataclass
class RunnerResult:
    """Result of a complete worker runner cycle.

    Attributes:
        started_at: When the run started
        completed_at: When the run completed
        workers_run: Number of workers executed
        total_processed: Total items processed across all workers
        total_failed: Total items failed across all workers
        worker_results: Individual results per worker
        errors: Top-level errors during run
    """

    started_at: datetime
    completed_at: datetime | None = None
    workers_run: int = 0
    total_processed: int = 0
    total_failed: int = 0
    worker_results: dict[str, WorkerResult] = field(default_factory=dict)
    errors: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging."""
        return {
            "started_at": self.started_at.isoformat(),
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "duration_ms": (
                (self.completed_at - self.started_at).total_seconds() * 1000
                if self.completed_at
                else None
            ),
            "workers_run": self.workers_run,
            "total_processed": self.total_processed,
            "total_failed": self.total_failed,
            "worker_results": {
                name: result.to_dict()
                for name, result in self.worker_results.items()
            },
            "errors": self.errors,
        }


class WorkerRunner:
    """Owns the pipeline components and their lifecycle.

    Usage:
        runner = build_runner(settings)
        await runner.start()
        try:
            result = await runner.run_once()
        finally:
            await runner.stop()
    """

    def __init__(
        self,
        dispatcher: NotificationDispatcher,
        scheduler: ReminderScheduler,
        intake: NotificationIntake,
        provider: DeliveryProvider | None = None,
        engine: AsyncEngine | None = None,
        cache: CacheProvider | None = None,
        dispatcher_interval: float = 60.0,
        intake_interval: float = INTAKE_INTERVAL_SECONDS,
        cleanup_interval: float = CLEANUP_INTERVAL_SECONDS,
        retention_days: int = RETENTION_DAYS,
    ) -> None:
        self.dispatcher = dispatcher
        self.scheduler = scheduler
        self.intake = intake
        self.provider = provider
        self.engine = engine
        self.cache = cache
        self.dispatcher_interval = dispatcher_interval
        self.intake_interval = intake_interval
        self.cleanup_interval = cleanup_interval
        self.retention_days = retention_days

        self._logger = logging.getLogger(self.__class__.__name__)
        self._shutdown = asyncio.Event()
        self._started = False

    @property
    def workers(self) -> list[Worker]:
        """Components in one-cycle order: due signals, then records, then delivery."""
        return [self.scheduler, self.intake, self.dispatcher]

    async def start(self) -> None:
        """Initialize storage and providers.

        Raises:
            StoreError: The record store is unreachable
        """
        if self._started:
            return
        if self.engine is not None:
            await init_db(self.engine)
        if self.provider is not None:
            await self.provider.initialize()
        self._shutdown.clear()
        self._started = True
        self._logger.info("Worker runner started")

    async def stop(self) -> None:
        """Release providers, cache and engine."""
        self.request_shutdown()
        self.intake.requests.close()
        self.intake.reminders.close()
        if self.provider is not None:
            await self.provider.cleanup()
        if self.cache is not None:
            await self.cache.close()
        if self.engine is not None:
            await self.engine.dispose()
        self._started = False
        self._logger.info("Worker runner stopped")

    async def cleanup(self) -> WorkerResult:
        """Apply the retention window to terminal notifications."""
        start_time = utcnow()
        deleted = await self.dispatcher.cleanup_old_notifications(self.retention_days)
        return WorkerResult(
            status=WorkerStatus.SUCCESS if deleted else WorkerStatus.NO_WORK,
            processed_count=deleted,
            duration_ms=(utcnow() - start_time).total_seconds() * 1000,
        )

    async def run_once(self) -> RunnerResult:
        """Execute one complete processing cycle.

        Runs every worker in sequence, then the retention cleanup, and
        aggregates results.
        """
        result = RunnerResult(started_at=utcnow())
        self._logger.info("Starting worker run")

        steps: list[tuple[str, Callable[[], Awaitable[WorkerResult]]]] = [
            (worker.worker_name, worker.run) for worker in self.workers
        ]
        steps.append((CLEANUP_WORKER_NAME, self.cleanup))

        for name, run in steps:
            try:
                worker_result = await run()
            except Exception as e:
                error_msg = f"{name} failed: {str(e)}"
                result.errors.append(error_msg)
                self._logger.error(error_msg, extra={"worker": name}, exc_info=True)
                continue

            result.worker_results[name] = worker_result
            result.workers_run += 1
            result.total_processed += worker_result.processed_count
            result.total_failed += worker_result.failed_count

        result.completed_at = utcnow()
        self._logger.info("Worker run completed", extra=result.to_dict())
        return result

    async def _periodic(
        self,
        name: str,
        run: Callable[[], Awaitable[WorkerResult]],
        interval: float,
        max_iterations: int | None,
    ) -> int:
        iterations = 0
        while not self._shutdown.is_set():
            try:
                await run()
            except Exception as e:
                self._logger.error(
                    f"{name} failed: {str(e)}", extra={"worker": name}, exc_info=True
                )
            iterations += 1

            if max_iterations is not None and iterations >= max_iterations:
                self._logger.info(f"{name} reached max iterations ({max_iterations})")
                break

            try:
                await asyncio.wait_for(self._shutdown.wait(), timeout=interval)
            except asyncio.TimeoutError:
                continue
        return iterations

    async def run_loop(
        self,
        interval_seconds: float | None = None,
        max_iterations: int | None = None,
    ) -> dict[str, int]:
        """Run each component on its own interval until shutdown.

        Args:
            interval_seconds: Override the dispatcher poll interval
            max_iterations: Max cycles per component (None for infinite)

        Returns:
            Cycles completed per component
        """
        loops: list[tuple[str, Callable[[], Awaitable[WorkerResult]], float]] = [
            (self.scheduler.worker_name, self.scheduler.run, self.scheduler.tick_interval),
            (self.intake.worker_name, self.intake.run, self.intake_interval),
            (
                self.dispatcher.worker_name,
                self.dispatcher.run,
                interval_seconds or self.dispatcher_interval,
            ),
            (CLEANUP_WORKER_NAME, self.cleanup, self.cleanup_interval),
        ]

        self._setup_signal_handlers()
        self._logger.info(
            "Starting worker loop",
            extra={
                "intervals": {name: interval for name, _, interval in loops},
                "max_iterations": max_iterations,
            },
        )

        try:
            counts = await asyncio.gather(
                *(
                    self._periodic(name, run, interval, max_iterations)
                    for name, run, interval in loops
                )
            )
        finally:
            self._remove_signal_handlers()

        iterations = {name: count for (name, _, _), count in zip(loops, counts)}
        self._logger.info("Worker loop stopped", extra={"iterations": iterations})
        return iterations

    def _setup_signal_handlers(self) -> None:
        """Setup signal handlers for graceful shutdown."""
        loop = asyncio.get_running_loop()
        for signum in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(signum, self._handle_signal, signum)
            except (NotImplementedError, RuntimeError):
                # Not on the main thread, or not supported on this platform
                self._logger.debug(f"Cannot install handler for signal {signum}")

    def _remove_signal_handlers(self) -> None:
        loop = asyncio.get_running_loop()
        for signum in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.remove_signal_handler(signum)
            except (NotImplementedError, RuntimeError):
                pass

    def _handle_signal(self, signum: int) -> None:
        self._logger.info(f"Received signal {signum}, requesting shutdown")
        self.request_shutdown()

    def request_shutdown(self) -> None:
        """Request graceful shutdown of the loop."""
        self._shutdown.set()


# Composition root


def build_cache(settings: Settings) -> CacheProvider | None:
    if settings.CACHE_BACKEND == "redis":
        return RedisCacheProvider(settings.REDIS_URL)
    if settings.CACHE_BACKEND == "memory":
        return MemoryCacheProvider()
    return None


def build_provider(settings: Settings) -> ChannelRouter:
    """Chat goes to Discord webhooks; email and SMS are simulated."""
    return ChannelRouter(
        {
            NotificationChannel.CHAT: DiscordWebhookProvider(
                timeout_seconds=settings.DISCORD_WEBHOOK_TIMEOUT_SECONDS
            ),
            NotificationChannel.EMAIL: LoggingProvider("email"),
            NotificationChannel.SMS: LoggingProvider("sms"),
        }
    )


def build_runner(
    settings: Settings | None = None,
    reminder_factory: ReminderFactory | None = None,
    provider: DeliveryProvider | None = None,
) -> WorkerRunner:
    """Construct every component from settings.

    Raises:
        ValueError: Invalid settings
    """
    settings = settings or get_settings()
    settings.validate()
    tz = ZoneInfo(settings.SCHEDULER_TIMEZONE)

    engine = create_engine(settings.DATABASE_URL)
    session_factory = create_session_factory(engine)

    cache = build_cache(settings)
    store: NotificationStore = SqlNotificationStore(session_factory)
    if cache is not None:
        store = CachedNotificationStore(store, cache, ttl_seconds=settings.CACHE_TTL_SECONDS)

    provider = provider or build_provider(settings)
    batcher = DispatchBatcher(
        provider,
        batch_size=settings.DISPATCH_BATCH_SIZE,
        batch_delay=settings.DISPATCH_BATCH_DELAY_SECONDS,
        retry_delay=settings.DISPATCH_RETRY_DELAY_SECONDS,
        max_retries=settings.DISPATCH_MAX_RETRIES,
    )
    dispatcher = NotificationDispatcher(
        store,
        PlaceholderTemplateRenderer(),
        batcher,
        max_retries=settings.NOTIFY_MAX_RETRIES,
        backoff=[timedelta(minutes=m) for m in settings.NOTIFY_BACKOFF_MINUTES],
        timezone=tz,
    )

    due_channel: EventChannel[ReminderDue] = EventChannel(
        "reminder-due", maxsize=settings.EVENT_QUEUE_SIZE
    )
    request_channel: EventChannel[NotificationRequest] = EventChannel(
        "notification-requests", maxsize=settings.EVENT_QUEUE_SIZE
    )
    scheduler = ReminderScheduler(
        SqlReminderScheduleStore(session_factory),
        due_channel,
        tick_interval=settings.SCHEDULER_TICK_INTERVAL_SECONDS,
        timezone=tz,
    )
    intake = NotificationIntake(
        store, request_channel, due_channel, reminder_factory=reminder_factory
    )

    return WorkerRunner(
        dispatcher,
        scheduler,
        intake,
        provider=provider,
        engine=engine,
        cache=cache,
        dispatcher_interval=settings.DISPATCHER_POLL_INTERVAL_SECONDS,
        retention_days=settings.NOTIFICATION_RETENTION_DAYS,
    )


# Convenience functions for easy usage


async def run_worker_once(settings: Settings | None = None) -> RunnerResult:
    """Run every component once and return results.

    Example:
        >>> result = asyncio.run(run_worker_once())
        >>> print(f"Processed: {result.total_processed}")
    """
    runner = build_runner(settings)
    await runner.start()
    try:
        return await runner.run_once()
    finally:
        await runner.stop()


async def run_worker_loop(
    settings: Settings | None = None,
    interval_seconds: float | None = None,
    max_iterations: int | None = None,
) -> dict[str, int]:
    """Run components continuously until interrupted or max_iterations reached."""
    runner = build_runner(settings)
    await runner.start()
    try:
        return await runner.run_loop(
            interval_seconds=interval_seconds,
            max_iterations=max_iterations,
        )
    finally:
        await runner.stop()


# Configure logging for worker runs
def configure_worker_logging(level: int = logging.INFO) -> None:
    """Configure logging for worker processes.

    Args:
        level: Logging level (default: INFO)
    """
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    # Set specific loggers
    logging.getLogger("notifier").setLevel(level)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)
