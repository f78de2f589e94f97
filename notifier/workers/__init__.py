"""Background workers for the notification pipeline.

This module provides the asyncio components of the pipeline:
- NotificationDispatcher: delivery and retry state machine
- ReminderScheduler: reminder schedules and due signals
- DispatchBatcher: rate-limited sends with in-memory retry
- NotificationIntake: typed events into notification records

Workers can be started via:
- run_worker_once(): Single processing cycle
- run_worker_loop(): Continuous processing with interval
"""

from notifier.workers.base import (
    Worker,
    WorkerResult,
    WorkerStatus,
)
from notifier.workers.batcher import (
    DeliveryTarget,
    DispatchBatcher,
    DispatchItem,
    DispatchOutcome,
    RetryQueueEntry,
)
from notifier.workers.dispatcher import NotificationDispatcher
from notifier.workers.intake import NotificationIntake
from notifier.workers.scheduler import ReminderScheduler
from notifier.workers.runner import (
    WorkerRunner,
    RunnerResult,
    build_runner,
    run_worker_once,
    run_worker_loop,
    configure_worker_logging,
)

__all__ = [
    # Base classes
    "Worker",
    "WorkerResult",
    "WorkerStatus",
    # Batcher
    "DeliveryTarget",
    "DispatchBatcher",
    "DispatchItem",
    "DispatchOutcome",
    "RetryQueueEntry",
    # Workers
    "NotificationDispatcher",
    "NotificationIntake",
    "ReminderScheduler",
    # Runner
    "WorkerRunner",
    "RunnerResult",
    "build_runner",
    "run_worker_once",
    "run_worker_loop",
    "configure_worker_logging",
]
