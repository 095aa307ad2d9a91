"""
Admission scheduler.

Periodically discovers every queue that has a wait set and admits a fixed
batch from each. Sweeps run one after another with a fixed delay between
them, so sweep N+1 never starts before sweep N has finished or timed out.
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from waitingflow.modules.queue import QueueManager
from waitingflow.modules.storage import (
    WAIT_KEY_SCAN_PATTERN,
    OrderedQueueStore,
    queue_name_from_key,
)

logger = logging.getLogger("waitingflow.scheduler")

DEFAULT_BATCH_SIZE = 60
DEFAULT_SCAN_HINT = 60


async def discover_queues(store: OrderedQueueStore, hint: int = DEFAULT_SCAN_HINT) -> List[str]:
    """
    Names of all queues with a wait set, in scan order, without duplicates.

    Args:
        store: Store to scan
        hint: SCAN COUNT hint (batch size, not a limit)
    """
    queues: List[str] = []
    seen = set()
    async for key in store.scan_keys(WAIT_KEY_SCAN_PATTERN, hint):
        try:
            queue = queue_name_from_key(key)
        except ValueError:
            logger.warning(f"Ignoring unexpected key during discovery: {key}")
            continue
        if queue not in seen:
            seen.add(queue)
            queues.append(queue)
    return queues


@dataclass
class SweepReport:
    """Outcome of one sweep."""

    started_at: float = field(default_factory=time.time)
    discovered: List[str] = field(default_factory=list)
    duration_sec: Optional[float] = None
    promoted: Dict[str, int] = field(default_factory=dict)
    failures: Dict[str, str] = field(default_factory=dict)
    discovery_error: Optional[str] = None
    timed_out: bool = False

    @property
    def total_promoted(self) -> int:
        return sum(self.promoted.values())

    @property
    def queues(self) -> List[str]:
        return list(self.promoted) + [q for q in self.failures if q not in self.promoted]

    @property
    def unfinished(self) -> List[str]:
        return [q for q in self.discovered if q not in self.promoted and q not in self.failures]


class AdmissionScheduler:
    """
    Background task admitting users across all queues.

    Usage:
        scheduler = AdmissionScheduler(queue_manager, store, enabled=True)
        await scheduler.start()
        ...
        await scheduler.stop()
    """

    def __init__(
        self,
        queue_manager: QueueManager,
        store: OrderedQueueStore,
        enabled: bool,
        batch_size: int = DEFAULT_BATCH_SIZE,
        initial_delay: float = 5.0,
        interval: float = 1.0,
        tick_timeout: Optional[float] = None,
        scan_hint: int = DEFAULT_SCAN_HINT,
    ):
        """
        Initialize scheduler.

        Args:
            queue_manager: Performs the promotions
            store: Store scanned to discover queues
            enabled: Fixed at construction; a disabled scheduler skips every tick
            batch_size: Users admitted per queue per sweep
            initial_delay: Seconds before the first sweep
            interval: Seconds between the end of one sweep and the next
            tick_timeout: Upper bound for one sweep, at most `interval`
            scan_hint: SCAN COUNT hint used for discovery
        """
        if interval <= 0:
            raise ValueError("interval must be positive")

        self.queue_manager = queue_manager
        self.store = store
        self.enabled = enabled
        self.batch_size = batch_size
        self.initial_delay = max(0.0, initial_delay)
        self.interval = interval
        self.tick_timeout = min(tick_timeout or interval, interval)
        self.scan_hint = scan_hint

        self.last_report: Optional[SweepReport] = None
        self.total_promoted = 0
        self.sweep_count = 0
        self._task: Optional[asyncio.Task] = None
        self._stopping: Optional[asyncio.Event] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def start(self):
        """Start the background loop."""
        if self.running:
            logger.warning("Admission scheduler is already running")
            return

        self._stopping = asyncio.Event()
        self._task = asyncio.create_task(self._run_loop(), name="admission-scheduler")
        logger.info(
            f"Admission scheduler started (enabled={self.enabled}, batch={self.batch_size}, "
            f"delay={self.initial_delay}s, interval={self.interval}s)"
        )

    async def stop(self):
        """
        Stop the background loop.

        A sweep in progress is allowed to finish (it is bounded by
        tick_timeout) so no promotion is interrupted between its pop and
        its insert. The task is cancelled only if it does not exit in time.
        """
        if not self._task:
            return

        self._stopping.set()
        done, _ = await asyncio.wait({self._task}, timeout=self.tick_timeout + self.interval)
        if not done:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
        self._task = None
        logger.info("Admission scheduler stopped")

    async def _wait_for_stop(self, delay: float) -> bool:
        """Sleep up to `delay` seconds; True if stop() was requested meanwhile."""
        try:
            await asyncio.wait_for(self._stopping.wait(), timeout=delay)
            return True
        except asyncio.TimeoutError:
            return False

    async def _run_loop(self):
        if await self._wait_for_stop(self.initial_delay):
            return
        while True:
            try:
                await self.run_once()
            except Exception as e:
                logger.error(f"Admission sweep crashed: {e}", exc_info=True)
            if await self._wait_for_stop(self.interval):
                return

    async def run_once(self) -> Optional[SweepReport]:
        """
        Run a single tick.

        Returns:
            The sweep report, or None when the scheduler is disabled
        """
        if not self.enabled:
            logger.debug("Admission scheduler disabled, skipping sweep")
            return None

        report = SweepReport()
        try:
            await asyncio.wait_for(self.sweep(report), timeout=self.tick_timeout)
        except asyncio.TimeoutError:
            report.timed_out = True
            # Users already popped in these queues keep being admitted in the background
            for queue in report.unfinished:
                report.failures[queue] = "sweep timed out"
            logger.warning(
                f"Admission sweep timed out after {self.tick_timeout}s; "
                f"{len(report.promoted)} queue(s) finished, not finished: {list(report.failures)}"
            )

        report.duration_sec = time.time() - report.started_at
        self.last_report = report
        self.sweep_count += 1
        self.total_promoted += report.total_promoted
        return report

    async def sweep(self, report: Optional[SweepReport] = None) -> SweepReport:
        """
        Discover all queues and promote a batch from each, concurrently.

        A failure in one queue is logged and recorded; the others still run.
        """
        report = report if report is not None else SweepReport()

        try:
            queues = await discover_queues(self.store, self.scan_hint)
        except Exception as e:
            report.discovery_error = str(e)
            logger.error(f"Queue discovery failed: {e}")
            return report

        report.discovered = queues
        if queues:
            await asyncio.gather(*(self._promote_queue(queue, report) for queue in queues))
        return report

    async def _promote_queue(self, queue: str, report: SweepReport):
        try:
            allowed = await self.queue_manager.promote(queue, self.batch_size)
        except Exception as e:
            report.failures[queue] = str(e)
            logger.error(f"Failed to admit members of {queue} queue: {e}")
            return

        report.promoted[queue] = allowed
        logger.info(f"Tried {self.batch_size} and allowed {allowed} members of {queue} queue")
