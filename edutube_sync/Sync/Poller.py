# Poller.py
#########################################
# Course Poller
# Re-pulls the course catalog on a fixed interval. Ticks never overlap: a tick that comes
# due while the previous one is still running is skipped, not queued. Each tick first
# pushes courses created while the store was unreachable, then pulls.
####
import asyncio
from typing import Optional, List
#
# 3rd-Party Imports
from loguru import logger
#
# Local Imports
from .Reconciler import CourseReconciler
from ..courses_api.schemas import CourseRecord
from ..Metrics.metrics_logger import log_counter
#
#######################################################################################################################
#
# Functions:

DEFAULT_POLL_INTERVAL_MS = 5000
# Consecutive skipped ticks after which a stalled tick is reported
STALL_WARNING_THRESHOLD = 3


class CoursePoller:
    def __init__(self, reconciler: CourseReconciler, interval_ms: int = DEFAULT_POLL_INTERVAL_MS):
        self.reconciler = reconciler
        self.interval_ms = interval_ms
        self._timer_task: Optional[asyncio.Task] = None
        self._tick_task: Optional[asyncio.Task] = None
        self.ticks_run = 0
        self.ticks_skipped = 0
        self._consecutive_skips = 0

    @property
    def is_running(self) -> bool:
        return self._timer_task is not None and not self._timer_task.done()

    @property
    def tick_in_flight(self) -> bool:
        return self._tick_task is not None and not self._tick_task.done()

    def start(self, interval_ms: Optional[int] = None):
        """
        Starts ticking: one tick straight away, then one per interval.
        Calling start again replaces the running timer.
        """
        if interval_ms is not None:
            if interval_ms <= 0:
                raise ValueError("interval_ms must be positive")
            self.interval_ms = interval_ms
        self.stop()
        self._timer_task = asyncio.get_running_loop().create_task(self._run_timer())
        logger.info(f"Course poller started, every {self.interval_ms} ms.")

    def stop(self):
        """Cancels future ticks. A tick already running finishes on its own."""
        if self._timer_task is None:
            return
        if not self._timer_task.done():
            self._timer_task.cancel()
            logger.info("Course poller stopped.")
        self._timer_task = None

    async def _run_timer(self):
        while True:
            self._fire()
            await asyncio.sleep(self.interval_ms / 1000)

    def _fire(self) -> Optional[asyncio.Task]:
        if self.tick_in_flight:
            self.ticks_skipped += 1
            self._consecutive_skips += 1
            log_counter("poller_ticks_skipped_total")
            if self._consecutive_skips >= STALL_WARNING_THRESHOLD:
                logger.warning(
                    f"Course poller has skipped {self._consecutive_skips} ticks in a row; "
                    f"the running pull appears to be stalled."
                )
            else:
                logger.debug("Previous pull still running, skipping this tick.")
            return None
        self._consecutive_skips = 0
        self._tick_task = asyncio.get_running_loop().create_task(self._tick())
        self._tick_task.add_done_callback(self._log_tick_failure)
        return self._tick_task

    @staticmethod
    def _log_tick_failure(task: asyncio.Task):
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.opt(exception=exc).error(f"Course poller tick failed: {exc}")

    async def _tick(self) -> List[CourseRecord]:
        await self.reconciler.push_pending()
        records = await self.reconciler.pull_and_merge()
        self.ticks_run += 1
        # None when the pull never reached the store; nothing to compare against then
        expected = self.reconciler.last_expected_count
        if expected is not None and len(records) != expected:
            logger.info(
                f"Mirror holds {len(records)} courses but the course store's listing "
                f"accounts for {expected}; pulling once more."
            )
            log_counter("poller_corrective_pulls_total")
            records = await self.reconciler.pull_and_merge()
        return records

    async def trigger(self) -> Optional[List[CourseRecord]]:
        """
        Runs a tick now and returns its records. Returns None when a tick was already
        running, in which case this one is skipped like any other overlapping tick.
        """
        task = self._fire()
        if task is None:
            return None
        return await asyncio.shield(task)

    async def wait_idle(self):
        """Waits for the tick in flight, if any, to finish."""
        if self.tick_in_flight:
            await asyncio.wait([self._tick_task])

    async def aclose(self):
        self.stop()
        await self.wait_idle()

#
# End of Poller.py
#######################################################################################################################
