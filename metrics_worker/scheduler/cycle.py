"""Metrics Worker: Cycle Scheduler.

Drives one source's collect → aggregate → persist cycle on a fixed interval
until the stop event fires. A failed cycle is logged and the loop carries on
to its next sleep; nothing is retried within a cycle and nothing already
persisted is rolled back.
"""

import asyncio
import time
from datetime import datetime, timedelta, timezone
from typing import Awaitable, Callable, Optional

from pydantic import BaseModel

from metrics_worker.core.logging import get_logger

# (reference_timestamp, stop_event) -> number of records persisted
CycleFn = Callable[[datetime, asyncio.Event], Awaitable[int]]


class SchedulerStatus(BaseModel):
    """Per-scheduler counters, owned by exactly one scheduler."""

    name: str
    interval_seconds: float
    running: bool = False
    cycles_completed: int = 0
    cycles_failed: int = 0
    last_reference_timestamp: Optional[datetime] = None
    last_record_count: int = 0
    last_duration_ms: Optional[float] = None
    last_error: Optional[str] = None


class CycleScheduler:
    """Run a cycle function forever with cooperative shutdown."""

    def __init__(
        self,
        name: str,
        cycle: CycleFn,
        interval: timedelta,
        logger=None,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ):
        self.name = name
        self.cycle = cycle
        self.interval = interval
        self.clock = clock
        self.logger = logger or get_logger(f"scheduler.{name}")
        self.status = SchedulerStatus(
            name=name, interval_seconds=interval.total_seconds()
        )

    async def run(self, stop_event: asyncio.Event) -> None:
        """Block until stop_event is set, running one cycle per interval."""
        self.logger.info(
            f"{self.name} scheduler started (every {self.interval})",
            extra={"source": self.name},
        )
        self.status.running = True
        try:
            while not stop_event.is_set():
                await self.run_once(stop_event)
                if await self._sleep(stop_event):
                    break
        finally:
            self.status.running = False
            self.logger.info(f"{self.name} scheduler stopped", extra={"source": self.name})

    async def run_once(self, stop_event: asyncio.Event) -> Optional[int]:
        """Run a single cycle; returns the record count, or None if it failed."""
        reference_timestamp = self.clock()
        started = time.monotonic()
        self.status.last_reference_timestamp = reference_timestamp
        try:
            count = await self.cycle(reference_timestamp, stop_event)
        except Exception as e:
            duration_ms = (time.monotonic() - started) * 1000
            self.status.cycles_failed += 1
            self.status.last_error = f"{type(e).__name__}: {e}"
            self.status.last_duration_ms = round(duration_ms, 1)
            self.logger.error(
                f"Error in {self.name} collection cycle: {e}",
                exc_info=True,
                extra={"source": self.name, "duration_ms": round(duration_ms, 1)},
            )
            return None

        duration_ms = (time.monotonic() - started) * 1000
        self.status.cycles_completed += 1
        self.status.last_record_count = count
        self.status.last_duration_ms = round(duration_ms, 1)
        self.status.last_error = None
        self.logger.info(
            f"Saved {count} {self.name} records. "
            f"Next collection in {self.interval.total_seconds() / 60:g} minutes",
            extra={
                "source": self.name,
                "record_count": count,
                "duration_ms": round(duration_ms, 1),
                "next_run_seconds": self.interval.total_seconds(),
            },
        )
        return count

    async def _sleep(self, stop_event: asyncio.Event) -> bool:
        """Wait out the interval; True if woken early by the stop event."""
        try:
            await asyncio.wait_for(
                stop_event.wait(), timeout=self.interval.total_seconds()
            )
        except asyncio.TimeoutError:
            return False
        return True
