"""Metrics Worker: Scheduler Jobs.

The two per-source cycles and the runtime that runs their schedulers as
independent asyncio tasks. The schedulers share nothing but the sink.
"""

import asyncio
from datetime import datetime, timedelta
from typing import Iterable, List, Optional

from metrics_worker.analyzer.aggregator import (
    aggregate_commits,
    aggregate_pull_requests,
)
from metrics_worker.collectors.github_collector import GitHubCollector
from metrics_worker.collectors.telemetry_collector import TelemetryCollector
from metrics_worker.config import Settings
from metrics_worker.connectors.github.client import GitHubClient
from metrics_worker.connectors.telemetry.client import LogAnalyticsClient
from metrics_worker.core.logging import get_logger
from metrics_worker.models.records import Record
from metrics_worker.scheduler.cycle import CycleScheduler
from metrics_worker.sink import MetricSink

TELEMETRY_SOURCE = "telemetry"
GITHUB_SOURCE = "github"


async def persist(sink: MetricSink, records: Iterable[Record]) -> int:
    """Save records one at a time, in order. The first failure propagates."""
    saved = 0
    for record in records:
        await sink.save(record)
        saved += 1
    return saved


class TelemetryCycle:
    """Collect telemetry samples and persist them."""

    def __init__(self, collector: TelemetryCollector, sink: MetricSink):
        self.collector = collector
        self.sink = sink

    async def __call__(
        self, reference_timestamp: datetime, stop_event: asyncio.Event
    ) -> int:
        samples = await self.collector.collect(stop_event)
        return await persist(self.sink, samples)


class GitHubCycle:
    """Collect repository activity, aggregate it and persist raw + derived."""

    def __init__(
        self,
        collector: GitHubCollector,
        sink: MetricSink,
        commit_window: timedelta = timedelta(hours=24),
        pull_request_window: timedelta = timedelta(days=7),
    ):
        self.collector = collector
        self.sink = sink
        self.commit_window = commit_window
        self.pull_request_window = pull_request_window

    async def __call__(
        self, reference_timestamp: datetime, stop_event: asyncio.Event
    ) -> int:
        total = 0

        snapshots = await self.collector.collect_repository_snapshots(
            timestamp=reference_timestamp, stop_event=stop_event
        )
        total += await persist(self.sink, snapshots)

        commits = await self.collector.collect_commits(
            self.commit_window, stop_event=stop_event
        )
        total += await persist(self.sink, commits)
        total += await persist(
            self.sink, aggregate_commits(commits, reference_timestamp)
        )

        pull_requests = await self.collector.collect_pull_requests(
            self.pull_request_window, stop_event=stop_event
        )
        total += await persist(self.sink, pull_requests)
        total += await persist(
            self.sink, aggregate_pull_requests(pull_requests, reference_timestamp)
        )

        return total


class WorkerRuntime:
    """Owns the stop event and the scheduler tasks."""

    def __init__(self, schedulers: List[CycleScheduler], logger=None):
        self.schedulers = schedulers
        self.stop_event = asyncio.Event()
        self._tasks: List[asyncio.Task] = []
        self._closers: list = []
        self.logger = logger or get_logger("scheduler")

    def on_stop(self, closer) -> None:
        """Register an async callable to run after the schedulers have stopped."""
        self._closers.append(closer)

    @property
    def running(self) -> bool:
        return any(not t.done() for t in self._tasks)

    def start(self) -> None:
        if self.running:
            return
        self.stop_event.clear()
        self._tasks = [
            asyncio.create_task(s.run(self.stop_event), name=f"scheduler-{s.name}")
            for s in self.schedulers
        ]
        self.logger.info(f"Started {len(self._tasks)} schedulers")

    async def stop(self) -> None:
        """Signal shutdown, then join both loops and release clients."""
        self.stop_event.set()
        if self._tasks:
            results = await asyncio.gather(*self._tasks, return_exceptions=True)
            for task, result in zip(self._tasks, results):
                if isinstance(result, BaseException):
                    self.logger.error(
                        f"{task.get_name()} exited with {type(result).__name__}: {result}"
                    )
        self._tasks = []
        for closer in self._closers:
            await closer()
        self.logger.info("Schedulers stopped")


def build_runtime(
    settings: Settings, sink: MetricSink, logger=None
) -> WorkerRuntime:
    """Wire clients, collectors and both schedulers from resolved settings."""
    log_analytics = LogAnalyticsClient(
        tenant_id=settings.azure_tenant_id,
        client_id=settings.azure_client_id,
        client_secret=settings.azure_client_secret,
        workspace_id=settings.azure_workspace_id,
        authority_url=settings.azure_authority_url,
        base_url=settings.azure_logs_base_url,
        timeout=settings.http_timeout_seconds,
    )
    github = GitHubClient(
        token=settings.github_token,
        base_url=settings.github_base_url,
        timeout=settings.http_timeout_seconds,
        max_pages=settings.github_max_pages,
    )

    telemetry_scheduler = CycleScheduler(
        TELEMETRY_SOURCE,
        TelemetryCycle(
            TelemetryCollector(
                log_analytics,
                resource_id=settings.azure_workspace_id,
                lookback=timedelta(minutes=settings.telemetry_lookback_minutes),
            ),
            sink,
        ),
        interval=timedelta(minutes=settings.telemetry_interval_minutes),
    )
    github_scheduler = CycleScheduler(
        GITHUB_SOURCE,
        GitHubCycle(
            GitHubCollector(
                github,
                organization=settings.github_organization,
                repositories=settings.github_repositories,
                repo_pause=settings.github_repo_pause_ms / 1000,
                pr_pause=settings.github_pr_pause_ms / 1000,
            ),
            sink,
        ),
        interval=timedelta(minutes=settings.github_interval_minutes),
    )

    runtime = WorkerRuntime([telemetry_scheduler, github_scheduler], logger=logger)
    runtime.on_stop(log_analytics.close)
    runtime.on_stop(github.close)
    return runtime


def scheduler_by_name(
    runtime: WorkerRuntime, name: str
) -> Optional[CycleScheduler]:
    for scheduler in runtime.schedulers:
        if scheduler.name == name:
            return scheduler
    return None
