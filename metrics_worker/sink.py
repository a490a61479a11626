"""Metrics Worker: Metric Sink.

The pipeline writes one record per call and never batches. Writes are
append-only; a replayed record becomes a second row.
"""

import asyncio
import threading
from abc import ABC, abstractmethod
from typing import Callable, Dict, Optional, Type

from sqlalchemy.engine import Engine
from sqlmodel import Session, SQLModel

from metrics_worker.core.errors import SinkInitializationError, SinkWriteError
from metrics_worker.core.logging import get_logger
from metrics_worker.database import build_engine, mask_url, test_connection
from metrics_worker.models.records import (
    CommitRecord,
    PullRequestRecord,
    Record,
    RepoSummaryMetric,
    TelemetrySample,
)
from metrics_worker.models.tables import (
    CommitMetricRow,
    GitHubMetricRow,
    PullRequestMetricRow,
    TelemetrySampleRow,
)


class MetricSink(ABC):
    """Abstract append-only destination for every record type."""

    @abstractmethod
    def initialize(self) -> None:
        """Establish connectivity. Idempotent; raises SinkInitializationError."""
        ...

    @abstractmethod
    async def save(self, record: Record) -> None:
        """Persist a single record durably; raises SinkWriteError on failure."""
        ...

    def close(self) -> None:
        """Release resources held by the sink."""


# ── Record → Row mapping ──


def _telemetry_row(sample: TelemetrySample) -> TelemetrySampleRow:
    return TelemetrySampleRow(
        record_id=sample.id,
        timestamp=sample.timestamp,
        metric_name=sample.metric_name,
        resource_id=sample.resource_id,
        value=sample.value,
        unit=sample.unit,
        dimensions=dict(sample.dimensions),
    )


def _github_metric_row(metric: RepoSummaryMetric) -> GitHubMetricRow:
    return GitHubMetricRow(
        record_id=metric.id,
        timestamp=metric.timestamp,
        repository=metric.repository,
        metric_type=metric.metric_type,
        count=metric.count,
        metadata_json=dict(metric.metadata),
    )


def _commit_row(commit: CommitRecord) -> CommitMetricRow:
    return CommitMetricRow(
        repository=commit.repository,
        commit_date=commit.commit_date,
        commit_sha=commit.sha,
        author=commit.author,
        lines_added=commit.lines_added,
        lines_deleted=commit.lines_deleted,
        message=commit.message,
    )


def _pull_request_row(pr: PullRequestRecord) -> PullRequestMetricRow:
    return PullRequestMetricRow(
        repository=pr.repository,
        pull_request_number=pr.number,
        state=pr.state,
        author=pr.author,
        created_at=pr.created_at,
        merged_at=pr.merged_at,
        closed_at=pr.closed_at,
        comments_count=pr.comments_count,
        reviews_count=pr.reviews_count,
    )


ROW_BUILDERS: Dict[Type, Callable[..., SQLModel]] = {
    TelemetrySample: _telemetry_row,
    RepoSummaryMetric: _github_metric_row,
    CommitRecord: _commit_row,
    PullRequestRecord: _pull_request_row,
}


class SQLModelSink(MetricSink):
    """Sink writing each record as one row through SQLModel.

    Both schedulers share one instance; a lock serializes the blocking
    writes, which run on a worker thread so the event loop stays free.
    """

    def __init__(
        self,
        db_url: Optional[str] = None,
        engine: Optional[Engine] = None,
        logger=None,
    ):
        if engine is None and not db_url:
            raise ValueError("SQLModelSink needs a database URL or an engine")
        self.db_url = db_url or str(engine.url)
        self._engine = engine
        self._lock = threading.Lock()
        self._initialized = False
        self.logger = logger or get_logger("sink")

    @property
    def engine(self) -> Engine:
        if self._engine is None:
            self._engine = build_engine(self.db_url)
        return self._engine

    def initialize(self) -> None:
        if self._initialized:
            return
        self.logger.info(f"🔌 Connecting sink to {mask_url(self.db_url)}")
        try:
            test_connection(self.engine)
            SQLModel.metadata.create_all(self.engine)
        except Exception as e:
            self.logger.error(f"❌ Sink initialization failed: {e}")
            raise SinkInitializationError(
                f"Could not initialize sink at {mask_url(self.db_url)}: {e}"
            ) from e
        self._initialized = True
        self.logger.info("✅ Sink ready")

    async def save(self, record: Record) -> None:
        builder = ROW_BUILDERS.get(type(record))
        if builder is None:
            raise SinkWriteError(
                f"Unsupported record type: {type(record).__name__}",
                record_type=type(record).__name__,
            )
        row = builder(record)
        await asyncio.to_thread(self._write, row, type(record).__name__)

    def _write(self, row: SQLModel, record_type: str) -> None:
        with self._lock:
            try:
                with Session(self.engine) as session:
                    session.add(row)
                    session.commit()
            except Exception as e:
                raise SinkWriteError(
                    f"Failed to persist {record_type}: {e}", record_type=record_type
                ) from e
        self.logger.debug(f"Saved {record_type}")

    def close(self) -> None:
        if self._engine is not None:
            self._engine.dispose()
