"""Metrics Worker: Telemetry Collector.

Runs one Log Analytics query per telemetry category and maps each result row
into TelemetrySample records. Categories fail independently: the returned
list is the union of whatever categories succeeded.

Missing or malformed cells are defaulted instead of dropping the row
(numbers → 0, text → "unknown", timestamps → now).
"""

import asyncio
from datetime import datetime, timedelta, timezone
from typing import Callable, List, Optional, Tuple

from metrics_worker.connectors.telemetry import queries
from metrics_worker.connectors.telemetry.cells import QueryTable, TableRow
from metrics_worker.core.logging import get_logger
from metrics_worker.models.records import TelemetrySample

UNKNOWN = "unknown"

# (metric name, column, coercion, unit)
REQUEST_COLUMNS = (
    ("RequestDuration_Avg", "avg_duration", "number", "milliseconds"),
    ("RequestDuration_P95", "p95_duration", "number", "milliseconds"),
    ("RequestDuration_P99", "p99_duration", "number", "milliseconds"),
    ("RequestCount", "request_count", "count", "count"),
    ("RequestFailureCount", "failure_count", "count", "count"),
)

DEPENDENCY_COLUMNS = (
    ("DependencyDuration_Avg", "avg_duration", "number", "milliseconds"),
    ("DependencyCallCount", "call_count", "count", "count"),
    ("DependencyFailureCount", "failure_count", "count", "count"),
)


def _text(row: TableRow, column: str) -> str:
    value = row.get_str(column)
    return value if value else UNKNOWN


def _number(row: TableRow, column: str) -> float:
    value = row.get_float(column)
    return value if value is not None else 0.0


def _count(row: TableRow, column: str) -> float:
    value = row.get_int(column)
    return float(value) if value is not None else 0.0


def _timestamp(row: TableRow, now: datetime) -> datetime:
    return row.get_datetime("TimeGenerated") or now


class TelemetryCollector:
    """Collect request, dependency, exception and custom metrics."""

    def __init__(
        self,
        client,
        resource_id: str,
        lookback: timedelta = timedelta(hours=1),
        logger=None,
    ):
        self.client = client
        self.resource_id = resource_id
        self.lookback = lookback
        self.logger = logger or get_logger("collector.telemetry")

    @property
    def categories(
        self,
    ) -> List[Tuple[str, str, Callable[[TableRow, datetime], List[TelemetrySample]]]]:
        return [
            ("requests", queries.REQUESTS_QUERY, self._request_samples),
            ("dependencies", queries.DEPENDENCIES_QUERY, self._dependency_samples),
            ("exceptions", queries.EXCEPTIONS_QUERY, self._exception_samples),
            ("custom", queries.CUSTOM_METRICS_QUERY, self._custom_samples),
        ]

    async def collect(
        self, stop_event: Optional[asyncio.Event] = None
    ) -> List[TelemetrySample]:
        """Run every category query; a failing category is logged and skipped."""
        self.logger.info("Starting telemetry collection")
        samples: List[TelemetrySample] = []
        for category, query, mapper in self.categories:
            if stop_event is not None and stop_event.is_set():
                self.logger.info(
                    f"Shutdown requested, skipping remaining categories from {category}"
                )
                break
            samples.extend(await self._collect_category(category, query, mapper))

        self.logger.info(
            f"Collected {len(samples)} telemetry samples",
            extra={"source": "telemetry", "record_count": len(samples)},
        )
        return samples

    async def _collect_category(
        self,
        category: str,
        query: str,
        mapper: Callable[[TableRow, datetime], List[TelemetrySample]],
    ) -> List[TelemetrySample]:
        samples: List[TelemetrySample] = []
        try:
            lookback_minutes = int(self.lookback.total_seconds() // 60)
            table: QueryTable = await self.client.query_workspace(
                queries.render(query, lookback_minutes), self.lookback
            )
            now = datetime.now(timezone.utc)
            for row in table:
                samples.extend(mapper(row, now))
            self.logger.info(
                f"Extracted {len(samples)} {category} samples from workspace logs",
                extra={"category": category, "record_count": len(samples)},
            )
        except Exception as e:
            self.logger.error(
                f"Error collecting {category} metrics: {e}",
                exc_info=True,
                extra={"category": category},
            )
            return []
        return samples

    # ── Row mappers ──

    def _sample(
        self,
        timestamp: datetime,
        metric_name: str,
        value: float,
        unit: str,
        dimensions: dict,
    ) -> TelemetrySample:
        return TelemetrySample(
            timestamp=timestamp,
            metric_name=metric_name,
            resource_id=self.resource_id,
            value=value,
            unit=unit,
            dimensions=dimensions,
        )

    def _samples_from_columns(
        self, row: TableRow, now: datetime, columns: tuple, dimensions: dict
    ) -> List[TelemetrySample]:
        ts = _timestamp(row, now)
        samples = []
        for metric_name, column, coercion, unit in columns:
            value = _number(row, column) if coercion == "number" else _count(row, column)
            samples.append(self._sample(ts, metric_name, value, unit, dict(dimensions)))
        return samples

    def _request_samples(self, row: TableRow, now: datetime) -> List[TelemetrySample]:
        dims = {"operation": _text(row, "Name"), "resultCode": _text(row, "ResultCode")}
        return self._samples_from_columns(row, now, REQUEST_COLUMNS, dims)

    def _dependency_samples(
        self, row: TableRow, now: datetime
    ) -> List[TelemetrySample]:
        dims = {
            "dependency": _text(row, "Name"),
            "type": _text(row, "Type"),
            "target": _text(row, "Target"),
        }
        return self._samples_from_columns(row, now, DEPENDENCY_COLUMNS, dims)

    def _exception_samples(
        self, row: TableRow, now: datetime
    ) -> List[TelemetrySample]:
        return [
            self._sample(
                _timestamp(row, now),
                "ExceptionCount",
                _count(row, "exception_count"),
                "count",
                {"type": _text(row, "ExceptionType")},
            )
        ]

    def _custom_samples(self, row: TableRow, now: datetime) -> List[TelemetrySample]:
        return [
            self._sample(
                _timestamp(row, now),
                f"Custom_{_text(row, 'Name')}",
                _number(row, "avg_value"),
                "custom",
                {},
            )
        ]
