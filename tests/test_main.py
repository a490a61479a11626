"""Tests for the FastAPI app lifecycle and status endpoints."""

import asyncio
from datetime import timedelta

import pytest
from fastapi.testclient import TestClient

from metrics_worker.config import Settings
from metrics_worker.core.errors import SinkInitializationError
from metrics_worker.main import create_app
from metrics_worker.scheduler.cycle import CycleScheduler
from metrics_worker.scheduler.jobs import WorkerRuntime

from conftest import FakeSink


async def _idle_cycle(reference, stop_event: asyncio.Event) -> int:
    return 0


def _runtime() -> WorkerRuntime:
    return WorkerRuntime(
        [
            CycleScheduler("telemetry", _idle_cycle, timedelta(hours=1)),
            CycleScheduler("github", _idle_cycle, timedelta(hours=1)),
        ]
    )


class BrokenSink(FakeSink):
    def initialize(self) -> None:
        raise SinkInitializationError("database unreachable")


class TestApp:
    """Lifespan wiring and the system endpoints."""

    def test_health_with_scheduler_disabled(self) -> None:
        sink = FakeSink()
        app = create_app(
            Settings(_env_file=None, scheduler_enabled=False), sink, _runtime()
        )

        with TestClient(app) as client:
            body = client.get("/health").json()

        assert body["status"] == "healthy"
        assert body["schedulers_running"] is False
        assert sink.initialized == 1
        assert sink.closed is True

    def test_status_lists_both_schedulers(self) -> None:
        app = create_app(Settings(_env_file=None), FakeSink(), _runtime())

        with TestClient(app) as client:
            assert client.get("/health").json()["schedulers_running"] is True
            statuses = client.get("/status").json()
            github = client.get("/status/github").json()
            missing = client.get("/status/unknown")

        assert [s["name"] for s in statuses] == ["telemetry", "github"]
        assert github["interval_seconds"] == 3600
        assert missing.status_code == 404

    def test_sink_initialization_failure_aborts_startup(self) -> None:
        app = create_app(Settings(_env_file=None), BrokenSink(), _runtime())

        with pytest.raises(SinkInitializationError):
            with TestClient(app):
                pass
