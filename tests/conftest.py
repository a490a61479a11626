"""Shared fakes for the collector, scheduler and app tests."""

from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

import pytest

from metrics_worker.connectors.telemetry.cells import QueryTable
from metrics_worker.core.errors import SinkWriteError
from metrics_worker.sink import MetricSink

REFERENCE = datetime(2024, 7, 8, 12, 0, tzinfo=timezone.utc)


class FakeSink(MetricSink):
    """In-memory sink recording every save call in order."""

    def __init__(self, fail_when: Optional[Callable[[Any], bool]] = None):
        self.saved: List[Any] = []
        self.initialized = 0
        self.closed = False
        self.fail_when = fail_when

    def initialize(self) -> None:
        self.initialized += 1

    async def save(self, record) -> None:
        if self.fail_when is not None and self.fail_when(record):
            raise SinkWriteError("write rejected", record_type=type(record).__name__)
        self.saved.append(record)

    def close(self) -> None:
        self.closed = True


class FakeGitHubClient:
    """Canned GitHub responses keyed by repository name."""

    def __init__(
        self,
        repositories: Optional[Dict[str, Dict[str, Any]]] = None,
        commits: Optional[Dict[str, List[Dict[str, Any]]]] = None,
        commit_stats: Optional[Dict[str, Dict[str, int]]] = None,
        pull_requests: Optional[Dict[str, List[Dict[str, Any]]]] = None,
        reviews: Optional[Dict[int, int]] = None,
        issue_comments: Optional[Dict[int, int]] = None,
        review_comments: Optional[Dict[int, int]] = None,
        failing: Optional[set] = None,
        failing_shas: Optional[set] = None,
        failing_pull_requests: Optional[set] = None,
    ):
        self.repositories = repositories or {}
        self.commits = commits or {}
        self.commit_stats = commit_stats or {}
        self.pull_requests = pull_requests or {}
        self.reviews = reviews or {}
        self.issue_comments = issue_comments or {}
        self.review_comments = review_comments or {}
        self.failing = failing or set()
        self.failing_shas = failing_shas or set()
        self.failing_pull_requests = failing_pull_requests or set()
        self.calls: List[tuple] = []

    def _check(self, repo: str) -> None:
        if repo in self.failing:
            raise RuntimeError(f"upstream error for {repo}")

    async def get_repository(self, owner, repo):
        self.calls.append(("get_repository", repo))
        self._check(repo)
        return self.repositories[repo]

    async def list_commits(self, owner, repo, since):
        self.calls.append(("list_commits", repo))
        self._check(repo)
        return self.commits.get(repo, [])

    async def get_commit(self, owner, repo, sha):
        self.calls.append(("get_commit", sha))
        if sha in self.failing_shas:
            raise RuntimeError(f"detail 502 for {sha}")
        return {"sha": sha, "stats": self.commit_stats.get(sha, {})}

    async def list_pull_requests(self, owner, repo):
        self.calls.append(("list_pull_requests", repo))
        self._check(repo)
        return self.pull_requests.get(repo, [])

    async def list_reviews(self, owner, repo, number):
        self.calls.append(("list_reviews", number))
        if number in self.failing_pull_requests:
            raise RuntimeError(f"reviews 502 for #{number}")
        return [{}] * self.reviews.get(number, 0)

    async def list_issue_comments(self, owner, repo, number):
        self.calls.append(("list_issue_comments", number))
        return [{}] * self.issue_comments.get(number, 0)

    async def list_review_comments(self, owner, repo, number):
        self.calls.append(("list_review_comments", number))
        return [{}] * self.review_comments.get(number, 0)


class FakeLogAnalyticsClient:
    """Returns a canned table per query table name, or raises for failing ones."""

    def __init__(
        self,
        tables: Optional[Dict[str, QueryTable]] = None,
        failing: Optional[set] = None,
    ):
        self.tables = tables or {}
        self.failing = failing or set()
        self.queries: List[str] = []

    async def query_workspace(self, query, timespan):
        source = query.strip().splitlines()[0].strip()
        self.queries.append(source)
        if source in self.failing:
            raise RuntimeError(f"{source} query failed")
        return self.tables.get(source, QueryTable([], []))


@pytest.fixture
def fake_sink() -> FakeSink:
    return FakeSink()
