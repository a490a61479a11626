"""Unit tests for the commit and pull request aggregators."""

from datetime import datetime, timedelta, timezone

import pytest

from metrics_worker.analyzer.aggregator import (
    aggregate_commits,
    aggregate_pull_requests,
)
from metrics_worker.models.records import CommitRecord, PullRequestRecord

REFERENCE = datetime(2024, 7, 8, 12, 0, tzinfo=timezone.utc)
NOW = datetime(2024, 7, 8, 12, 30, tzinfo=timezone.utc)


def _commit(repo="acme/widget", added=0, deleted=0, author="alice", sha="abc"):
    return CommitRecord(
        repository=repo,
        sha=sha,
        author=author,
        commit_date=REFERENCE - timedelta(hours=1),
        lines_added=added,
        lines_deleted=deleted,
    )


def _pr(
    repo="acme/widget",
    number=1,
    state="closed",
    created_at=None,
    merged_at=None,
    comments=0,
    reviews=0,
):
    return PullRequestRecord(
        repository=repo,
        number=number,
        state=state,
        created_at=created_at or NOW - timedelta(days=2),
        merged_at=merged_at,
        comments_count=comments,
        reviews_count=reviews,
    )


def _by_type(metrics, repository="acme/widget"):
    return {m.metric_type: m for m in metrics if m.repository == repository}


class TestAggregateCommits:
    """Tests for aggregate_commits."""

    def test_five_metrics_per_repository_with_commits(self) -> None:
        commits = [
            _commit(repo="acme/a", sha="1"),
            _commit(repo="acme/a", sha="2"),
            _commit(repo="acme/b", sha="3"),
            _commit(repo="acme/c", sha="4"),
        ]

        metrics = aggregate_commits(commits, REFERENCE)

        assert len(metrics) == 5 * 3
        assert {m.repository for m in metrics} == {"acme/a", "acme/b", "acme/c"}

    def test_absent_repository_emits_nothing(self) -> None:
        metrics = aggregate_commits([_commit(repo="acme/a")], REFERENCE)

        assert not [m for m in metrics if m.repository == "acme/b"]

    def test_empty_input_emits_nothing(self) -> None:
        assert aggregate_commits([], REFERENCE) == []

    def test_line_totals_and_average(self) -> None:
        commits = [
            _commit(added=10, deleted=2, sha="1"),
            _commit(added=0, deleted=8, sha="2"),
        ]

        metrics = _by_type(aggregate_commits(commits, REFERENCE))

        assert metrics["commits_24h"].count == 2
        assert metrics["lines_added_24h"].count == 10
        assert metrics["lines_deleted_24h"].count == 10
        assert metrics["avg_commit_size_24h"].count == 10

    def test_average_truncates_toward_zero(self) -> None:
        commits = [_commit(added=3, sha="1"), _commit(added=4, sha="2")]

        metrics = _by_type(aggregate_commits(commits, REFERENCE))

        assert metrics["avg_commit_size_24h"].count == 3

    def test_distinct_authors(self) -> None:
        commits = [
            _commit(author="alice", sha="1"),
            _commit(author="bob", sha="2"),
            _commit(author="alice", sha="3"),
        ]

        metrics = _by_type(aggregate_commits(commits, REFERENCE))

        assert metrics["active_contributors_24h"].count == 2

    def test_metrics_carry_reference_timestamp_and_period(self) -> None:
        metrics = aggregate_commits([_commit()], REFERENCE)

        assert all(m.timestamp == REFERENCE for m in metrics)
        assert all(m.metadata["period"] == "24_hours" for m in metrics)
        assert _by_type(metrics)["avg_commit_size_24h"].metadata["unit"] == (
            "lines_changed"
        )


class TestAggregatePullRequests:
    """Tests for aggregate_pull_requests."""

    def test_four_metrics_without_recent_merges(self) -> None:
        prs = [_pr(number=1, state="open"), _pr(number=2, state="closed")]

        metrics = aggregate_pull_requests(prs, REFERENCE, now=NOW)

        assert sorted(m.metric_type for m in metrics) == [
            "avg_pr_comments",
            "avg_pr_reviews",
            "merged_prs_7d",
            "open_pull_requests",
        ]

    def test_fifth_metric_when_a_pr_merged_recently(self) -> None:
        prs = [_pr(merged_at=NOW - timedelta(days=1))]

        metrics = _by_type(aggregate_pull_requests(prs, REFERENCE, now=NOW))

        assert len(metrics) == 5
        assert "avg_time_to_merge_hours" in metrics

    def test_zero_counts_are_still_emitted(self) -> None:
        prs = [_pr(state="closed", merged_at=None)]

        metrics = _by_type(aggregate_pull_requests(prs, REFERENCE, now=NOW))

        assert metrics["open_pull_requests"].count == 0
        assert metrics["merged_prs_7d"].count == 0

    def test_merge_older_than_seven_days_is_excluded(self) -> None:
        prs = [
            _pr(
                number=1,
                created_at=NOW - timedelta(days=10),
                merged_at=NOW - timedelta(days=8),
            ),
            _pr(number=2, merged_at=NOW - timedelta(days=1)),
        ]

        metrics = _by_type(aggregate_pull_requests(prs, REFERENCE, now=NOW))

        assert metrics["merged_prs_7d"].count == 1

    def test_merge_window_is_measured_from_now_not_reference(self) -> None:
        old_reference = NOW - timedelta(days=30)
        prs = [_pr(merged_at=NOW - timedelta(days=1))]

        metrics = _by_type(aggregate_pull_requests(prs, old_reference, now=NOW))

        assert metrics["merged_prs_7d"].count == 1
        assert metrics["merged_prs_7d"].timestamp == old_reference

    def test_time_to_merge_truncates_hours(self) -> None:
        created = NOW - timedelta(days=1)
        prs = [
            _pr(number=1, created_at=created, merged_at=created + timedelta(hours=10, minutes=54)),
            _pr(number=2, created_at=created, merged_at=created + timedelta(hours=1)),
        ]

        metrics = _by_type(aggregate_pull_requests(prs, REFERENCE, now=NOW))

        # (10.9 + 1.0) / 2 = 5.95
        assert metrics["avg_time_to_merge_hours"].count == 5
        assert metrics["avg_time_to_merge_hours"].metadata["unit"] == "hours"

    def test_open_count_and_activity_averages(self) -> None:
        prs = [
            _pr(number=1, state="open", comments=1, reviews=3),
            _pr(number=2, state="open", comments=2, reviews=0),
            _pr(number=3, state="closed", comments=0, reviews=0),
        ]

        metrics = _by_type(aggregate_pull_requests(prs, REFERENCE, now=NOW))

        assert metrics["open_pull_requests"].count == 2
        assert metrics["avg_pr_comments"].count == 1
        assert metrics["avg_pr_reviews"].count == 1

    @pytest.mark.parametrize("repos", [["acme/a"], ["acme/a", "acme/b", "acme/c"]])
    def test_metrics_grouped_per_repository(self, repos) -> None:
        prs = [_pr(repo=repo, number=i) for i, repo in enumerate(repos)]

        metrics = aggregate_pull_requests(prs, REFERENCE, now=NOW)

        assert len(metrics) == 4 * len(repos)
        assert all(m.timestamp == REFERENCE for m in metrics)

    def test_empty_input_emits_nothing(self) -> None:
        assert aggregate_pull_requests([], REFERENCE, now=NOW) == []
