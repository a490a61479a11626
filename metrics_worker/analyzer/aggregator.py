"""Metrics Worker: Repository Activity Aggregator.

Pure transformations from one cycle's commits and pull requests into
per-repository RepoSummaryMetric records. Every metric is stamped with the
cycle's reference timestamp. Averages truncate toward zero to match the
integer `count` field.
"""

from collections import defaultdict
from datetime import datetime, timedelta, timezone
from typing import Dict, Iterable, List, Optional, TypeVar

from metrics_worker.core.metric_registry import default_metadata
from metrics_worker.models.records import (
    CommitRecord,
    PullRequestRecord,
    RepoSummaryMetric,
)

MERGE_WINDOW = timedelta(days=7)

T = TypeVar("T", CommitRecord, PullRequestRecord)


def _group_by_repository(records: Iterable[T]) -> Dict[str, List[T]]:
    """Group records by repository, preserving first-seen order."""
    groups: Dict[str, List[T]] = defaultdict(list)
    for record in records:
        groups[record.repository].append(record)
    return groups


def _metric(
    repository: str, metric_type: str, count: int, timestamp: datetime
) -> RepoSummaryMetric:
    return RepoSummaryMetric(
        timestamp=timestamp,
        repository=repository,
        metric_type=metric_type,
        count=count,
        metadata=default_metadata(metric_type),
    )


def _truncated_mean(values: List[float]) -> int:
    """Mean of values truncated toward zero; 0 for an empty list."""
    if not values:
        return 0
    return int(sum(values) / len(values))


def aggregate_commits(
    commits: Iterable[CommitRecord], reference_timestamp: datetime
) -> List[RepoSummaryMetric]:
    """Five metrics per repository that has at least one commit."""
    metrics: List[RepoSummaryMetric] = []

    for repository, repo_commits in _group_by_repository(commits).items():
        lines_added = sum(c.lines_added for c in repo_commits)
        lines_deleted = sum(c.lines_deleted for c in repo_commits)
        authors = {c.author for c in repo_commits}
        avg_size = _truncated_mean(
            [c.lines_added + c.lines_deleted for c in repo_commits]
        )

        metrics.extend(
            [
                _metric(repository, "commits_24h", len(repo_commits), reference_timestamp),
                _metric(repository, "lines_added_24h", lines_added, reference_timestamp),
                _metric(
                    repository, "lines_deleted_24h", lines_deleted, reference_timestamp
                ),
                _metric(
                    repository,
                    "active_contributors_24h",
                    len(authors),
                    reference_timestamp,
                ),
                _metric(
                    repository, "avg_commit_size_24h", avg_size, reference_timestamp
                ),
            ]
        )

    return metrics


def aggregate_pull_requests(
    pull_requests: Iterable[PullRequestRecord],
    reference_timestamp: datetime,
    now: Optional[datetime] = None,
) -> List[RepoSummaryMetric]:
    """Four metrics per repository, plus avg_time_to_merge_hours when any PR merged.

    The merge window is measured from `now` (wall clock at aggregation time by
    default), not from the reference timestamp.
    """
    now = now or datetime.now(timezone.utc)
    merged_after = now - MERGE_WINDOW
    metrics: List[RepoSummaryMetric] = []

    for repository, repo_prs in _group_by_repository(pull_requests).items():
        open_count = sum(1 for pr in repo_prs if pr.state == "open")
        recently_merged = [
            pr
            for pr in repo_prs
            if pr.merged_at is not None and pr.merged_at > merged_after
        ]

        metrics.append(
            _metric(repository, "open_pull_requests", open_count, reference_timestamp)
        )
        metrics.append(
            _metric(
                repository, "merged_prs_7d", len(recently_merged), reference_timestamp
            )
        )

        # Only emitted when there is something to average
        if recently_merged:
            hours = [
                (pr.merged_at - pr.created_at).total_seconds() / 3600
                for pr in recently_merged
            ]
            metrics.append(
                _metric(
                    repository,
                    "avg_time_to_merge_hours",
                    _truncated_mean(hours),
                    reference_timestamp,
                )
            )

        metrics.append(
            _metric(
                repository,
                "avg_pr_comments",
                _truncated_mean([pr.comments_count for pr in repo_prs]),
                reference_timestamp,
            )
        )
        metrics.append(
            _metric(
                repository,
                "avg_pr_reviews",
                _truncated_mean([pr.reviews_count for pr in repo_prs]),
                reference_timestamp,
            )
        )

    return metrics
