"""Metrics Worker: Unified Metric Registry.

Defines the canonical set of repository metric types and their labels.
Collectors and the aggregator look up period/unit metadata here so every
record of a given type carries the same labels.
"""

from typing import Dict


class MetricDefinition:
    """Describes a single repository metric type."""

    def __init__(self, name: str, period: str = "", unit: str = ""):
        self.name = name
        self.period = period
        self.unit = unit

    def metadata(self) -> Dict[str, str]:
        """Default metadata labels for records of this type."""
        labels: Dict[str, str] = {}
        if self.period:
            labels["period"] = self.period
        if self.unit:
            labels["unit"] = self.unit
        return labels

    def __repr__(self) -> str:
        return f"<Metric {self.name}>"


COMMIT_PERIOD = "24_hours"
PULL_REQUEST_PERIOD = "7_days"


# ─────────────────────────────────────────────
# SNAPSHOT METRICS: Read from repository metadata
# ─────────────────────────────────────────────

SNAPSHOT_METRICS: Dict[str, MetricDefinition] = {
    "repository_size": MetricDefinition("repository_size", unit="KB"),
    "stars": MetricDefinition("stars"),
    "forks": MetricDefinition("forks"),
    "open_issues": MetricDefinition("open_issues"),
}


# ─────────────────────────────────────────────
# DERIVED METRICS: Computed by the aggregator
# ─────────────────────────────────────────────

DERIVED_METRICS: Dict[str, MetricDefinition] = {
    "commits_24h": MetricDefinition("commits_24h", COMMIT_PERIOD),
    "lines_added_24h": MetricDefinition("lines_added_24h", COMMIT_PERIOD),
    "lines_deleted_24h": MetricDefinition("lines_deleted_24h", COMMIT_PERIOD),
    "active_contributors_24h": MetricDefinition(
        "active_contributors_24h", COMMIT_PERIOD
    ),
    "avg_commit_size_24h": MetricDefinition(
        "avg_commit_size_24h", COMMIT_PERIOD, unit="lines_changed"
    ),
    "open_pull_requests": MetricDefinition("open_pull_requests"),
    "merged_prs_7d": MetricDefinition("merged_prs_7d", PULL_REQUEST_PERIOD),
    "avg_time_to_merge_hours": MetricDefinition(
        "avg_time_to_merge_hours", PULL_REQUEST_PERIOD, unit="hours"
    ),
    "avg_pr_comments": MetricDefinition("avg_pr_comments", PULL_REQUEST_PERIOD),
    "avg_pr_reviews": MetricDefinition("avg_pr_reviews", PULL_REQUEST_PERIOD),
}


# ─────────────────────────────────────────────
# HELPERS
# ─────────────────────────────────────────────

ALL_METRICS = {**SNAPSHOT_METRICS, **DERIVED_METRICS}


def default_metadata(name: str) -> Dict[str, str]:
    """Return the registry labels for a metric type (empty if unknown)."""
    metric = ALL_METRICS.get(name)
    return metric.metadata() if metric else {}
