"""Metrics Worker: Storage Tables (Append-Only).

Every table uses a surrogate autoincrement key. Record ids and logical keys
(metric_type, repository, timestamp) are stored but deliberately not unique,
so a replayed write lands as a second row.
"""

import uuid
from datetime import datetime, timezone
from typing import Dict, Optional

from sqlalchemy import JSON, Column
from sqlmodel import Field, SQLModel


class TelemetrySampleRow(SQLModel, table=True):
    """Persisted telemetry sample."""

    __tablename__ = "telemetry_samples"

    row_id: Optional[int] = Field(default=None, primary_key=True)
    record_id: uuid.UUID = Field(index=True)
    timestamp: datetime = Field(index=True)
    metric_name: str = Field(index=True)
    resource_id: str = Field(default="")
    value: float = Field(default=0.0)
    unit: str = Field(default="")
    dimensions: Dict[str, str] = Field(default_factory=dict, sa_column=Column(JSON))
    persisted_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class GitHubMetricRow(SQLModel, table=True):
    """Persisted repository summary metric (snapshot or derived)."""

    __tablename__ = "github_metrics"

    row_id: Optional[int] = Field(default=None, primary_key=True)
    record_id: uuid.UUID = Field(index=True)
    timestamp: datetime = Field(index=True)
    repository: str = Field(index=True)
    metric_type: str = Field(index=True)
    count: int = Field(default=0)
    metadata_json: Dict[str, str] = Field(default_factory=dict, sa_column=Column(JSON))
    persisted_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class CommitMetricRow(SQLModel, table=True):
    """Persisted raw commit."""

    __tablename__ = "commit_metrics"

    row_id: Optional[int] = Field(default=None, primary_key=True)
    repository: str = Field(index=True)
    commit_date: datetime = Field(index=True)
    commit_sha: str = Field(index=True)
    author: str = Field(default="")
    lines_added: int = Field(default=0)
    lines_deleted: int = Field(default=0)
    message: str = Field(default="")
    persisted_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class PullRequestMetricRow(SQLModel, table=True):
    """Persisted raw pull request."""

    __tablename__ = "pull_request_metrics"

    row_id: Optional[int] = Field(default=None, primary_key=True)
    repository: str = Field(index=True)
    pull_request_number: int = Field(index=True)
    state: str = Field(default="")
    author: str = Field(default="")
    created_at: datetime
    merged_at: Optional[datetime] = None
    closed_at: Optional[datetime] = None
    comments_count: int = Field(default=0)
    reviews_count: int = Field(default=0)
    persisted_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
