"""Metrics Worker: Record Types (Immutable).

Value records produced by the collectors and the aggregator. They are never
mutated after construction; the sink maps them onto storage tables.
"""

import uuid
from datetime import datetime, timezone
from typing import Annotated, Dict, Literal, Optional, Union

from pydantic import AfterValidator, BaseModel, ConfigDict, Field, field_validator

MAX_COMMIT_MESSAGE_LENGTH = 500


def _as_utc(value: datetime) -> datetime:
    """Naive datetimes are taken to be UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


UTCDateTime = Annotated[datetime, AfterValidator(_as_utc)]


class TelemetrySample(BaseModel):
    """One aggregated telemetry row turned into a named numeric sample."""

    model_config = ConfigDict(frozen=True)

    id: uuid.UUID = Field(default_factory=uuid.uuid4)
    timestamp: UTCDateTime
    metric_name: str
    resource_id: str
    value: float = 0.0
    unit: str = ""
    dimensions: Dict[str, str] = Field(default_factory=dict)


class RepoSummaryMetric(BaseModel):
    """A raw or derived numeric fact about a repository at one point in time.

    (metric_type, repository, timestamp) identifies the logical fact but is
    not unique: replays produce additional rows.
    """

    model_config = ConfigDict(frozen=True)

    id: uuid.UUID = Field(default_factory=uuid.uuid4)
    timestamp: UTCDateTime
    repository: str
    metric_type: str
    count: int = 0
    metadata: Dict[str, str] = Field(default_factory=dict)


class CommitRecord(BaseModel):
    """A commit seen in the current cycle's lookback window."""

    model_config = ConfigDict(frozen=True)

    repository: str
    sha: str
    author: str = "unknown"
    commit_date: UTCDateTime
    lines_added: int = 0
    lines_deleted: int = 0
    message: str = ""

    @field_validator("message")
    @classmethod
    def _truncate_message(cls, value: str) -> str:
        return value[:MAX_COMMIT_MESSAGE_LENGTH]


class PullRequestRecord(BaseModel):
    """A pull request updated within the current cycle's lookback window."""

    model_config = ConfigDict(frozen=True)

    repository: str
    number: int
    state: Literal["open", "closed"]
    author: str = "unknown"
    created_at: UTCDateTime
    merged_at: Optional[UTCDateTime] = None
    closed_at: Optional[UTCDateTime] = None
    comments_count: int = 0
    reviews_count: int = 0


Record = Union[TelemetrySample, RepoSummaryMetric, CommitRecord, PullRequestRecord]
