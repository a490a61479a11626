"""Metrics Worker: GitHub Repository Activity Collector.

Three independently callable operations (repository snapshots, commits,
pull requests), each walking the configured repositories one by one. A
repository, commit or pull request that fails is logged and skipped so the
others still report. A short pause between sub-fetches keeps the request
rate polite towards GitHub's rate limits.
"""

import asyncio
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

from metrics_worker.core.logging import get_logger
from metrics_worker.core.metric_registry import default_metadata
from metrics_worker.models.records import (
    CommitRecord,
    PullRequestRecord,
    RepoSummaryMetric,
)

COMMIT_WINDOW = timedelta(hours=24)
PULL_REQUEST_WINDOW = timedelta(days=7)
UNKNOWN = "unknown"

def _parse_datetime(value: Optional[str]) -> Optional[datetime]:
    """Parse GitHub's ISO-8601 timestamps ("2024-05-01T12:00:00Z")."""
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)

class GitHubCollector:
    """Collect repository snapshots, commits and pull requests."""

    def __init__(
        self,
        client,
        organization: str,
        repositories: List[str],
        repo_pause: float = 0.1,
        pr_pause: float = 0.05,
        logger=None,
    ):
        self.client = client
        self.organization = organization
        self.repositories = list(repositories)
        self.repo_pause = repo_pause
        self.pr_pause = pr_pause
        self.logger = logger or get_logger("collector.github")

    def _full_name(self, repo: str) -> str:
        return f"{self.organization}/{repo}"

    def _stopping(self, stop_event: Optional[asyncio.Event]) -> bool:
        if stop_event is not None and stop_event.is_set():
            self.logger.info("Shutdown requested, skipping remaining repositories")
            return True
        return False

    async def _pause(self, seconds: float) -> None:
        if seconds > 0:
            await asyncio.sleep(seconds)

    # ── Repository Snapshots ──

    async def collect_repository_snapshots(
        self,
        timestamp: Optional[datetime] = None,
        stop_event: Optional[asyncio.Event] = None,
    ) -> List[RepoSummaryMetric]:
        """Emit size, stars, forks and open issues for each repository."""
        timestamp = timestamp or datetime.now(timezone.utc)
        metrics: List[RepoSummaryMetric] = []
        self.logger.info("Collecting GitHub repository metrics")

        for repo in self.repositories:
            if self._stopping(stop_event):
                break
            try:
                data = await self.client.get_repository(self.organization, repo)
                metrics.extend(self._snapshot_metrics(repo, data, timestamp))
                self.logger.info(
                    f"Collected metrics for repository: {repo}",
                    extra={"repository": self._full_name(repo)},
                )
            except Exception as e:
                self.logger.error(
                    f"Error collecting metrics for repository {repo}: {e}",
                    exc_info=True,
                    extra={"repository": self._full_name(repo)},
                )
            await self._pause(self.repo_pause)

        return metrics

    def _snapshot_metrics(
        self, repo: str, data: Dict[str, Any], timestamp: datetime
    ) -> List[RepoSummaryMetric]:
        full_name = self._full_name(repo)
        is_private = bool(data.get("private", False))

        def metric(metric_type: str, count: Any, **extra: str) -> RepoSummaryMetric:
            metadata = default_metadata(metric_type)
            metadata.update(extra)
            return RepoSummaryMetric(
                timestamp=timestamp,
                repository=full_name,
                metric_type=metric_type,
                count=int(count or 0),
                metadata=metadata,
            )

        return [
            metric(
                "repository_size",
                data.get("size"),
                language=data.get("language") or UNKNOWN,
            ),
            metric(
                "stars",
                data.get("stargazers_count"),
                visibility="private" if is_private else "public",
            ),
            metric("forks", data.get("forks_count"), is_private=str(is_private)),
            metric("open_issues", data.get("open_issues_count")),
        ]

    # ── Commits ──

    async def collect_commits(
        self,
        window: timedelta = COMMIT_WINDOW,
        stop_event: Optional[asyncio.Event] = None,
    ) -> List[CommitRecord]:
        """List commits in the window, then fetch each one for its line stats."""
        since = datetime.now(timezone.utc) - window
        commits: List[CommitRecord] = []
        self.logger.info("Collecting GitHub commit metrics")

        for repo in self.repositories:
            if self._stopping(stop_event):
                break
            try:
                listed = await self.client.list_commits(self.organization, repo, since)
                repo_commits = []
                for item in listed:
                    record = await self._fetch_commit(repo, item)
                    if record is not None:
                        repo_commits.append(record)
                commits.extend(repo_commits)
                self.logger.info(
                    f"Buffered {len(repo_commits)} commits from {repo}",
                    extra={
                        "repository": self._full_name(repo),
                        "record_count": len(repo_commits),
                    },
                )
            except Exception as e:
                self.logger.error(
                    f"Error collecting commits for repository {repo}: {e}",
                    exc_info=True,
                    extra={"repository": self._full_name(repo)},
                )
            await self._pause(self.repo_pause)

        return commits

    async def _fetch_commit(
        self, repo: str, item: Dict[str, Any]
    ) -> Optional[CommitRecord]:
        """Fetch one commit's stats; a failure skips only that commit."""
        sha = item.get("sha")
        try:
            detail = await self.client.get_commit(self.organization, repo, sha)
            return self._commit_record(repo, item, detail)
        except Exception as e:
            self.logger.error(
                f"Error collecting commit {sha} in {repo}: {e}",
                exc_info=True,
                extra={"repository": self._full_name(repo)},
            )
            return None

    def _commit_record(
        self, repo: str, item: Dict[str, Any], detail: Dict[str, Any]
    ) -> CommitRecord:
        commit = item.get("commit") or {}
        author = commit.get("author") or {}
        stats = detail.get("stats") or {}
        return CommitRecord(
            repository=self._full_name(repo),
            sha=item["sha"],
            author=author.get("name") or UNKNOWN,
            commit_date=_parse_datetime(author.get("date"))
            or datetime.now(timezone.utc),
            lines_added=int(stats.get("additions") or 0),
            lines_deleted=int(stats.get("deletions") or 0),
            message=commit.get("message") or "",
        )

    # ── Pull Requests ──

    async def collect_pull_requests(
        self,
        window: timedelta = PULL_REQUEST_WINDOW,
        stop_event: Optional[asyncio.Event] = None,
    ) -> List[PullRequestRecord]:
        """Collect PRs updated in the window with review and comment counts."""
        cutoff = datetime.now(timezone.utc) - window
        pull_requests: List[PullRequestRecord] = []
        self.logger.info("Initiating PR sync sequence")

        for repo in self.repositories:
            if self._stopping(stop_event):
                break
            try:
                listed = await self.client.list_pull_requests(self.organization, repo)
                recent = [
                    pr
                    for pr in listed
                    if (_parse_datetime(pr.get("updated_at")) or cutoff) > cutoff
                ]
                collected = 0
                for pr in recent:
                    try:
                        pull_requests.append(await self._pull_request_record(repo, pr))
                        collected += 1
                    except Exception as e:
                        self.logger.error(
                            f"Error collecting PR #{pr.get('number')} in {repo}: {e}",
                            exc_info=True,
                            extra={"repository": self._full_name(repo)},
                        )
                    await self._pause(self.pr_pause)
                self.logger.info(
                    f"Collected {collected} pull requests from {repo}",
                    extra={
                        "repository": self._full_name(repo),
                        "record_count": collected,
                    },
                )
            except Exception as e:
                self.logger.error(
                    f"Error collecting PRs for repository {repo}: {e}",
                    exc_info=True,
                    extra={"repository": self._full_name(repo)},
                )
            await self._pause(self.repo_pause)

        self.logger.info("Pull request data harvest complete.")
        return pull_requests

    async def _pull_request_record(
        self, repo: str, pr: Dict[str, Any]
    ) -> PullRequestRecord:
        number = int(pr["number"])
        reviews = await self.client.list_reviews(self.organization, repo, number)
        issue_comments = await self.client.list_issue_comments(
            self.organization, repo, number
        )
        review_comments = await self.client.list_review_comments(
            self.organization, repo, number
        )
        user = pr.get("user") or {}
        return PullRequestRecord(
            repository=self._full_name(repo),
            number=number,
            state="open" if pr.get("state") == "open" else "closed",
            author=user.get("login") or UNKNOWN,
            created_at=_parse_datetime(pr.get("created_at"))
            or datetime.now(timezone.utc),
            merged_at=_parse_datetime(pr.get("merged_at")),
            closed_at=_parse_datetime(pr.get("closed_at")),
            comments_count=len(issue_comments) + len(review_comments),
            reviews_count=len(reviews),
        )
