"""Metrics Worker: Central Configuration via Pydantic Settings."""

import json
from typing import Annotated, List, Union

from pydantic import field_validator
from pydantic_settings import BaseSettings, NoDecode


class Settings(BaseSettings):
    """Application settings loaded from environment variables / .env file."""

    # ── Azure Log Analytics (telemetry source) ──
    azure_tenant_id: str = ""
    azure_client_id: str = ""
    azure_client_secret: str = ""
    azure_workspace_id: str = ""
    azure_authority_url: str = "https://login.microsoftonline.com"
    azure_logs_base_url: str = "https://api.loganalytics.io"
    telemetry_interval_minutes: int = 15
    telemetry_lookback_minutes: int = 60

    # ── GitHub (repository activity source) ──
    github_token: str = ""
    github_organization: str = ""
    github_repositories: Annotated[List[str], NoDecode] = []
    github_base_url: str = "https://api.github.com"
    github_interval_minutes: int = 30
    github_repo_pause_ms: int = 100
    github_pr_pause_ms: int = 50
    github_max_pages: int = 10

    # ── Database ──
    database_url: str = ""

    # ── App ──
    log_level: str = "INFO"
    scheduler_enabled: bool = True
    http_timeout_seconds: float = 30.0

    @field_validator("github_repositories", mode="before")
    @classmethod
    def _split_repositories(cls, value: Union[str, List[str], None]) -> List[str]:
        """Accept a JSON list or a comma-separated string."""
        if value is None:
            return []
        if isinstance(value, str):
            text = value.strip()
            if text.startswith("["):
                return [str(v).strip() for v in json.loads(text) if str(v).strip()]
            return [part.strip() for part in text.split(",") if part.strip()]
        return [str(v).strip() for v in value if str(v).strip()]

    @property
    def effective_database_url(self) -> str:
        """Return the configured database URL, otherwise fall back to SQLite."""
        if self.database_url:
            return self.database_url
        return "sqlite:///./metrics_worker.db"

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}


settings = Settings()
