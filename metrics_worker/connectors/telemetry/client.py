"""Metrics Worker: Azure Log Analytics Client.

Handles client-credentials authentication and workspace queries. Failures
surface as TelemetryAPIError; retrying is left to the next scheduled cycle.
"""

import time
from datetime import timedelta
from typing import Any, Dict, Optional

import httpx

from metrics_worker.connectors.telemetry.cells import QueryTable
from metrics_worker.core.logging import get_logger

LOGS_SCOPE = "https://api.loganalytics.io/.default"
TOKEN_REFRESH_MARGIN = 120  # seconds


class TelemetryAPIError(Exception):
    """Raised when Log Analytics or the token endpoint returns an error."""

    def __init__(self, message: str, status_code: int = 0, error_code: str = ""):
        self.status_code = status_code
        self.error_code = error_code
        super().__init__(message)


def _iso_duration(window: timedelta) -> str:
    """Render a timedelta as an ISO-8601 duration (e.g. PT60M)."""
    minutes = max(1, int(window.total_seconds() // 60))
    return f"PT{minutes}M"


class LogAnalyticsClient:
    """Async HTTP client for the Log Analytics query API."""

    def __init__(
        self,
        tenant_id: str,
        client_id: str,
        client_secret: str,
        workspace_id: str,
        authority_url: str = "https://login.microsoftonline.com",
        base_url: str = "https://api.loganalytics.io",
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        logger=None,
    ):
        self.tenant_id = tenant_id
        self.client_id = client_id
        self.client_secret = client_secret
        self.workspace_id = workspace_id
        self.authority_url = authority_url.rstrip("/")
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None
        self._token: Optional[str] = None
        self._token_expires_at = 0.0
        self.logger = logger or get_logger("telemetry.client")

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                timeout=self.timeout, transport=self._transport
            )
        return self._client

    async def close(self) -> None:
        if self._client and not self._client.is_closed:
            await self._client.aclose()

    # ── Authentication ──

    async def _access_token(self) -> str:
        """Return a cached bearer token, refreshing shortly before expiry."""
        if self._token and time.monotonic() < self._token_expires_at:
            return self._token

        client = await self._get_client()
        url = f"{self.authority_url}/{self.tenant_id}/oauth2/v2.0/token"
        data = {
            "grant_type": "client_credentials",
            "client_id": self.client_id,
            "client_secret": self.client_secret,
            "scope": LOGS_SCOPE,
        }
        try:
            resp = await client.post(url, data=data)
            resp.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise TelemetryAPIError(
                f"Token request failed: {_error_message(e.response)}",
                e.response.status_code,
            ) from e
        except httpx.RequestError as e:
            raise TelemetryAPIError(f"Token request failed: {e}") from e

        body = resp.json()
        token = body.get("access_token")
        if not token:
            raise TelemetryAPIError("Token response did not contain access_token")
        expires_in = int(body.get("expires_in", 3600))
        self._token = token
        self._token_expires_at = time.monotonic() + max(
            0, expires_in - TOKEN_REFRESH_MARGIN
        )
        self.logger.info("Acquired Log Analytics access token")
        return token

    # ── Query ──

    async def query_workspace(self, query: str, timespan: timedelta) -> QueryTable:
        """Run a KQL query against the configured workspace."""
        token = await self._access_token()
        client = await self._get_client()
        url = f"{self.base_url}/v1/workspaces/{self.workspace_id}/query"
        payload = {"query": query, "timespan": _iso_duration(timespan)}
        try:
            resp = await client.post(
                url, json=payload, headers={"Authorization": f"Bearer {token}"}
            )
            resp.raise_for_status()
        except httpx.HTTPStatusError as e:
            body = _json_or_empty(e.response)
            error = body.get("error")
            if not isinstance(error, dict):
                error = {}
            raise TelemetryAPIError(
                error.get("message", str(e)),
                e.response.status_code,
                error.get("code", ""),
            ) from e
        except httpx.RequestError as e:
            raise TelemetryAPIError(f"Query request failed: {e}") from e

        table = QueryTable.from_response(resp.json())
        self.logger.debug(f"Query returned {len(table)} rows")
        return table


def _json_or_empty(response: httpx.Response) -> Dict[str, Any]:
    if response.headers.get("content-type", "").startswith("application/json"):
        try:
            return response.json()
        except ValueError:
            return {}
    return {}


def _error_message(response: httpx.Response) -> str:
    body = _json_or_empty(response)
    return body.get("error_description") or body.get("error") or response.text
