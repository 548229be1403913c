"""Authenticated request pipeline for the Qualtrics v3 REST API.

Every outbound call goes through ``QualtricsClient.request``: rate limiter
admission, auth header injection, a hard deadline and uniform error
translation. This layer never retries; callers such as the export poller own
their retry and fallback policy.
"""

import asyncio
import json
import time
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, Dict, Optional
from urllib.parse import urlencode

import httpx

from qualtrics_mcp.app.core.config import Settings
from qualtrics_mcp.app.core.logging import get_logger
from qualtrics_mcp.app.exceptions import (
    QualtricsAPIError,
    QualtricsRequestError,
    QualtricsResponseError,
    RequestTimeoutError,
)
from qualtrics_mcp.app.services.rate_limiter import RateLimiter

logger = get_logger(__name__)


class QualtricsClient:
    """Rate limited, deadline bounded client bound to one API token.

    If http_client is provided it is used for all requests (connection
    reuse). If not, a client is created per request and closed afterwards.
    """

    def __init__(
        self,
        api_token: str,
        base_url: str,
        rate_limiter: RateLimiter,
        http_client: Optional[httpx.AsyncClient] = None,
        timeout: float = 30.0,
    ):
        """Initialize the pipeline.

        Args:
            api_token: Qualtrics API token sent as X-API-TOKEN
            base_url: API base URL, e.g. https://iad1.qualtrics.com/API/v3
            rate_limiter: Limiter every request must pass first
            http_client: Optional shared HTTP client for connection pooling
            timeout: Hard deadline per request in seconds
        """
        self.base_url = base_url.rstrip("/")
        self.api_token = api_token
        self.rate_limiter = rate_limiter
        self.timeout = timeout
        self._http_client = http_client
        self.headers = self._build_headers()

    @classmethod
    def from_settings(
        cls, settings: Settings, http_client: Optional[httpx.AsyncClient] = None
    ) -> "QualtricsClient":
        """Build a client and its limiter from server settings."""
        limiter = RateLimiter(
            enabled=settings.rate_limiting_enabled,
            max_per_window=settings.rate_limit_rpm,
        )
        return cls(
            api_token=settings.qualtrics_api_token,
            base_url=settings.base_url,
            rate_limiter=limiter,
            http_client=http_client,
            timeout=settings.request_timeout,
        )

    def attach_http_client(self, http_client: Optional[httpx.AsyncClient]) -> None:
        """Switch to a shared pooled client, or back to per-request clients with None."""
        self._http_client = http_client

    def _build_headers(self) -> Dict[str, str]:
        return {
            "X-API-TOKEN": self.api_token,
            "Content-Type": "application/json",
        }

    @asynccontextmanager
    async def _client_context(self) -> AsyncGenerator[httpx.AsyncClient, None]:
        if self._http_client is not None:
            yield self._http_client
            return
        client = httpx.AsyncClient()
        try:
            yield client
        finally:
            await client.aclose()

    def _get_endpoint_url(self, path: str) -> str:
        return f"{self.base_url}{path}"

    async def request(
        self,
        path: str,
        method: str = "GET",
        body: Any = None,
        headers: Optional[Dict[str, str]] = None,
        raw: bool = False,
    ) -> Any:
        """Perform one authenticated API call.

        Args:
            path: Path relative to the base URL, e.g. "/surveys"
            method: HTTP method
            body: JSON-serializable request body
            headers: Extra headers merged over the defaults
            raw: Return the response text instead of decoded JSON

        Returns:
            Decoded JSON value, or the body text when raw is True

        Raises:
            QualtricsAPIError: Non-2xx status
            RequestTimeoutError: Deadline exceeded
            QualtricsRequestError: Transport failure
            QualtricsResponseError: 2xx response with an undecodable body
        """
        await self.rate_limiter.acquire()

        url = self._get_endpoint_url(path)
        request_headers = {**self.headers, **(headers or {})}
        content = json.dumps(body) if body is not None else None
        log_extra = {"method": method, "path": path}
        started = time.perf_counter()

        try:
            async with asyncio.timeout(self.timeout):
                async with self._client_context() as client:
                    resp = await client.request(
                        method, url, headers=request_headers, content=content
                    )
        except (TimeoutError, httpx.TimeoutException) as e:
            logger.warning(
                f"{method} {path} timed out after {self.timeout:.1f}s",
                extra=log_extra,
            )
            raise RequestTimeoutError(self.timeout) from e
        except httpx.RequestError as e:
            logger.warning(
                f"{method} {path} failed: {type(e).__name__}: {e}", extra=log_extra
            )
            raise QualtricsRequestError(f"Request failed: {e}") from e

        duration_ms = round((time.perf_counter() - started) * 1000, 1)
        logger.debug(
            f"{method} {path} -> {resp.status_code}",
            extra={**log_extra, "status_code": resp.status_code, "duration_ms": duration_ms},
        )

        if not resp.is_success:
            logger.warning(
                f"{method} {path} returned {resp.status_code}",
                extra={**log_extra, "status_code": resp.status_code},
            )
            raise QualtricsAPIError(resp.status_code, resp.reason_phrase, resp.text)

        if raw:
            return resp.text
        if not resp.content:
            return {}
        try:
            return resp.json()
        except ValueError as e:
            raise QualtricsResponseError(
                f"Invalid JSON in response from {method} {path}: {e}"
            ) from e

    # Endpoints shared by several tool groups

    async def get_surveys(self, offset: int = 0, limit: int = 100) -> Any:
        return await self.request(f"/surveys?{urlencode({'offset': offset, 'limit': limit})}")

    async def get_survey(self, survey_id: str) -> Any:
        return await self.request(f"/surveys/{survey_id}")

    async def get_survey_definition(self, survey_id: str) -> Any:
        return await self.request(f"/survey-definitions/{survey_id}")

    async def create_survey(self, survey_data: Dict[str, Any]) -> Any:
        return await self.request("/survey-definitions", method="POST", body=survey_data)

    async def start_response_export(
        self,
        survey_id: str,
        fmt: str = "json",
        filters: Optional[Dict[str, Any]] = None,
    ) -> Any:
        """Start an asynchronous response export job."""
        payload: Dict[str, Any] = {"format": fmt, "compress": False}
        if filters:
            payload.update(filters)
        return await self.request(
            f"/surveys/{survey_id}/export-responses", method="POST", body=payload
        )

    async def get_response_export_progress(self, survey_id: str, progress_id: str) -> Any:
        return await self.request(f"/surveys/{survey_id}/export-responses/{progress_id}")

    async def download_response_export_file(self, survey_id: str, file_id: str) -> str:
        return await self.request(
            f"/surveys/{survey_id}/export-responses/{file_id}/file", raw=True
        )
