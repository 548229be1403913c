"""Response export orchestration.

Qualtrics exports are asynchronous: a POST starts a job and returns a
progress id, the progress endpoint reports ``percentComplete``, and once it
reaches 100 the file id it returns can be downloaded. ``ExportPoller`` drives
that protocol with a fixed poll interval and attempt budget, and retries a
hard failure once in CSV with a reduced filter set.

Expected outcomes (still running, fallback used) are reported as an
``ExportResult``; only the caller's own cancellation or programming errors
escape as exceptions.
"""

import asyncio
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional

from qualtrics_mcp.app.core.logging import get_log_context, get_logger
from qualtrics_mcp.app.exceptions import (
    ExportCancelledError,
    QualtricsError,
    QualtricsResponseError,
)
from qualtrics_mcp.app.services.qualtrics_client import QualtricsClient

logger = get_logger(__name__)

POLL_INTERVAL_SECONDS = 10.0
MAX_POLL_ATTEMPTS = 30
FALLBACK_FORMAT = "csv"
# Artifacts above this size are never returned inline
INLINE_SIZE_LIMIT_BYTES = 100 * 1024


class ExportStatus(str, Enum):
    """Caller-visible export outcomes."""

    STARTED = "started"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    TIMEOUT = "timeout"
    COMPLETED_VIA_FALLBACK = "completed_via_fallback"
    FALLBACK_TIMEOUT = "fallback_timeout"
    FAILED = "failed"
    CANCELLED = "cancelled"


@dataclass
class ExportFilters:
    """Optional filters narrowing a response export.

    Attributes:
        start_date: ISO date or datetime lower bound
        end_date: ISO date or datetime upper bound
        filter_type: complete, incomplete or all
        include_display_order: Include display order columns
        use_labels: Export choice labels instead of recode values
        question_ids: Only export these questions
        embedded_data_ids: Only export these embedded data fields
    """

    start_date: Optional[str] = None
    end_date: Optional[str] = None
    filter_type: str = "all"
    include_display_order: Optional[bool] = None
    use_labels: Optional[bool] = None
    question_ids: List[str] = field(default_factory=list)
    embedded_data_ids: List[str] = field(default_factory=list)

    def to_payload(self) -> Dict[str, Any]:
        """Serialize to the export endpoint's field names."""
        payload: Dict[str, Any] = {}
        if self.start_date:
            payload["startDate"] = self.start_date
        if self.end_date:
            payload["endDate"] = self.end_date
        if self.filter_type and self.filter_type != "all":
            payload["filterType"] = (
                "finished" if self.filter_type == "complete" else "unfinished"
            )
        if self.include_display_order is not None:
            payload["includeDisplayOrder"] = self.include_display_order
        if self.use_labels is not None:
            payload["useLabels"] = self.use_labels
        if self.question_ids:
            payload["questionIds"] = list(self.question_ids)
        if self.embedded_data_ids:
            payload["embeddedDataIds"] = list(self.embedded_data_ids)
        return payload

    def for_fallback(self) -> "ExportFilters":
        """Keep only the date range and completion filter.

        Field subsets and display options are the likely cause of a failed
        export, so the fallback drops them.
        """
        return ExportFilters(
            start_date=self.start_date,
            end_date=self.end_date,
            filter_type=self.filter_type,
        )


@dataclass
class ExportJob:
    progress_id: str
    survey_id: str
    format: str
    filters: ExportFilters = field(default_factory=ExportFilters)


@dataclass
class ExportProgress:
    """Snapshot of a remote export job."""

    progress_id: str
    percent_complete: int
    status: str
    file_id: Optional[str] = None

    @property
    def is_complete(self) -> bool:
        # Qualtrics reports an integer percentage; only exactly 100 is done.
        return self.percent_complete == 100

    @property
    def is_failed(self) -> bool:
        return self.status.lower() == "failed"


@dataclass
class DownloadedArtifact:
    text: str
    file_id: str
    size_bytes: int = 0

    def __post_init__(self) -> None:
        if not self.size_bytes:
            self.size_bytes = len(self.text.encode("utf-8"))

    @property
    def size_mb(self) -> str:
        return f"{self.size_bytes / (1024 * 1024):.2f}"

    @property
    def requires_persistence(self) -> bool:
        return requires_persistence(self.size_bytes)


@dataclass
class ExportResult:
    """Terminal outcome of ``ExportPoller.run``."""

    status: ExportStatus
    survey_id: str
    format: str
    progress_id: Optional[str] = None
    filters: Dict[str, Any] = field(default_factory=dict)
    artifact: Optional[DownloadedArtifact] = None
    original_error: Optional[str] = None
    fallback_error: Optional[str] = None

    @property
    def error_message(self) -> Optional[str]:
        if self.status != ExportStatus.FAILED:
            return None
        return f"{self.original_error}. CSV fallback also failed: {self.fallback_error}"


def requires_persistence(size_bytes: int) -> bool:
    """Whether an artifact is too large to return inline."""
    return size_bytes > INLINE_SIZE_LIMIT_BYTES


class ExportPoller:
    """Start, poll and download Qualtrics response exports.

    Example:
        >>> poller = ExportPoller(client)
        >>> result = await poller.run("SV_123", "json", ExportFilters(start_date="2024-01-01"))
        >>> result.status
        <ExportStatus.COMPLETED: 'completed'>
    """

    def __init__(
        self,
        client: QualtricsClient,
        poll_interval: float = POLL_INTERVAL_SECONDS,
        max_attempts: int = MAX_POLL_ATTEMPTS,
        fallback_format: str = FALLBACK_FORMAT,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.client = client
        self.poll_interval = poll_interval
        self.max_attempts = max_attempts
        self.fallback_format = fallback_format
        self._sleep = sleep

    async def start(
        self, survey_id: str, fmt: str, filters: Optional[ExportFilters] = None
    ) -> ExportJob:
        filters = filters or ExportFilters()
        payload = filters.to_payload()
        response = await self.client.start_response_export(
            survey_id, fmt, payload or None
        )
        try:
            progress_id = response["result"]["progressId"]
        except (KeyError, TypeError) as e:
            raise QualtricsResponseError(
                f"Export start response has no progressId: {response!r}"
            ) from e
        logger.info(
            f"Export started in {fmt}",
            extra=get_log_context(survey_id=survey_id, progress_id=progress_id),
        )
        return ExportJob(progress_id, survey_id, fmt, filters)

    async def check_status(self, survey_id: str, progress_id: str) -> ExportProgress:
        response = await self.client.get_response_export_progress(survey_id, progress_id)
        try:
            result = response["result"]
            return ExportProgress(
                progress_id=progress_id,
                percent_complete=int(result.get("percentComplete", 0)),
                status=result.get("status", "unknown"),
                file_id=result.get("fileId"),
            )
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            raise QualtricsResponseError(
                f"Malformed export progress response: {response!r}"
            ) from e

    async def _wait_interval(
        self, job: ExportJob, cancel_event: Optional[asyncio.Event]
    ) -> None:
        if cancel_event is None:
            await self._sleep(self.poll_interval)
        else:
            try:
                await asyncio.wait_for(cancel_event.wait(), self.poll_interval)
            except TimeoutError:
                pass
        if cancel_event is not None and cancel_event.is_set():
            raise ExportCancelledError(job.progress_id)

    async def wait_for(
        self, job: ExportJob, cancel_event: Optional[asyncio.Event] = None
    ) -> Optional[DownloadedArtifact]:
        """Poll until the job completes and download it.

        Returns:
            The artifact, or None when the attempt budget is exhausted.

        Raises:
            ExportCancelledError: cancel_event was set between polls
        """
        for attempt in range(1, self.max_attempts + 1):
            await self._wait_interval(job, cancel_event)
            progress = await self.check_status(job.survey_id, job.progress_id)
            logger.debug(
                f"Export poll {attempt}/{self.max_attempts}: {progress.percent_complete}%",
                extra=get_log_context(survey_id=job.survey_id, progress_id=job.progress_id),
            )
            if progress.is_complete:
                if not progress.file_id:
                    raise QualtricsResponseError(
                        f"Export {job.progress_id} completed without a fileId"
                    )
                text = await self.client.download_response_export_file(
                    job.survey_id, progress.file_id
                )
                return DownloadedArtifact(text=text, file_id=progress.file_id)

        logger.warning(
            f"Export not complete after {self.max_attempts} polls",
            extra=get_log_context(survey_id=job.survey_id, progress_id=job.progress_id),
        )
        return None

    async def run(
        self,
        survey_id: str,
        fmt: str = "json",
        filters: Optional[ExportFilters] = None,
        wait_for_completion: bool = True,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> ExportResult:
        """Run an export end to end, with one CSV fallback on hard failure.

        ``cancel_event`` is for programmatic callers that own the wait; the
        MCP export tools do not pass one, so over MCP an export ends as
        completed, timed out or failed, never cancelled.
        """
        filters = filters or ExportFilters()
        job: Optional[ExportJob] = None
        try:
            job = await self.start(survey_id, fmt, filters)
            if not wait_for_completion:
                return ExportResult(
                    ExportStatus.STARTED, survey_id, fmt,
                    progress_id=job.progress_id, filters=filters.to_payload(),
                )
            artifact = await self.wait_for(job, cancel_event)
        except ExportCancelledError as e:
            return self._cancelled(survey_id, fmt, e, filters)
        except QualtricsError as e:
            logger.warning(
                f"Export failed, retrying in {self.fallback_format}: {e}",
                extra=get_log_context(survey_id=survey_id),
            )
            return await self._run_fallback(survey_id, filters, str(e), cancel_event)

        status = ExportStatus.COMPLETED if artifact else ExportStatus.TIMEOUT
        return ExportResult(
            status, survey_id, fmt,
            progress_id=job.progress_id, filters=filters.to_payload(), artifact=artifact,
        )

    async def _run_fallback(
        self,
        survey_id: str,
        filters: ExportFilters,
        original_error: str,
        cancel_event: Optional[asyncio.Event],
    ) -> ExportResult:
        fallback_filters = filters.for_fallback()
        fmt = self.fallback_format
        try:
            job = await self.start(survey_id, fmt, fallback_filters)
            artifact = await self.wait_for(job, cancel_event)
        except ExportCancelledError as e:
            return replace(
                self._cancelled(survey_id, fmt, e, fallback_filters),
                original_error=original_error,
            )
        except QualtricsError as e:
            logger.error(
                f"CSV fallback export failed: {e}",
                extra=get_log_context(survey_id=survey_id),
            )
            return ExportResult(
                ExportStatus.FAILED, survey_id, fmt,
                filters=fallback_filters.to_payload(),
                original_error=original_error, fallback_error=str(e),
            )

        status = (
            ExportStatus.COMPLETED_VIA_FALLBACK if artifact else ExportStatus.FALLBACK_TIMEOUT
        )
        return ExportResult(
            status, survey_id, fmt,
            progress_id=job.progress_id, filters=fallback_filters.to_payload(),
            artifact=artifact, original_error=original_error,
        )

    @staticmethod
    def _cancelled(
        survey_id: str, fmt: str, error: ExportCancelledError, filters: ExportFilters
    ) -> ExportResult:
        logger.info(
            "Export polling cancelled",
            extra=get_log_context(survey_id=survey_id, progress_id=error.progress_id),
        )
        return ExportResult(
            ExportStatus.CANCELLED, survey_id, fmt,
            progress_id=error.progress_id, filters=filters.to_payload(),
        )
