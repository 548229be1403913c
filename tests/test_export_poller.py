"""Tests for response export polling and the CSV fallback."""

import asyncio

import pytest

from qualtrics_mcp.app.exceptions import QualtricsAPIError, QualtricsResponseError
from qualtrics_mcp.app.services.export_poller import (
    INLINE_SIZE_LIMIT_BYTES,
    DownloadedArtifact,
    ExportFilters,
    ExportPoller,
    ExportProgress,
    ExportStatus,
    requires_persistence,
)


class FakeExportClient:
    """Stands in for QualtricsClient's export endpoints.

    ``progress`` maps an export format to the percentComplete values the
    progress endpoint reports in turn; the last value repeats forever.
    """

    def __init__(self, progress=None, start_errors=None, file_ids=None, text="data"):
        self.progress = {fmt: list(values) for fmt, values in (progress or {}).items()}
        self.start_errors = start_errors or {}
        self.file_ids = file_ids or {}
        self.text = text
        self.starts = []
        self.progress_calls = []
        self.downloads = []

    async def start_response_export(self, survey_id, fmt="json", filters=None):
        self.starts.append((survey_id, fmt, filters))
        if fmt in self.start_errors:
            raise self.start_errors[fmt]
        return {"result": {"progressId": f"ES_{fmt}"}}

    async def get_response_export_progress(self, survey_id, progress_id):
        self.progress_calls.append(progress_id)
        fmt = progress_id.split("_", 1)[1]
        values = self.progress[fmt]
        percent = values.pop(0) if len(values) > 1 else values[0]
        result = {"percentComplete": percent, "status": "inProgress"}
        if percent == 100:
            result["status"] = "complete"
            result["fileId"] = self.file_ids.get(fmt, f"F_{fmt}")
        return {"result": result}

    async def download_response_export_file(self, survey_id, file_id):
        self.downloads.append(file_id)
        return self.text


class RecordingSleep:
    def __init__(self):
        self.calls = []

    async def __call__(self, seconds):
        self.calls.append(seconds)


@pytest.fixture
def sleep():
    return RecordingSleep()


def make_poller(client, sleep, **kwargs):
    return ExportPoller(client, sleep=sleep, **kwargs)


class TestExportPolling:
    """Primary export path."""

    @pytest.mark.asyncio
    async def test_polls_until_complete_then_downloads_once(self, sleep):
        client = FakeExportClient(progress={"json": [30, 60, 100]}, text='{"responses": []}')
        poller = make_poller(client, sleep)

        result = await poller.run("SV_1", "json")

        assert result.status == ExportStatus.COMPLETED
        assert result.progress_id == "ES_json"
        assert len(client.progress_calls) == 3
        assert client.downloads == ["F_json"]
        assert result.artifact.text == '{"responses": []}'
        assert result.artifact.file_id == "F_json"
        assert sleep.calls == [10.0, 10.0, 10.0]

    @pytest.mark.asyncio
    async def test_never_complete_times_out_without_download(self, sleep):
        client = FakeExportClient(progress={"json": [99]})
        poller = make_poller(client, sleep)

        result = await poller.run("SV_1", "json")

        assert result.status == ExportStatus.TIMEOUT
        assert result.progress_id == "ES_json"
        assert result.artifact is None
        assert len(client.progress_calls) == 30
        assert client.downloads == []

    @pytest.mark.asyncio
    async def test_not_waiting_returns_started(self, sleep):
        client = FakeExportClient(progress={"json": [100]})
        poller = make_poller(client, sleep)
        filters = ExportFilters(start_date="2024-01-01", filter_type="complete")

        result = await poller.run("SV_1", "json", filters, wait_for_completion=False)

        assert result.status == ExportStatus.STARTED
        assert result.progress_id == "ES_json"
        assert result.filters == {"startDate": "2024-01-01", "filterType": "finished"}
        assert client.progress_calls == []
        assert sleep.calls == []

    @pytest.mark.asyncio
    async def test_filters_are_sent_on_start(self, sleep):
        client = FakeExportClient(progress={"json": [100]})
        poller = make_poller(client, sleep)
        filters = ExportFilters(
            end_date="2024-06-30",
            use_labels=True,
            question_ids=["QID1", "QID2"],
        )

        await poller.run("SV_1", "json", filters)

        assert client.starts == [
            (
                "SV_1",
                "json",
                {"endDate": "2024-06-30", "useLabels": True, "questionIds": ["QID1", "QID2"]},
            )
        ]

    @pytest.mark.asyncio
    async def test_unfiltered_start_sends_no_filters(self, sleep):
        client = FakeExportClient(progress={"json": [100]})
        poller = make_poller(client, sleep)

        await poller.run("SV_1")

        assert client.starts == [("SV_1", "json", None)]


class TestExportFallback:
    """Single CSV retry after a hard failure."""

    @pytest.mark.asyncio
    async def test_start_failure_falls_back_to_csv_with_reduced_filters(self, sleep):
        client = FakeExportClient(
            progress={"csv": [50, 100]},
            start_errors={"json": QualtricsAPIError(400, "Bad Request", "bad questionIds")},
            text="a,b\n",
        )
        poller = make_poller(client, sleep)
        filters = ExportFilters(
            start_date="2024-01-01",
            end_date="2024-02-01",
            filter_type="incomplete",
            include_display_order=True,
            use_labels=True,
            question_ids=["QID1"],
            embedded_data_ids=["ED1"],
        )

        result = await poller.run("SV_1", "json", filters)

        assert result.status == ExportStatus.COMPLETED_VIA_FALLBACK
        assert result.format == "csv"
        assert "400" in result.original_error
        assert result.artifact.text == "a,b\n"
        fallback_start = client.starts[1]
        assert fallback_start == (
            "SV_1",
            "csv",
            {"startDate": "2024-01-01", "endDate": "2024-02-01", "filterType": "unfinished"},
        )
        assert result.filters == fallback_start[2]

    @pytest.mark.asyncio
    async def test_poll_failure_triggers_fallback(self, sleep):
        client = FakeExportClient(progress={"json": [100], "csv": [100]}, file_ids={"json": ""})
        poller = make_poller(client, sleep)

        result = await poller.run("SV_1", "json")

        # A completed job without a fileId is a hard failure
        assert result.status == ExportStatus.COMPLETED_VIA_FALLBACK
        assert "fileId" in result.original_error
        assert client.downloads == ["F_csv"]

    @pytest.mark.asyncio
    async def test_fallback_timeout(self, sleep):
        client = FakeExportClient(
            progress={"csv": [10]},
            start_errors={"json": QualtricsAPIError(500, "Internal Server Error", "")},
        )
        poller = make_poller(client, sleep, max_attempts=3)

        result = await poller.run("SV_1", "json")

        assert result.status == ExportStatus.FALLBACK_TIMEOUT
        assert result.progress_id == "ES_csv"
        assert result.artifact is None
        assert "500" in result.original_error
        assert len(client.progress_calls) == 3

    @pytest.mark.asyncio
    async def test_double_failure_reports_both_errors(self, sleep):
        client = FakeExportClient(
            start_errors={
                "json": QualtricsAPIError(400, "Bad Request", "first"),
                "csv": QualtricsAPIError(403, "Forbidden", "second"),
            },
        )
        poller = make_poller(client, sleep)

        result = await poller.run("SV_1", "json")

        assert result.status == ExportStatus.FAILED
        assert "first" in result.original_error
        assert "second" in result.fallback_error
        assert "CSV fallback also failed" in result.error_message
        assert len(client.starts) == 2

    @pytest.mark.asyncio
    async def test_timeout_does_not_trigger_fallback(self, sleep):
        client = FakeExportClient(progress={"json": [20]})
        poller = make_poller(client, sleep, max_attempts=2)

        result = await poller.run("SV_1", "json")

        assert result.status == ExportStatus.TIMEOUT
        assert [fmt for _, fmt, _ in client.starts] == ["json"]


class TestExportCancellation:
    """Caller-driven cancellation between polls."""

    @pytest.mark.asyncio
    async def test_cancel_before_first_poll(self):
        client = FakeExportClient(progress={"json": [100]})
        poller = ExportPoller(client, poll_interval=0.01)
        cancel = asyncio.Event()
        cancel.set()

        result = await poller.run("SV_1", "json", cancel_event=cancel)

        assert result.status == ExportStatus.CANCELLED
        assert result.progress_id == "ES_json"
        assert client.progress_calls == []
        assert client.downloads == []

    @pytest.mark.asyncio
    async def test_cancel_while_polling(self):
        client = FakeExportClient(progress={"json": [40]})
        poller = ExportPoller(client, poll_interval=0.02, max_attempts=1000)
        cancel = asyncio.Event()
        asyncio.get_running_loop().call_later(0.1, cancel.set)

        result = await poller.run("SV_1", "json", cancel_event=cancel)

        assert result.status == ExportStatus.CANCELLED
        assert 0 < len(client.progress_calls) < 1000
        assert [fmt for _, fmt, _ in client.starts] == ["json"]


class TestExportHelpers:
    """Dataclass and threshold behaviour."""

    def test_inline_threshold_boundary(self):
        assert INLINE_SIZE_LIMIT_BYTES == 102400
        assert requires_persistence(102400) is False
        assert requires_persistence(102401) is True

    def test_artifact_size_counts_utf8_bytes(self):
        artifact = DownloadedArtifact(text="é" * 10, file_id="F_1")
        assert artifact.size_bytes == 20

    def test_artifact_at_limit_stays_inline(self):
        assert DownloadedArtifact("a" * 102400, "F_1").requires_persistence is False
        assert DownloadedArtifact("a" * 102401, "F_1").requires_persistence is True

    def test_progress_failed_status(self):
        assert ExportProgress("ES_1", 40, "failed").is_failed is True
        assert ExportProgress("ES_1", 40, "Failed").is_failed is True
        assert ExportProgress("ES_1", 40, "inProgress").is_failed is False

    def test_filters_payload_omits_defaults(self):
        assert ExportFilters().to_payload() == {}
        assert ExportFilters(filter_type="complete").to_payload() == {"filterType": "finished"}

    @pytest.mark.asyncio
    async def test_start_without_progress_id_is_an_error(self, sleep):
        class NoProgressClient(FakeExportClient):
            async def start_response_export(self, survey_id, fmt="json", filters=None):
                return {"result": {}}

        poller = make_poller(NoProgressClient(), sleep)
        with pytest.raises(QualtricsResponseError):
            await poller.start("SV_1", "json")

    @pytest.mark.asyncio
    async def test_check_status_parses_progress(self, sleep):
        client = FakeExportClient(progress={"json": [100]})
        poller = make_poller(client, sleep)

        progress = await poller.check_status("SV_1", "ES_json")

        assert progress.is_complete
        assert progress.file_id == "F_json"
        assert progress.status == "complete"
