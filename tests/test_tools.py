"""Tests for the MCP tool layer."""

import json
from importlib.metadata import version

import httpx
import pytest
from mcp.server.fastmcp import FastMCP
from mcp.server.fastmcp.exceptions import ToolError

from qualtrics_mcp.app.core.config import Settings
from qualtrics_mcp.app.exceptions import (
    QualtricsAPIError,
    QualtricsRequestError,
    RequestTimeoutError,
)
from qualtrics_mcp.app.main import create_server
from qualtrics_mcp.app.services.export_poller import (
    DownloadedArtifact,
    ExportPoller,
    ExportResult,
    ExportStatus,
)
from qualtrics_mcp.app.services.qualtrics_client import QualtricsClient
from qualtrics_mcp.app.services.rate_limiter import RateLimiter
from qualtrics_mcp.app.tools._helpers import (
    elements_of,
    error_hint,
    format_error,
    result_of,
    tool_success,
    with_error_handling,
)
from qualtrics_mcp.app.tools.contact_tools import register_contact_tools
from qualtrics_mcp.app.tools.question_tools import question_js_warning
from qualtrics_mcp.app.tools.response_tools import register_response_tools, render_export_result
from qualtrics_mcp.app.tools.survey_tools import estimate_export_bytes, register_survey_tools
from qualtrics_mcp.app.tools.user_tools import register_user_tools

EXPECTED_TOOLS = {
    "list_surveys", "get_survey", "create_survey", "update_survey", "delete_survey",
    "activate_survey", "deactivate_survey", "estimate_export_size",
    "export_responses", "export_responses_filtered", "check_export_status",
    "get_response", "create_response", "update_response", "delete_response",
    "list_questions", "get_question", "create_question", "update_question",
    "delete_question", "list_blocks", "create_block", "update_block", "delete_block",
    "add_multiple_choice_question", "add_text_entry_question",
    "add_descriptive_text_question", "add_likert_question", "add_matrix_question",
    "get_survey_flow", "update_survey_flow", "add_embedded_data", "add_web_service",
    "list_embedded_data", "list_web_services", "piped_text_reference",
    "list_mailing_lists", "create_mailing_list", "delete_mailing_list",
    "list_contacts", "add_contact", "update_contact", "remove_contact",
    "bulk_import_contacts",
    "list_distributions", "get_distribution", "create_anonymous_link",
    "create_email_distribution", "delete_distribution", "create_reminder",
    "list_users", "get_user",
    "list_webhooks", "create_webhook", "delete_webhook",
}


def tool_text(result) -> str:
    """Pull the text block out of FastMCP.call_tool's return value."""
    content = result[0] if isinstance(result, tuple) else result
    return content[0].text


def make_client(handler) -> QualtricsClient:
    return QualtricsClient(
        api_token="tok",
        base_url="https://iad1.qualtrics.com/API/v3",
        rate_limiter=RateLimiter(enabled=False),
        http_client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
    )


class TestHelpers:
    """Shared result and error helpers."""

    def test_tool_success_renders_json(self):
        assert json.loads(tool_success({"a": 1})) == {"a": 1}
        assert tool_success("plain") == "plain"

    def test_result_of_unwraps_envelope(self):
        assert result_of({"result": {"id": 1}, "meta": {}}) == {"id": 1}
        assert result_of([1, 2]) == [1, 2]

    def test_elements_of_list_and_mapping(self):
        assert elements_of({"result": {"elements": [{"id": "a"}]}}) == [{"id": "a"}]
        assert elements_of({"result": {"BL_1": {"Type": "Standard"}}}) == [
            {"ID": "BL_1", "Type": "Standard"}
        ]
        assert elements_of({"result": None}) == []

    @pytest.mark.parametrize("error,fragment", [
        (RequestTimeoutError(30), "timed out"),
        (QualtricsAPIError(401, "Unauthorized", ""), "QUALTRICS_API_TOKEN"),
        (QualtricsAPIError(404, "Not Found", ""), "ID is correct"),
        (QualtricsAPIError(429, "Too Many Requests", ""), "RATE_LIMIT_RPM"),
        (QualtricsRequestError("boom"), "network"),
    ])
    def test_error_hint(self, error, fragment):
        assert fragment in error_hint(error)

    def test_format_error_without_hint(self):
        error = QualtricsAPIError(400, "Bad Request", "nope")

        assert format_error("get_user", error) == (
            "Error in get_user: Qualtrics API error: 400 Bad Request - nope"
        )

    @pytest.mark.asyncio
    async def test_with_error_handling_translates_qualtrics_errors(self):
        @with_error_handling("get_user")
        async def failing():
            raise QualtricsAPIError(404, "Not Found", "missing")

        with pytest.raises(ToolError, match="Error in get_user: Qualtrics API error: 404"):
            await failing()

    @pytest.mark.asyncio
    async def test_with_error_handling_propagates_other_errors(self):
        @with_error_handling("get_user")
        async def failing():
            raise KeyError("bug")

        with pytest.raises(KeyError):
            await failing()


class TestSurveyHelpers:
    """Pure helpers in the survey and question tool modules."""

    def test_estimate_export_bytes(self):
        assert estimate_export_bytes(100, 10, "json") == 100 * 10 * 500 + 10000
        assert estimate_export_bytes(100, 10, "csv") == 100 * 10 * 50 + 1000
        assert estimate_export_bytes(0, 0, "json") == 10000

    def test_question_js_warning_flags_literal_template(self):
        assert question_js_warning("var s = `${name}`;") is not None

    def test_question_js_warning_allows_piped_text(self):
        assert question_js_warning("var v = '${q://QID1/ChoiceGroup/SelectedChoices}';") is None
        assert question_js_warning("var s = '\\x24{name}';") is None


class TestRenderExportResult:
    """Shaping export outcomes for the assistant."""

    @pytest.mark.asyncio
    async def test_small_json_export_is_inlined(self, tmp_path):
        result = ExportResult(
            ExportStatus.COMPLETED, "SV_1", "json", progress_id="ES_1",
            artifact=DownloadedArtifact('{"responses": [1]}', "F_1"),
        )

        payload = await render_export_result(result, download_dir=tmp_path)

        assert payload["status"] == "completed"
        assert payload["data"] == {"responses": [1]}
        assert payload["metadata"] == {"progressId": "ES_1", "fileId": "F_1"}
        assert list(tmp_path.iterdir()) == []

    @pytest.mark.asyncio
    async def test_large_export_is_auto_saved(self, tmp_path):
        result = ExportResult(
            ExportStatus.COMPLETED, "SV_1", "csv", progress_id="ES_1",
            artifact=DownloadedArtifact("a" * (100 * 1024 + 1), "F_1"),
        )

        payload = await render_export_result(result, download_dir=tmp_path)

        assert payload["wasAutoSaved"] is True
        assert "data" not in payload
        assert "automatically saved" in payload["message"]
        assert len(list(tmp_path.iterdir())) == 1

    @pytest.mark.asyncio
    async def test_requested_file_is_saved_even_when_small(self, tmp_path):
        result = ExportResult(
            ExportStatus.COMPLETED, "SV_1", "csv", progress_id="ES_1",
            artifact=DownloadedArtifact("a,b\n", "F_1"),
        )

        payload = await render_export_result(result, save_to="out.csv", download_dir=tmp_path)

        assert payload["savedToFile"] == str(tmp_path / "out.csv")
        assert payload["wasAutoSaved"] is False

    @pytest.mark.asyncio
    async def test_fallback_artifact_is_always_saved(self, tmp_path):
        result = ExportResult(
            ExportStatus.COMPLETED_VIA_FALLBACK, "SV_1", "csv", progress_id="ES_2",
            artifact=DownloadedArtifact("a,b\n", "F_2"), original_error="json failed",
        )

        payload = await render_export_result(result, suffix="filtered", download_dir=tmp_path)

        assert payload["originalError"] == "json failed"
        saved = tmp_path / payload["savedToFile"].rsplit("/", 1)[-1]
        assert saved.name.startswith("survey_SV_1_filtered_")
        assert saved.read_text() == "a,b\n"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status", [
        ExportStatus.STARTED, ExportStatus.TIMEOUT,
        ExportStatus.FALLBACK_TIMEOUT, ExportStatus.CANCELLED,
    ])
    async def test_pending_outcomes_point_to_status_check(self, status):
        result = ExportResult(status, "SV_1", "json", progress_id="ES_1")

        payload = await render_export_result(result)

        assert payload["status"] == status.value
        assert payload["progressId"] == "ES_1"
        assert "check_export_status" in payload["message"]

    @pytest.mark.asyncio
    async def test_double_failure_raises_tool_error(self):
        result = ExportResult(
            ExportStatus.FAILED, "SV_1", "csv",
            original_error="first", fallback_error="second",
        )

        with pytest.raises(ToolError, match="first. CSV fallback also failed: second"):
            await render_export_result(result)


class TestToolRegistration:
    """Server wiring."""

    @pytest.mark.asyncio
    async def test_create_server_registers_every_tool(self, tmp_path):
        settings = Settings(
            QUALTRICS_API_TOKEN="tok",
            QUALTRICS_DATA_CENTER="iad1",
            EXPORT_DOWNLOAD_DIR=str(tmp_path),
        )

        mcp = create_server(settings)
        names = {tool.name for tool in await mcp.list_tools()}

        assert names == EXPECTED_TOOLS

    def test_installed_mcp_is_a_supported_major(self):
        # FastMCP import paths and call_tool results changed across majors
        assert version("mcp").split(".")[0] == "1"


class TestToolCalls:
    """Calling tools end to end against a mocked API."""

    @pytest.mark.asyncio
    async def test_list_users_maps_fields(self):
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.path == "/API/v3/users"
            return httpx.Response(200, json={"result": {"elements": [
                {"id": "UR_1", "username": "ada", "email": "ada@example.com", "extra": "x"},
            ]}})

        mcp = FastMCP("test")
        register_user_tools(mcp, make_client(handler))

        data = json.loads(tool_text(await mcp.call_tool("list_users", {})))

        assert data["total"] == 1
        assert data["users"][0]["username"] == "ada"
        assert "extra" not in data["users"][0]

    @pytest.mark.asyncio
    async def test_api_error_surfaces_as_tool_error(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(403, text="forbidden")

        mcp = FastMCP("test")
        register_user_tools(mcp, make_client(handler))

        with pytest.raises(ToolError, match="QUALTRICS_API_TOKEN"):
            await mcp.call_tool("get_user", {"user_id": "UR_1"})

    @pytest.mark.asyncio
    async def test_bulk_import_posts_contacts(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["path"] = request.url.path
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"result": {"id": "PGR_1"}})

        mcp = FastMCP("test")
        register_contact_tools(mcp, make_client(handler))

        data = json.loads(tool_text(await mcp.call_tool("bulk_import_contacts", {
            "mailing_list_id": "ML_1",
            "contacts": [{"email": "a@example.com"}, {"email": "b@example.com", "firstName": "B"}],
        })))

        assert data["contactsImported"] == 2
        assert seen["body"] == {"contacts": [
            {"email": "a@example.com"},
            {"email": "b@example.com", "firstName": "B"},
        ]}

    @pytest.mark.asyncio
    async def test_delete_survey_requires_matching_name(self):
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request.method)
            return httpx.Response(200, json={"result": {"name": "Customer Pulse"}})

        mcp = FastMCP("test")
        register_survey_tools(mcp, make_client(handler))

        with pytest.raises(ToolError, match="name mismatch"):
            await mcp.call_tool("delete_survey", {"survey_id": "SV_1", "confirm_name": "Other"})

        assert calls == ["GET"]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("remote,percent,expected", [
        ("inProgress", 40, "in_progress"),
        ("failed", 40, "failed"),
        ("complete", 100, "completed"),
    ])
    async def test_check_export_status_maps_remote_status(self, remote, percent, expected):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"result": {"percentComplete": percent, "status": remote}})

        mcp = FastMCP("test")
        register_response_tools(mcp, ExportPoller(make_client(handler)))

        data = json.loads(tool_text(await mcp.call_tool(
            "check_export_status", {"survey_id": "SV_1", "export_progress_id": "ES_1"}
        )))

        assert data["status"] == expected
        assert data["remoteStatus"] == remote
