"""Tests for the typed question builder tools."""

import json

import httpx
import pytest
from mcp.server.fastmcp import FastMCP
from mcp.server.fastmcp.exceptions import ToolError

from qualtrics_mcp.app.services.qualtrics_client import QualtricsClient
from qualtrics_mcp.app.services.rate_limiter import RateLimiter
from qualtrics_mcp.app.tools.question_tools import (
    LIKERT_SCALES,
    numbered_choices,
    register_question_tools,
    with_force_response,
)


def tool_text(result) -> str:
    content = result[0] if isinstance(result, tuple) else result
    return content[0].text


@pytest.fixture
def created():
    return []


@pytest.fixture
def mcp(created):
    def handler(request: httpx.Request) -> httpx.Response:
        created.append((request.url.path, dict(request.url.params), json.loads(request.content)))
        return httpx.Response(200, json={"result": {"QuestionID": "QID9"}})

    client = QualtricsClient(
        api_token="tok",
        base_url="https://iad1.qualtrics.com/API/v3",
        rate_limiter=RateLimiter(enabled=False),
        http_client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
    )
    server = FastMCP("test")
    register_question_tools(server, client)
    return server


class TestBuilderHelpers:
    """Payload helpers."""

    def test_numbered_choices(self):
        assert numbered_choices(["Yes", "No"]) == {
            "Choices": {"1": {"Display": "Yes"}, "2": {"Display": "No"}},
            "ChoiceOrder": ["1", "2"],
        }

    def test_force_response_only_when_requested(self):
        assert with_force_response({}, False) == {}
        assert with_force_response({}, True)["Validation"]["Settings"]["ForceResponse"] == "ON"


class TestQuestionBuilders:
    """Typed question tools build the right Qualtrics payloads."""

    @pytest.mark.asyncio
    async def test_multiple_choice_multi_answer(self, mcp, created):
        data = json.loads(tool_text(await mcp.call_tool("add_multiple_choice_question", {
            "survey_id": "SV_1",
            "block_id": "BL_1",
            "question_text": "Pick any",
            "choices": ["A", "B", "C"],
            "allow_multiple": True,
            "force_response": True,
        })))

        path, params, body = created[0]
        assert path == "/API/v3/survey-definitions/SV_1/questions"
        assert params == {"blockId": "BL_1"}
        assert (body["QuestionType"], body["Selector"], body["SubSelector"]) == ("MC", "MAVR", "TX")
        assert body["ChoiceOrder"] == ["1", "2", "3"]
        assert body["Validation"]["Settings"]["ForceResponse"] == "ON"
        assert body["DataExportTag"].startswith("Q_auto_")
        assert data["questionId"] == "QID9"
        assert data["questionType"] == "Multiple Choice (Multi-Answer)"

    @pytest.mark.asyncio
    async def test_text_entry_selector(self, mcp, created):
        await mcp.call_tool("add_text_entry_question", {
            "survey_id": "SV_1", "block_id": "BL_1", "question_text": "Why?", "text_type": "essay",
        })

        body = created[0][2]
        assert (body["QuestionType"], body["Selector"]) == ("TE", "ESTB")
        assert "Validation" not in body

    @pytest.mark.asyncio
    async def test_descriptive_text_warns_on_literal_template(self, mcp, created):
        data = json.loads(tool_text(await mcp.call_tool("add_descriptive_text_question", {
            "survey_id": "SV_1",
            "block_id": "BL_1",
            "html_content": "<p>Loading</p>",
            "question_js": "var s = `${x}`;",
        })))

        body = created[0][2]
        assert (body["QuestionType"], body["Selector"]) == ("DB", "TB")
        assert body["QuestionJS"] == "var s = `${x}`;"
        assert "warning" in data

    @pytest.mark.asyncio
    async def test_likert_preset(self, mcp, created):
        data = json.loads(tool_text(await mcp.call_tool("add_likert_question", {
            "survey_id": "SV_1", "block_id": "BL_1", "question_text": "Agree?", "scale": "agree7",
        })))

        body = created[0][2]
        assert [c["Display"] for c in body["Choices"].values()] == LIKERT_SCALES["agree7"]
        assert data["questionType"] == "Likert (MC/SAVR, 7-point)"
        assert data["scaleLabels"] == LIKERT_SCALES["agree7"]

    @pytest.mark.asyncio
    async def test_likert_custom_requires_labels(self, mcp, created):
        with pytest.raises(ToolError, match="custom_labels"):
            await mcp.call_tool("add_likert_question", {
                "survey_id": "SV_1", "block_id": "BL_1", "question_text": "Agree?",
                "scale": "custom", "custom_labels": ["Only one"],
            })

        assert created == []

    @pytest.mark.asyncio
    async def test_matrix_rows_and_columns(self, mcp, created):
        data = json.loads(tool_text(await mcp.call_tool("add_matrix_question", {
            "survey_id": "SV_1",
            "block_id": "BL_1",
            "question_text": "Rate",
            "statements": ["Speed", "Price"],
            "scale_points": ["Bad", "OK", "Good"],
        })))

        body = created[0][2]
        assert (body["QuestionType"], body["Selector"], body["SubSelector"]) == ("Matrix", "Likert", "SingleAnswer")
        assert body["Choices"] == {"1": {"Display": "Speed"}, "2": {"Display": "Price"}}
        assert body["Answers"]["3"] == {"Display": "Good"}
        assert body["AnswerOrder"] == ["1", "2", "3"]
        assert (data["statementCount"], data["scalePointCount"]) == (2, 3)
