"""Survey lifecycle tools."""

import asyncio
from typing import Annotated, Any, Dict, Literal, Optional

from mcp.server.fastmcp import FastMCP
from mcp.server.fastmcp.exceptions import ToolError
from pydantic import Field

from qualtrics_mcp.app.services.export_poller import INLINE_SIZE_LIMIT_BYTES
from qualtrics_mcp.app.services.qualtrics_client import QualtricsClient
from qualtrics_mcp.app.services.survey_api import SurveyApi
from qualtrics_mcp.app.tools._helpers import result_of, tool_success, with_error_handling

SurveyId = Annotated[str, Field(min_length=1, description="The Qualtrics survey ID (e.g., SV_123456789)")]

VERY_LARGE_EXPORT_BYTES = 10 * 1024 * 1024


def estimate_export_bytes(response_count: int, question_count: int, fmt: str) -> int:
    """Rough export size: a fixed cost per response/question pair plus overhead."""
    per_pair = 500 if fmt == "json" else 50
    overhead = 10000 if fmt == "json" else 1000
    return response_count * question_count * per_pair + overhead


def register_survey_tools(mcp: FastMCP, client: QualtricsClient) -> None:
    survey_api = SurveyApi(client)

    @mcp.tool(name="list_surveys", description="List surveys with optional filtering and pagination")
    @with_error_handling("list_surveys")
    async def list_surveys(
        offset: Annotated[int, Field(ge=0, description="Starting offset for pagination")] = 0,
        limit: Annotated[int, Field(ge=1, le=100, description="Maximum number of surveys to return (max: 100)")] = 20,
        filter: Annotated[Optional[str], Field(description="Filter surveys by name (case-insensitive partial match)")] = None,
    ) -> str:
        result = result_of(await client.get_surveys(offset, limit))
        elements = result.get("elements", [])
        surveys = elements
        if filter:
            needle = filter.lower()
            surveys = [s for s in elements if needle in str(s.get("name", "")).lower()]

        return tool_success({
            "surveys": [
                {
                    "id": s.get("id"),
                    "name": s.get("name"),
                    "isActive": s.get("isActive"),
                    "lastModified": s.get("lastModified"),
                    "creationDate": s.get("creationDate"),
                }
                for s in surveys
            ],
            "total": result.get("totalElements", len(elements)),
            "offset": offset,
            "limit": limit,
            "filtered": len(surveys),
        })

    @mcp.tool(name="get_survey", description="Get detailed information about a specific survey")
    @with_error_handling("get_survey")
    async def get_survey(
        survey_id: SurveyId,
        include_definition: Annotated[bool, Field(description="Include full survey definition with questions and logic")] = False,
    ) -> str:
        if include_definition:
            info, definition = await asyncio.gather(
                client.get_survey(survey_id), client.get_survey_definition(survey_id)
            )
        else:
            info, definition = await client.get_survey(survey_id), None

        return tool_success({
            "survey": result_of(info),
            "definition": result_of(definition) if definition else None,
        })

    @mcp.tool(name="create_survey", description="Create a new survey in Qualtrics")
    @with_error_handling("create_survey")
    async def create_survey(
        name: Annotated[str, Field(min_length=1, description="Name for the new survey")],
        language: Annotated[str, Field(description="Survey language code")] = "EN",
        project_category: Annotated[str, Field(description="Project category")] = "CORE",
    ) -> str:
        result = result_of(await client.create_survey({
            "SurveyName": name,
            "Language": language,
            "ProjectCategory": project_category,
        }))
        return tool_success({
            "success": True,
            "surveyId": result.get("SurveyID"),
            "message": f'Survey "{name}" created successfully',
            "details": result,
        })

    @mcp.tool(
        name="estimate_export_size",
        description=(
            "Estimate the size of a survey export before downloading. Helps decide "
            "whether to use save_to_file or apply filters to reduce size."
        ),
    )
    @with_error_handling("estimate_export_size")
    async def estimate_export_size(
        survey_id: SurveyId,
        format: Annotated[Literal["json", "csv"], Field(description="Export format to estimate")] = "json",
    ) -> str:
        info, definition = await asyncio.gather(
            client.get_survey(survey_id), client.get_survey_definition(survey_id)
        )
        response_count = int(result_of(info).get("responseExportTotal") or 0)
        questions = result_of(definition).get("questions") or {}
        question_count = len(questions)

        estimated = estimate_export_bytes(response_count, question_count, format)
        is_large = estimated > INLINE_SIZE_LIMIT_BYTES
        is_very_large = estimated > VERY_LARGE_EXPORT_BYTES

        if is_very_large:
            recommendation = (
                "VERY LARGE EXPORT EXPECTED: use 'export_responses_filtered' with date "
                "ranges, specific questions, or completion filters, and set save_to_file."
            )
        elif is_large:
            recommendation = (
                "LARGE EXPORT EXPECTED: the export will be saved to a file automatically "
                "because it exceeds 100KB."
            )
        else:
            recommendation = "SMALL EXPORT EXPECTED: the export will likely be returned directly."

        return tool_success({
            "surveyId": survey_id,
            "format": format,
            "estimatedSize": {
                "bytes": estimated,
                "megabytes": f"{estimated / (1024 * 1024):.2f}",
                "isLarge": is_large,
                "isVeryLarge": is_very_large,
            },
            "surveyMetrics": {
                "responseCount": response_count,
                "questionCount": question_count,
            },
            "recommendation": recommendation,
        })

    @mcp.tool(name="update_survey", description="Update survey metadata such as name, active status, or expiration")
    @with_error_handling("update_survey")
    async def update_survey(
        survey_id: SurveyId,
        name: Annotated[Optional[str], Field(description="New survey name")] = None,
        is_active: Annotated[Optional[bool], Field(description="Set survey active/inactive status")] = None,
        expiration: Annotated[Optional[str], Field(description="Survey expiration date (ISO format)")] = None,
    ) -> str:
        data: Dict[str, Any] = {}
        if name is not None:
            data["SurveyName"] = name
        if is_active is not None:
            data["isActive"] = is_active
        if expiration is not None:
            data["expiration"] = {"startDate": None, "endDate": expiration}
        if not data:
            raise ToolError("update_survey needs at least one of name, is_active or expiration")

        result = await survey_api.update_survey(survey_id, data)
        return tool_success({
            "success": True,
            "surveyId": survey_id,
            "message": "Survey updated successfully",
            "details": result_of(result),
        })

    @mcp.tool(name="delete_survey", description="Delete a survey. Requires name confirmation as a safety measure.")
    @with_error_handling("delete_survey")
    async def delete_survey(
        survey_id: SurveyId,
        confirm_name: Annotated[str, Field(min_length=1, description="Type the survey name to confirm deletion")],
    ) -> str:
        info = result_of(await client.get_survey(survey_id))
        actual_name = info.get("name") or info.get("SurveyName")
        if actual_name != confirm_name:
            raise ToolError(
                f'Survey name mismatch. Expected "{actual_name}" but got '
                f'"{confirm_name}". Deletion cancelled for safety.'
            )

        result = await survey_api.delete_survey(survey_id)
        return tool_success({
            "success": True,
            "surveyId": survey_id,
            "message": f'Survey "{confirm_name}" deleted successfully',
            "details": result_of(result),
        })

    @mcp.tool(name="activate_survey", description="Activate a survey to begin collecting responses")
    @with_error_handling("activate_survey")
    async def activate_survey(survey_id: SurveyId) -> str:
        result = await survey_api.activate_survey(survey_id)
        return tool_success({
            "success": True,
            "surveyId": survey_id,
            "message": "Survey activated successfully",
            "details": result_of(result),
        })

    @mcp.tool(name="deactivate_survey", description="Deactivate a survey to stop collecting responses")
    @with_error_handling("deactivate_survey")
    async def deactivate_survey(survey_id: SurveyId) -> str:
        result = await survey_api.deactivate_survey(survey_id)
        return tool_success({
            "success": True,
            "surveyId": survey_id,
            "message": "Survey deactivated successfully",
            "details": result_of(result),
        })
