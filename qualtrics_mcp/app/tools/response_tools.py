"""Response export and single-response tools."""

import asyncio
import json
from pathlib import Path
from typing import Annotated, Any, Dict, List, Literal, Optional

from mcp.server.fastmcp import FastMCP
from mcp.server.fastmcp.exceptions import ToolError
from pydantic import Field

from qualtrics_mcp.app.core.logging import get_log_context, get_logger
from qualtrics_mcp.app.services.export_poller import (
    ExportFilters,
    ExportPoller,
    ExportResult,
    ExportStatus,
)
from qualtrics_mcp.app.services.file_save import save_export_to_file
from qualtrics_mcp.app.services.response_api import ResponseApi
from qualtrics_mcp.app.tools._helpers import result_of, tool_success, with_error_handling

logger = get_logger(__name__)

SurveyId = Annotated[str, Field(min_length=1, description="The Qualtrics survey ID")]
ExportFormat = Annotated[Literal["json", "csv"], Field(description="Export format")]
WaitForCompletion = Annotated[bool, Field(description="Wait for export to complete before returning")]
SaveToFile = Annotated[
    Optional[str],
    Field(
        description=(
            "File name (e.g. 'survey_data.csv') or absolute path to save the export to. "
            "Relative names land in the download folder. If omitted, exports over "
            "100KB are saved automatically with a timestamped name."
        )
    ),
]


def _inline_data(text: str, fmt: str) -> Any:
    if fmt != "json":
        return text
    try:
        return json.loads(text)
    except ValueError:
        return text


async def render_export_result(
    result: ExportResult,
    save_to: Optional[str] = None,
    suffix: Optional[str] = None,
    download_dir: Optional[Path] = None,
) -> Dict[str, Any]:
    """Turn an export outcome into the payload returned to the assistant.

    Completed artifacts are inlined only when small and no file was
    requested; fallback artifacts are always written to disk.

    Raises:
        ToolError: When both the export and its fallback failed.
    """
    status = result.status
    base: Dict[str, Any] = {"status": status.value, "surveyId": result.survey_id}

    if status == ExportStatus.FAILED:
        raise ToolError(
            f"Error exporting responses: {result.error_message}. You may need to log "
            "into Qualtrics directly to export manually if the issue persists."
        )

    if status == ExportStatus.STARTED:
        return {
            **base,
            "progressId": result.progress_id,
            "filters": result.filters,
            "message": "Export started. Use check_export_status to monitor progress.",
        }

    if status == ExportStatus.TIMEOUT:
        return {
            **base,
            "progressId": result.progress_id,
            "filters": result.filters,
            "message": "Export is taking longer than expected. Use check_export_status to monitor.",
        }

    if status == ExportStatus.FALLBACK_TIMEOUT:
        return {
            **base,
            "originalError": result.original_error,
            "progressId": result.progress_id,
            "appliedFilters": result.filters,
            "message": (
                "Both the original export and the CSV fallback are taking longer than "
                "expected. Use check_export_status to monitor the CSV export progress."
            ),
        }

    if status == ExportStatus.CANCELLED:
        return {
            **base,
            "progressId": result.progress_id,
            "originalError": result.original_error,
            "message": "Polling was cancelled. The export may still finish; use check_export_status.",
        }

    artifact = result.artifact
    metadata = {"progressId": result.progress_id, "fileId": artifact.file_id}

    if status == ExportStatus.COMPLETED_VIA_FALLBACK:
        saved = await asyncio.to_thread(
            save_export_to_file, artifact.text, result.survey_id, result.format,
            None, suffix, download_dir,
        )
        return {
            **base,
            "originalError": result.original_error,
            "format": result.format,
            "appliedFilters": result.filters,
            "savedToFile": str(saved.file_path),
            "fileSize": saved.size_bytes,
            "message": (
                "Original export failed, but CSV export succeeded and was saved to: "
                f"{saved.file_path}"
            ),
            "metadata": metadata,
        }

    if save_to or artifact.requires_persistence:
        saved = await asyncio.to_thread(
            save_export_to_file, artifact.text, result.survey_id, result.format,
            save_to, suffix, download_dir,
        )
        if saved.was_auto_saved:
            message = (
                f"Large export ({saved.size_mb}MB) automatically saved to avoid "
                f"context limits. File location: {saved.file_path}"
            )
        else:
            message = f"Export saved to {saved.file_path}"
        return {
            **base,
            "format": result.format,
            "filters": result.filters,
            "savedToFile": str(saved.file_path),
            "fileSize": saved.size_bytes,
            "fileSizeMB": saved.size_mb,
            "wasAutoSaved": saved.was_auto_saved,
            "message": message,
            "metadata": metadata,
        }

    return {
        **base,
        "format": result.format,
        "filters": result.filters,
        "fileSize": artifact.size_bytes,
        "fileSizeMB": artifact.size_mb,
        "data": _inline_data(artifact.text, result.format),
        "message": f"Small export ({artifact.size_mb}MB) returned directly",
        "metadata": metadata,
    }


def register_response_tools(
    mcp: FastMCP,
    poller: ExportPoller,
    download_dir: Optional[Path] = None,
) -> None:
    response_api = ResponseApi(poller.client)

    @mcp.tool(
        name="export_responses",
        description=(
            "Export survey responses in JSON or CSV format. Large exports are saved "
            "to a local file automatically to avoid context limits. For better control "
            "over data size use 'export_responses_filtered'."
        ),
    )
    @with_error_handling("export_responses")
    async def export_responses(
        survey_id: SurveyId,
        format: ExportFormat = "json",
        wait_for_completion: WaitForCompletion = True,
        save_to_file: SaveToFile = None,
    ) -> str:
        logger.info("Export requested", extra=get_log_context(tool="export_responses", survey_id=survey_id))
        result = await poller.run(survey_id, format, None, wait_for_completion)
        return tool_success(await render_export_result(result, save_to_file, None, download_dir))

    @mcp.tool(
        name="export_responses_filtered",
        description=(
            "Export survey responses with filters to reduce data size. Use date "
            "filters, question selection, or completion status to create manageable "
            "datasets. Large exports are saved to a local file automatically."
        ),
    )
    @with_error_handling("export_responses_filtered")
    async def export_responses_filtered(
        survey_id: SurveyId,
        format: ExportFormat = "json",
        wait_for_completion: WaitForCompletion = True,
        save_to_file: SaveToFile = None,
        start_date: Annotated[Optional[str], Field(description="Start date filter (YYYY-MM-DD or YYYY-MM-DDTHH:MM:SSZ)")] = None,
        end_date: Annotated[Optional[str], Field(description="End date filter (YYYY-MM-DD or YYYY-MM-DDTHH:MM:SSZ)")] = None,
        filter_type: Annotated[Literal["complete", "incomplete", "all"], Field(description="Response completion filter")] = "all",
        include_display_order: Annotated[Optional[bool], Field(description="Include display order in export")] = None,
        use_labels: Annotated[Optional[bool], Field(description="Use choice labels instead of values")] = None,
        question_ids: Annotated[Optional[List[str]], Field(description="Only export these question IDs")] = None,
        embedded_data_ids: Annotated[Optional[List[str]], Field(description="Only export these embedded data fields")] = None,
    ) -> str:
        filters = ExportFilters(
            start_date=start_date,
            end_date=end_date,
            filter_type=filter_type,
            include_display_order=include_display_order,
            use_labels=use_labels,
            question_ids=question_ids or [],
            embedded_data_ids=embedded_data_ids or [],
        )
        logger.info(
            "Filtered export requested",
            extra=get_log_context(tool="export_responses_filtered", survey_id=survey_id),
        )
        result = await poller.run(survey_id, format, filters, wait_for_completion)
        return tool_success(await render_export_result(result, save_to_file, "filtered", download_dir))

    @mcp.tool(name="check_export_status", description="Check the status of a response export job")
    @with_error_handling("check_export_status")
    async def check_export_status(
        survey_id: SurveyId,
        export_progress_id: Annotated[str, Field(min_length=1, description="The progress ID returned by an export tool")],
    ) -> str:
        progress = await poller.check_status(survey_id, export_progress_id)
        if progress.is_complete:
            status = ExportStatus.COMPLETED
        elif progress.is_failed:
            status = ExportStatus.FAILED
        else:
            status = ExportStatus.IN_PROGRESS
        return tool_success({
            "progressId": export_progress_id,
            "percentComplete": progress.percent_complete,
            "status": status.value,
            "remoteStatus": progress.status,
            "isComplete": progress.is_complete,
            "fileId": progress.file_id,
        })

    @mcp.tool(name="get_response", description="Get a single survey response by its response ID")
    @with_error_handling("get_response")
    async def get_response(
        survey_id: SurveyId,
        response_id: Annotated[str, Field(min_length=1, description="The response ID (e.g., R_123456789)")],
    ) -> str:
        result = await response_api.get_response(survey_id, response_id)
        return tool_success({
            "surveyId": survey_id,
            "responseId": response_id,
            "response": result_of(result),
        })

    @mcp.tool(name="create_response", description="Import/create a response for a survey programmatically")
    @with_error_handling("create_response")
    async def create_response(
        survey_id: SurveyId,
        values: Annotated[Dict[str, Any], Field(description="Response values keyed by question ID")],
        embedded_data: Annotated[Optional[Dict[str, Any]], Field(description="Embedded data fields")] = None,
    ) -> str:
        data: Dict[str, Any] = {"values": values}
        if embedded_data:
            data["embeddedData"] = embedded_data
        result = result_of(await response_api.create_response(survey_id, data))
        return tool_success({
            "success": True,
            "surveyId": survey_id,
            "responseId": result.get("responseId") if isinstance(result, dict) else None,
            "message": "Response created successfully",
            "details": result,
        })

    @mcp.tool(name="update_response", description="Update an existing survey response")
    @with_error_handling("update_response")
    async def update_response(
        survey_id: SurveyId,
        response_id: Annotated[str, Field(min_length=1, description="The response ID to update")],
        values: Annotated[Dict[str, Any], Field(description="Updated response values keyed by question ID")],
        embedded_data: Annotated[Optional[Dict[str, Any]], Field(description="Updated embedded data fields")] = None,
    ) -> str:
        data: Dict[str, Any] = {"values": values}
        if embedded_data:
            data["embeddedData"] = embedded_data
        result = await response_api.update_response(survey_id, response_id, data)
        return tool_success({
            "success": True,
            "surveyId": survey_id,
            "responseId": response_id,
            "message": "Response updated successfully",
            "details": result_of(result),
        })

    @mcp.tool(name="delete_response", description="Delete a survey response")
    @with_error_handling("delete_response")
    async def delete_response(
        survey_id: SurveyId,
        response_id: Annotated[str, Field(min_length=1, description="The response ID to delete")],
    ) -> str:
        result = await response_api.delete_response(survey_id, response_id)
        return tool_success({
            "success": True,
            "surveyId": survey_id,
            "responseId": response_id,
            "message": "Response deleted successfully",
            "details": result_of(result),
        })
