"""Shared helpers for MCP tool handlers."""

import functools
import json
from typing import Any, Awaitable, Callable, TypeVar

from mcp.server.fastmcp.exceptions import ToolError

from qualtrics_mcp.app.core.logging import get_log_context, get_logger
from qualtrics_mcp.app.exceptions import (
    QualtricsAPIError,
    QualtricsError,
    QualtricsRequestError,
    RequestTimeoutError,
)

logger = get_logger(__name__)

F = TypeVar("F", bound=Callable[..., Awaitable[Any]])


def tool_success(data: Any) -> str:
    """Render a tool result as the text block returned to the assistant."""
    if isinstance(data, str):
        return data
    return json.dumps(data, indent=2, default=str, ensure_ascii=False)


def error_hint(error: QualtricsError) -> str:
    """Suggest a next step for common failures."""
    if isinstance(error, RequestTimeoutError):
        return (
            "The request timed out. Large surveys export faster with "
            "'export_responses_filtered' and a date range."
        )
    if isinstance(error, QualtricsAPIError):
        if error.status_code in (401, 403):
            return "Check that QUALTRICS_API_TOKEN is valid and has access to this resource."
        if error.status_code == 404:
            return "Check that the ID is correct and belongs to this account."
        if error.status_code == 429:
            return "Qualtrics is throttling requests. Lower RATE_LIMIT_RPM or retry shortly."
    if isinstance(error, QualtricsRequestError):
        return "Check network access and the QUALTRICS_DATA_CENTER / QUALTRICS_BASE_URL setting."
    return ""


def format_error(name: str, error: QualtricsError) -> str:
    message = f"Error in {name}: {error.message}"
    hint = error_hint(error)
    return f"{message}. {hint}" if hint else message


def with_error_handling(name: str) -> Callable[[F], F]:
    """Decorator turning Qualtrics errors into MCP tool errors.

    The assistant receives the error message verbatim plus a hint; other
    exceptions propagate to the MCP runtime unchanged.

    Example:
        >>> @mcp.tool(name="get_user")
        ... @with_error_handling("get_user")
        ... async def get_user(user_id: str) -> str:
        ...     ...
    """

    def decorator(func: F) -> F:
        @functools.wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> Any:
            try:
                return await func(*args, **kwargs)
            except QualtricsError as e:
                logger.warning(f"Tool {name} failed: {e}", extra=get_log_context(tool=name))
                raise ToolError(format_error(name, e)) from e

        return wrapper  # type: ignore

    return decorator


def result_of(response: Any) -> Any:
    """Unwrap the ``result`` envelope Qualtrics puts around payloads."""
    if isinstance(response, dict) and "result" in response:
        return response["result"]
    return response


def elements_of(response: Any) -> list:
    """List the elements of a collection response.

    Qualtrics returns collections either as ``{"elements": [...]}`` or as a
    mapping keyed by id; the mapping form gets its key folded in as ``ID``.
    """
    result = result_of(response)
    if isinstance(result, dict) and "elements" in result:
        result = result["elements"]
    if isinstance(result, list):
        return result
    if isinstance(result, dict):
        return [
            {"ID": key, **value} if isinstance(value, dict) else {"ID": key, "value": value}
            for key, value in result.items()
        ]
    return []
