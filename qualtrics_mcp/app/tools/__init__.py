"""MCP tool registration.

Each module registers one group of tools on a FastMCP server; all of them
share the same QualtricsClient so every call passes the same rate limiter.
"""

from pathlib import Path
from typing import Optional

from mcp.server.fastmcp import FastMCP

from qualtrics_mcp.app.services.export_poller import ExportPoller
from qualtrics_mcp.app.services.qualtrics_client import QualtricsClient
from qualtrics_mcp.app.tools.contact_tools import register_contact_tools
from qualtrics_mcp.app.tools.distribution_tools import register_distribution_tools
from qualtrics_mcp.app.tools.flow_tools import register_flow_tools
from qualtrics_mcp.app.tools.question_tools import register_question_tools
from qualtrics_mcp.app.tools.response_tools import register_response_tools
from qualtrics_mcp.app.tools.survey_tools import register_survey_tools
from qualtrics_mcp.app.tools.user_tools import register_user_tools
from qualtrics_mcp.app.tools.webhook_tools import register_webhook_tools


def register_tools(
    mcp: FastMCP,
    client: QualtricsClient,
    poller: Optional[ExportPoller] = None,
    download_dir: Optional[Path] = None,
) -> None:
    """Register every tool group on the server."""
    register_survey_tools(mcp, client)
    register_response_tools(mcp, poller or ExportPoller(client), download_dir)
    register_question_tools(mcp, client)
    register_flow_tools(mcp, client)
    register_contact_tools(mcp, client)
    register_distribution_tools(mcp, client)
    register_user_tools(mcp, client)
    register_webhook_tools(mcp, client)


__all__ = ["register_tools"]
