"""Services package for the MCP server.

This package provides:
- Outbound rate limiting (RateLimiter)
- The authenticated request pipeline (QualtricsClient)
- Response export orchestration with CSV fallback (ExportPoller)
- Export file persistence
- Thin resource APIs used by the tool layer
"""

from qualtrics_mcp.app.services.rate_limiter import RateLimiter
from qualtrics_mcp.app.services.qualtrics_client import QualtricsClient
from qualtrics_mcp.app.services.export_poller import (
    DownloadedArtifact,
    ExportFilters,
    ExportJob,
    ExportPoller,
    ExportProgress,
    ExportResult,
    ExportStatus,
    requires_persistence,
)
from qualtrics_mcp.app.services.file_save import SavedExport, save_export_to_file
from qualtrics_mcp.app.services.contact_api import ContactApi
from qualtrics_mcp.app.services.distribution_api import DistributionApi
from qualtrics_mcp.app.services.flow_api import FlowApi
from qualtrics_mcp.app.services.response_api import ResponseApi
from qualtrics_mcp.app.services.survey_api import SurveyApi
from qualtrics_mcp.app.services.user_api import UserApi
from qualtrics_mcp.app.services.webhook_api import WebhookApi

__all__ = [
    # Pipeline
    "RateLimiter",
    "QualtricsClient",
    # Exports
    "DownloadedArtifact",
    "ExportFilters",
    "ExportJob",
    "ExportPoller",
    "ExportProgress",
    "ExportResult",
    "ExportStatus",
    "requires_persistence",
    "SavedExport",
    "save_export_to_file",
    # Resource APIs
    "ContactApi",
    "DistributionApi",
    "FlowApi",
    "ResponseApi",
    "SurveyApi",
    "UserApi",
    "WebhookApi",
]
