import sys
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from mcp.server.fastmcp import FastMCP

from qualtrics_mcp import __version__
from qualtrics_mcp.app.core.config import Settings, settings as default_settings
from qualtrics_mcp.app.core.http_client import init_http_client
from qualtrics_mcp.app.core.logging import get_logger, setup_logging
from qualtrics_mcp.app.exceptions import ConfigurationError
from qualtrics_mcp.app.services.export_poller import ExportPoller
from qualtrics_mcp.app.services.qualtrics_client import QualtricsClient
from qualtrics_mcp.app.tools import register_tools

SERVER_NAME = "qualtrics-mcp-server"

logger = get_logger(__name__)


def create_server(settings: Optional[Settings] = None) -> FastMCP:
    """Create the MCP server with every Qualtrics tool registered.

    Tools are bound to one QualtricsClient at registration time; the
    lifespan attaches the pooled HTTP client to it for the life of the
    session and detaches it on shutdown.
    """
    settings = settings or default_settings
    client = QualtricsClient.from_settings(settings)
    poller = ExportPoller(client)

    @asynccontextmanager
    async def lifespan(server: FastMCP) -> AsyncIterator[dict]:
        async with init_http_client() as http_client:
            client.attach_http_client(http_client)
            logger.info(
                "Server startup complete",
                extra={
                    "base_url": settings.base_url,
                    "rate_limiting_enabled": settings.rate_limiting_enabled,
                    "rate_limit_rpm": settings.rate_limit_rpm,
                },
            )
            try:
                yield {"client": client, "poller": poller}
            finally:
                client.attach_http_client(None)
                logger.info("Server shutdown complete")

    mcp = FastMCP(SERVER_NAME, lifespan=lifespan)
    register_tools(mcp, client, poller, settings.export_download_dir)
    return mcp


def main() -> None:
    """Console entry point: serve the tools over stdio."""
    setup_logging()
    try:
        default_settings.check_credentials()
    except ConfigurationError as e:
        logger.error(str(e))
        sys.exit(1)

    logger.info(f"Starting {SERVER_NAME} {__version__}")
    mcp = create_server(default_settings)
    mcp.run()  # stdio transport


if __name__ == "__main__":
    main()
