"""Shared HTTP client management for connection pooling.

The MCP server opens one httpx.AsyncClient in its lifespan and hands it to
the Qualtrics pipeline, so all tool invocations reuse the same pool.
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

import httpx

from qualtrics_mcp.app.core.config import settings


def _default_timeout() -> httpx.Timeout:
    # The pipeline enforces the total deadline; these bound each phase.
    return httpx.Timeout(
        connect=settings.httpx_connect_timeout,
        read=settings.httpx_read_timeout,
        write=settings.httpx_write_timeout,
        pool=settings.httpx_pool_timeout,
    )


@asynccontextmanager
async def init_http_client(**kwargs) -> AsyncGenerator[httpx.AsyncClient, None]:
    """Open the pooled HTTP client for the server's lifetime.

    Used in the server lifespan:

        @asynccontextmanager
        async def lifespan(server: FastMCP):
            async with init_http_client() as http_client:
                client.attach_http_client(http_client)
                yield ...

    Keyword arguments are passed to create_http_client.
    """
    http_client = create_http_client(**kwargs)
    try:
        yield http_client
    finally:
        await http_client.aclose()


def create_http_client(**kwargs) -> httpx.AsyncClient:
    """Create a new HTTP client with default settings.

    The returned client should be closed when done:
        async with create_http_client() as client:
            ...

    Args:
        **kwargs: Override default settings. Can include:
            - timeout: Single timeout value (overrides all granular timeouts)
            - transport: Custom transport (e.g. httpx.MockTransport in tests)
            - max_connections: Maximum connections
            - max_keepalive_connections: Maximum idle connections kept open
            - keepalive_expiry: Idle connection lifetime in seconds
    """
    timeout_override = kwargs.get("timeout")
    if timeout_override is not None:
        timeout = httpx.Timeout(timeout_override)
    else:
        timeout = _default_timeout()

    limits = httpx.Limits(
        max_connections=kwargs.get("max_connections", settings.httpx_max_connections),
        max_keepalive_connections=kwargs.get(
            "max_keepalive_connections", settings.httpx_max_keepalive_connections
        ),
        keepalive_expiry=kwargs.get("keepalive_expiry", settings.httpx_keepalive_expiry),
    )

    config = {"timeout": timeout, "limits": limits}
    if kwargs.get("transport") is not None:
        config["transport"] = kwargs["transport"]
    return httpx.AsyncClient(**config)
