"""Event subscription (webhook) tools."""

from typing import Annotated

from mcp.server.fastmcp import FastMCP
from pydantic import Field

from qualtrics_mcp.app.services.qualtrics_client import QualtricsClient
from qualtrics_mcp.app.services.webhook_api import WebhookApi
from qualtrics_mcp.app.tools._helpers import (
    elements_of,
    result_of,
    tool_success,
    with_error_handling,
)


def register_webhook_tools(mcp: FastMCP, client: QualtricsClient) -> None:
    webhook_api = WebhookApi(client)

    @mcp.tool(name="list_webhooks", description="List all event subscriptions (webhooks) in your Qualtrics account")
    @with_error_handling("list_webhooks")
    async def list_webhooks() -> str:
        subscriptions = elements_of(await webhook_api.list_webhooks())
        return tool_success({
            "webhooks": [
                {
                    "id": s.get("id"),
                    "topics": s.get("topics"),
                    "publicationUrl": s.get("publicationUrl"),
                    "encrypted": s.get("encrypted"),
                    "scope": s.get("scope"),
                    "successfulPublications": s.get("successfulPublications"),
                }
                for s in subscriptions
            ],
            "total": len(subscriptions),
        })

    @mcp.tool(
        name="create_webhook",
        description="Create an event subscription (webhook) to receive notifications for Qualtrics events",
    )
    @with_error_handling("create_webhook")
    async def create_webhook(
        topics: Annotated[str, Field(min_length=1, description="Event topic, e.g. 'completedResponse.{surveyId}'")],
        publication_url: Annotated[str, Field(min_length=1, description="URL to receive webhook notifications")],
        encrypted: Annotated[bool, Field(description="Encrypt the webhook payload")] = False,
    ) -> str:
        result = result_of(await webhook_api.create_webhook({
            "topics": topics,
            "publicationUrl": publication_url,
            "encrypt": encrypted,
        }))
        return tool_success({
            "success": True,
            "subscriptionId": result.get("id") if isinstance(result, dict) else None,
            "message": "Webhook created successfully",
            "details": result,
        })

    @mcp.tool(name="delete_webhook", description="Delete an event subscription (webhook)")
    @with_error_handling("delete_webhook")
    async def delete_webhook(
        subscription_id: Annotated[str, Field(min_length=1, description="The subscription ID to delete")],
    ) -> str:
        result = await webhook_api.delete_webhook(subscription_id)
        return tool_success({
            "success": True,
            "subscriptionId": subscription_id,
            "message": "Webhook deleted successfully",
            "details": result_of(result),
        })
