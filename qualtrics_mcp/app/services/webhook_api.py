"""Event subscription (webhook) endpoints."""

from typing import Any, Dict

from qualtrics_mcp.app.services.qualtrics_client import QualtricsClient


class WebhookApi:
    def __init__(self, client: QualtricsClient):
        self.client = client

    async def list_webhooks(self) -> Any:
        return await self.client.request("/eventsubscriptions")

    async def create_webhook(self, data: Dict[str, Any]) -> Any:
        return await self.client.request("/eventsubscriptions", method="POST", body=data)

    async def delete_webhook(self, subscription_id: str) -> Any:
        return await self.client.request(
            f"/eventsubscriptions/{subscription_id}", method="DELETE"
        )
