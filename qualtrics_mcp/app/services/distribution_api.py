"""Distribution endpoints (email sends, anonymous links, reminders)."""

from typing import Any, Dict
from urllib.parse import urlencode

from qualtrics_mcp.app.services.qualtrics_client import QualtricsClient


class DistributionApi:
    def __init__(self, client: QualtricsClient):
        self.client = client

    async def list_distributions(self, survey_id: str) -> Any:
        return await self.client.request(f"/distributions?{urlencode({'surveyId': survey_id})}")

    async def get_distribution(self, distribution_id: str, survey_id: str) -> Any:
        return await self.client.request(
            f"/distributions/{distribution_id}?{urlencode({'surveyId': survey_id})}"
        )

    async def create_distribution(self, data: Dict[str, Any]) -> Any:
        return await self.client.request("/distributions", method="POST", body=data)

    async def delete_distribution(self, distribution_id: str) -> Any:
        return await self.client.request(f"/distributions/{distribution_id}", method="DELETE")

    async def create_reminder(self, distribution_id: str, data: Dict[str, Any]) -> Any:
        return await self.client.request(
            f"/distributions/{distribution_id}/reminders", method="POST", body=data
        )
