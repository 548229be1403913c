"""Single-response endpoints. Bulk exports live in export_poller."""

from typing import Any, Dict

from qualtrics_mcp.app.services.qualtrics_client import QualtricsClient


class ResponseApi:
    def __init__(self, client: QualtricsClient):
        self.client = client

    async def get_response(self, survey_id: str, response_id: str) -> Any:
        return await self.client.request(f"/surveys/{survey_id}/responses/{response_id}")

    async def create_response(self, survey_id: str, data: Dict[str, Any]) -> Any:
        return await self.client.request(
            f"/surveys/{survey_id}/responses", method="POST", body=data
        )

    async def update_response(
        self, survey_id: str, response_id: str, data: Dict[str, Any]
    ) -> Any:
        return await self.client.request(
            f"/surveys/{survey_id}/responses/{response_id}", method="PUT", body=data
        )

    async def delete_response(self, survey_id: str, response_id: str) -> Any:
        return await self.client.request(
            f"/surveys/{survey_id}/responses/{response_id}", method="DELETE"
        )
