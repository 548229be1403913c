"""Survey flow endpoints."""

from typing import Any, Dict

from qualtrics_mcp.app.services.qualtrics_client import QualtricsClient


class FlowApi:
    """The flow is one tree per survey; updates replace it wholesale."""

    def __init__(self, client: QualtricsClient):
        self.client = client

    async def get_flow(self, survey_id: str) -> Any:
        return await self.client.request(f"/survey-definitions/{survey_id}/flow")

    async def update_flow(self, survey_id: str, flow: Dict[str, Any]) -> Any:
        return await self.client.request(
            f"/survey-definitions/{survey_id}/flow", method="PUT", body=flow
        )

    async def update_flow_element(
        self, survey_id: str, flow_id: str, element: Dict[str, Any]
    ) -> Any:
        return await self.client.request(
            f"/survey-definitions/{survey_id}/flow/{flow_id}", method="PUT", body=element
        )
