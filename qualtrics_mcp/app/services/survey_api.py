"""Survey, question and block endpoints."""

from typing import Any, Dict
from urllib.parse import urlencode

from qualtrics_mcp.app.services.qualtrics_client import QualtricsClient


class SurveyApi:
    def __init__(self, client: QualtricsClient):
        self.client = client

    async def update_survey(self, survey_id: str, data: Dict[str, Any]) -> Any:
        return await self.client.request(f"/surveys/{survey_id}", method="PUT", body=data)

    async def delete_survey(self, survey_id: str) -> Any:
        return await self.client.request(f"/surveys/{survey_id}", method="DELETE")

    async def activate_survey(self, survey_id: str) -> Any:
        return await self.update_survey(survey_id, {"isActive": True})

    async def deactivate_survey(self, survey_id: str) -> Any:
        return await self.update_survey(survey_id, {"isActive": False})

    # Questions

    async def list_questions(self, survey_id: str) -> Any:
        return await self.client.request(f"/survey-definitions/{survey_id}/questions")

    async def get_question(self, survey_id: str, question_id: str) -> Any:
        return await self.client.request(
            f"/survey-definitions/{survey_id}/questions/{question_id}"
        )

    async def create_question(
        self, survey_id: str, block_id: str, data: Dict[str, Any]
    ) -> Any:
        query = urlencode({"blockId": block_id})
        return await self.client.request(
            f"/survey-definitions/{survey_id}/questions?{query}", method="POST", body=data
        )

    async def update_question(
        self, survey_id: str, question_id: str, data: Dict[str, Any]
    ) -> Any:
        return await self.client.request(
            f"/survey-definitions/{survey_id}/questions/{question_id}",
            method="PUT",
            body=data,
        )

    async def delete_question(self, survey_id: str, question_id: str) -> Any:
        return await self.client.request(
            f"/survey-definitions/{survey_id}/questions/{question_id}", method="DELETE"
        )

    # Blocks

    async def list_blocks(self, survey_id: str) -> Any:
        return await self.client.request(f"/survey-definitions/{survey_id}/blocks")

    async def get_block(self, survey_id: str, block_id: str) -> Any:
        return await self.client.request(
            f"/survey-definitions/{survey_id}/blocks/{block_id}"
        )

    async def create_block(self, survey_id: str, data: Dict[str, Any]) -> Any:
        return await self.client.request(
            f"/survey-definitions/{survey_id}/blocks", method="POST", body=data
        )

    async def update_block(self, survey_id: str, block_id: str, data: Dict[str, Any]) -> Any:
        return await self.client.request(
            f"/survey-definitions/{survey_id}/blocks/{block_id}", method="PUT", body=data
        )

    async def delete_block(self, survey_id: str, block_id: str) -> Any:
        return await self.client.request(
            f"/survey-definitions/{survey_id}/blocks/{block_id}", method="DELETE"
        )
