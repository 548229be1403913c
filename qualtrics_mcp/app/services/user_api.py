from typing import Any, Dict, Optional
from urllib.parse import urlencode

from qualtrics_mcp.app.services.qualtrics_client import QualtricsClient


class UserApi:
    def __init__(self, client: QualtricsClient):
        self.client = client

    async def list_users(self, offset: Optional[int] = None, limit: Optional[int] = None) -> Any:
        params: Dict[str, int] = {}
        if offset is not None:
            params["offset"] = offset
        if limit is not None:
            params["limit"] = limit
        query = f"?{urlencode(params)}" if params else ""
        return await self.client.request(f"/users{query}")

    async def get_user(self, user_id: str) -> Any:
        return await self.client.request(f"/users/{user_id}")
