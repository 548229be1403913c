from typing import Annotated, Optional

from mcp.server.fastmcp import FastMCP
from pydantic import Field

from qualtrics_mcp.app.services.qualtrics_client import QualtricsClient
from qualtrics_mcp.app.services.user_api import UserApi
from qualtrics_mcp.app.tools._helpers import (
    elements_of,
    result_of,
    tool_success,
    with_error_handling,
)


def register_user_tools(mcp: FastMCP, client: QualtricsClient) -> None:
    user_api = UserApi(client)

    @mcp.tool(name="list_users", description="List users in your Qualtrics organization")
    @with_error_handling("list_users")
    async def list_users(
        limit: Annotated[Optional[int], Field(ge=1, description="Maximum number of users to return")] = None,
        offset: Annotated[Optional[int], Field(ge=0, description="Starting offset for pagination")] = None,
    ) -> str:
        users = elements_of(await user_api.list_users(offset, limit))
        return tool_success({
            "users": [
                {
                    "id": u.get("id"),
                    "username": u.get("username"),
                    "firstName": u.get("firstName"),
                    "lastName": u.get("lastName"),
                    "email": u.get("email"),
                    "userType": u.get("userType"),
                    "accountStatus": u.get("accountStatus"),
                    "lastLoginDate": u.get("lastLoginDate"),
                }
                for u in users
            ],
            "total": len(users),
        })

    @mcp.tool(name="get_user", description="Get detailed information about a specific user")
    @with_error_handling("get_user")
    async def get_user(
        user_id: Annotated[str, Field(min_length=1, description="The user ID")],
    ) -> str:
        result = await user_api.get_user(user_id)
        return tool_success({"user": result_of(result)})
