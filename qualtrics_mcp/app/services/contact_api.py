"""Mailing list and contact endpoints."""

from typing import Any, Dict, List, Optional
from urllib.parse import urlencode

from qualtrics_mcp.app.services.qualtrics_client import QualtricsClient


class ContactApi:
    def __init__(self, client: QualtricsClient):
        self.client = client

    async def list_mailing_lists(self) -> Any:
        return await self.client.request("/mailinglists")

    async def create_mailing_list(self, data: Dict[str, Any]) -> Any:
        return await self.client.request("/mailinglists", method="POST", body=data)

    async def delete_mailing_list(self, mailing_list_id: str) -> Any:
        return await self.client.request(f"/mailinglists/{mailing_list_id}", method="DELETE")

    async def list_contacts(
        self,
        mailing_list_id: str,
        offset: Optional[int] = None,
        limit: Optional[int] = None,
    ) -> Any:
        params: Dict[str, int] = {}
        if offset is not None:
            params["offset"] = offset
        if limit is not None:
            params["pageSize"] = limit
        query = f"?{urlencode(params)}" if params else ""
        return await self.client.request(f"/mailinglists/{mailing_list_id}/contacts{query}")

    async def create_contact(self, mailing_list_id: str, data: Dict[str, Any]) -> Any:
        return await self.client.request(
            f"/mailinglists/{mailing_list_id}/contacts", method="POST", body=data
        )

    async def update_contact(
        self, mailing_list_id: str, contact_id: str, data: Dict[str, Any]
    ) -> Any:
        return await self.client.request(
            f"/mailinglists/{mailing_list_id}/contacts/{contact_id}",
            method="PUT",
            body=data,
        )

    async def delete_contact(self, mailing_list_id: str, contact_id: str) -> Any:
        return await self.client.request(
            f"/mailinglists/{mailing_list_id}/contacts/{contact_id}", method="DELETE"
        )

    async def bulk_import_contacts(
        self, mailing_list_id: str, contacts: List[Dict[str, Any]]
    ) -> Any:
        return await self.client.request(
            f"/mailinglists/{mailing_list_id}/contacts",
            method="POST",
            body={"contacts": contacts},
        )
