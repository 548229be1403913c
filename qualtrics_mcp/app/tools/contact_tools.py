"""Mailing list and contact tools."""

from typing import Annotated, Any, Dict, List, Optional

from mcp.server.fastmcp import FastMCP
from pydantic import BaseModel, Field

from qualtrics_mcp.app.services.contact_api import ContactApi
from qualtrics_mcp.app.services.qualtrics_client import QualtricsClient
from qualtrics_mcp.app.tools._helpers import (
    elements_of,
    result_of,
    tool_success,
    with_error_handling,
)

MailingListId = Annotated[str, Field(min_length=1, description="The mailing list ID")]
ContactId = Annotated[str, Field(min_length=1, description="The contact ID")]


class ContactInput(BaseModel):
    """One contact in a bulk import."""

    email: str = Field(description="Contact email address")
    firstName: Optional[str] = Field(default=None, description="Contact first name")
    lastName: Optional[str] = Field(default=None, description="Contact last name")
    language: Optional[str] = Field(default=None, description="Contact language code")
    embeddedData: Optional[Dict[str, Any]] = Field(default=None, description="Custom embedded data")


def register_contact_tools(mcp: FastMCP, client: QualtricsClient) -> None:
    contact_api = ContactApi(client)

    @mcp.tool(name="list_mailing_lists", description="List all mailing lists in your Qualtrics account")
    @with_error_handling("list_mailing_lists")
    async def list_mailing_lists() -> str:
        lists = elements_of(await contact_api.list_mailing_lists())
        return tool_success({
            "mailingLists": [
                {
                    "id": ml.get("id"),
                    "name": ml.get("name"),
                    "category": ml.get("category"),
                    "contactCount": ml.get("contactCount"),
                    "lastModifiedDate": ml.get("lastModifiedDate"),
                }
                for ml in lists
            ],
            "total": len(lists),
        })

    @mcp.tool(name="create_mailing_list", description="Create a new mailing list for contact management and survey distribution")
    @with_error_handling("create_mailing_list")
    async def create_mailing_list(
        name: Annotated[str, Field(min_length=1, description="Name for the mailing list")],
        category: Annotated[Optional[str], Field(description="Category/folder for the mailing list")] = None,
    ) -> str:
        data: Dict[str, Any] = {"name": name}
        if category:
            data["category"] = category
        result = result_of(await contact_api.create_mailing_list(data))
        return tool_success({
            "success": True,
            "mailingListId": result.get("id") if isinstance(result, dict) else None,
            "message": f'Mailing list "{name}" created successfully',
            "details": result,
        })

    @mcp.tool(name="delete_mailing_list", description="Delete a mailing list")
    @with_error_handling("delete_mailing_list")
    async def delete_mailing_list(mailing_list_id: MailingListId) -> str:
        result = await contact_api.delete_mailing_list(mailing_list_id)
        return tool_success({
            "success": True,
            "mailingListId": mailing_list_id,
            "message": "Mailing list deleted successfully",
            "details": result_of(result),
        })

    @mcp.tool(name="list_contacts", description="List contacts in a mailing list with pagination")
    @with_error_handling("list_contacts")
    async def list_contacts(
        mailing_list_id: MailingListId,
        limit: Annotated[Optional[int], Field(ge=1, description="Maximum number of contacts to return")] = None,
        offset: Annotated[Optional[int], Field(ge=0, description="Starting offset for pagination")] = None,
    ) -> str:
        response = await contact_api.list_contacts(mailing_list_id, offset, limit)
        result = result_of(response)
        contacts = elements_of(response)
        return tool_success({
            "mailingListId": mailing_list_id,
            "contacts": [
                {
                    "id": c.get("id"),
                    "firstName": c.get("firstName"),
                    "lastName": c.get("lastName"),
                    "email": c.get("email"),
                    "language": c.get("language"),
                    "unsubscribed": c.get("unsubscribed"),
                }
                for c in contacts
            ],
            "total": len(contacts),
            "nextPage": result.get("nextPage") if isinstance(result, dict) else None,
        })

    @mcp.tool(name="add_contact", description="Add a single contact to a mailing list")
    @with_error_handling("add_contact")
    async def add_contact(
        mailing_list_id: MailingListId,
        email: Annotated[str, Field(min_length=1, description="Contact email address")],
        first_name: Annotated[Optional[str], Field(description="Contact first name")] = None,
        last_name: Annotated[Optional[str], Field(description="Contact last name")] = None,
        language: Annotated[Optional[str], Field(description="Contact language code (e.g., EN)")] = None,
        embedded_data: Annotated[Optional[Dict[str, Any]], Field(description="Custom embedded data fields")] = None,
    ) -> str:
        contact = ContactInput(
            email=email,
            firstName=first_name,
            lastName=last_name,
            language=language,
            embeddedData=embedded_data,
        )
        result = result_of(
            await contact_api.create_contact(mailing_list_id, contact.model_dump(exclude_none=True))
        )
        return tool_success({
            "success": True,
            "mailingListId": mailing_list_id,
            "contactId": result.get("id") if isinstance(result, dict) else None,
            "message": f'Contact "{email}" added successfully',
            "details": result,
        })

    @mcp.tool(name="update_contact", description="Update an existing contact in a mailing list")
    @with_error_handling("update_contact")
    async def update_contact(
        mailing_list_id: MailingListId,
        contact_id: ContactId,
        email: Annotated[Optional[str], Field(description="Updated email address")] = None,
        first_name: Annotated[Optional[str], Field(description="Updated first name")] = None,
        last_name: Annotated[Optional[str], Field(description="Updated last name")] = None,
        embedded_data: Annotated[Optional[Dict[str, Any]], Field(description="Updated embedded data fields")] = None,
    ) -> str:
        data = {
            key: value
            for key, value in {
                "email": email,
                "firstName": first_name,
                "lastName": last_name,
                "embeddedData": embedded_data,
            }.items()
            if value is not None
        }
        result = await contact_api.update_contact(mailing_list_id, contact_id, data)
        return tool_success({
            "success": True,
            "mailingListId": mailing_list_id,
            "contactId": contact_id,
            "message": "Contact updated successfully",
            "details": result_of(result),
        })

    @mcp.tool(name="remove_contact", description="Remove a contact from a mailing list")
    @with_error_handling("remove_contact")
    async def remove_contact(mailing_list_id: MailingListId, contact_id: ContactId) -> str:
        result = await contact_api.delete_contact(mailing_list_id, contact_id)
        return tool_success({
            "success": True,
            "mailingListId": mailing_list_id,
            "contactId": contact_id,
            "message": "Contact removed successfully",
            "details": result_of(result),
        })

    @mcp.tool(name="bulk_import_contacts", description="Import multiple contacts into a mailing list at once")
    @with_error_handling("bulk_import_contacts")
    async def bulk_import_contacts(
        mailing_list_id: MailingListId,
        contacts: Annotated[List[ContactInput], Field(min_length=1, description="Contacts to import")],
    ) -> str:
        payload = [c.model_dump(exclude_none=True) for c in contacts]
        result = await contact_api.bulk_import_contacts(mailing_list_id, payload)
        return tool_success({
            "success": True,
            "mailingListId": mailing_list_id,
            "contactsImported": len(payload),
            "message": f"{len(payload)} contacts imported successfully",
            "details": result_of(result),
        })
