"""Distribution tools: anonymous links, email sends and reminders."""

from typing import Annotated, Any, Dict, Optional

from mcp.server.fastmcp import FastMCP
from pydantic import Field

from qualtrics_mcp.app.services.distribution_api import DistributionApi
from qualtrics_mcp.app.services.qualtrics_client import QualtricsClient
from qualtrics_mcp.app.tools._helpers import (
    elements_of,
    result_of,
    tool_success,
    with_error_handling,
)

SurveyId = Annotated[str, Field(min_length=1, description="The Qualtrics survey ID")]
DistributionId = Annotated[str, Field(min_length=1, description="The distribution ID")]
SendDate = Annotated[Optional[str], Field(description="Scheduled send date (ISO format). If omitted, sends immediately.")]


def email_envelope(
    from_name: str, reply_to_email: str, subject: str, library_id: str, message_id: str
) -> Dict[str, Any]:
    return {
        "header": {
            "fromName": from_name,
            "replyToEmail": reply_to_email,
            "subject": subject,
        },
        "message": {"libraryId": library_id, "messageId": message_id},
    }


def register_distribution_tools(mcp: FastMCP, client: QualtricsClient) -> None:
    distribution_api = DistributionApi(client)

    @mcp.tool(name="list_distributions", description="List all distributions for a survey (email sends, anonymous links, etc.)")
    @with_error_handling("list_distributions")
    async def list_distributions(survey_id: SurveyId) -> str:
        distributions = elements_of(await distribution_api.list_distributions(survey_id))
        return tool_success({
            "surveyId": survey_id,
            "distributions": [
                {
                    "id": d.get("id"),
                    "requestType": d.get("requestType"),
                    "requestStatus": d.get("requestStatus"),
                    "sendDate": d.get("sendDate"),
                    "createdDate": d.get("createdDate"),
                    "stats": d.get("stats"),
                }
                for d in distributions
            ],
            "total": len(distributions),
        })

    @mcp.tool(name="get_distribution", description="Get detailed information about a specific distribution including delivery stats")
    @with_error_handling("get_distribution")
    async def get_distribution(distribution_id: DistributionId, survey_id: SurveyId) -> str:
        result = await distribution_api.get_distribution(distribution_id, survey_id)
        return tool_success({"distribution": result_of(result)})

    @mcp.tool(name="create_anonymous_link", description="Generate an anonymous survey link for distribution")
    @with_error_handling("create_anonymous_link")
    async def create_anonymous_link(
        survey_id: SurveyId,
        description: Annotated[str, Field(min_length=1, description="Description for this distribution link")],
        expiration_date: Annotated[Optional[str], Field(description="Link expiration date (YYYY-MM-DDTHH:MM:SSZ)")] = None,
    ) -> str:
        data: Dict[str, Any] = {
            "surveyId": survey_id,
            "linkType": "Anonymous",
            "description": description,
            "action": "CreateDistribution",
        }
        if expiration_date:
            data["expirationDate"] = expiration_date

        result = result_of(await distribution_api.create_distribution(data))
        survey_link = result.get("surveyLink") or {}
        return tool_success({
            "success": True,
            "surveyId": survey_id,
            "distributionId": result.get("id"),
            "anonymousUrl": survey_link.get("url"),
            "message": "Anonymous link created successfully",
            "details": result,
        })

    @mcp.tool(name="create_email_distribution", description="Send a survey via email to a mailing list")
    @with_error_handling("create_email_distribution")
    async def create_email_distribution(
        survey_id: SurveyId,
        mailing_list_id: Annotated[str, Field(min_length=1, description="The mailing list ID to send to")],
        from_name: Annotated[str, Field(min_length=1, description="From name displayed in the email")],
        reply_to_email: Annotated[str, Field(min_length=1, description="Reply-to email address")],
        subject: Annotated[str, Field(min_length=1, description="Email subject line")],
        message_id: Annotated[str, Field(min_length=1, description="ID of the message template from the library")],
        library_id: Annotated[str, Field(min_length=1, description="ID of the library containing the message template")],
        send_date: SendDate = None,
    ) -> str:
        data: Dict[str, Any] = {
            "surveyId": survey_id,
            "linkType": "Individual",
            "description": f"Email distribution for {survey_id}",
            "action": "CreateDistribution",
            "recipients": {"mailingListId": mailing_list_id},
            **email_envelope(from_name, reply_to_email, subject, library_id, message_id),
        }
        if send_date:
            data["sendDate"] = send_date

        result = result_of(await distribution_api.create_distribution(data))
        return tool_success({
            "success": True,
            "surveyId": survey_id,
            "distributionId": result.get("id"),
            "message": (
                f"Email distribution scheduled for {send_date}"
                if send_date
                else "Email distribution created and sending"
            ),
            "details": result,
        })

    @mcp.tool(name="delete_distribution", description="Delete a distribution")
    @with_error_handling("delete_distribution")
    async def delete_distribution(distribution_id: DistributionId) -> str:
        result = await distribution_api.delete_distribution(distribution_id)
        return tool_success({
            "success": True,
            "distributionId": distribution_id,
            "message": "Distribution deleted successfully",
            "details": result_of(result),
        })

    @mcp.tool(name="create_reminder", description="Send a reminder for an existing email distribution")
    @with_error_handling("create_reminder")
    async def create_reminder(
        distribution_id: DistributionId,
        from_name: Annotated[str, Field(min_length=1, description="From name displayed in the reminder email")],
        reply_to_email: Annotated[str, Field(min_length=1, description="Reply-to email address")],
        subject: Annotated[str, Field(min_length=1, description="Reminder email subject line")],
        message_id: Annotated[str, Field(min_length=1, description="ID of the reminder message template")],
        library_id: Annotated[str, Field(min_length=1, description="ID of the library containing the message template")],
        send_date: SendDate = None,
    ) -> str:
        data = email_envelope(from_name, reply_to_email, subject, library_id, message_id)
        if send_date:
            data["sendDate"] = send_date

        result = result_of(await distribution_api.create_reminder(distribution_id, data))
        return tool_success({
            "success": True,
            "parentDistributionId": distribution_id,
            "reminderId": result.get("id"),
            "message": (
                f"Reminder scheduled for {send_date}" if send_date else "Reminder created and sending"
            ),
            "details": result,
        })
