"""Survey flow tools: the flow tree, embedded data, web services and piped text."""

import asyncio
from typing import Annotated, Any, Dict, Iterator, List, Literal, Optional

from mcp.server.fastmcp import FastMCP
from pydantic import BaseModel, Field

from qualtrics_mcp.app.core.logging import get_log_context, get_logger
from qualtrics_mcp.app.exceptions import QualtricsError
from qualtrics_mcp.app.services.flow_api import FlowApi
from qualtrics_mcp.app.services.qualtrics_client import QualtricsClient
from qualtrics_mcp.app.tools._helpers import result_of, tool_success, with_error_handling

logger = get_logger(__name__)

SurveyId = Annotated[str, Field(min_length=1, description="The Qualtrics survey ID")]

PipedTextCategory = Literal[
    "question_response",
    "embedded_data",
    "contact_fields",
    "date_time",
    "random",
    "loop_merge",
    "scoring",
    "all",
]


def _syntax(pattern: str, description: str, example: str) -> Dict[str, str]:
    return {"pattern": pattern, "description": description, "example": example}


PIPED_TEXT_REFERENCE: Dict[str, Dict[str, Any]] = {
    "question_response": {
        "title": "Question Responses",
        "syntax": [
            _syntax("${q://QID#/ChoiceGroup/SelectedChoices}", "Selected choice display text (single or comma-separated)", "${q://QID1/ChoiceGroup/SelectedChoices}"),
            _syntax("${q://QID#/SelectedChoicesRecode}", "Selected choice recode/numeric value", "${q://QID1/SelectedChoicesRecode}"),
            _syntax("${q://QID#/ChoiceTextEntryValue}", "Text entry value from a choice", "${q://QID2/ChoiceTextEntryValue}"),
            _syntax("${q://QID#/ChoiceGroup/SelectedChoicesTextEntry}", "Selected choices including any 'Other' text", "${q://QID1/ChoiceGroup/SelectedChoicesTextEntry}"),
            _syntax("${q://QID#/SelectedChoicesCount}", "Number of choices selected", "${q://QID3/SelectedChoicesCount}"),
            _syntax("${q://QID#/ChoiceGroup/UnselectedChoices}", "Choices NOT selected", "${q://QID1/ChoiceGroup/UnselectedChoices}"),
            _syntax("${q://QID#/QuestionText}", "The question text itself", "${q://QID1/QuestionText}"),
        ],
        "notes": "A page break must exist between the source question and the question using piped text.",
    },
    "embedded_data": {
        "title": "Embedded Data Fields",
        "syntax": [
            _syntax("${e://Field/FieldName}", "Value of an embedded data field", "${e://Field/UserScore}"),
            _syntax("${e://Field/ResponseID}", "Current response ID", "${e://Field/ResponseID}"),
            _syntax("${e://Field/SurveyID}", "Current survey ID", "${e://Field/SurveyID}"),
        ],
        "notes": (
            "Fields must be declared in the survey flow (via add_embedded_data) before they "
            "can be referenced. Set values via URL parameters (?FieldName=value), contact "
            "lists, or web services."
        ),
    },
    "contact_fields": {
        "title": "Contact / Panel Fields",
        "syntax": [
            _syntax("${m://FirstName}", "Contact first name", "${m://FirstName}"),
            _syntax("${m://LastName}", "Contact last name", "${m://LastName}"),
            _syntax("${m://Email}", "Contact email", "${m://Email}"),
            _syntax("${m://ExternalDataReference}", "External reference ID", "${m://ExternalDataReference}"),
            _syntax("${m://Language}", "Contact language", "${m://Language}"),
        ],
        "notes": "Only available when the survey is distributed via a contact list / mailing list.",
    },
    "date_time": {
        "title": "Date & Time",
        "syntax": [
            _syntax("${date://CurrentDate/format}", "Current date in specified format", "${date://CurrentDate/m%2Fd%2FY}"),
        ],
        "notes": "Format uses URL-encoded date codes. Common: m%2Fd%2FY = M/D/YYYY, Y-m-d = YYYY-MM-DD",
    },
    "random": {
        "title": "Random Numbers",
        "syntax": [
            _syntax("${rand://int/min:max}", "Random integer in range", "${rand://int/1:100}"),
        ],
    },
    "loop_merge": {
        "title": "Loop & Merge",
        "syntax": [
            _syntax("${lm://Field/N}", "Loop & merge field value (N = column number)", "${lm://Field/1}"),
            _syntax("${lm://CurrentLoopNumber}", "Current loop iteration number", "${lm://CurrentLoopNumber}"),
        ],
    },
    "scoring": {
        "title": "Scoring",
        "syntax": [
            _syntax("${gr://SC_ID/Score}", "Scoring category total", "${gr://SC_abc123/Score}"),
            _syntax("${gr://SC_ID/WeightedMean}", "Weighted mean score", "${gr://SC_abc123/WeightedMean}"),
        ],
    },
}


class EmbeddedDataField(BaseModel):
    name: str = Field(description="Field name (used in piped text as ${e://Field/name})")
    value: Optional[str] = Field(
        default=None,
        description="Default value (can include piped text). Leave empty to set via URL param or contact list.",
    )
    type: Literal["Custom", "Recipient"] = Field(
        default="Custom",
        description="'Custom' for flow-set fields, 'Recipient' for contact list fields",
    )


class RequestParam(BaseModel):
    key: str = Field(description="Parameter name")
    value: str = Field(description="Parameter value (can use piped text)")


class ResponseMapping(BaseModel):
    jsonPath: str = Field(description="Dot-notation path in the JSON response (e.g., 'data.score')")
    fieldName: str = Field(description="Embedded data field name to store the value in")


def piped_field(name: str) -> str:
    return "${e://Field/" + name + "}"


def iter_flow_elements(elements: List[Dict[str, Any]]) -> Iterator[Dict[str, Any]]:
    """Walk a flow tree depth first, descending into branches and groups."""
    for element in elements:
        yield element
        if element.get("Flow"):
            yield from iter_flow_elements(element["Flow"])


def flow_element_count(flow: Dict[str, Any]) -> int:
    """Number of flow ids already allocated; new elements continue from here."""
    return (flow.get("Properties") or {}).get("Count") or len(flow.get("Flow") or [])


def embedded_data_entry(name: str, value: str = "", field_type: str = "Custom") -> Dict[str, Any]:
    return {
        "Description": name,
        "Type": field_type,
        "Field": name,
        "VariableType": "String",
        "DataVisibility": [],
        "AnalyzeText": False,
        "Value": value,
    }


def embedded_data_fields(flow: Dict[str, Any]) -> List[Dict[str, str]]:
    fields = []
    for element in iter_flow_elements(flow.get("Flow") or []):
        if element.get("Type") != "EmbeddedData":
            continue
        for entry in element.get("EmbeddedData") or []:
            fields.append({
                "field": entry.get("Field"),
                "value": entry.get("Value") or "",
                "type": entry.get("Type") or "Custom",
                "flowId": element.get("FlowID"),
            })
    return fields


def _map_key(item: Dict[str, Any], name: str) -> Any:
    # Qualtrics echoes ResponseMap entries capitalized even when written lowercase
    return item.get(name, item.get(name.capitalize()))


def register_flow_tools(mcp: FastMCP, client: QualtricsClient) -> None:
    flow_api = FlowApi(client)

    @mcp.tool(
        name="get_survey_flow",
        description=(
            "Get the full survey flow tree showing the order of blocks, embedded data, "
            "web services, branching, and randomization"
        ),
    )
    @with_error_handling("get_survey_flow")
    async def get_survey_flow(survey_id: SurveyId) -> str:
        result = await flow_api.get_flow(survey_id)
        return tool_success({"surveyId": survey_id, "flow": result_of(result)})

    @mcp.tool(
        name="update_survey_flow",
        description="Replace the entire survey flow tree. Fetch it with get_survey_flow, modify it, then pass the full tree back.",
    )
    @with_error_handling("update_survey_flow")
    async def update_survey_flow(
        survey_id: SurveyId,
        flow: Annotated[Dict[str, Any], Field(description="The complete flow object")],
    ) -> str:
        result = await flow_api.update_flow(survey_id, flow)
        return tool_success({
            "success": True,
            "surveyId": survey_id,
            "message": "Survey flow updated successfully",
            "details": result_of(result),
        })

    @mcp.tool(
        name="add_embedded_data",
        description=(
            "Add embedded data fields to the survey flow. Fields can be set via URL "
            "parameters, contact lists, or web services, and referenced with piped text "
            "${e://Field/FieldName}. The element is inserted at the beginning of the flow "
            "so the fields are available throughout."
        ),
    )
    @with_error_handling("add_embedded_data")
    async def add_embedded_data(
        survey_id: SurveyId,
        fields: Annotated[List[EmbeddedDataField], Field(min_length=1, description="Embedded data fields to add")],
    ) -> str:
        flow = result_of(await flow_api.get_flow(survey_id))
        next_number = flow_element_count(flow) + 1
        element = {
            "FlowID": f"FL_{next_number}",
            "Type": "EmbeddedData",
            "EmbeddedData": [embedded_data_entry(f.name, f.value or "", f.type) for f in fields],
        }
        flow.setdefault("Flow", []).insert(0, element)
        flow.setdefault("Properties", {})["Count"] = next_number

        await flow_api.update_flow(survey_id, flow)
        return tool_success({
            "success": True,
            "surveyId": survey_id,
            "flowId": element["FlowID"],
            "fields": [
                {
                    "name": f.name,
                    "pipedText": piped_field(f.name),
                    "defaultValue": f.value or "(set via URL param or contact list)",
                }
                for f in fields
            ],
            "message": f"{len(fields)} embedded data field(s) added to survey flow",
            "tip": "Pass values via survey URL: ?FieldName=value or set them in a contact list / mailing list",
        })

    @mcp.tool(
        name="add_web_service",
        description=(
            "Add a Web Service element to the survey flow that calls an external API "
            "during survey execution. Response values are mapped to embedded data fields "
            "for use in later questions via piped text."
        ),
    )
    @with_error_handling("add_web_service")
    async def add_web_service(
        survey_id: SurveyId,
        url: Annotated[str, Field(min_length=1, description="Target URL (can include piped text like ${e://Field/ResponseID})")],
        response_mapping: Annotated[List[ResponseMapping], Field(min_length=1, description="Map response JSON paths to embedded data fields")],
        method: Annotated[Literal["GET", "POST", "PUT", "DELETE"], Field(description="HTTP method")] = "GET",
        request_params: Annotated[Optional[List[RequestParam]], Field(description="Request parameters: body for POST/PUT, query string for GET")] = None,
        position: Annotated[Literal["beginning", "end"], Field(description="Where to insert in the flow")] = "beginning",
    ) -> str:
        flow = result_of(await flow_api.get_flow(survey_id))
        count = flow_element_count(flow)

        web_service = {
            "FlowID": f"FL_{count + 1}",
            "Type": "WebService",
            "URL": url,
            "Method": method,
            "RequestParams": [{"key": p.key, "value": p.value} for p in request_params or []],
            "ResponseMap": [{"key": m.jsonPath, "value": m.fieldName} for m in response_mapping],
        }
        # Declares the mapped fields; it must precede the web service
        declarations = {
            "FlowID": f"FL_{count + 2}",
            "Type": "EmbeddedData",
            "EmbeddedData": [embedded_data_entry(m.fieldName) for m in response_mapping],
        }

        elements = flow.setdefault("Flow", [])
        if position == "end":
            elements.extend([declarations, web_service])
        else:
            elements[:0] = [declarations, web_service]
        flow.setdefault("Properties", {})["Count"] = count + 2

        await flow_api.update_flow(survey_id, flow)
        return tool_success({
            "success": True,
            "surveyId": survey_id,
            "webServiceFlowId": web_service["FlowID"],
            "embeddedDataFlowId": declarations["FlowID"],
            "url": url,
            "method": method,
            "mappedFields": [
                {"from": m.jsonPath, "to": m.fieldName, "pipedText": piped_field(m.fieldName)}
                for m in response_mapping
            ],
            "message": "Web service element added to survey flow",
            "tip": "Use the mapped fields in question text with piped text, e.g., ${e://Field/FieldName}",
        })

    @mcp.tool(name="list_embedded_data", description="List all embedded data fields currently defined in a survey's flow")
    @with_error_handling("list_embedded_data")
    async def list_embedded_data(survey_id: SurveyId) -> str:
        fields = embedded_data_fields(result_of(await flow_api.get_flow(survey_id)))
        return tool_success({
            "surveyId": survey_id,
            "embeddedDataFields": [{**f, "pipedText": piped_field(f["field"])} for f in fields],
            "total": len(fields),
        })

    @mcp.tool(name="list_web_services", description="List all Web Service elements currently defined in a survey's flow")
    @with_error_handling("list_web_services")
    async def list_web_services(survey_id: SurveyId) -> str:
        flow = result_of(await flow_api.get_flow(survey_id))
        services = [
            {
                "flowId": element.get("FlowID"),
                "url": element.get("URL"),
                "method": element.get("Method"),
                "responseMapping": [
                    {"from": _map_key(m, "key"), "to": _map_key(m, "value")}
                    for m in element.get("ResponseMap") or []
                ],
            }
            for element in iter_flow_elements(flow.get("Flow") or [])
            if element.get("Type") == "WebService"
        ]
        return tool_success({"surveyId": survey_id, "webServices": services, "total": len(services)})

    @mcp.tool(
        name="piped_text_reference",
        description=(
            "Look up Qualtrics piped text syntax for referencing question responses, "
            "embedded data, contact fields and more. With a survey_id, also lists that "
            "survey's question IDs and embedded data fields."
        ),
    )
    async def piped_text_reference(
        category: Annotated[PipedTextCategory, Field(description="Category of piped text to look up")] = "all",
        survey_id: Annotated[Optional[str], Field(description="Also list question IDs and embedded data fields from this survey")] = None,
    ) -> str:
        if category == "all":
            output: Dict[str, Any] = {"reference": PIPED_TEXT_REFERENCE}
        else:
            output = {"reference": {category: PIPED_TEXT_REFERENCE[category]}}

        if survey_id:
            try:
                definition, flow = await asyncio.gather(
                    client.get_survey_definition(survey_id), flow_api.get_flow(survey_id)
                )
            except QualtricsError as e:
                # The static reference is still useful without the survey details
                logger.warning(
                    f"Piped text survey lookup failed: {e}",
                    extra=get_log_context(tool="piped_text_reference", survey_id=survey_id),
                )
                output["surveyLookupError"] = "Could not fetch survey details for piped text suggestions."
            else:
                questions = result_of(definition).get("Questions") or {}
                output["surveyQuestions"] = [
                    {
                        "questionId": qid,
                        "text": (q.get("QuestionText") or "")[:80],
                        "type": q.get("QuestionType"),
                        "pipedText": "${q://" + qid + "/ChoiceGroup/SelectedChoices}",
                    }
                    for qid, q in questions.items()
                ]
                output["embeddedDataFields"] = [
                    {"field": f["field"], "pipedText": piped_field(f["field"])}
                    for f in embedded_data_fields(result_of(flow))
                ]

        return tool_success(output)
