"""Survey definition tools: questions and blocks, plus typed question builders."""

import itertools
import re
from typing import Annotated, Any, Dict, List, Literal, Optional

from mcp.server.fastmcp import FastMCP
from mcp.server.fastmcp.exceptions import ToolError
from pydantic import Field

from qualtrics_mcp.app.services.qualtrics_client import QualtricsClient
from qualtrics_mcp.app.services.survey_api import SurveyApi
from qualtrics_mcp.app.tools._helpers import (
    elements_of,
    result_of,
    tool_success,
    with_error_handling,
)

SurveyId = Annotated[str, Field(min_length=1, description="The Qualtrics survey ID")]
QuestionId = Annotated[str, Field(min_length=1, description="The question ID (e.g., QID1)")]
BlockId = Annotated[str, Field(min_length=1, description="The block ID")]
QuestionText = Annotated[str, Field(min_length=1, description="The question text")]
ForceResponse = Annotated[bool, Field(description="Require a response")]

QUESTION_JS_DESC = (
    "JavaScript to attach to this question (QuestionJS). Avoid literal `${` in JS "
    "strings: Qualtrics treats it as piped text. Use `\\x24{` instead."
)

# Piped text prefixes Qualtrics expands inside ${...}
PIPED_TEXT = re.compile(r"\$\{(q|e|m|date|rand|lm|gr)://", re.IGNORECASE)

TEXT_ENTRY_SELECTORS = {"single": "SL", "multi": "ML", "essay": "ESTB"}

LIKERT_SCALES: Dict[str, List[str]] = {
    "agree5": ["Strongly Disagree", "Disagree", "Neither Agree nor Disagree", "Agree", "Strongly Agree"],
    "agree7": [
        "Strongly Disagree", "Disagree", "Somewhat Disagree", "Neither Agree nor Disagree",
        "Somewhat Agree", "Agree", "Strongly Agree",
    ],
    "frequency5": ["Never", "Rarely", "Sometimes", "Often", "Always"],
    "satisfaction5": ["Very Dissatisfied", "Dissatisfied", "Neutral", "Satisfied", "Very Satisfied"],
    "likelihood5": ["Very Unlikely", "Unlikely", "Neutral", "Likely", "Very Likely"],
}

_export_tags = itertools.count(1)


def next_export_tag() -> str:
    return f"Q_auto_{next(_export_tags)}"


def numbered_choices(labels: List[str]) -> Dict[str, Any]:
    """Choices keyed "1".."n" in the given order, with the matching ChoiceOrder."""
    keys = [str(i) for i in range(1, len(labels) + 1)]
    return {
        "Choices": {key: {"Display": label} for key, label in zip(keys, labels)},
        "ChoiceOrder": keys,
    }


def with_force_response(data: Dict[str, Any], force_response: bool) -> Dict[str, Any]:
    if force_response:
        data["Validation"] = {
            "Settings": {"ForceResponse": "ON", "ForceResponseType": "ON", "Type": "None"}
        }
    return data


def question_js_warning(js: str) -> Optional[str]:
    """Warn about ``${`` sequences Qualtrics would corrupt as piped text."""
    for match in re.finditer(r"\$\{", js):
        if not PIPED_TEXT.match(js, match.start()):
            return (
                "WARNING: QuestionJS contains a literal `${` which Qualtrics will "
                "interpret as piped text, corrupting the JavaScript at runtime. "
                "Replace `${` in string literals with `\\x24{`."
            )
    return None


def register_question_tools(mcp: FastMCP, client: QualtricsClient) -> None:
    survey_api = SurveyApi(client)

    @mcp.tool(name="list_questions", description="List all questions in a survey with their types and a preview of the question text")
    @with_error_handling("list_questions")
    async def list_questions(survey_id: SurveyId) -> str:
        questions = elements_of(await survey_api.list_questions(survey_id))
        return tool_success({
            "surveyId": survey_id,
            "questions": [
                {
                    "questionId": q.get("QuestionID", q.get("ID")),
                    "questionText": (q.get("QuestionText") or "")[:100],
                    "questionType": q.get("QuestionType"),
                    "selector": q.get("Selector"),
                    "choiceCount": len(q.get("Choices") or {}),
                }
                for q in questions
            ],
            "total": len(questions),
        })

    @mcp.tool(name="get_question", description="Get the full definition of a specific question including choices, validation, and configuration")
    @with_error_handling("get_question")
    async def get_question(survey_id: SurveyId, question_id: QuestionId) -> str:
        result = await survey_api.get_question(survey_id, question_id)
        return tool_success({"surveyId": survey_id, "question": result_of(result)})

    @mcp.tool(name="create_question", description="Create a question in a survey block")
    @with_error_handling("create_question")
    async def create_question(
        survey_id: SurveyId,
        block_id: BlockId,
        question_text: Annotated[str, Field(min_length=1, description="The question text (HTML supported)")],
        question_type: Annotated[str, Field(min_length=1, description="Question type (e.g., MC, TE, Matrix, Slider, DB)")],
        selector: Annotated[str, Field(min_length=1, description="Question selector (e.g., SAVR, MAVR, SL, ML, TB)")],
        sub_selector: Annotated[Optional[str], Field(description="Sub-selector if applicable (e.g., TX)")] = None,
        choices: Annotated[Optional[Dict[str, Dict[str, str]]], Field(description="Choices keyed by number, e.g. {'1': {'Display': 'Yes'}}")] = None,
        validation: Annotated[Optional[Dict[str, Any]], Field(description="Validation settings")] = None,
        question_js: Annotated[Optional[str], Field(description=QUESTION_JS_DESC)] = None,
    ) -> str:
        data: Dict[str, Any] = {
            "QuestionText": question_text,
            "QuestionType": question_type,
            "Selector": selector,
            "DataExportTag": next_export_tag(),
        }
        if sub_selector:
            data["SubSelector"] = sub_selector
        if choices:
            data["Choices"] = choices
        if validation:
            data["Validation"] = validation
        if question_js is not None:
            data["QuestionJS"] = question_js

        result = result_of(await survey_api.create_question(survey_id, block_id, data))
        response: Dict[str, Any] = {
            "success": True,
            "surveyId": survey_id,
            "blockId": block_id,
            "questionId": result.get("QuestionID") if isinstance(result, dict) else None,
            "message": "Question created successfully",
            "details": result,
        }
        warning = question_js_warning(question_js) if question_js else None
        if warning:
            response["warning"] = warning
        return tool_success(response)

    @mcp.tool(name="update_question", description="Update an existing question's text, choices, validation, or JavaScript")
    @with_error_handling("update_question")
    async def update_question(
        survey_id: SurveyId,
        question_id: QuestionId,
        question_text: Annotated[Optional[str], Field(description="New question text")] = None,
        choices: Annotated[Optional[Dict[str, Dict[str, str]]], Field(description="Updated choice definitions")] = None,
        validation: Annotated[Optional[Dict[str, Any]], Field(description="Updated validation settings")] = None,
        question_js: Annotated[Optional[str], Field(description=QUESTION_JS_DESC + ' Pass "" to clear existing JS.')] = None,
    ) -> str:
        # PUT requires the type fields, so start from the current definition
        current = result_of(await survey_api.get_question(survey_id, question_id))
        data: Dict[str, Any] = {
            "QuestionType": current.get("QuestionType"),
            "Selector": current.get("Selector"),
        }
        if current.get("SubSelector"):
            data["SubSelector"] = current["SubSelector"]
        if question_text is not None:
            data["QuestionText"] = question_text
        if choices is not None:
            data["Choices"] = choices
        if validation is not None:
            data["Validation"] = validation
        if question_js is not None:
            data["QuestionJS"] = question_js

        result = await survey_api.update_question(survey_id, question_id, data)
        response: Dict[str, Any] = {
            "success": True,
            "surveyId": survey_id,
            "questionId": question_id,
            "message": "Question updated successfully",
            "details": result_of(result),
        }
        warning = question_js_warning(question_js) if question_js else None
        if warning:
            response["warning"] = warning
        return tool_success(response)

    @mcp.tool(name="delete_question", description="Remove a question from a survey")
    @with_error_handling("delete_question")
    async def delete_question(survey_id: SurveyId, question_id: QuestionId) -> str:
        result = await survey_api.delete_question(survey_id, question_id)
        return tool_success({
            "success": True,
            "surveyId": survey_id,
            "questionId": question_id,
            "message": "Question deleted successfully",
            "details": result_of(result),
        })

    @mcp.tool(name="list_blocks", description="List all blocks in a survey")
    @with_error_handling("list_blocks")
    async def list_blocks(survey_id: SurveyId) -> str:
        blocks = elements_of(await survey_api.list_blocks(survey_id))
        return tool_success({
            "surveyId": survey_id,
            "blocks": [
                {
                    "blockId": b.get("ID"),
                    "description": b.get("Description"),
                    "type": b.get("Type"),
                    "questionCount": sum(
                        1 for e in b.get("BlockElements") or [] if e.get("Type") == "Question"
                    ),
                }
                for b in blocks
            ],
            "total": len(blocks),
        })

    @mcp.tool(name="create_block", description="Create a new block in a survey")
    @with_error_handling("create_block")
    async def create_block(
        survey_id: SurveyId,
        description: Annotated[str, Field(min_length=1, description="Block description/name")],
        type: Annotated[str, Field(description="Block type")] = "Standard",
    ) -> str:
        result = result_of(
            await survey_api.create_block(survey_id, {"Description": description, "Type": type})
        )
        return tool_success({
            "success": True,
            "surveyId": survey_id,
            "blockId": result.get("BlockID") if isinstance(result, dict) else None,
            "message": f'Block "{description}" created successfully',
            "details": result,
        })

    @mcp.tool(
        name="update_block",
        description="Update a block's description or type. If type is omitted the current type is fetched first.",
    )
    @with_error_handling("update_block")
    async def update_block(
        survey_id: SurveyId,
        block_id: BlockId,
        description: Annotated[Optional[str], Field(description="New block description")] = None,
        type: Annotated[Optional[str], Field(description="Block type (e.g., Standard, Default, Trash)")] = None,
    ) -> str:
        block_type = type
        if not block_type:
            current = result_of(await survey_api.get_block(survey_id, block_id))
            block_type = current.get("Type")

        data: Dict[str, Any] = {"Type": block_type}
        if description is not None:
            data["Description"] = description

        result = await survey_api.update_block(survey_id, block_id, data)
        return tool_success({
            "success": True,
            "surveyId": survey_id,
            "blockId": block_id,
            "message": "Block updated successfully",
            "details": result_of(result),
        })

    @mcp.tool(name="delete_block", description="Remove a block from a survey")
    @with_error_handling("delete_block")
    async def delete_block(survey_id: SurveyId, block_id: BlockId) -> str:
        result = await survey_api.delete_block(survey_id, block_id)
        return tool_success({
            "success": True,
            "surveyId": survey_id,
            "blockId": block_id,
            "message": "Block deleted successfully",
            "details": result_of(result),
        })

    async def create_built_question(
        survey_id: str, block_id: str, data: Dict[str, Any], question_type: str, message: str, **extra: Any
    ) -> Dict[str, Any]:
        result = result_of(await survey_api.create_question(survey_id, block_id, data))
        return {
            "success": True,
            "surveyId": survey_id,
            "blockId": block_id,
            "questionId": result.get("QuestionID") if isinstance(result, dict) else None,
            "questionType": question_type,
            **extra,
            "message": message,
        }

    @mcp.tool(
        name="add_multiple_choice_question",
        description="Create a multiple choice question from a list of labels. Maps to the correct QuestionType/Selector.",
    )
    @with_error_handling("add_multiple_choice_question")
    async def add_multiple_choice_question(
        survey_id: SurveyId,
        block_id: BlockId,
        question_text: QuestionText,
        choices: Annotated[List[str], Field(min_length=2, description="Choice labels, e.g. ['Yes', 'No', 'Maybe']")],
        allow_multiple: Annotated[bool, Field(description="Allow selecting multiple choices")] = False,
        force_response: ForceResponse = False,
    ) -> str:
        data = with_force_response({
            "QuestionText": question_text,
            "QuestionType": "MC",
            "Selector": "MAVR" if allow_multiple else "SAVR",
            "SubSelector": "TX",
            "DataExportTag": next_export_tag(),
            **numbered_choices(choices),
        }, force_response)
        kind = "Multi-Answer" if allow_multiple else "Single Answer"
        return tool_success(await create_built_question(
            survey_id, block_id, data, f"Multiple Choice ({kind})",
            "Multiple choice question created successfully",
        ))

    @mcp.tool(
        name="add_text_entry_question",
        description="Create a text entry question (single line, multi line, or essay).",
    )
    @with_error_handling("add_text_entry_question")
    async def add_text_entry_question(
        survey_id: SurveyId,
        block_id: BlockId,
        question_text: QuestionText,
        text_type: Annotated[Literal["single", "multi", "essay"], Field(description="Text entry type")],
        force_response: ForceResponse = False,
    ) -> str:
        data = with_force_response({
            "QuestionText": question_text,
            "QuestionType": "TE",
            "Selector": TEXT_ENTRY_SELECTORS[text_type],
            "DataExportTag": next_export_tag(),
        }, force_response)
        return tool_success(await create_built_question(
            survey_id, block_id, data, f"Text Entry ({text_type})",
            "Text entry question created successfully",
        ))

    @mcp.tool(
        name="add_descriptive_text_question",
        description=(
            "Create a descriptive text (DB/TB) question for instructions, processing "
            "screens, or HTML content with optional JavaScript."
        ),
    )
    @with_error_handling("add_descriptive_text_question")
    async def add_descriptive_text_question(
        survey_id: SurveyId,
        block_id: BlockId,
        html_content: Annotated[str, Field(min_length=1, description="The HTML content to display")],
        question_js: Annotated[Optional[str], Field(description=QUESTION_JS_DESC)] = None,
    ) -> str:
        data: Dict[str, Any] = {
            "QuestionText": html_content,
            "QuestionType": "DB",
            "Selector": "TB",
            "DataExportTag": next_export_tag(),
        }
        if question_js is not None:
            data["QuestionJS"] = question_js

        response = await create_built_question(
            survey_id, block_id, data, "Descriptive Text (DB/TB)",
            "Descriptive text question created successfully",
        )
        warning = question_js_warning(question_js) if question_js else None
        if warning:
            response["warning"] = warning
        return tool_success(response)

    @mcp.tool(
        name="add_likert_question",
        description=(
            "Create a single-item Likert scale as MC/SAVR from a preset scale "
            "(agree5, agree7, frequency5, satisfaction5, likelihood5) or custom labels."
        ),
    )
    @with_error_handling("add_likert_question")
    async def add_likert_question(
        survey_id: SurveyId,
        block_id: BlockId,
        question_text: QuestionText,
        scale: Annotated[
            Literal["agree5", "agree7", "frequency5", "satisfaction5", "likelihood5", "custom"],
            Field(description="Preset scale, or custom with custom_labels"),
        ],
        custom_labels: Annotated[Optional[List[str]], Field(description="Scale labels when scale is 'custom' (at least 2)")] = None,
        force_response: ForceResponse = False,
    ) -> str:
        if scale == "custom":
            if not custom_labels or len(custom_labels) < 2:
                raise ToolError("When scale is 'custom', custom_labels must be provided with at least 2 items.")
            labels = custom_labels
        else:
            labels = LIKERT_SCALES[scale]

        data = with_force_response({
            "QuestionText": question_text,
            "QuestionType": "MC",
            "Selector": "SAVR",
            "SubSelector": "TX",
            "DataExportTag": next_export_tag(),
            **numbered_choices(labels),
        }, force_response)
        return tool_success(await create_built_question(
            survey_id, block_id, data, f"Likert (MC/SAVR, {len(labels)}-point)",
            "Likert question created successfully",
            scale=scale, scaleLabels=labels,
        ))

    @mcp.tool(
        name="add_matrix_question",
        description="Create a Likert matrix question with statements (rows) and scale points (columns).",
    )
    @with_error_handling("add_matrix_question")
    async def add_matrix_question(
        survey_id: SurveyId,
        block_id: BlockId,
        question_text: QuestionText,
        statements: Annotated[List[str], Field(min_length=1, description="Statement/row labels")],
        scale_points: Annotated[List[str], Field(min_length=2, description="Scale point labels")],
        force_response: ForceResponse = False,
    ) -> str:
        answers = numbered_choices(scale_points)
        data = with_force_response({
            "QuestionText": question_text,
            "QuestionType": "Matrix",
            "Selector": "Likert",
            "SubSelector": "SingleAnswer",
            "DataExportTag": next_export_tag(),
            **numbered_choices(statements),
            "Answers": answers["Choices"],
            "AnswerOrder": answers["ChoiceOrder"],
        }, force_response)
        return tool_success(await create_built_question(
            survey_id, block_id, data, "Matrix (Likert)",
            "Matrix question created successfully",
            statementCount=len(statements), scalePointCount=len(scale_points),
        ))
