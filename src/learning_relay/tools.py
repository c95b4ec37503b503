"""Tool declarations exposed to the conversational assistant."""

from mcp.types import Tool
from pydantic import BaseModel

from learning_relay.models import (
    GenerateLearningJourneyArgs,
    GetSkillsArgs,
    SearchLearningContentArgs,
    StartLabArgs,
)

GET_SKILLS = "get_skills"
GENERATE_LEARNING_JOURNEY = "generate_learning_journey"
SEARCH_LEARNING_CONTENT = "search_learning_content"
START_LAB = "start_lab"

TOOL_ARGS: dict[str, type[BaseModel]] = {
    GET_SKILLS: GetSkillsArgs,
    GENERATE_LEARNING_JOURNEY: GenerateLearningJourneyArgs,
    SEARCH_LEARNING_CONTENT: SearchLearningContentArgs,
    START_LAB: StartLabArgs,
}

_DESCRIPTIONS = {
    GET_SKILLS: "Get the skills from the learning catalog.",
    GENERATE_LEARNING_JOURNEY: (
        "Generate learning instructions, steps and journey for the user "
        "with a specific goal."
    ),
    SEARCH_LEARNING_CONTENT: (
        "Search the learning contents, including labs and courses, "
        "with a specific concept."
    ),
    START_LAB: "Open a lab or course template with specific name and start learning.",
}


def _input_schema(model: type[BaseModel]) -> dict:
    schema = model.model_json_schema()
    schema.pop("title", None)
    schema.pop("description", None)
    schema.setdefault("properties", {})
    for prop in schema["properties"].values():
        prop.pop("title", None)
    return schema


def tool_declarations() -> list[Tool]:
    """Declarations for every tool the relay can dispatch."""
    return [
        Tool(
            name=name,
            description=_DESCRIPTIONS[name],
            inputSchema=_input_schema(args_model),
        )
        for name, args_model in TOOL_ARGS.items()
    ]
