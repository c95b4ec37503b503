"""Pydantic models for Learning Relay."""

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class CatalogEntry(BaseModel):
    """A learning content item from the catalog snapshot."""

    model_config = ConfigDict(frozen=True)

    content_type: str
    title: str
    level: Optional[str] = None
    url: str

    @classmethod
    def from_source(cls, item: dict[str, Any]) -> "CatalogEntry":
        """Build an entry from a raw catalog source item."""
        return cls(
            content_type=item.get("content_type") or "",
            title=item.get("title") or "",
            level=item.get("level"),
            url=item.get("content_catalog_url") or "",
        )


class LearningConcept(BaseModel):
    """A high-leverage concept from the learning-path generator."""

    title: str
    # Display-only fields, relayed as the generator sends them
    effortPercentage: Optional[Any] = None
    impactPercentage: Optional[Any] = None
    timeToLearn: Optional[str] = None

    @field_validator("timeToLearn", mode="before")
    @classmethod
    def _stringify_time(cls, value: Any) -> Any:
        if value is None or isinstance(value, str):
            return value
        return str(value)


# =============================================================================
# Tool arguments (one model per tool)
# =============================================================================


class _ToolArgs(BaseModel):
    model_config = ConfigDict(extra="ignore", str_strip_whitespace=True)


class GetSkillsArgs(_ToolArgs):
    """Arguments for get_skills (none)."""


class GenerateLearningJourneyArgs(_ToolArgs):
    """Arguments for generate_learning_journey."""

    goal: str = Field(
        ...,
        min_length=1,
        description="The goal which learner want to achieve in the learning journey.",
    )


class SearchLearningContentArgs(_ToolArgs):
    """Arguments for search_learning_content."""

    concept: str = Field(
        ..., min_length=1, description="The concept which learner want to learn."
    )


class StartLabArgs(_ToolArgs):
    """Arguments for start_lab."""

    name: str = Field(
        ..., min_length=1, description="The title of the lab or course template."
    )


# =============================================================================
# Tool invocation protocol
# =============================================================================


class FunctionCall(BaseModel):
    """A single named tool invocation."""

    # name and args are checked per invocation so one bad call fails alone
    name: Any = None
    args: Any = None
    id: str


class ToolCallBatch(BaseModel):
    """Inbound batch of tool invocations."""

    functionCalls: list[FunctionCall]


class FunctionResponse(BaseModel):
    """Response to one invocation: ``{"output": ...}`` or ``{"error": ...}``."""

    response: dict[str, Any]
    id: str

    @classmethod
    def output(cls, call_id: str, value: Any) -> "FunctionResponse":
        return cls(response={"output": value}, id=call_id)

    @classmethod
    def error(cls, call_id: str, message: str) -> "FunctionResponse":
        return cls(response={"error": message}, id=call_id)


class ToolResponseBatch(BaseModel):
    """Outbound batch of responses, one per inbound id."""

    functionResponses: list[FunctionResponse]


# =============================================================================
# Session API
# =============================================================================


class HistoryEntry(BaseModel):
    """A recorded search and the results shown for it."""

    model_config = ConfigDict(frozen=True)

    query: str
    results: tuple[CatalogEntry, ...]
    recorded_at: datetime


class SessionInfo(BaseModel):
    """An active tool session."""

    id: str
    created_at: datetime
    catalog_loaded: bool = False
    catalog_size: int = 0
    searches: int = 0


class RelayStats(BaseModel):
    """Overall relay statistics."""

    active_sessions: int
    cached_catalogs: int
    total_searches: int
