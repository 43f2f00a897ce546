"""Provider-agnostic stream events.

Every provider adapter translates its native stream into these events. The
content assembler consumes them one at a time, in arrival order.
"""

from __future__ import annotations

from enum import StrEnum
from typing import Annotated, Any, Literal

from pydantic import BaseModel, Field


class FinishReason(StrEnum):
    """Why a completion stopped."""

    STOP = "stop"
    LENGTH = "length"
    CONTENT_FILTER = "content-filter"
    TOOL_CALLS = "tool-calls"
    ERROR = "error"
    CANCELLED = "cancelled"
    OTHER = "other"
    UNKNOWN = "unknown"

    @classmethod
    def from_provider(cls, value: str | None) -> FinishReason:
        """Normalize a provider finish reason (OpenAI style or ours)."""
        if not value:
            return cls.UNKNOWN
        normalized = value.replace("_", "-").lower()
        if normalized == "function-call":
            return cls.TOOL_CALLS
        try:
            return cls(normalized)
        except ValueError:
            return cls.OTHER


class Usage(BaseModel):
    """Token accounting for one step or a whole request."""

    input_tokens: int = Field(default=0, ge=0)
    output_tokens: int = Field(default=0, ge=0)
    reasoning_tokens: int = Field(default=0, ge=0)
    total_tokens: int = Field(default=0, ge=0)

    def __add__(self, other: Usage) -> Usage:
        return Usage(
            input_tokens=self.input_tokens + other.input_tokens,
            output_tokens=self.output_tokens + other.output_tokens,
            reasoning_tokens=self.reasoning_tokens + other.reasoning_tokens,
            total_tokens=self.total_tokens + other.total_tokens,
        )


class TextDelta(BaseModel):
    type: Literal["text-delta"] = "text-delta"
    text: str


class ReasoningDelta(BaseModel):
    type: Literal["reasoning-delta"] = "reasoning-delta"
    text: str


class ToolCallEvent(BaseModel):
    type: Literal["tool-call"] = "tool-call"
    tool_call_id: str
    tool_name: str
    input: Any = None


class ToolResultEvent(BaseModel):
    type: Literal["tool-result"] = "tool-result"
    tool_call_id: str
    tool_name: str = ""
    input: Any = None
    output: Any = None


class ToolErrorEvent(BaseModel):
    type: Literal["tool-error"] = "tool-error"
    tool_call_id: str
    tool_name: str = ""
    input: Any = None
    error: Any = None


class FileEvent(BaseModel):
    type: Literal["file"] = "file"
    media_type: str | None = None
    base64: str | None = None


class ErrorEvent(BaseModel):
    type: Literal["error"] = "error"
    error: Any = None


class FinishEvent(BaseModel):
    type: Literal["finish"] = "finish"
    finish_reason: FinishReason = FinishReason.UNKNOWN
    usage: Usage = Field(default_factory=Usage)


StreamEvent = Annotated[
    TextDelta
    | ReasoningDelta
    | ToolCallEvent
    | ToolResultEvent
    | ToolErrorEvent
    | FileEvent
    | ErrorEvent
    | FinishEvent,
    Field(discriminator="type"),
]
