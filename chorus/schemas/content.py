"""Content part schemas for assistant responses.

A response is an ordered list of content parts. Parts are appended as the
provider stream advances and mutated in place (text grows, reasoning gets its
duration, tool calls get their result), but never reordered or removed.
"""

from __future__ import annotations

from enum import StrEnum
from typing import Annotated, Any, Literal

from pydantic import BaseModel, Field


class ToolCallState(StrEnum):
    """Lifecycle of a tool invocation inside a response."""

    CALL = "call"
    RESULT = "result"
    ERROR = "error"


class TextPart(BaseModel):
    """A contiguous run of answer text."""

    type: Literal["text"] = "text"
    text: str = Field(default="", description="Accumulated text, grows by append only")


class ReasoningPart(BaseModel):
    """A contiguous run of reasoning ("thinking") output with its timing."""

    type: Literal["reasoning"] = "reasoning"
    text: str = Field(default="", description="Accumulated reasoning text")
    start_time: int | None = Field(
        default=None, description="Epoch milliseconds of the first reasoning token"
    )
    duration: int | None = Field(
        default=None, ge=0, description="Span length in milliseconds, set once on close"
    )

    @property
    def is_open(self) -> bool:
        return self.duration is None


class ToolCallPart(BaseModel):
    """A tool invocation and, once known, its outcome."""

    type: Literal["tool-call"] = "tool-call"
    tool_call_id: str = Field(description="Correlation id linking call and result")
    tool_name: str = Field(description="Name of the invoked tool")
    args: Any = Field(default=None, description="Arguments as sent by the model")
    state: ToolCallState = Field(default=ToolCallState.CALL)
    result: Any = Field(default=None, description="Result or normalized error payload")


class ImagePart(BaseModel):
    """A generated image, stored externally and referenced by key."""

    type: Literal["image"] = "image"
    storage_key: str = Field(description="Blob store reference, never raw bytes")


ContentPart = Annotated[
    TextPart | ReasoningPart | ToolCallPart | ImagePart,
    Field(discriminator="type"),
]

ContentParts = list[ContentPart]
