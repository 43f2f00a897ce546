"""Request and result schemas for one completion.

CompletionResult is the terminal value of a request; ContentUpdate is what
the caller's change callback receives while the response is still streaming.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from pydantic import BaseModel, Field

from chorus.schemas.content import ContentParts
from chorus.schemas.events import FileEvent, FinishReason, ToolCallEvent, Usage


class CompletionResult(BaseModel):
    """Final outcome of a completion request."""

    content_parts: ContentParts = Field(default_factory=list)
    usage: Usage | None = Field(default=None, description="Usage summed over all steps")
    finish_reason: FinishReason = Field(default=FinishReason.UNKNOWN)


class ContentUpdate(BaseModel):
    """Snapshot delivered to the change callback after each mutation.

    The list is a shallow copy: the caller can read it at any time but cannot
    reorder or truncate the engine's own list. Token counts are only present
    on the final update.
    """

    content_parts: ContentParts = Field(default_factory=list)
    token_count: int | None = Field(default=None, description="Output tokens, final update only")
    tokens_used: int | None = Field(default=None, description="Total tokens, final update only")


class BatchResponse(BaseModel):
    """A complete, non-streaming provider response."""

    text: str = ""
    reasoning: str = ""
    tool_calls: list[ToolCallEvent] = Field(default_factory=list)
    files: list[FileEvent] = Field(default_factory=list)
    usage: Usage = Field(default_factory=Usage)
    finish_reason: FinishReason = FinishReason.UNKNOWN


class ImageRequest(BaseModel):
    """Parameters for the image generation path."""

    prompt: str = Field(min_length=1)
    reference_images: list[str] = Field(
        default_factory=list, description="Reference images as data URLs or http URLs"
    )
    count: int = Field(default=1, ge=1)


@dataclass
class Tool:
    """A tool the model may call.

    ``execute`` receives the parsed arguments as keyword arguments and may be
    sync or async. A tool without ``execute`` is only advertised: its calls are
    recorded but never resolved by the engine.
    """

    name: str
    description: str = ""
    parameters: dict[str, Any] = field(
        default_factory=lambda: {"type": "object", "properties": {}}
    )
    execute: Callable[..., Any] | None = None

    def to_openai(self) -> dict[str, Any]:
        """Function-calling schema in the OpenAI format litellm accepts."""
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": self.parameters,
            },
        }
