"""Chorus schema definitions.

All Pydantic v2 models shared by the engine, providers and CLI.
"""

from chorus.schemas.completion import (
    BatchResponse,
    CompletionResult,
    ContentUpdate,
    ImageRequest,
    Tool,
)
from chorus.schemas.content import (
    ContentPart,
    ContentParts,
    ImagePart,
    ReasoningPart,
    TextPart,
    ToolCallPart,
    ToolCallState,
)
from chorus.schemas.events import (
    ErrorEvent,
    FileEvent,
    FinishEvent,
    FinishReason,
    ReasoningDelta,
    StreamEvent,
    TextDelta,
    ToolCallEvent,
    ToolErrorEvent,
    ToolResultEvent,
    Usage,
)
from chorus.schemas.models import ChatConfig, ModelConfig

__all__ = [
    "BatchResponse",
    "ChatConfig",
    "CompletionResult",
    "ContentPart",
    "ContentParts",
    "ContentUpdate",
    "ErrorEvent",
    "FileEvent",
    "FinishEvent",
    "FinishReason",
    "ImagePart",
    "ImageRequest",
    "ModelConfig",
    "ReasoningDelta",
    "ReasoningPart",
    "StreamEvent",
    "TextDelta",
    "TextPart",
    "Tool",
    "ToolCallEvent",
    "ToolCallPart",
    "ToolCallState",
    "ToolErrorEvent",
    "ToolResultEvent",
    "Usage",
]
