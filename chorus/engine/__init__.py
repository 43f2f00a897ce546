"""Streaming completion engine.

Turns provider-agnostic stream events into an ordered, append-only list of
content parts.
"""

from chorus.engine.assembler import ContentAssembler
from chorus.engine.errors import (
    ApiError,
    CapabilityError,
    ChorusError,
    ImageGenerationUnsupported,
    ProviderError,
)
from chorus.engine.finalizer import finalize_result
from chorus.engine.images import ImageMaterializer
from chorus.engine.timer import ReasoningTimer
from chorus.engine.tools import ToolCallTable

__all__ = [
    "ApiError",
    "CapabilityError",
    "ChorusError",
    "ContentAssembler",
    "ImageGenerationUnsupported",
    "ImageMaterializer",
    "ProviderError",
    "ReasoningTimer",
    "ToolCallTable",
    "finalize_result",
]
