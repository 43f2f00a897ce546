"""Chorus — one streaming conversation interface over many model backends."""

__version__ = "0.1.0"

from chorus.orchestrator import CompletionOrchestrator, ModelDependencies
from chorus.schemas.completion import CompletionResult, ContentUpdate, Tool

__all__ = [
    "CompletionOrchestrator",
    "CompletionResult",
    "ContentUpdate",
    "ModelDependencies",
    "Tool",
]
