"""Abstract base class for all model providers.

Defines the ModelProvider interface every backend adapter implements. The
orchestrator interacts exclusively through this interface: one step of
streamed events, one step of batch output, and optional image generation.
It never calls provider SDKs directly.
"""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator
from typing import Any

from chorus.engine.errors import ImageGenerationUnsupported
from chorus.schemas.completion import BatchResponse, ImageRequest, Tool
from chorus.schemas.events import StreamEvent
from chorus.schemas.models import ModelConfig


class ModelProvider(ABC):
    """Abstract interface for any backend that can answer a conversation.

    Initialized from a ModelConfig loaded from the TOML registry. Exposes
    identity, capability flags, and the per-step calls the multi-step
    driver uses.
    """

    def __init__(self, config: ModelConfig) -> None:
        self._config = config

    # ── Identity ──────────────────────────────────────────────

    @property
    def provider_id(self) -> str:
        """Provider identifier (e.g. 'anthropic', 'openai', 'ollama')."""
        return self._config.provider

    @property
    def model_id(self) -> str:
        """LiteLLM model identifier used for routing."""
        return self._config.model

    @property
    def display_name(self) -> str:
        """Human-friendly model name for CLI output and error messages."""
        return self._config.display_name

    @property
    def config(self) -> ModelConfig:
        """The full ModelConfig backing this provider."""
        return self._config

    # ── Capabilities ──────────────────────────────────────────

    @property
    def supports_vision(self) -> bool:
        return self._config.supports_vision

    @property
    def supports_tools(self) -> bool:
        return self._config.supports_tools

    @property
    def supports_reasoning(self) -> bool:
        return self._config.supports_reasoning

    @property
    def supports_system_message(self) -> bool:
        return self._config.supports_system_message

    @property
    def supports_streaming(self) -> bool:
        """False means responses are replayed through simulated streaming."""
        return self._config.stream

    @property
    def supports_image_generation(self) -> bool:
        return False

    def capabilities(self) -> dict[str, bool]:
        """All capability flags, keyed by name."""
        return {
            "vision": self.supports_vision,
            "tool_use": self.supports_tools,
            "reasoning": self.supports_reasoning,
            "system_message": self.supports_system_message,
            "streaming": self.supports_streaming,
            "image_generation": self.supports_image_generation,
        }

    # ── Core interface ────────────────────────────────────────

    @abstractmethod
    def stream_step(
        self,
        messages: list[dict[str, Any]],
        *,
        tools: list[Tool] | None = None,
        cancel: asyncio.Event | None = None,
    ) -> AsyncIterator[StreamEvent]:
        """Stream one model turn as provider-agnostic events.

        The iterator ends with exactly one FinishEvent. Failures after the
        stream has started are delivered as an ErrorEvent; failures before
        it starts are raised.

        Args:
            messages: Conversation messages in OpenAI format.
            tools: Tools the model may call in this turn.
            cancel: Set when the caller aborts; checked between chunks.
        """

    @abstractmethod
    async def complete_step(
        self,
        messages: list[dict[str, Any]],
        *,
        tools: list[Tool] | None = None,
        cancel: asyncio.Event | None = None,
    ) -> BatchResponse:
        """Run one model turn without streaming and return the whole answer."""

    async def generate_images(
        self,
        request: ImageRequest,
        *,
        cancel: asyncio.Event | None = None,
    ) -> list[str]:
        """Generate images and return them as base64 data URLs.

        Raises:
            ImageGenerationUnsupported: Unless the provider overrides this.
        """
        raise ImageGenerationUnsupported(
            f"{self.display_name} does not support image generation"
        )
