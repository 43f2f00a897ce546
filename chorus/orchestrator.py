"""Completion orchestrator.

Owns the lifetime of one request: drives the multi-step event stream of a
provider through the content assembler, observes cancellation at every
event boundary, classifies failures, and hands the content list to the
result finalizer. Image generation is a separate, non-streaming path.
"""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

from chorus.engine.assembler import ContentAssembler, ContentListener
from chorus.engine.errors import (
    CapabilityError,
    ChorusError,
    ProviderError,
    classify_call_error,
)
from chorus.engine.finalizer import finalize_result
from chorus.engine.images import ImageMaterializer
from chorus.engine.steps import is_cancelled, run_steps
from chorus.engine.timer import ReasoningTimer
from chorus.providers.base import ModelProvider
from chorus.reporting import ErrorReporter, LoggingErrorReporter, report_exception
from chorus.schemas.completion import CompletionResult, ImageRequest, Tool
from chorus.schemas.content import ContentParts
from chorus.schemas.events import FinishReason
from chorus.schemas.models import ChatConfig
from chorus.storage import BlobStore

logger = logging.getLogger(__name__)


class CompletionState(StrEnum):
    """Lifecycle of the orchestrator's current request."""

    IDLE = "idle"
    STREAMING = "streaming"
    FINISHED = "finished"
    ERRORED = "errored"
    CANCELLED = "cancelled"


@dataclass
class ModelDependencies:
    """External collaborators of the engine.

    Attributes:
        blob_store: Persists generated images, returns storage keys.
        error_reporter: Receives unexpected exceptions; best-effort.
        remote_config: Returns the flag selecting the capability-error copy;
            None falls back to ChatConfig.prefer_hosted_guidance.
    """

    blob_store: BlobStore
    error_reporter: ErrorReporter | None = field(default_factory=LoggingErrorReporter)
    remote_config: Callable[[], bool] | None = None


class CompletionOrchestrator:
    """Runs completion and image requests against one provider.

    One request at a time per instance; parallel sessions use separate
    instances and share nothing mutable.
    """

    def __init__(
        self,
        provider: ModelProvider,
        dependencies: ModelDependencies,
        *,
        chat_config: ChatConfig | None = None,
        timer: ReasoningTimer | None = None,
    ) -> None:
        self._provider = provider
        self._deps = dependencies
        self._config = chat_config or ChatConfig()
        self._timer = timer or ReasoningTimer()
        self._state = CompletionState.IDLE

    @property
    def state(self) -> CompletionState:
        return self._state

    @property
    def provider(self) -> ModelProvider:
        return self._provider

    async def run_completion(
        self,
        messages: list[dict[str, Any]],
        *,
        tools: list[Tool] | None = None,
        max_steps: int | None = None,
        cancel: asyncio.Event | None = None,
        on_content_change: ContentListener | None = None,
    ) -> CompletionResult:
        """Stream a response and return its content parts.

        Args:
            messages: Conversation in OpenAI message format.
            tools: Tools the model may call; executable ones are run between steps.
            max_steps: Bound on model steps; None uses the configured default,
                0 means unbounded.
            cancel: Abort signal. Once set, no further events are processed and
                the request resolves with the parts built so far.
            on_content_change: Called with a ContentUpdate after every change.

        Returns:
            CompletionResult; ``finish_reason`` is ``cancelled`` when aborted.

        Raises:
            ChorusError: Classified failure, with ``content_parts`` holding the
                partial response.
            RuntimeError: If a request is already running on this instance.
        """
        if self._state == CompletionState.STREAMING:
            raise RuntimeError("A completion is already streaming on this orchestrator")
        self._state = CompletionState.STREAMING

        steps = self._config.max_steps if max_steps is None else max_steps
        assembler = ContentAssembler(
            ImageMaterializer(self._deps.blob_store),
            provider_name=self._provider.display_name,
            on_change=on_content_change,
            timer=self._timer,
        )
        events = run_steps(self._provider, messages, tools=tools, max_steps=steps, cancel=cancel)
        logger.debug(
            "Starting completion on %s (%d messages, %d tools, max_steps=%s)",
            self._provider.display_name, len(messages), len(tools or []), steps or "unbounded",
        )

        try:
            try:
                async for event in events:
                    if is_cancelled(cancel):
                        break
                    await assembler.apply(event)
            finally:
                await events.aclose()
        except asyncio.CancelledError:
            assembler.close_open_spans()
            self._state = CompletionState.CANCELLED
            raise
        except Exception as e:
            assembler.close_open_spans()
            self._state = CompletionState.ERRORED
            error = self._classify(e, messages, tools, steps)
            error.content_parts = list(assembler.parts)
            if error is e:
                raise
            raise error from e

        if is_cancelled(cancel):
            logger.debug("Completion on %s cancelled", self._provider.display_name)
            self._state = CompletionState.CANCELLED
            finish_reason = FinishReason.CANCELLED
        else:
            self._state = CompletionState.FINISHED
            finish_reason = assembler.finish_reason

        return await finalize_result(
            assembler.parts,
            usage=assembler.usage,
            finish_reason=finish_reason,
            timer=self._timer,
            on_change=on_content_change,
        )

    async def generate_images(
        self,
        prompt: str,
        *,
        reference_images: list[str] | None = None,
        count: int = 1,
        cancel: asyncio.Event | None = None,
        on_image_ready: Callable[[str], Any] | None = None,
    ) -> list[str]:
        """Generate images and return their storage keys.

        Each image is stored and announced through ``on_image_ready`` as soon
        as it is available. Images not yet stored when ``cancel`` is set are
        dropped.

        Raises:
            ChorusError: Classified failure; ImageGenerationUnsupported when
                the provider cannot paint.
        """
        request = ImageRequest(prompt=prompt, reference_images=reference_images or [], count=count)
        materializer = ImageMaterializer(self._deps.blob_store, kind="generated")

        try:
            data_urls = await self._provider.generate_images(request, cancel=cancel)
            keys: list[str] = []
            for data_url in data_urls:
                if is_cancelled(cancel):
                    break
                key = await materializer.materialize_data_url(data_url)
                keys.append(key)
                if on_image_ready is not None:
                    result = on_image_ready(key)
                    if asyncio.iscoroutine(result):
                        await result
        except Exception as e:
            error = self._classify(e, [{"role": "user", "content": prompt}], None, 0)
            if error is e:
                raise
            raise error from e
        return keys

    # ── Error handling ────────────────────────────────────────────

    def _classify(
        self,
        exc: Exception,
        messages: list[dict[str, Any]],
        tools: list[Tool] | None,
        max_steps: int,
    ) -> ChorusError:
        """Classify *exc* and report everything but capability errors."""
        name = self._provider.display_name
        classified = classify_call_error(
            exc, name, prefer_hosted_guidance=self._prefer_hosted_guidance()
        )
        if isinstance(classified, CapabilityError):
            return classified

        options = {
            "model": self._provider.model_id,
            "tools": [tool.name for tool in tools or []],
            "max_steps": max_steps,
        }
        report_exception(
            self._deps.error_reporter,
            exc,
            tags={"provider_name": name},
            extra={"messages": _dump(messages), "options": _dump(options)},
        )
        if classified is not None:
            return classified
        return ProviderError(
            f"Error from {name}: {exc}",
            name,
            context={"messages": messages, "options": options},
        )

    def _prefer_hosted_guidance(self) -> bool:
        if self._deps.remote_config is None:
            return self._config.prefer_hosted_guidance
        try:
            return bool(self._deps.remote_config())
        except Exception:
            logger.exception("Remote config lookup failed, using default copy")
            return self._config.prefer_hosted_guidance


def _dump(value: Any) -> str:
    return json.dumps(value, default=str, ensure_ascii=False)


def partial_content(error: BaseException) -> ContentParts:
    """Parts built before *error*, or an empty list for unclassified errors."""
    return getattr(error, "content_parts", [])
