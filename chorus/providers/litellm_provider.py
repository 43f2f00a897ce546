"""Universal LiteLLM adapter implementing the ModelProvider interface.

Routes every request to its backend through LiteLLM's unified API and
translates the native stream (text deltas, reasoning content, incremental
tool call fragments, inline images, trailing usage) into provider-agnostic
events. Classification of failures is left to the orchestrator; this
adapter never retries.
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
from collections.abc import AsyncIterator
from typing import Any

import litellm

# Suppress LiteLLM's "Give Feedback / Get Help" and "Provider List" banners
litellm.suppress_debug_info = True

from chorus.engine.errors import ImageGenerationUnsupported
from chorus.providers.base import ModelProvider
from chorus.schemas.completion import BatchResponse, ImageRequest, Tool
from chorus.schemas.events import (
    ErrorEvent,
    FileEvent,
    FinishEvent,
    FinishReason,
    ReasoningDelta,
    StreamEvent,
    TextDelta,
    ToolCallEvent,
    Usage,
)
from chorus.schemas.models import ModelConfig
from chorus.storage import parse_data_url, to_data_url

logger = logging.getLogger(__name__)


def _short_error_reason(error: Exception) -> str:
    """Extract a short, user-friendly reason from a LiteLLM error.

    Maps error types and status codes to concise descriptions instead
    of dumping full JSON error payloads.
    """
    error_str = str(error).lower()
    if "rate" in error_str or "429" in error_str:
        return "rate limit"
    if "overloaded" in error_str or "529" in error_str:
        return "overloaded"
    if "timeout" in error_str or isinstance(error, TimeoutError):
        return "timeout"
    if "503" in error_str or "unavailable" in error_str:
        return "service unavailable"
    if "500" in error_str or "internal" in error_str:
        return "server error"
    if "connection" in error_str:
        return "connection error"
    # Fallback: first 80 chars of the error
    return str(error)[:80]


def _field(obj: Any, name: str) -> Any:
    """Read *name* from a LiteLLM object or a plain dict."""
    if isinstance(obj, dict):
        return obj.get(name)
    return getattr(obj, name, None)


def _image_data_url(image: Any) -> str | None:
    """Data URL of an image entry from ``message.images`` / ``delta.images``."""
    image_url = _field(image, "image_url")
    if image_url is None:
        return None
    url = image_url if isinstance(image_url, str) else _field(image_url, "url")
    return url if isinstance(url, str) else None


def _file_events(images: Any) -> list[FileEvent]:
    events: list[FileEvent] = []
    for image in images or []:
        url = _image_data_url(image)
        parsed = parse_data_url(url) if url else None
        if parsed is None:
            logger.debug("Skipping image output without inline data")
            continue
        media_type, payload = parsed
        events.append(FileEvent(media_type=media_type, base64=payload))
    return events


def _parse_arguments(raw: Any) -> Any:
    if not isinstance(raw, str):
        return raw if raw is not None else {}
    if not raw.strip():
        return {}
    try:
        return json.loads(raw)
    except json.JSONDecodeError:
        return {"_raw": raw}


def _build_usage(usage: Any) -> Usage:
    """Build Usage from LiteLLM usage data."""
    if usage is None:
        return Usage()
    prompt_tokens = _field(usage, "prompt_tokens") or 0
    completion_tokens = _field(usage, "completion_tokens") or 0
    details = _field(usage, "completion_tokens_details")
    reasoning_tokens = (_field(details, "reasoning_tokens") or 0) if details else 0
    total_tokens = _field(usage, "total_tokens") or prompt_tokens + completion_tokens
    return Usage(
        input_tokens=prompt_tokens,
        output_tokens=completion_tokens,
        reasoning_tokens=reasoning_tokens,
        total_tokens=total_tokens,
    )


class _ToolCallAccumulator:
    """Reassembles tool calls streamed as fragments keyed by index."""

    def __init__(self) -> None:
        self._slots: dict[int, dict[str, str]] = {}
        self._last_index = 0

    def add(self, fragments: Any) -> None:
        for fragment in fragments:
            index = _field(fragment, "index")
            call_id = _field(fragment, "id")
            if index is None:
                # Argument fragments without an index continue the last call
                index = self._last_index if not call_id else len(self._slots)
            self._last_index = index
            slot = self._slots.setdefault(index, {"id": "", "name": "", "arguments": ""})
            if call_id:
                slot["id"] = call_id
            function = _field(fragment, "function")
            if function is not None:
                if _field(function, "name"):
                    slot["name"] = _field(function, "name")
                if _field(function, "arguments"):
                    slot["arguments"] += _field(function, "arguments")

    def events(self) -> list[ToolCallEvent]:
        return [
            ToolCallEvent(
                tool_call_id=slot["id"] or f"call_{index}",
                tool_name=slot["name"],
                input=_parse_arguments(slot["arguments"]),
            )
            for index, slot in sorted(self._slots.items())
        ]


class LiteLLMProvider(ModelProvider):
    """Universal model adapter powered by LiteLLM.

    Routes calls to any provider (Anthropic, OpenAI, Google, Ollama, etc.)
    through litellm.acompletion(). This is the ONLY place models are called;
    no direct SDK imports anywhere else.
    """

    def __init__(self, config: ModelConfig, *, timeout: int = 120) -> None:
        super().__init__(config)
        # Resolve API key from environment
        self._api_key = os.environ.get(config.api_key_env, "") if config.api_key_env else ""
        self._timeout = timeout

    @property
    def supports_image_generation(self) -> bool:
        return bool(self._config.image_model)

    async def stream_step(
        self,
        messages: list[dict[str, Any]],
        *,
        tools: list[Tool] | None = None,
        cancel: asyncio.Event | None = None,
    ) -> AsyncIterator[StreamEvent]:
        """Stream one turn via LiteLLM.

        Text and reasoning are yielded as they arrive. Tool calls are yielded
        once their argument fragments are complete, at the end of the turn.
        Errors raised while iterating become an ErrorEvent.
        """
        kwargs = self._build_completion_kwargs(messages, tools)
        kwargs["stream"] = True
        kwargs["stream_options"] = {"include_usage": True}

        response = await litellm.acompletion(**kwargs)

        tool_calls = _ToolCallAccumulator()
        usage = Usage()
        finish_reason: str | None = None

        try:
            async for chunk in response:
                if cancel is not None and cancel.is_set():
                    logger.debug("Stream for %s cancelled", self._config.display_name)
                    break

                chunk_usage = getattr(chunk, "usage", None)
                if chunk_usage:
                    usage = _build_usage(chunk_usage)

                if not chunk.choices:
                    continue
                choice = chunk.choices[0]
                delta = choice.delta

                if delta is not None:
                    reasoning = getattr(delta, "reasoning_content", None)
                    if reasoning:
                        yield ReasoningDelta(text=reasoning)
                    if delta.content:
                        yield TextDelta(text=delta.content)
                    if getattr(delta, "tool_calls", None):
                        tool_calls.add(delta.tool_calls)
                    for event in _file_events(getattr(delta, "images", None)):
                        yield event

                if choice.finish_reason:
                    finish_reason = choice.finish_reason
        except Exception as e:
            logger.warning(
                "Stream from %s failed (%s)",
                self._config.display_name, _short_error_reason(e),
            )
            yield ErrorEvent(error=e)
            return
        finally:
            # Release the HTTP stream when reading stops early
            aclose = getattr(response, "aclose", None)
            if aclose is not None:
                await aclose()

        for event in tool_calls.events():
            yield event
        yield FinishEvent(finish_reason=FinishReason.from_provider(finish_reason), usage=usage)

    async def complete_step(
        self,
        messages: list[dict[str, Any]],
        *,
        tools: list[Tool] | None = None,
        cancel: asyncio.Event | None = None,
    ) -> BatchResponse:
        """Run one turn via LiteLLM without streaming."""
        kwargs = self._build_completion_kwargs(messages, tools)
        response = await litellm.acompletion(**kwargs)

        if not response.choices:
            return BatchResponse(usage=_build_usage(getattr(response, "usage", None)))

        choice = response.choices[0]
        message = choice.message
        calls = [
            ToolCallEvent(
                tool_call_id=_field(call, "id") or f"call_{i}",
                tool_name=_field(_field(call, "function"), "name") or "",
                input=_parse_arguments(_field(_field(call, "function"), "arguments")),
            )
            for i, call in enumerate(getattr(message, "tool_calls", None) or [])
        ]
        return BatchResponse(
            text=message.content or "",
            reasoning=getattr(message, "reasoning_content", None) or "",
            tool_calls=calls,
            files=_file_events(getattr(message, "images", None)),
            usage=_build_usage(getattr(response, "usage", None)),
            finish_reason=FinishReason.from_provider(choice.finish_reason),
        )

    async def generate_images(
        self,
        request: ImageRequest,
        *,
        cancel: asyncio.Event | None = None,
    ) -> list[str]:
        """Generate images via litellm.aimage_generation().

        Reference images are not forwarded: the unified image API only takes
        a prompt.
        """
        if not self._config.image_model:
            raise ImageGenerationUnsupported(
                f"{self._config.display_name} does not support image generation"
            )
        if request.reference_images:
            logger.debug(
                "Ignoring %d reference images for %s",
                len(request.reference_images), self._config.image_model,
            )

        kwargs: dict[str, Any] = {
            "model": self._config.image_model,
            "prompt": request.prompt,
            "n": request.count,
            "response_format": "b64_json",
            "timeout": float(self._timeout),
        }
        if self._api_key:
            kwargs["api_key"] = self._api_key
        if self._config.api_base:
            kwargs["api_base"] = self._config.api_base

        response = await litellm.aimage_generation(**kwargs)

        data_urls: list[str] = []
        for item in getattr(response, "data", None) or []:
            b64 = _field(item, "b64_json")
            if not b64:
                logger.warning("Image from %s has no inline data, skipping", self._config.image_model)
                continue
            data_urls.append(to_data_url("image/png", b64))
        return data_urls

    def _build_completion_kwargs(
        self,
        messages: list[dict[str, Any]],
        tools: list[Tool] | None,
    ) -> dict:
        """Build the kwargs dict for litellm.acompletion."""
        kwargs: dict = {
            "model": self._config.model,
            "messages": self._prepare_messages(messages),
            "timeout": float(self._timeout),
        }

        # Set API key if available
        if self._api_key:
            kwargs["api_key"] = self._api_key

        # Set custom API base if configured
        if self._config.api_base:
            kwargs["api_base"] = self._config.api_base

        if self._config.temperature is not None:
            kwargs["temperature"] = self._config.temperature
        if self._config.top_p is not None:
            kwargs["top_p"] = self._config.top_p
        if self._config.max_output_tokens is not None:
            kwargs["max_tokens"] = self._config.max_output_tokens

        # Offer tools only when the model supports them
        if tools and self._config.supports_tools:
            kwargs["tools"] = [tool.to_openai() for tool in tools]
        elif tools:
            logger.debug("%s does not support tools, not offering %d", self._config.display_name, len(tools))

        return kwargs

    def _prepare_messages(self, messages: list[dict[str, Any]]) -> list[dict[str, Any]]:
        """Fold system messages into the first user message when unsupported."""
        if self._config.supports_system_message:
            return list(messages)

        system_text = "\n\n".join(
            str(m.get("content") or "") for m in messages if m.get("role") == "system"
        )
        rest = [dict(m) for m in messages if m.get("role") != "system"]
        if not system_text:
            return rest
        for message in rest:
            if message.get("role") == "user" and isinstance(message.get("content"), str):
                message["content"] = f"{system_text}\n\n{message['content']}"
                return rest
        return [{"role": "user", "content": system_text}, *rest]
