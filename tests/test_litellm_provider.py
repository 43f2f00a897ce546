"""Tests for chorus.providers.litellm_provider — LiteLLM adapter."""

from __future__ import annotations

import asyncio
from types import SimpleNamespace
from unittest.mock import AsyncMock, patch

import pytest

from chorus.engine.errors import ImageGenerationUnsupported
from chorus.providers.litellm_provider import (
    LiteLLMProvider,
    _build_usage,
    _parse_arguments,
    _short_error_reason,
    _ToolCallAccumulator,
)
from chorus.schemas.completion import ImageRequest, Tool
from chorus.schemas.events import (
    ErrorEvent,
    FileEvent,
    FinishEvent,
    FinishReason,
    ReasoningDelta,
    TextDelta,
    ToolCallEvent,
)
from chorus.schemas.models import ModelConfig
from conftest import PNG_B64

# Shorthand for the mock targets
_ACOMP = "chorus.providers.litellm_provider.litellm.acompletion"
_AIMG = "chorus.providers.litellm_provider.litellm.aimage_generation"

USER = [{"role": "user", "content": "hi"}]


# ── Helpers ───────────────────────────────────────────────────


def _make_config(**overrides) -> ModelConfig:
    """Create a ModelConfig with sensible defaults."""
    defaults = {
        "provider": "anthropic",
        "model": "anthropic/claude-sonnet-4-5",
        "display_name": "Claude Sonnet 4.5",
        "api_key_env": "ANTHROPIC_API_KEY",
        "supports_tools": True,
        "supports_vision": True,
        "supports_reasoning": True,
    }
    defaults.update(overrides)
    return ModelConfig(**defaults)


def _chunk(
    content=None,
    reasoning=None,
    tool_calls=None,
    images=None,
    finish_reason=None,
    usage=None,
) -> SimpleNamespace:
    """Build a LiteLLM streaming chunk-like object."""
    delta = SimpleNamespace(
        content=content,
        reasoning_content=reasoning,
        tool_calls=tool_calls,
        images=images,
    )
    choice = SimpleNamespace(delta=delta, finish_reason=finish_reason, index=0)
    return SimpleNamespace(choices=[choice], usage=usage)


def _usage_chunk(prompt_tokens=20, completion_tokens=8, reasoning_tokens=0) -> SimpleNamespace:
    usage = SimpleNamespace(
        prompt_tokens=prompt_tokens,
        completion_tokens=completion_tokens,
        total_tokens=prompt_tokens + completion_tokens,
        completion_tokens_details=SimpleNamespace(reasoning_tokens=reasoning_tokens),
    )
    return SimpleNamespace(choices=[], usage=usage)


def _fragment(index, call_id=None, name=None, arguments=None) -> SimpleNamespace:
    return SimpleNamespace(
        index=index,
        id=call_id,
        function=SimpleNamespace(name=name, arguments=arguments),
    )


def _stream(*chunks, error: Exception | None = None):
    async def gen():
        for chunk in chunks:
            yield chunk
        if error is not None:
            raise error

    return gen()


async def _collect(provider, messages=USER, **kwargs) -> list:
    return [event async for event in provider.stream_step(messages, **kwargs)]


# ── Helpers under test ───────────────────────────────────────


class TestParseArguments:
    def test_json_string(self):
        assert _parse_arguments('{"a": 1}') == {"a": 1}

    def test_empty_string(self):
        assert _parse_arguments("  ") == {}

    def test_invalid_json_kept_raw(self):
        assert _parse_arguments('{"a": ') == {"_raw": '{"a": '}

    def test_already_parsed(self):
        assert _parse_arguments({"a": 1}) == {"a": 1}
        assert _parse_arguments(None) == {}


class TestBuildUsage:
    def test_none(self):
        assert _build_usage(None).total_tokens == 0

    def test_reasoning_tokens(self):
        usage = _build_usage(_usage_chunk(10, 5, 3).usage)
        assert usage.input_tokens == 10
        assert usage.output_tokens == 5
        assert usage.reasoning_tokens == 3
        assert usage.total_tokens == 15

    def test_dict_usage(self):
        usage = _build_usage({"prompt_tokens": 4, "completion_tokens": 2})
        assert usage.total_tokens == 6


class TestToolCallAccumulator:
    def test_fragments_reassembled_by_index(self):
        acc = _ToolCallAccumulator()
        acc.add([_fragment(0, "call_a", "search", '{"q": ')])
        acc.add([_fragment(1, "call_b", "fetch", '{"url": "x"}')])
        acc.add([_fragment(0, arguments='"cats"}')])
        events = acc.events()
        assert events == [
            ToolCallEvent(tool_call_id="call_a", tool_name="search", input={"q": "cats"}),
            ToolCallEvent(tool_call_id="call_b", tool_name="fetch", input={"url": "x"}),
        ]

    def test_missing_id_gets_fallback(self):
        acc = _ToolCallAccumulator()
        acc.add([_fragment(0, name="search", arguments="{}")])
        assert acc.events()[0].tool_call_id == "call_0"


class TestShortErrorReason:
    def test_rate_limit(self):
        assert _short_error_reason(Exception("Error 429: too many")) == "rate limit"

    def test_timeout(self):
        assert _short_error_reason(TimeoutError()) == "timeout"

    def test_fallback_truncates(self):
        assert len(_short_error_reason(Exception("x" * 200))) == 80


# ── stream_step ──────────────────────────────────────────────


class TestStreamStep:
    @pytest.mark.asyncio
    async def test_text_and_usage(self):
        provider = LiteLLMProvider(_make_config())
        stream = _stream(
            _chunk(content="Hel"),
            _chunk(content="lo", finish_reason="stop"),
            _usage_chunk(),
        )
        with patch(_ACOMP, new_callable=AsyncMock, return_value=stream) as mock:
            events = await _collect(provider)

        assert events[:2] == [TextDelta(text="Hel"), TextDelta(text="lo")]
        finish = events[-1]
        assert isinstance(finish, FinishEvent)
        assert finish.finish_reason == FinishReason.STOP
        assert finish.usage.input_tokens == 20
        kwargs = mock.call_args.kwargs
        assert kwargs["stream"] is True
        assert kwargs["stream_options"] == {"include_usage": True}
        assert kwargs["model"] == "anthropic/claude-sonnet-4-5"

    @pytest.mark.asyncio
    async def test_reasoning_before_text(self):
        provider = LiteLLMProvider(_make_config())
        stream = _stream(
            _chunk(reasoning="Let me think"),
            _chunk(content="Answer", finish_reason="stop"),
        )
        with patch(_ACOMP, new_callable=AsyncMock, return_value=stream):
            events = await _collect(provider)
        assert events[0] == ReasoningDelta(text="Let me think")
        assert events[1] == TextDelta(text="Answer")

    @pytest.mark.asyncio
    async def test_tool_calls_emitted_at_end(self):
        provider = LiteLLMProvider(_make_config())
        stream = _stream(
            _chunk(content="Checking"),
            _chunk(tool_calls=[_fragment(0, "call_1", "weather", '{"city":')]),
            _chunk(tool_calls=[_fragment(0, arguments='"Oslo"}')], finish_reason="tool_calls"),
        )
        tool = Tool(name="weather", parameters={"type": "object"})
        with patch(_ACOMP, new_callable=AsyncMock, return_value=stream) as mock:
            events = await _collect(provider, tools=[tool])

        assert [e.type for e in events] == ["text-delta", "tool-call", "finish"]
        assert events[1].input == {"city": "Oslo"}
        assert events[-1].finish_reason == FinishReason.TOOL_CALLS
        assert mock.call_args.kwargs["tools"][0]["function"]["name"] == "weather"

    @pytest.mark.asyncio
    async def test_inline_images_become_file_events(self):
        provider = LiteLLMProvider(_make_config())
        image = {"type": "image_url", "image_url": {"url": f"data:image/png;base64,{PNG_B64}"}}
        stream = _stream(_chunk(images=[image], finish_reason="stop"))
        with patch(_ACOMP, new_callable=AsyncMock, return_value=stream):
            events = await _collect(provider)
        assert events[0] == FileEvent(media_type="image/png", base64=PNG_B64)

    @pytest.mark.asyncio
    async def test_mid_stream_failure_becomes_error_event(self):
        provider = LiteLLMProvider(_make_config())
        failure = ConnectionError("connection reset")
        stream = _stream(_chunk(content="part"), error=failure)
        with patch(_ACOMP, new_callable=AsyncMock, return_value=stream):
            events = await _collect(provider)
        assert events[0] == TextDelta(text="part")
        assert isinstance(events[-1], ErrorEvent)
        assert events[-1].error is failure
        assert not any(isinstance(e, FinishEvent) for e in events)

    @pytest.mark.asyncio
    async def test_failure_before_stream_raises(self):
        provider = LiteLLMProvider(_make_config())
        with patch(_ACOMP, new_callable=AsyncMock, side_effect=ValueError("bad model")):
            with pytest.raises(ValueError, match="bad model"):
                await _collect(provider)

    @pytest.mark.asyncio
    async def test_cancel_stops_reading(self):
        provider = LiteLLMProvider(_make_config())
        cancel = asyncio.Event()
        cancel.set()
        stream = _stream(_chunk(content="never"))
        with patch(_ACOMP, new_callable=AsyncMock, return_value=stream):
            events = await _collect(provider, cancel=cancel)
        assert events == [FinishEvent()]

    @pytest.mark.asyncio
    async def test_cancel_closes_response_stream(self):
        provider = LiteLLMProvider(_make_config())
        cancel = asyncio.Event()
        chunks = [_chunk(content="Hel"), _chunk(content="never")]

        class Response:
            def __init__(self):
                self.aclose = AsyncMock()

            async def __aiter__(self):
                for chunk in chunks:
                    yield chunk

        response = Response()
        events = []
        with patch(_ACOMP, new_callable=AsyncMock, return_value=response):
            async for event in provider.stream_step(USER, cancel=cancel):
                events.append(event)
                cancel.set()

        assert events[0] == TextDelta(text="Hel")
        assert TextDelta(text="never") not in events
        response.aclose.assert_awaited_once()


# ── Request building ─────────────────────────────────────────


class TestCompletionKwargs:
    def test_tools_dropped_when_unsupported(self):
        provider = LiteLLMProvider(_make_config(supports_tools=False))
        kwargs = provider._build_completion_kwargs(USER, [Tool(name="t")])
        assert "tools" not in kwargs

    def test_sampling_options(self):
        provider = LiteLLMProvider(
            _make_config(temperature=0.2, top_p=0.9, max_output_tokens=256, api_base="http://x")
        )
        kwargs = provider._build_completion_kwargs(USER, None)
        assert kwargs["temperature"] == 0.2
        assert kwargs["top_p"] == 0.9
        assert kwargs["max_tokens"] == 256
        assert kwargs["api_base"] == "http://x"

    def test_api_key_from_env(self, monkeypatch):
        monkeypatch.setenv("ANTHROPIC_API_KEY", "sk-test")
        provider = LiteLLMProvider(_make_config())
        assert provider._build_completion_kwargs(USER, None)["api_key"] == "sk-test"

    def test_system_message_folded_when_unsupported(self):
        provider = LiteLLMProvider(_make_config(supports_system_message=False))
        messages = [
            {"role": "system", "content": "Be brief."},
            {"role": "user", "content": "Hi"},
        ]
        prepared = provider._prepare_messages(messages)
        assert prepared == [{"role": "user", "content": "Be brief.\n\nHi"}]
        assert messages[1]["content"] == "Hi"

    def test_system_message_kept_when_supported(self):
        provider = LiteLLMProvider(_make_config())
        messages = [{"role": "system", "content": "s"}, {"role": "user", "content": "u"}]
        assert provider._prepare_messages(messages) == messages


# ── complete_step ────────────────────────────────────────────


class TestCompleteStep:
    @pytest.mark.asyncio
    async def test_batch_response_mapped(self):
        provider = LiteLLMProvider(_make_config(stream=False))
        call = SimpleNamespace(
            id="call_9",
            function=SimpleNamespace(name="search", arguments='{"q": "x"}'),
        )
        message = SimpleNamespace(
            content="Done",
            reasoning_content="short thought",
            tool_calls=[call],
            images=None,
        )
        response = SimpleNamespace(
            choices=[SimpleNamespace(message=message, finish_reason="stop", index=0)],
            usage=SimpleNamespace(prompt_tokens=3, completion_tokens=2, total_tokens=5),
        )
        with patch(_ACOMP, new_callable=AsyncMock, return_value=response):
            batch = await provider.complete_step(USER)

        assert batch.text == "Done"
        assert batch.reasoning == "short thought"
        assert batch.tool_calls[0].tool_call_id == "call_9"
        assert batch.tool_calls[0].input == {"q": "x"}
        assert batch.usage.total_tokens == 5
        assert batch.finish_reason == FinishReason.STOP

    @pytest.mark.asyncio
    async def test_empty_choices(self):
        provider = LiteLLMProvider(_make_config(stream=False))
        response = SimpleNamespace(choices=[], usage=None)
        with patch(_ACOMP, new_callable=AsyncMock, return_value=response):
            batch = await provider.complete_step(USER)
        assert batch.text == ""


# ── generate_images ──────────────────────────────────────────


class TestGenerateImages:
    @pytest.mark.asyncio
    async def test_returns_data_urls(self):
        provider = LiteLLMProvider(_make_config(image_model="openai/dall-e-3"))
        response = SimpleNamespace(data=[SimpleNamespace(b64_json=PNG_B64, url=None)])
        with patch(_AIMG, new_callable=AsyncMock, return_value=response) as mock:
            urls = await provider.generate_images(ImageRequest(prompt="a cat", count=1))

        assert urls == [f"data:image/png;base64,{PNG_B64}"]
        kwargs = mock.call_args.kwargs
        assert kwargs["model"] == "openai/dall-e-3"
        assert kwargs["n"] == 1
        assert kwargs["response_format"] == "b64_json"

    @pytest.mark.asyncio
    async def test_url_only_images_skipped(self):
        provider = LiteLLMProvider(_make_config(image_model="openai/dall-e-3"))
        response = SimpleNamespace(data=[SimpleNamespace(b64_json=None, url="https://x")])
        with patch(_AIMG, new_callable=AsyncMock, return_value=response):
            assert await provider.generate_images(ImageRequest(prompt="a cat")) == []

    @pytest.mark.asyncio
    async def test_no_image_model(self):
        provider = LiteLLMProvider(_make_config())
        assert provider.supports_image_generation is False
        with pytest.raises(ImageGenerationUnsupported):
            await provider.generate_images(ImageRequest(prompt="a cat"))
