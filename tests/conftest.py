"""Shared fakes for engine and orchestrator tests."""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator

import pytest

from chorus.engine.timer import ReasoningTimer
from chorus.providers.base import ModelProvider
from chorus.schemas.completion import BatchResponse, ImageRequest
from chorus.schemas.events import StreamEvent
from chorus.schemas.models import ModelConfig
from chorus.storage import MemoryBlobStore

# 1x1 transparent PNG
PNG_B64 = (
    "iVBORw0KGgoAAAANSUhEUgAAAAEAAAABCAQAAAC1HAwCAAAAC0lEQVR42mNkYAAAAAYAAjCB0C8AAAAASUVORK5CYII="
)


class FakeClock:
    """Deterministic millisecond clock; every read advances by ``step``."""

    def __init__(self, start: int = 1_000_000, step: int = 5) -> None:
        self.now = start
        self.step = step

    def __call__(self) -> int:
        self.now += self.step
        return self.now


class ScriptedProvider(ModelProvider):
    """Replays scripted events, one list per model step.

    Each step may contain an Exception instance, which is raised when reached
    (a transport failure in the middle of a stream).
    """

    def __init__(
        self,
        steps: list[list[object]],
        *,
        stream: bool = True,
        batches: list[BatchResponse] | None = None,
        images: list[str] | None = None,
        on_event=None,
    ) -> None:
        super().__init__(
            ModelConfig(
                provider="test",
                model="test/model-v1",
                display_name="Test Model",
                stream=stream,
                supports_tools=True,
                supports_reasoning=True,
                image_model="test/paint" if images is not None else "",
            )
        )
        self._steps = list(steps)
        self._batches = list(batches or [])
        self._images = images
        self._on_event = on_event
        self.calls: list[list[dict]] = []

    @property
    def supports_image_generation(self) -> bool:
        return self._images is not None

    async def stream_step(self, messages, *, tools=None, cancel=None) -> AsyncIterator[StreamEvent]:
        self.calls.append(list(messages))
        events = self._steps.pop(0) if self._steps else []
        for event in events:
            if isinstance(event, Exception):
                raise event
            yield event
            if self._on_event is not None:
                self._on_event(event)
            await asyncio.sleep(0)

    async def complete_step(self, messages, *, tools=None, cancel=None) -> BatchResponse:
        self.calls.append(list(messages))
        return self._batches.pop(0) if self._batches else BatchResponse()

    async def generate_images(self, request: ImageRequest, *, cancel=None) -> list[str]:
        if self._images is None:
            return await super().generate_images(request, cancel=cancel)
        return [f"data:image/png;base64,{b64}" for b64 in self._images[: request.count]]


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def timer(clock: FakeClock) -> ReasoningTimer:
    return ReasoningTimer(clock)


@pytest.fixture
def blob_store() -> MemoryBlobStore:
    return MemoryBlobStore()
