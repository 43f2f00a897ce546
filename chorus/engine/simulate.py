"""Simulated streaming over a batch response.

Providers configured with ``stream = false`` answer in one piece. Replaying
that answer as events keeps the assembler's contract identical for both
kinds of provider.
"""

from __future__ import annotations

from collections.abc import AsyncIterator

from chorus.schemas.completion import BatchResponse
from chorus.schemas.events import (
    FinishEvent,
    ReasoningDelta,
    StreamEvent,
    TextDelta,
)


async def simulate_stream(response: BatchResponse) -> AsyncIterator[StreamEvent]:
    """Yield the events a streaming provider would have produced."""
    if response.reasoning:
        yield ReasoningDelta(text=response.reasoning)
    if response.text:
        yield TextDelta(text=response.text)
    for call in response.tool_calls:
        yield call
    for file in response.files:
        yield file
    yield FinishEvent(finish_reason=response.finish_reason, usage=response.usage)
