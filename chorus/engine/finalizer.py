"""Result finalization.

Runs once per request, after the stream ends normally or is cancelled.
"""

from __future__ import annotations

from chorus.engine.assembler import ContentListener, notify
from chorus.engine.timer import ReasoningTimer
from chorus.schemas.completion import CompletionResult, ContentUpdate
from chorus.schemas.content import ContentParts
from chorus.schemas.events import FinishReason, Usage


async def finalize_result(
    parts: ContentParts,
    *,
    usage: Usage | None,
    finish_reason: FinishReason,
    timer: ReasoningTimer,
    on_change: ContentListener | None = None,
) -> CompletionResult:
    """Close leftover reasoning spans, report usage, build the result.

    Durations are normally captured at transitions; this pass covers spans
    left open by a stream that ended while still reasoning.
    """
    timer.close_all(parts)
    await notify(
        on_change,
        ContentUpdate(
            content_parts=list(parts),
            token_count=usage.output_tokens if usage else None,
            tokens_used=usage.total_tokens if usage else None,
        ),
    )
    return CompletionResult(content_parts=parts, usage=usage, finish_reason=finish_reason)
