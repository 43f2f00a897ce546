"""Content assembly from provider-agnostic stream events.

The assembler is the only writer of a response's content list. It consumes
one event at a time and either appends a part or mutates the tail part of
the same kind, so every list the change callback observes is a
prefix-consistent extension of the previous one.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from typing import Any

from chorus.engine.errors import classify_stream_error
from chorus.engine.images import ImageMaterializer
from chorus.engine.timer import ReasoningTimer
from chorus.engine.tools import ToolCallTable
from chorus.schemas.completion import ContentUpdate
from chorus.schemas.content import (
    ContentParts,
    ImagePart,
    ReasoningPart,
    TextPart,
    ToolCallPart,
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

logger = logging.getLogger(__name__)

# Sync or async callable receiving a ContentUpdate
ContentListener = Callable[[ContentUpdate], Any]


async def notify(listener: ContentListener | None, update: ContentUpdate) -> None:
    """Deliver *update* to *listener*, awaiting it if it is a coroutine."""
    if listener is None:
        return
    result = listener(update)
    if asyncio.iscoroutine(result):
        await result


class ContentAssembler:
    """Turns an ordered event stream into an ordered list of content parts.

    At most one text part and one reasoning part are open for append at a
    time, and never both: starting one kind closes the other. Tool calls and
    images always end the current run.
    """

    def __init__(
        self,
        materializer: ImageMaterializer,
        *,
        provider_name: str = "provider",
        on_change: ContentListener | None = None,
        timer: ReasoningTimer | None = None,
    ) -> None:
        self._materializer = materializer
        self._provider_name = provider_name
        self._on_change = on_change
        self.timer = timer or ReasoningTimer()
        self.table = ToolCallTable()
        self.parts: ContentParts = []
        self.current_text: TextPart | None = None
        self.current_reasoning: ReasoningPart | None = None
        self.usage: Usage | None = None
        self.finish_reason = FinishReason.UNKNOWN

    async def apply(self, event: StreamEvent) -> bool:
        """Apply one event. Returns True if the content list changed.

        Raises:
            ChorusError: On an ``error`` event; the request terminates.
        """
        if isinstance(event, TextDelta):
            changed = self._on_text(event.text)
        elif isinstance(event, ReasoningDelta):
            changed = self._on_reasoning(event.text)
        elif isinstance(event, ToolCallEvent):
            changed = self._on_tool_call(event)
        elif isinstance(event, ToolResultEvent):
            changed = self.table.resolve(event.tool_call_id, event.output)
        elif isinstance(event, ToolErrorEvent):
            changed = self.table.fail(
                event.tool_call_id,
                event.error,
                input=event.input,
                tool_name=event.tool_name,
            )
            # Unknown or settled ids must leave the open span alone
            if changed:
                self._close_reasoning()
        elif isinstance(event, FileEvent):
            changed = await self._on_file(event)
        elif isinstance(event, ErrorEvent):
            self.close_open_spans()
            raise classify_stream_error(event.error, self._provider_name)
        elif isinstance(event, FinishEvent):
            self.usage = event.usage
            self.finish_reason = event.finish_reason
            changed = False
        else:
            logger.debug("Ignoring unknown stream event %r", event)
            changed = False

        if changed:
            await notify(self._on_change, ContentUpdate(content_parts=list(self.parts)))
        return changed

    def close_open_spans(self) -> None:
        """Close the open reasoning span, if any. Used when the stream stops early."""
        self._close_reasoning()

    # ── Per-event handlers ────────────────────────────────────────

    def _on_text(self, text: str) -> bool:
        if not text:
            return False
        self._close_reasoning()
        if self.current_text is None:
            self.current_text = TextPart()
            self.parts.append(self.current_text)
        self.current_text.text += text
        return True

    def _on_reasoning(self, text: str) -> bool:
        # Some providers send whitespace-only reasoning alongside normal text;
        # treating it as content would split the text run.
        if not text.strip():
            return False
        self.current_text = None
        if self.current_reasoning is None:
            self.current_reasoning = ReasoningPart()
            self.timer.start(self.current_reasoning)
            self.parts.append(self.current_reasoning)
        self.current_reasoning.text += text
        return True

    def _on_tool_call(self, event: ToolCallEvent) -> bool:
        self._close_reasoning()
        self.current_text = None
        part = ToolCallPart(
            tool_call_id=event.tool_call_id,
            tool_name=event.tool_name,
            args=event.input,
        )
        if not self.table.register(part):
            return False
        self.parts.append(part)
        return True

    async def _on_file(self, event: FileEvent) -> bool:
        media_type = event.media_type or ""
        if not media_type.startswith("image/") or not event.base64:
            logger.debug("Ignoring non-image file output (%s)", media_type or "unknown type")
            return False
        storage_key = await self._materializer.materialize(media_type, event.base64)
        self._close_reasoning()
        self.current_text = None
        self.parts.append(ImagePart(storage_key=storage_key))
        return True

    def _close_reasoning(self) -> None:
        self.timer.close(self.current_reasoning)
        self.current_reasoning = None
