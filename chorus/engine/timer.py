"""Reasoning span timing.

A reasoning part gets its start time at the first token of a contiguous span
and its duration exactly once, when the span closes: on a transition to
another kind of content, or when the stream ends for any reason.

``start_time`` is wall-clock epoch milliseconds. Durations are measured on a
monotonic clock so a wall-clock adjustment mid-span cannot skew them.
"""

from __future__ import annotations

import time
from collections.abc import Callable

from chorus.schemas.content import ContentParts, ReasoningPart


def wall_clock_ms() -> int:
    """Current wall-clock time in whole milliseconds."""
    return int(time.time() * 1000)


def monotonic_ms() -> int:
    """Monotonic clock reading in whole milliseconds. Only differences are meaningful."""
    return int(time.monotonic() * 1000)


class ReasoningTimer:
    """Starts and closes reasoning spans. Both operations are idempotent.

    Args:
        clock: Source of ``start_time`` values.
        monotonic: Source for measuring durations. Defaults to
            ``monotonic_ms`` with the wall clock, or to *clock* itself when
            a custom clock is injected.
    """

    def __init__(
        self,
        clock: Callable[[], int] = wall_clock_ms,
        monotonic: Callable[[], int] | None = None,
    ) -> None:
        self._clock = clock
        if monotonic is None:
            monotonic = monotonic_ms if clock is wall_clock_ms else clock
        self._monotonic = monotonic
        # id(part) -> monotonic reading at span start
        self._started: dict[int, int] = {}

    def now(self) -> int:
        return self._clock()

    def start(self, part: ReasoningPart) -> None:
        if part.start_time is None:
            part.start_time = self._clock()
            self._started[id(part)] = self._monotonic()

    def close(self, part: ReasoningPart | None) -> None:
        """Set the span duration if it is still open.

        A closed span always reports at least 1 ms, so a span that started
        and ended within the same clock tick still reads as having happened.
        """
        if part is None or part.start_time is None or part.duration is not None:
            return
        started = self._started.pop(id(part), None)
        if started is None:
            # Started by another timer; only the wall clock is comparable
            elapsed = self._clock() - part.start_time
        else:
            elapsed = self._monotonic() - started
        part.duration = max(1, elapsed)

    def close_all(self, parts: ContentParts) -> None:
        """Close every reasoning span left open in *parts*."""
        for part in parts:
            if isinstance(part, ReasoningPart):
                self.close(part)
