"""Tests for chorus.engine.finalizer and chorus.reporting."""

from __future__ import annotations

import logging
from unittest.mock import MagicMock

import pytest

from chorus.engine.finalizer import finalize_result
from chorus.reporting import LoggingErrorReporter, report_exception
from chorus.schemas.content import ReasoningPart, TextPart
from chorus.schemas.events import FinishReason, Usage


class TestFinalizeResult:
    @pytest.mark.asyncio
    async def test_closes_open_reasoning(self, timer):
        reasoning = ReasoningPart(text="r")
        timer.start(reasoning)
        parts = [reasoning]
        result = await finalize_result(
            parts, usage=None, finish_reason=FinishReason.STOP, timer=timer
        )
        assert result.content_parts[0].duration is not None
        assert result.usage is None
        assert result.finish_reason == FinishReason.STOP

    @pytest.mark.asyncio
    async def test_final_update_has_tokens(self, timer):
        updates = []
        usage = Usage(input_tokens=4, output_tokens=6, total_tokens=10)
        await finalize_result(
            [TextPart(text="a")],
            usage=usage,
            finish_reason=FinishReason.STOP,
            timer=timer,
            on_change=updates.append,
        )
        (update,) = updates
        assert update.token_count == 6
        assert update.tokens_used == 10
        assert update.content_parts == [TextPart(text="a")]

    @pytest.mark.asyncio
    async def test_closed_durations_untouched(self, timer):
        part = ReasoningPart(text="r", start_time=1, duration=99)
        await finalize_result([part], usage=None, finish_reason=FinishReason.CANCELLED, timer=timer)
        assert part.duration == 99


class TestReporting:
    def test_reporter_receives_context(self):
        reporter = MagicMock()
        exc = RuntimeError("x")
        report_exception(reporter, exc, tags={"provider_name": "P"}, extra={"messages": "[]"})
        reporter.capture_exception.assert_called_once_with(
            exc, tags={"provider_name": "P"}, extra={"messages": "[]"}
        )

    def test_reporter_failure_is_logged(self, caplog):
        reporter = MagicMock()
        reporter.capture_exception.side_effect = OSError("sink down")
        with caplog.at_level(logging.ERROR, logger="chorus.reporting"):
            report_exception(reporter, RuntimeError("x"), tags={}, extra={})
        assert "Error reporter failed" in caplog.text

    def test_no_reporter(self):
        report_exception(None, RuntimeError("x"), tags={}, extra={})

    def test_logging_reporter(self, caplog):
        with caplog.at_level(logging.ERROR, logger="chorus.reporting"):
            LoggingErrorReporter().capture_exception(
                KeyError("k"), tags={"provider_name": "P"}, extra={}
            )
        assert "Unexpected error KeyError (provider_name=P)" in caplog.text
