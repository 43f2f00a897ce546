"""Multi-step driver: model turns interleaved with tool execution.

A request may take several model steps. After each step, tool calls whose
tools can be executed locally are run, their outcomes are emitted as
``tool-result`` / ``tool-error`` events and appended to the working
history, and the model is called again. The loop ends when a step makes no
executable tool calls, or after ``max_steps`` steps.
"""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import AsyncIterator
from typing import Any

from chorus.engine.simulate import simulate_stream
from chorus.providers.base import ModelProvider
from chorus.schemas.completion import Tool
from chorus.schemas.events import (
    FinishEvent,
    FinishReason,
    StreamEvent,
    TextDelta,
    ToolCallEvent,
    ToolErrorEvent,
    ToolResultEvent,
    Usage,
)

logger = logging.getLogger(__name__)


class NoSuchToolError(LookupError):
    """The model called a tool that was not offered."""


def is_cancelled(cancel: asyncio.Event | None) -> bool:
    return cancel is not None and cancel.is_set()


async def step_events(
    provider: ModelProvider,
    messages: list[dict[str, Any]],
    *,
    tools: list[Tool] | None = None,
    cancel: asyncio.Event | None = None,
) -> AsyncIterator[StreamEvent]:
    """Events for one model step, simulated when the provider does not stream."""
    if provider.supports_streaming:
        async for event in provider.stream_step(messages, tools=tools, cancel=cancel):
            yield event
        return

    response = await provider.complete_step(messages, tools=tools, cancel=cancel)
    async for event in simulate_stream(response):
        yield event


async def execute_tool(tool: Tool, call: ToolCallEvent) -> StreamEvent:
    """Run one tool call and turn its outcome into an event."""
    try:
        if isinstance(call.input, dict):
            output = tool.execute(**call.input)
        else:
            output = tool.execute(call.input)
        if asyncio.iscoroutine(output):
            output = await output
    except Exception as e:
        logger.debug("Tool %s raised %s", call.tool_name, e)
        return ToolErrorEvent(
            tool_call_id=call.tool_call_id,
            tool_name=call.tool_name,
            input=call.input,
            error=e,
        )
    return ToolResultEvent(
        tool_call_id=call.tool_call_id,
        tool_name=call.tool_name,
        input=call.input,
        output=output,
    )


async def run_steps(
    provider: ModelProvider,
    messages: list[dict[str, Any]],
    *,
    tools: list[Tool] | None = None,
    max_steps: int = 0,
    cancel: asyncio.Event | None = None,
) -> AsyncIterator[StreamEvent]:
    """Drive model steps and tool round-trips as one event stream.

    Per-step finish events are folded into a single final FinishEvent whose
    usage is summed over all steps.

    Args:
        provider: The backend to call.
        messages: Conversation so far, in OpenAI format. Not mutated.
        tools: Tools offered to the model.
        max_steps: Upper bound on model steps; 0 means unbounded.
        cancel: Abort signal; no new step or tool execution starts once set.
    """
    history = list(messages)
    tool_map = {tool.name: tool for tool in tools or []}
    usage = Usage()
    finish_reason = FinishReason.UNKNOWN
    step = 0

    while True:
        step += 1
        text = ""
        calls: list[ToolCallEvent] = []

        async for event in step_events(provider, history, tools=tools, cancel=cancel):
            if isinstance(event, FinishEvent):
                usage = usage + event.usage
                finish_reason = event.finish_reason
                continue
            if isinstance(event, TextDelta):
                text += event.text
            elif isinstance(event, ToolCallEvent):
                calls.append(event)
            yield event

        outcomes = []
        for call in calls:
            if is_cancelled(cancel):
                return
            tool = tool_map.get(call.tool_name)
            if tool is None:
                outcome: StreamEvent = ToolErrorEvent(
                    tool_call_id=call.tool_call_id,
                    tool_name=call.tool_name,
                    input=call.input,
                    error=NoSuchToolError(f"Model tried to call unavailable tool '{call.tool_name}'"),
                )
            elif tool.execute is None:
                continue
            else:
                outcome = await execute_tool(tool, call)
            outcomes.append(outcome)
            yield outcome

        if not calls or len(outcomes) < len(calls):
            break
        if max_steps and step >= max_steps:
            logger.debug("Stopping after %d steps (max_steps reached)", step)
            break
        if is_cancelled(cancel):
            return

        history.append(_assistant_message(text, calls))
        history.extend(_tool_message(outcome) for outcome in outcomes)
        logger.debug("Step %d made %d tool calls, continuing", step, len(calls))

    yield FinishEvent(finish_reason=finish_reason, usage=usage)


def _assistant_message(text: str, calls: list[ToolCallEvent]) -> dict[str, Any]:
    return {
        "role": "assistant",
        "content": text or None,
        "tool_calls": [
            {
                "id": call.tool_call_id,
                "type": "function",
                "function": {
                    "name": call.tool_name,
                    "arguments": json.dumps(call.input if call.input is not None else {}),
                },
            }
            for call in calls
        ],
    }


def _tool_message(outcome: StreamEvent) -> dict[str, Any]:
    if isinstance(outcome, ToolErrorEvent):
        content = json.dumps({"error": str(outcome.error)})
    else:
        output = outcome.output
        if isinstance(output, BaseException):
            content = json.dumps({"error": str(output)})
        elif isinstance(output, str):
            content = output
        else:
            content = json.dumps(output, default=str)
    return {"role": "tool", "tool_call_id": outcome.tool_call_id, "content": content}
