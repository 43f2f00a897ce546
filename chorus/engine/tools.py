"""Tool call correlation.

Maps tool call ids to their content parts so results and errors arriving
later in the stream land on the right part. Entries are never removed.
"""

from __future__ import annotations

import logging
import traceback
from typing import Any

from chorus.schemas.content import ToolCallPart, ToolCallState

logger = logging.getLogger(__name__)


def serialize_error(error: object) -> Any:
    """Normalize an exception to ``{name, message, stack}``.

    Non-exception values are returned unchanged; providers sometimes report
    tool errors as plain strings or dicts.
    """
    if isinstance(error, BaseException):
        return {
            "name": type(error).__name__,
            "message": str(error),
            "stack": "".join(traceback.format_exception(error)),
        }
    return error


class ToolCallTable:
    """Index from tool call id to its in-flight ToolCallPart."""

    def __init__(self) -> None:
        self._calls: dict[str, ToolCallPart] = {}

    def __contains__(self, tool_call_id: object) -> bool:
        return tool_call_id in self._calls

    def __len__(self) -> int:
        return len(self._calls)

    def get(self, tool_call_id: str) -> ToolCallPart | None:
        return self._calls.get(tool_call_id)

    def register(self, part: ToolCallPart) -> bool:
        """Register a new call. Returns False if the id is already taken."""
        if part.tool_call_id in self._calls:
            logger.warning("Duplicate tool call id %s ignored", part.tool_call_id)
            return False
        self._calls[part.tool_call_id] = part
        return True

    def resolve(self, tool_call_id: str, output: Any) -> bool:
        """Attach a successful result.

        An exception-shaped output is recorded exactly like :meth:`fail`.

        Returns:
            True if a part was mutated.
        """
        part = self._pending(tool_call_id)
        if part is None:
            return False
        if isinstance(output, BaseException):
            logger.debug("Tool %s returned an error: %s", part.tool_name, output)
            part.result = serialize_error(output)
            part.state = ToolCallState.ERROR
            return True
        part.result = output
        part.state = ToolCallState.RESULT
        return True

    def fail(
        self,
        tool_call_id: str,
        error: object,
        *,
        input: Any = None,
        tool_name: str = "",
    ) -> bool:
        """Attach a normalized error payload. Returns True if a part was mutated."""
        part = self._pending(tool_call_id)
        if part is None:
            return False
        logger.debug("Tool %s failed: %s", tool_name or part.tool_name, error)
        part.result = {
            "error": serialize_error(error) if error is not None else {"message": "Unknown tool error"},
            "input": input if input is not None else part.args,
            "toolName": tool_name or part.tool_name,
        }
        part.state = ToolCallState.ERROR
        return True

    def _pending(self, tool_call_id: str) -> ToolCallPart | None:
        part = self._calls.get(tool_call_id)
        if part is None:
            logger.warning("Result for unknown tool call id %s ignored", tool_call_id)
            return None
        if part.state != ToolCallState.CALL:
            logger.warning(
                "Tool call %s already settled as %s, ignoring", tool_call_id, part.state
            )
            return None
        return part
