"""Rich renderables for content parts.

Plain terminal rendering of a response while it streams: reasoning in a dim
panel with its timing, text as-is, tool calls as one status line each, and
images as their storage keys.
"""

from __future__ import annotations

import json
from typing import Any

from rich.console import Group, RenderableType
from rich.panel import Panel
from rich.text import Text

from chorus.schemas.content import (
    ContentParts,
    ImagePart,
    ReasoningPart,
    TextPart,
    ToolCallPart,
    ToolCallState,
)

_STATE_MARKUP: dict[ToolCallState, str] = {
    ToolCallState.CALL: "[bold cyan]◉[/bold cyan]",
    ToolCallState.RESULT: "[bold green]●[/bold green]",
    ToolCallState.ERROR: "[bold red]✗[/bold red]",
}


def format_duration(ms: int | None) -> str:
    """Human-friendly span length, e.g. '850ms' or '2.4s'."""
    if ms is None:
        return "…"
    if ms < 1000:
        return f"{ms}ms"
    return f"{ms / 1000:.1f}s"


def _compact(value: Any, limit: int = 80) -> str:
    text = json.dumps(value, default=str, ensure_ascii=False)
    return text if len(text) <= limit else text[: limit - 1] + "…"


def render_part(part: Any) -> RenderableType:
    if isinstance(part, ReasoningPart):
        title = (
            "[dim]Thinking…[/dim]"
            if part.duration is None
            else f"[dim]Thought for {format_duration(part.duration)}[/dim]"
        )
        return Panel(Text(part.text, style="dim italic"), title=title, border_style="dim")
    if isinstance(part, TextPart):
        return Text(part.text)
    if isinstance(part, ToolCallPart):
        line = Text.from_markup(f"{_STATE_MARKUP[part.state]} ")
        line.append(part.tool_name, style="bold")
        line.append(f"({_compact(part.args)})")
        if part.state != ToolCallState.CALL:
            line.append(f" → {_compact(part.result)}", style="dim")
        return line
    if isinstance(part, ImagePart):
        return Text.assemble(("image", "magenta"), " ", (part.storage_key, "dim"))
    return Text(repr(part))


def render_parts(parts: ContentParts) -> RenderableType:
    """One renderable for the whole content list."""
    return Group(*(render_part(part) for part in parts))
