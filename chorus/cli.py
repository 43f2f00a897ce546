"""Chorus CLI — Typer + Rich terminal interface.

Commands: chat, paint, models list, config show.
Responses render live while they stream; Ctrl-C cancels the request and
keeps whatever was produced so far.
"""

from __future__ import annotations

import asyncio
import logging
import signal
from pathlib import Path

import typer
from rich.console import Console
from rich.live import Live
from rich.logging import RichHandler
from rich.table import Table

from chorus import __version__
from chorus.cli_display import format_duration, render_parts
from chorus.engine.errors import CapabilityError, ChorusError
from chorus.orchestrator import CompletionOrchestrator, ModelDependencies, partial_content
from chorus.providers.registry import (
    create_provider,
    load_chat_config,
    load_models,
    resolve_model,
)
from chorus.schemas.completion import ContentUpdate
from chorus.schemas.events import FinishReason
from chorus.schemas.models import ChatConfig, ModelConfig
from chorus.storage import FileBlobStore

console = Console()

# ── App and sub-apps ─────────────────────────────────────────────

app = typer.Typer(
    name="chorus",
    help="One streaming chat interface over many model backends.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)

models_app = typer.Typer(
    name="models",
    help="Inspect the model registry.",
    no_args_is_help=True,
)
app.add_typer(models_app, name="models")

config_app = typer.Typer(
    name="config",
    help="Show chat configuration.",
    no_args_is_help=True,
)
app.add_typer(config_app, name="config")


# ── Version callback ───────────────────────────────────────────


def _version_callback(value: bool) -> None:
    if value:
        console.print(f"chorus {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool = typer.Option(
        False, "--version", "-V",
        help="Show version and exit.",
        callback=_version_callback,
        is_eager=True,
    ),
    verbose: bool = typer.Option(
        False, "--verbose", "-v",
        help="Log engine events at DEBUG level.",
    ),
) -> None:
    """Chorus — one streaming chat interface over many model backends."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=console, show_path=False)],
    )


# ── Helpers ──────────────────────────────────────────────────────


def _load_registry() -> dict[str, ModelConfig]:
    """Load the model registry, exit on error."""
    try:
        return load_models()
    except (FileNotFoundError, ValueError) as e:
        console.print(f"[red]Error loading model registry:[/red] {e}")
        raise typer.Exit(1) from None


def _load_config() -> ChatConfig:
    """Load the chat config, exit on error."""
    try:
        return load_chat_config()
    except (FileNotFoundError, ValueError) as e:
        console.print(f"[red]Error loading config:[/red] {e}")
        raise typer.Exit(1) from None


def _build_orchestrator(
    model: str | None, *, no_stream: bool = False
) -> tuple[CompletionOrchestrator, ChatConfig]:
    registry = _load_registry()
    chat_config = _load_config()
    key = model or chat_config.default_model
    try:
        model_config = resolve_model(registry, key)
    except KeyError:
        console.print(f"[red]Model not found:[/red] '{key}'")
        console.print(f"[dim]Available: {', '.join(sorted(registry))}[/dim]")
        raise typer.Exit(1) from None

    if no_stream:
        model_config = model_config.model_copy(update={"stream": False})

    provider = create_provider(model_config, timeout=chat_config.timeout)
    deps = ModelDependencies(blob_store=FileBlobStore(chat_config.blob_dir))
    return CompletionOrchestrator(provider, deps, chat_config=chat_config), chat_config


def _install_cancel_handler(cancel: asyncio.Event) -> None:
    """Make Ctrl-C set *cancel* instead of killing the loop (Unix only)."""
    try:
        asyncio.get_running_loop().add_signal_handler(signal.SIGINT, cancel.set)
    except (NotImplementedError, RuntimeError):
        pass


# ── chorus chat ──────────────────────────────────────────────────


@app.command()
def chat(
    prompt: str = typer.Argument(..., help="User message to send"),
    model: str = typer.Option(None, "--model", "-m", help="Registry key or LiteLLM model id"),
    system: str = typer.Option("", "--system", "-s", help="Optional system prompt"),
    max_steps: int = typer.Option(None, "--max-steps", help="Bound on model steps (0 = unbounded)"),
    no_stream: bool = typer.Option(False, "--no-stream", help="Request a batch response and replay it"),
) -> None:
    """Send one message and render the response as it streams."""
    orchestrator, _ = _build_orchestrator(model, no_stream=no_stream)
    messages = []
    if system:
        messages.append({"role": "system", "content": system})
    messages.append({"role": "user", "content": prompt})

    async def _run() -> None:
        cancel = asyncio.Event()
        _install_cancel_handler(cancel)
        with Live(render_parts([]), console=console, refresh_per_second=12) as live:

            def _on_change(update: ContentUpdate) -> None:
                live.update(render_parts(update.content_parts))

            try:
                result = await orchestrator.run_completion(
                    messages,
                    max_steps=max_steps,
                    cancel=cancel,
                    on_content_change=_on_change,
                )
            except ChorusError as e:
                live.update(render_parts(partial_content(e)))
                raise

        usage = result.usage
        footer = f"[dim]{orchestrator.provider.display_name} · {result.finish_reason}"
        if usage:
            footer += f" · {usage.input_tokens} in / {usage.output_tokens} out"
        console.print(footer + "[/dim]")
        if result.finish_reason == FinishReason.CANCELLED:
            console.print("[yellow]Cancelled — partial response kept.[/yellow]")

    try:
        asyncio.run(_run())
    except CapabilityError as e:
        console.print(f"[yellow]{e.message}[/yellow]")
        raise typer.Exit(2) from None
    except ChorusError as e:
        console.print(f"[red]{type(e).__name__}:[/red] {e.message}")
        body = getattr(e, "response_body", None)
        if body:
            console.print(f"[dim]{body}[/dim]")
        raise typer.Exit(1) from None


# ── chorus paint ─────────────────────────────────────────────────


@app.command()
def paint(
    prompt: str = typer.Argument(..., help="Image description"),
    model: str = typer.Option(None, "--model", "-m", help="Registry key with an image_model"),
    count: int = typer.Option(1, "--count", "-n", min=1, help="Number of images"),
) -> None:
    """Generate images and store them in the blob directory."""
    orchestrator, chat_config = _build_orchestrator(model)
    store_root = Path(chat_config.blob_dir).expanduser()

    async def _run() -> list[str]:
        cancel = asyncio.Event()
        _install_cancel_handler(cancel)
        with console.status("Generating…"):
            return await orchestrator.generate_images(
                prompt,
                count=count,
                cancel=cancel,
                on_image_ready=lambda key: console.print(f"[green]✓[/green] {key}"),
            )

    try:
        keys = asyncio.run(_run())
    except ChorusError as e:
        console.print(f"[red]{type(e).__name__}:[/red] {e.message}")
        raise typer.Exit(1) from None

    console.print(f"[dim]{len(keys)} image(s) stored under {store_root}[/dim]")


# ── chorus models ────────────────────────────────────────────────


@models_app.command("list")
def models_list() -> None:
    """Show all registered models as a table."""
    registry = _load_registry()

    table = Table(title="Registered Models", show_lines=True)
    table.add_column("Key", style="bold cyan")
    table.add_column("Display Name")
    table.add_column("Provider", style="dim")
    table.add_column("Stream", justify="center")
    table.add_column("Capabilities")

    for key, cfg in sorted(registry.items()):
        caps = []
        if cfg.supports_vision:
            caps.append("vision")
        if cfg.supports_tools:
            caps.append("tools")
        if cfg.supports_reasoning:
            caps.append("reasoning")
        if cfg.image_model:
            caps.append("images")
        if not cfg.supports_system_message:
            caps.append("no-system")
        table.add_row(
            key,
            cfg.display_name,
            cfg.provider,
            "yes" if cfg.stream else "simulated",
            ", ".join(caps) if caps else "none",
        )

    console.print(table)
    console.print(f"\n[dim]{len(registry)} models registered[/dim]")


# ── chorus config ────────────────────────────────────────────────


@config_app.command("show")
def config_show() -> None:
    """Show the effective chat configuration."""
    chat_config = _load_config()

    table = Table(title="Chat Configuration", show_header=False, show_lines=True)
    table.add_column("Setting", style="bold")
    table.add_column("Value")
    table.add_row("Default Model", chat_config.default_model or "[dim]none[/dim]")
    table.add_row("Max Steps", str(chat_config.max_steps or "unbounded"))
    table.add_row("Timeout", format_duration(chat_config.timeout * 1000))
    table.add_row("Blob Directory", chat_config.blob_dir)
    table.add_row("Hosted Guidance", "on" if chat_config.prefer_hosted_guidance else "off")

    console.print(table)


if __name__ == "__main__":
    app()
