"""rcsx command line interface."""

from __future__ import annotations

import asyncio
import json
from pathlib import Path
from typing import Any

import typer
import uvicorn
from rich.console import Console
from rich.table import Table

from rcsx.config import get_settings
from rcsx.errors import AdaptationFailed, FieldValidationError, UnsupportedMessageType
from rcsx.logging_utils import configure_logging
from rcsx.messages.validator import ValidationResult, present_errors
from rcsx.rbm.callback import CallbackResponse
from rcsx.rbm.runtime import RbmRuntime

app = typer.Typer(
    name="rcsx",
    help="RCS business messaging emulator core.",
    add_completion=False,
    rich_markup_mode="rich",
)

console = Console()


@app.callback()
def main_callback(
    log_level: str | None = typer.Option(None, "--log-level", help="Override RCSX_LOG_LEVEL"),
) -> None:
    settings = get_settings()
    configure_logging(profile="console", level=log_level or settings.log_level)


def _load_json(path: Path) -> Any:
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except OSError as exc:
        console.print(f"[bold red]Error:[/bold red] cannot read {path}: {exc}")
        raise typer.Exit(2) from exc
    except json.JSONDecodeError as exc:
        console.print(f"[bold red]Error:[/bold red] {path} is not valid JSON: {exc}")
        raise typer.Exit(2) from exc


def _print_json(data: Any) -> None:
    console.print_json(json.dumps(data, default=str))


def _print_errors(result: ValidationResult) -> None:
    table = Table(title="Validation errors", show_lines=False)
    table.add_column("Type", style="magenta")
    table.add_column("Message")
    table.add_column("Technical", style="dim")
    for error in present_errors(result):
        table.add_row(error.type, error.message, error.technical)
    console.print(table)


@app.command()
def validate(path: Path = typer.Argument(..., help="JSON file holding a chat message payload")) -> None:
    """Validate a chat message payload and list every violation."""
    runtime = RbmRuntime(get_settings())
    result = runtime.pipeline.validate(_load_json(path))
    if result.valid:
        format_name = result.format.value if result.format else "unknown"
        console.print(f"[green]Valid[/green] {format_name} (explicit ids: {result.has_explicit_ids})")
        return
    _print_errors(result)
    raise typer.Exit(1)


@app.command()
def normalize(
    path: Path = typer.Argument(..., help="JSON file holding a chat message payload"),
    display: bool = typer.Option(False, "--display", help="Print the chat UI shape instead of the envelope"),
) -> None:
    """Normalize a chat message payload into its canonical envelope."""
    runtime = RbmRuntime(get_settings())
    payload = _load_json(path)
    try:
        normalized = runtime.pipeline.normalize(payload)
    except FieldValidationError:
        _print_errors(runtime.pipeline.validate(payload))
        raise typer.Exit(1) from None
    except (UnsupportedMessageType, AdaptationFailed) as exc:
        console.print(f"[bold red]Error:[/bold red] {exc}")
        raise typer.Exit(1) from exc

    if display:
        _print_json(runtime.pipeline.adapter.to_display(normalized.envelope))
    else:
        _print_json(normalized.envelope.to_dict())


@app.command()
def event(path: Path = typer.Argument(..., help="JSON file holding one business event")) -> None:
    """Run one business event through validation, routing and tracking."""
    runtime = RbmRuntime(get_settings())
    body = _load_json(path)

    async def _process() -> CallbackResponse:
        response = runtime.handle_callback(body)
        await runtime.service.drain()
        return response

    response = asyncio.run(_process())
    _print_json(response.body)
    if response.status_code != 200:
        raise typer.Exit(1)
    conversation = runtime.tracker.get_conversation(body["conversationId"])
    if conversation is not None:
        _print_json(conversation.as_dict())


@app.command()
def serve(
    host: str | None = typer.Option(None, "--host", help="Override RCSX_HOST"),
    port: int | None = typer.Option(None, "--port", help="Override RCSX_PORT"),
) -> None:
    """Serve the callback and message endpoints over HTTP."""
    from rcsx.server import create_app

    settings = get_settings()
    uvicorn.run(create_app(settings=settings), host=host or settings.host, port=port or settings.port, log_config=None)
