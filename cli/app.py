from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import typer

from cli.client import ApiClient
from cli.config import CLIConfig, load_config
from cli.render import render_cursor, render_poll, render_publish

YIELD_EXIT_CODE = 2


@dataclass
class CLIState:
    config: CLIConfig
    client: ApiClient


app = typer.Typer(
    help="Utilities for interacting with the device stream bridge service.",
    context_settings={"help_option_names": ["-h", "--help"]},
)


def _get_state(ctx: typer.Context) -> CLIState:
    state = ctx.obj
    if not isinstance(state, CLIState):
        raise typer.Exit(code=1, message="CLI state is uninitialized.")
    return state


@app.callback()
def main(
    ctx: typer.Context,
    base_url: Optional[str] = typer.Option(
        None,
        "--base-url",
        "-b",
        help="Bridge API base URL (defaults to API_BASE_URL env or http://localhost:8000).",
    ),
    timeout: Optional[float] = typer.Option(
        None,
        "--timeout",
        help="Seconds to wait for the bridge to answer.",
    ),
) -> None:
    """Entry point for the CLI."""
    config = load_config(base_url=base_url, timeout=timeout)
    client = ApiClient(config)
    ctx.obj = CLIState(config=config, client=client)
    ctx.call_on_close(client.close)


@app.command("poll")
def poll_command(ctx: typer.Context) -> None:
    """Run one read invocation and print the emitted records."""
    state = _get_state(ctx)
    payload = state.client.poll()
    render_poll(payload)
    if payload.get("yielded"):
        raise typer.Exit(code=YIELD_EXIT_CODE)


@app.command("publish")
def publish_command(
    ctx: typer.Context,
    file: Optional[Path] = typer.Argument(
        None, exists=True, dir_okay=False, readable=True, help="File whose content is published."
    ),
    value: Optional[str] = typer.Option(
        None,
        "--value",
        "-v",
        help="Publish this text instead of a file's content.",
    ),
) -> None:
    """Publish a value to the configured stream."""
    if (file is None) == (value is None):
        raise typer.BadParameter("Provide exactly one of FILE or --value.")

    state = _get_state(ctx)
    content = file.read_bytes() if file is not None else value.encode("utf-8")
    payload = state.client.publish(content)
    render_publish(payload)
    if payload.get("relationship") != "success":
        raise typer.Exit(code=1)


@app.command("cursor")
def cursor_command(ctx: typer.Context) -> None:
    """Show the persisted start time for the configured stream."""
    state = _get_state(ctx)
    render_cursor(state.client.get_cursor())
