from __future__ import annotations

from typing import Any, Dict, Iterable

import typer


def echo_heading(text: str) -> None:
    typer.secho(text, bold=True)


def echo_key_values(pairs: Iterable[tuple[str, Any]]) -> None:
    for key, value in pairs:
        typer.echo(f"{key}: {value}")


def render_poll(payload: Dict[str, Any]) -> None:
    echo_heading("Poll Result")
    echo_key_values(
        [
            ("state", payload.get("state")),
            ("cursor_before", payload.get("cursor_before")),
            ("cursor_after", payload.get("cursor_after")),
        ]
    )
    if payload.get("yielded"):
        typer.secho(
            f"Yielded for {payload.get('yield_seconds')}s: {payload.get('error')}",
            fg=typer.colors.YELLOW,
        )

    records = payload.get("records") or []
    typer.echo()
    echo_heading(f"Records ({len(records)})")
    if not records:
        typer.echo("No new readings.")
    for record in records:
        attributes = record.get("attributes") or {}
        typer.echo(f"  - {attributes.get('stream.value.timestamp')}: {record.get('content')}")
        for key, value in attributes.items():
            typer.echo(f"      {key}={value}")


def render_publish(payload: Dict[str, Any]) -> None:
    echo_heading("Publish Result")
    relationship = payload.get("relationship")
    color = typer.colors.GREEN if relationship == "success" else typer.colors.RED
    typer.secho(f"relationship: {relationship}", fg=color)
    echo_key_values(
        [
            ("status_code", payload.get("status_code")),
            ("penalized", payload.get("penalized")),
        ]
    )
    if payload.get("error"):
        typer.echo(f"error: {payload.get('error')}")


def render_cursor(payload: Dict[str, Any]) -> None:
    echo_heading("Stream Cursor")
    echo_key_values(
        [
            ("stream_key", payload.get("stream_key")),
            ("start_time", payload.get("start_time") or "unset"),
        ]
    )
