from __future__ import annotations

from typing import Any, Dict, Iterable

import typer


def echo_heading(text: str) -> None:
    typer.secho(text, bold=True)


def echo_key_values(pairs: Iterable[tuple[str, Any]]) -> None:
    for key, value in pairs:
        typer.echo(f"{key}: {value}")


def render_devices(payload: Dict[str, Any]) -> None:
    echo_heading("Devices")
    echo_key_values([("user_id", payload.get("user_id"))])
    devices = payload.get("devices") or []
    if not devices:
        typer.echo("No devices correlated.")
        return
    for device in devices:
        typer.echo(f"  - {device}")
