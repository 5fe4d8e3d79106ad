from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional

import typer

from cli.client import ApiClient
from cli.config import CLIConfig, load_config
from cli.render import render_devices


@dataclass
class CLIState:
    config: CLIConfig
    client: ApiClient


app = typer.Typer(
    help="Utilities for interacting with the sensor metrics collector.",
    context_settings={"help_option_names": ["-h", "--help"]},
)
devices_app = typer.Typer(help="Manage the devices correlated with a user.")
app.add_typer(devices_app, name="devices")


def _get_state(ctx: typer.Context) -> CLIState:
    state = ctx.obj
    if not isinstance(state, CLIState):
        raise typer.Exit(code=1)
    return state


def _load_metrics(path: Path) -> List[Dict[str, Any]]:
    try:
        payload = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise typer.BadParameter(f"{path} is not valid JSON: {exc}") from exc

    if isinstance(payload, dict):
        payload = payload.get("metrics")
    if not isinstance(payload, list) or not all(isinstance(item, dict) for item in payload):
        raise typer.BadParameter(
            f"{path} must hold a list of measurements or an object with a 'metrics' list."
        )
    if not payload:
        raise typer.BadParameter(f"{path} does not contain any measurements.")
    return payload


@app.callback()
def main(
    ctx: typer.Context,
    base_url: Optional[str] = typer.Option(
        None,
        "--base-url",
        "-b",
        help="Collector API base URL (defaults to API_BASE_URL env or http://localhost:8000).",
    ),
    timeout: Optional[float] = typer.Option(
        None,
        "--timeout",
        help="Seconds to wait for each request.",
    ),
    user_id: Optional[str] = typer.Option(
        None,
        "--user-id",
        "-u",
        help="User submitting measurements (defaults to SENSOR_USER_ID env).",
    ),
) -> None:
    """Entry point for the CLI."""
    config = load_config(base_url=base_url, timeout=timeout, user_id=user_id)
    client = ApiClient(config)
    ctx.obj = CLIState(config=config, client=client)
    ctx.call_on_close(client.close)


@app.command("submit")
def submit_command(
    ctx: typer.Context,
    file: Path = typer.Argument(
        ..., exists=True, dir_okay=False, readable=True, help="JSON file with measurements."
    ),
) -> None:
    """Submit a batch of measurements as a single ingestion call."""
    state = _get_state(ctx)
    if not state.config.user_id:
        raise typer.BadParameter("A user id is required (use --user-id or SENSOR_USER_ID).")
    metrics = _load_metrics(file)
    typer.echo(f"Submitting {len(metrics)} measurement(s) to {state.config.base_url} ...")
    accepted = state.client.submit_metrics(state.config.user_id, metrics)
    typer.secho(f"Batch accepted. measurements={accepted}", fg=typer.colors.GREEN)


@devices_app.command("list")
def list_devices_command(
    ctx: typer.Context,
    user_id: str = typer.Argument(..., help="User whose devices are listed."),
) -> None:
    """Show the devices correlated with a user."""
    state = _get_state(ctx)
    render_devices(state.client.list_devices(user_id))


@devices_app.command("add")
def add_device_command(
    ctx: typer.Context,
    user_id: str = typer.Argument(..., help="User that owns the device."),
    device: str = typer.Argument(..., help="Sensor identifier to correlate."),
) -> None:
    """Correlate a device with a user."""
    state = _get_state(ctx)
    payload = state.client.add_device(user_id, device)
    typer.secho(f"Device {device} correlated with {user_id}.", fg=typer.colors.GREEN)
    render_devices(payload)
