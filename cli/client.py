from __future__ import annotations

from typing import Any, Dict, List, Optional

import httpx
import typer

from cli.config import CLIConfig


class ApiClient:
    """Minimal HTTP client for the collector service."""

    def __init__(self, config: CLIConfig, client: Optional[httpx.Client] = None) -> None:
        self._config = config
        self._client = client or httpx.Client(base_url=config.base_url, timeout=config.timeout)

    def close(self) -> None:
        self._client.close()

    def submit_metrics(self, user_id: str, metrics: List[Dict[str, Any]]) -> int:
        try:
            response = self._client.post(
                "/metrics",
                json={"metrics": metrics},
                headers={"X-User-Id": user_id, "X-User-Scope": self._config.scope},
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            self._handle_http_error(exc)
        except httpx.HTTPError as exc:
            self._handle_transport_error(exc)
        accepted = response.json().get("accepted")
        if not isinstance(accepted, int):
            raise typer.BadParameter("Unexpected response payload when submitting metrics.")
        return accepted

    def list_devices(self, user_id: str) -> Dict[str, Any]:
        try:
            response = self._client.get(
                f"/users/{user_id}/devices", headers={"X-User-Id": user_id}
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            self._handle_http_error(exc)
        except httpx.HTTPError as exc:
            self._handle_transport_error(exc)
        return response.json()

    def add_device(self, user_id: str, device: str) -> Dict[str, Any]:
        try:
            response = self._client.post(
                f"/users/{user_id}/devices",
                json={"device": device},
                headers={"X-User-Id": user_id},
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            self._handle_http_error(exc)
        except httpx.HTTPError as exc:
            self._handle_transport_error(exc)
        return response.json()

    def _handle_transport_error(self, exc: httpx.HTTPError) -> None:
        typer.secho(
            f"Could not reach {self._config.base_url}: {exc}",
            fg=typer.colors.RED,
            err=True,
        )
        raise typer.Exit(code=1)

    @staticmethod
    def _handle_http_error(exc: httpx.HTTPStatusError) -> None:
        detail: str | None = None
        try:
            data = exc.response.json()
            detail = data.get("message") or data.get("error")
        except ValueError:
            detail = exc.response.text.strip()
        message = (
            f"Request failed with status {exc.response.status_code}: {detail or 'no detail provided.'}"
        )
        typer.secho(message, fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)
