from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Optional

DEFAULT_BASE_URL = "http://localhost:8000"
DEFAULT_TIMEOUT = 30.0
DEFAULT_SCOPE = "write:metrics"

_BASE_URL_ENV = "API_BASE_URL"
_TIMEOUT_ENV = "CLI_REQUEST_TIMEOUT"
_USER_ID_ENV = "SENSOR_USER_ID"
_SCOPE_ENV = "SENSOR_USER_SCOPE"


@dataclass(frozen=True)
class CLIConfig:
    base_url: str = DEFAULT_BASE_URL
    timeout: float = DEFAULT_TIMEOUT
    user_id: Optional[str] = None
    scope: str = DEFAULT_SCOPE


def _read_float(value: Optional[str], default: float) -> float:
    if value is None:
        return default
    candidate = value.strip()
    if not candidate:
        return default
    try:
        parsed = float(candidate)
    except ValueError:
        return default
    return parsed if parsed > 0 else default


def load_config(
    base_url: Optional[str] = None,
    timeout: Optional[float] = None,
    user_id: Optional[str] = None,
) -> CLIConfig:
    url = base_url or os.getenv(_BASE_URL_ENV) or DEFAULT_BASE_URL
    if timeout is None:
        timeout = _read_float(os.getenv(_TIMEOUT_ENV), DEFAULT_TIMEOUT)
    user = user_id or (os.getenv(_USER_ID_ENV) or "").strip() or None
    scope = (os.getenv(_SCOPE_ENV) or "").strip() or DEFAULT_SCOPE
    return CLIConfig(
        base_url=url.rstrip("/"),
        timeout=timeout,
        user_id=user,
        scope=scope,
    )
