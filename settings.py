from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional


_DATABASE_ENV = "DATABASE"
_INFLUX_HOST_ENV = "INFLUXDB_HOST"
_INFLUX_TOKEN_ENV = "INFLUXDB_TOKEN"
_DIRECTORY_NAME_ENV = "DEVICE_DIRECTORY_NAME"
_DIRECTORY_PATH_ENV = "DEVICE_DIRECTORY_PATH"
_TIMESERIES_ROOT_ENV = "TIMESERIES_ROOT_PATH"
_LOG_LEVEL_ENV = "LOG_LEVEL"
_AUTH0_DOMAIN_ENV = "AUTH0_DOMAIN"
_AUTH0_CLIENT_ID_ENV = "AUTH0_CLIENTID"
_AUTH0_CLIENT_SECRET_ENV = "AUTH0_CLIENT_SECRET"
_AUTH_AUDIENCE_ENV = "AUTH_AUDIENCE"
_AUTH_REALM_ENV = "ENV"
_USER_ROLE_ENV = "USER_ROLE_ID"


@dataclass(frozen=True)
class Settings:
    database: str
    influxdb_host: Optional[str]
    influxdb_token: Optional[str]
    directory_name: str
    directory_persistence_path: Optional[str]
    timeseries_root_path: Optional[str]
    log_level: str
    auth0_domain: Optional[str] = None
    auth0_client_id: Optional[str] = None
    auth0_client_secret: Optional[str] = None
    auth_audience: Optional[str] = None
    auth_realm: str = "Username-Password-Authentication"
    user_role_id: Optional[str] = None


def _read_str_env(name: str, default: str) -> str:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip()
    return candidate or default


def _read_optional_env(name: str, default: Optional[str]) -> Optional[str]:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip()
    return candidate or None


def _read_url_env(name: str) -> Optional[str]:
    value = _read_optional_env(name, None)
    if value is None:
        return None
    return value.rstrip("/")


def _read_log_level(default: str) -> str:
    value = os.getenv(_LOG_LEVEL_ENV)
    if value is None:
        return default
    candidate = value.strip()
    if not candidate:
        return default
    return candidate.upper()


@lru_cache
def get_settings() -> Settings:
    return Settings(
        database=_read_str_env(_DATABASE_ENV, "hydroponics"),
        influxdb_host=_read_url_env(_INFLUX_HOST_ENV),
        influxdb_token=_read_optional_env(_INFLUX_TOKEN_ENV, None),
        directory_name=_read_str_env(_DIRECTORY_NAME_ENV, "user_devices"),
        directory_persistence_path=_read_optional_env(
            _DIRECTORY_PATH_ENV, "./tmp/user_devices.json"
        ),
        timeseries_root_path=_read_optional_env(_TIMESERIES_ROOT_ENV, "./tmp/timeseries"),
        log_level=_read_log_level("INFO"),
        auth0_domain=_read_optional_env(_AUTH0_DOMAIN_ENV, None),
        auth0_client_id=_read_optional_env(_AUTH0_CLIENT_ID_ENV, None),
        auth0_client_secret=_read_optional_env(_AUTH0_CLIENT_SECRET_ENV, None),
        auth_audience=_read_optional_env(_AUTH_AUDIENCE_ENV, None),
        auth_realm=_read_str_env(_AUTH_REALM_ENV, "Username-Password-Authentication"),
        user_role_id=_read_optional_env(_USER_ROLE_ENV, None),
    )
