"""Time-series store backends for accepted measurements."""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from threading import Lock
from typing import Dict, List, Optional, Protocol, Sequence

import httpx

from models.errors import InternalError
from models.records import StorageRecord
from settings import get_settings

_WRITE_PATH = "/api/v3/write_lp"
_LINE_BREAKS = frozenset("\r\n")


class TimeSeriesStore(Protocol):
    def write(self, database: str, records: Sequence[StorageRecord]) -> None:
        ...

    def close(self) -> None:
        ...


def _escape_measurement(value: str) -> str:
    return value.replace("\\", "\\\\").replace(",", "\\,").replace(" ", "\\ ")


def _escape_tag(value: str) -> str:
    return (
        value.replace("\\", "\\\\")
        .replace(",", "\\,")
        .replace("=", "\\=")
        .replace(" ", "\\ ")
    )


def to_line_protocol(record: StorageRecord) -> str:
    """Encode a record as a single InfluxDB line-protocol line."""
    for key, value in record.tags.items():
        if _LINE_BREAKS.intersection(value):
            raise ValueError(f"tag {key!r} must not contain line breaks")
    tags = ",".join(
        f"{_escape_tag(key)}={_escape_tag(value)}" for key, value in record.tags.items()
    )
    fields = ",".join(
        f"{_escape_tag(key)}={float(value)!r}" for key, value in record.fields.items()
    )
    return f"{_escape_measurement(record.table)},{tags} {fields} {record.timestamp.epoch_ns}"


class InMemoryTimeSeriesStore:
    """Keeps written batches per database, optionally appending them to disk."""

    def __init__(self, root_path: Optional[Path] = None) -> None:
        self._batches: Dict[str, List[List[StorageRecord]]] = {}
        self.root_path = root_path
        self._lock = Lock()
        if root_path:
            root_path.mkdir(parents=True, exist_ok=True)

    def write(self, database: str, records: Sequence[StorageRecord]) -> None:
        batch = list(records)
        lines = [to_line_protocol(record) + "\n" for record in batch]
        with self._lock:
            if self.root_path:
                path = self.root_path / f"{database}.lp"
                try:
                    with path.open("a", encoding="utf-8") as handle:
                        handle.writelines(lines)
                except OSError as exc:
                    raise InternalError().with_msg(
                        "failed to append line protocol"
                    ).with_details(database=database).with_err(exc) from exc
            self._batches.setdefault(database, []).append(batch)

    def batches(self, database: str) -> List[List[StorageRecord]]:
        with self._lock:
            return [list(batch) for batch in self._batches.get(database, [])]

    def records(self, database: str) -> List[StorageRecord]:
        return [record for batch in self.batches(database) for record in batch]

    def close(self) -> None:
        return None


class InfluxDBStore:
    """Writes batches to an InfluxDB v3 server over its line-protocol endpoint."""

    def __init__(
        self,
        host_url: str,
        token: Optional[str] = None,
        client: Optional[httpx.Client] = None,
        timeout: float = 10.0,
    ) -> None:
        headers = {"Content-Type": "text/plain; charset=utf-8"}
        if token:
            headers["Authorization"] = f"Bearer {token}"
        self.host_url = host_url
        self._client = client or httpx.Client(base_url=host_url, timeout=timeout)
        self._headers = headers

    def write(self, database: str, records: Sequence[StorageRecord]) -> None:
        body = "\n".join(to_line_protocol(record) for record in records)
        try:
            response = self._client.post(
                _WRITE_PATH,
                params={"db": database, "precision": "nanosecond"},
                content=body.encode("utf-8"),
                headers=self._headers,
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise InternalError().with_msg("influxdb rejected write").with_details(
                status=exc.response.status_code, body=exc.response.text.strip()
            ).with_err(exc) from exc
        except httpx.HTTPError as exc:
            raise InternalError().with_msg("failed to reach influxdb").with_err(exc) from exc

    def close(self) -> None:
        self._client.close()


@lru_cache
def build_default_store() -> TimeSeriesStore:
    settings = get_settings()
    if settings.influxdb_host:
        return InfluxDBStore(host_url=settings.influxdb_host, token=settings.influxdb_token)
    root = settings.timeseries_root_path
    return InMemoryTimeSeriesStore(root_path=Path(root) if root else None)
