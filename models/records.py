"""Domain models shared across services."""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

METRICS_TABLE = "metrics"

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


@dataclass(frozen=True, slots=True)
class Instant:
    """A point in time split into whole epoch seconds and nanoseconds."""

    seconds: int
    nanos: int

    @classmethod
    def from_timestamp(cls, timestamp: float) -> "Instant":
        fraction, whole = math.modf(timestamp)
        return cls(seconds=int(whole), nanos=int(fraction * 1_000_000_000))

    @classmethod
    def from_datetime(cls, value: datetime) -> "Instant":
        delta = value - _EPOCH
        return cls(seconds=delta.days * 86_400 + delta.seconds, nanos=delta.microseconds * 1000)

    @property
    def epoch_ns(self) -> int:
        return self.seconds * 1_000_000_000 + self.nanos

    def as_datetime(self) -> datetime:
        # datetime only carries microseconds; the remainder is dropped. Raises
        # OverflowError outside the years 1-9999.
        return _EPOCH + timedelta(seconds=self.seconds, microseconds=self.nanos // 1000)


@dataclass(slots=True)
class SensorMeasurement:
    """A single reading submitted by a sensor on behalf of a user."""

    sensor_id: str
    sensor_version: str
    alias: str
    timestamp: float
    user_id: str = ""
    temperature: float = 0.0
    humidity: float = 0.0
    ph: float = 0.0
    tds: float = 0.0
    ec: float = 0.0
    water_temperature: float = 0.0
    instant: Optional[Instant] = None


@dataclass(frozen=True, slots=True)
class StorageRecord:
    """The persisted shape of a measurement."""

    sensor_id: str
    sensor_version: str
    alias: str
    temperature: float
    humidity: float
    ph: float
    tds: float
    ec: float
    water_temperature: float
    timestamp: Instant
    table: str = METRICS_TABLE

    @property
    def tags(self) -> dict[str, str]:
        return {
            "sensor_id": self.sensor_id,
            "sensor_version": self.sensor_version,
            "alias": self.alias,
        }

    @property
    def fields(self) -> dict[str, float]:
        return {
            "temperature": self.temperature,
            "humidity": self.humidity,
            "ph": self.ph,
            "tds": self.tds,
            "ec": self.ec,
            "water_temperature": self.water_temperature,
        }
