"""Validation of raw sensor submissions."""

from __future__ import annotations

import dataclasses
import math
from datetime import datetime, timedelta, timezone
from typing import Optional

from pydantic import BaseModel, Field, ValidationError, field_validator

from models.errors import BadRequest
from models.records import Instant, SensorMeasurement

RECENCY_WINDOW = timedelta(days=30)


class _RequiredFields(BaseModel):
    sensor_id: str = Field(..., min_length=1)
    sensor_version: str = Field(..., min_length=1)
    alias: str = Field(..., min_length=1)
    timestamp: float

    @field_validator("sensor_id", "sensor_version", "alias")
    @classmethod
    def _single_line(cls, value: str) -> str:
        if "\n" in value or "\r" in value:
            raise ValueError("line breaks are not allowed")
        return value

    @field_validator("timestamp")
    @classmethod
    def _non_zero(cls, value: float) -> float:
        if value == 0:
            raise ValueError("timestamp is required")
        if not math.isfinite(value):
            raise ValueError("timestamp must be a finite number")
        return value


def validate_measurement(
    measurement: SensorMeasurement, now: Optional[datetime] = None
) -> SensorMeasurement:
    """Return a copy of ``measurement`` with ``instant`` populated.

    Raises :class:`BadRequest` when a required field is missing or when the
    reading is older than :data:`RECENCY_WINDOW`.
    """
    try:
        _RequiredFields(
            sensor_id=measurement.sensor_id,
            sensor_version=measurement.sensor_version,
            alias=measurement.alias,
            timestamp=measurement.timestamp,
        )
    except ValidationError as exc:
        fields = sorted({str(error["loc"][0]) for error in exc.errors() if error["loc"]})
        raise BadRequest().with_msg("failed to validate request").with_details(
            fields=fields
        ).with_err(exc) from exc

    instant = Instant.from_timestamp(measurement.timestamp)
    current = now or datetime.now(timezone.utc)
    cutoff = Instant.from_datetime(current - RECENCY_WINDOW)
    if instant.epoch_ns < cutoff.epoch_ns:
        raise BadRequest().with_msg("timestamp before 30 days is not acceptable").with_details(
            sensor_id=measurement.sensor_id
        )

    return dataclasses.replace(measurement, instant=instant)
