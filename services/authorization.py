from __future__ import annotations

from typing import AbstractSet

from models.errors import Forbidden
from models.records import SensorMeasurement


def authorize(measurement: SensorMeasurement, devices: AbstractSet[str]) -> None:
    """Raise :class:`Forbidden` unless the measurement's sensor belongs to the user."""
    if measurement.sensor_id in devices:
        return
    raise Forbidden().with_msg("device is not correlated to the user").with_details(
        user_id=measurement.user_id,
        sensor_id=measurement.sensor_id,
    )
