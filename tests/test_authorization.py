from __future__ import annotations

import pytest

from models.errors import Forbidden
from models.records import SensorMeasurement
from services.authorization import authorize


def _measurement(sensor_id: str) -> SensorMeasurement:
    return SensorMeasurement(
        sensor_id=sensor_id,
        sensor_version="1.0.0",
        alias="basil",
        timestamp=1.0,
        user_id="u1",
    )


def test_owned_device_is_authorized() -> None:
    assert authorize(_measurement("d1"), frozenset({"d1", "d2"})) is None


def test_foreign_device_is_forbidden() -> None:
    with pytest.raises(Forbidden) as excinfo:
        authorize(_measurement("d3"), frozenset({"d1", "d2"}))

    assert excinfo.value.details == {"user_id": "u1", "sensor_id": "d3"}


def test_empty_device_set_forbids_everything() -> None:
    with pytest.raises(Forbidden):
        authorize(_measurement("d1"), frozenset())
