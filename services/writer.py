"""Conversion of accepted measurements into storage records."""

from __future__ import annotations

import logging
from typing import Sequence

from models.errors import InternalError
from models.records import METRICS_TABLE, SensorMeasurement, StorageRecord
from storage.timeseries import TimeSeriesStore

logger = logging.getLogger(__name__)


def to_storage_record(measurement: SensorMeasurement) -> StorageRecord:
    if measurement.instant is None:
        raise ValueError("measurement must be validated before it is stored")
    return StorageRecord(
        table=METRICS_TABLE,
        sensor_id=measurement.sensor_id,
        sensor_version=measurement.sensor_version,
        alias=measurement.alias,
        temperature=measurement.temperature,
        humidity=measurement.humidity,
        ph=measurement.ph,
        tds=measurement.tds,
        ec=measurement.ec,
        water_temperature=measurement.water_temperature,
        timestamp=measurement.instant,
    )


class BatchWriter:
    """Persists a whole batch with a single store call."""

    def __init__(self, store: TimeSeriesStore, database: str) -> None:
        self.store = store
        self.database = database

    def write(self, measurements: Sequence[SensorMeasurement]) -> None:
        records = [to_storage_record(measurement) for measurement in measurements]
        try:
            self.store.write(self.database, records)
        except Exception as exc:
            raise InternalError().with_msg("failed to write data").with_details(
                database=self.database
            ).with_err(exc) from exc
        logger.debug(
            "Batch written",
            extra={"database": self.database, "record_count": len(records)},
        )
