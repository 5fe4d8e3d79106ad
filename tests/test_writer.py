"""Unit tests for the batch writer."""

from __future__ import annotations

from typing import List, Sequence, Tuple

import pytest

from models.errors import DomainError, InternalError, NotFound
from models.records import Instant, SensorMeasurement, StorageRecord
from services.writer import BatchWriter, to_storage_record


class RecordingStore:
    def __init__(self, error: Exception | None = None) -> None:
        self.calls: List[Tuple[str, List[StorageRecord]]] = []
        self.error = error

    def write(self, database: str, records: Sequence[StorageRecord]) -> None:
        self.calls.append((database, list(records)))
        if self.error is not None:
            raise self.error

    def close(self) -> None:
        return None


def _validated(sensor_id: str, **fields) -> SensorMeasurement:
    return SensorMeasurement(
        sensor_id=sensor_id,
        sensor_version="0.0.1",
        alias=sensor_id,
        timestamp=1_700_000_000.5,
        user_id="u1",
        instant=Instant(seconds=1_700_000_000, nanos=500_000_000),
        **fields,
    )


def test_to_storage_record_copies_fields_verbatim() -> None:
    measurement = _validated(
        "test",
        temperature=25.0,
        humidity=50.0,
        ph=7.0,
        tds=707,
        ec=1403,
        water_temperature=25.0,
    )

    record = to_storage_record(measurement)

    assert record == StorageRecord(
        table="metrics",
        sensor_id="test",
        sensor_version="0.0.1",
        alias="test",
        temperature=25.0,
        humidity=50.0,
        ph=7.0,
        tds=707,
        ec=1403,
        water_temperature=25.0,
        timestamp=Instant(seconds=1_700_000_000, nanos=500_000_000),
    )


def test_to_storage_record_requires_validated_measurement() -> None:
    measurement = SensorMeasurement(sensor_id="s", sensor_version="1", alias="a", timestamp=1.0)

    with pytest.raises(ValueError):
        to_storage_record(measurement)


def test_write_issues_one_ordered_call() -> None:
    store = RecordingStore()
    writer = BatchWriter(store=store, database="hydroponics")

    writer.write([_validated("test"), _validated("test2")])

    assert len(store.calls) == 1
    database, records = store.calls[0]
    assert database == "hydroponics"
    assert [record.sensor_id for record in records] == ["test", "test2"]
    assert all(record.table == "metrics" for record in records)


def test_store_failure_is_wrapped_as_internal_error() -> None:
    cause = RuntimeError("random error")
    writer = BatchWriter(store=RecordingStore(error=cause), database="hydroponics")

    with pytest.raises(InternalError) as excinfo:
        writer.write([_validated("test")])

    assert excinfo.value.message == "failed to write data"
    assert excinfo.value.cause is cause
    assert excinfo.value.status_code == 500


def test_domain_error_from_store_is_still_wrapped() -> None:
    cause = NotFound().with_msg("database missing")
    writer = BatchWriter(store=RecordingStore(error=cause), database="hydroponics")

    with pytest.raises(DomainError) as excinfo:
        writer.write([_validated("test")])

    assert isinstance(excinfo.value, InternalError)
    assert excinfo.value.cause is cause
