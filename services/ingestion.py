"""Orchestration of the measurement ingestion pipeline."""

from __future__ import annotations

import logging
from enum import Enum
from functools import lru_cache
from threading import Event
from typing import List, Optional, Sequence

from datastore.device_directory import DeviceDirectory, build_default_directory
from models.errors import DomainError, InternalError
from models.records import SensorMeasurement
from services.authorization import authorize
from services.device_cache import DeviceCache
from services.validation import validate_measurement
from services.writer import BatchWriter
from settings import get_settings
from storage.timeseries import build_default_store

logger = logging.getLogger(__name__)


class IngestionState(str, Enum):
    """Stages a batch moves through; any of them may end in ``failed``."""

    validating = "validating"
    resolving_ownership = "resolving_ownership"
    authorizing = "authorizing"
    writing = "writing"
    done = "done"
    failed = "failed"


def _check_cancelled(cancel_event: Optional[Event]) -> None:
    if cancel_event is not None and cancel_event.is_set():
        raise InternalError().with_msg("ingestion cancelled")


class IngestionService:
    """Validates, authorizes and persists batches of sensor measurements.

    Processing is fail-fast: the first invalid or unauthorized measurement
    aborts the batch and nothing is written. The store is only called once
    every measurement has passed authorization.
    """

    def __init__(self, directory: DeviceDirectory, writer: BatchWriter) -> None:
        self.directory = directory
        self.writer = writer

    def ingest(
        self,
        measurements: Sequence[SensorMeasurement],
        cancel_event: Optional[Event] = None,
    ) -> None:
        """Persist ``measurements`` or raise the first :class:`DomainError`.

        Failures are logged at debug level only; the caller owns reporting.
        ``cancel_event`` is checked before every measurement and once more
        before the write.
        """
        if not measurements:
            logger.debug("Empty batch, nothing to ingest")
            return

        state = IngestionState.validating
        try:
            validated: List[SensorMeasurement] = []
            for measurement in measurements:
                _check_cancelled(cancel_event)
                validated.append(validate_measurement(measurement))

            cache = DeviceCache(self.directory)
            for measurement in validated:
                _check_cancelled(cancel_event)
                state = IngestionState.resolving_ownership
                devices = cache.get(measurement.user_id)
                state = IngestionState.authorizing
                authorize(measurement, devices)

            _check_cancelled(cancel_event)
            state = IngestionState.writing
            self.writer.write(validated)
        except DomainError as exc:
            logger.debug(
                "Ingestion failed: %s",
                exc.message or exc.description,
                extra={"state": state.value, "status": exc.status_code},
            )
            raise

        logger.info(
            "Batch ingested",
            extra={
                "state": IngestionState.done.value,
                "record_count": len(validated),
                "database": self.writer.database,
            },
        )


@lru_cache
def build_default_ingestion() -> IngestionService:
    """Factory that wires the ingestion pipeline from settings."""
    settings = get_settings()
    writer = BatchWriter(store=build_default_store(), database=settings.database)
    return IngestionService(directory=build_default_directory(), writer=writer)
