from __future__ import annotations

import logging
from functools import lru_cache
from typing import List

from datastore.device_directory import DeviceDirectory, build_default_directory
from models.errors import AlreadyExists, BadRequest, NotFound

logger = logging.getLogger(__name__)


class DeviceService:
    """Correlates sensors with the users that own them."""

    def __init__(self, directory: DeviceDirectory) -> None:
        self.directory = directory

    def get_devices(self, user_id: str) -> List[str]:
        return sorted(self.directory.get_devices(user_id))

    def add_device(self, user_id: str, device: str) -> None:
        """Attach ``device`` to the user, creating the mapping on first use."""
        device = device.strip()
        if not device:
            raise BadRequest().with_msg("device is required").with_details(user_id=user_id)

        try:
            current = self.directory.get_devices(user_id)
        except NotFound:
            current = frozenset()
            try:
                self.directory.create_user_devices(user_id, device)
            except AlreadyExists:
                # Created concurrently; fall through to an append.
                pass
            else:
                logger.info(
                    "Created device mapping",
                    extra={"user_id": user_id, "sensor_id": device},
                )
                return

        if device in current:
            return
        self.directory.add_device(user_id, device)
        logger.info("Added device", extra={"user_id": user_id, "sensor_id": device})


@lru_cache
def build_default_device_service() -> DeviceService:
    return DeviceService(directory=build_default_directory())
