"""Per-call memoization of user device lookups."""

from __future__ import annotations

from typing import Dict, FrozenSet

from datastore.device_directory import DeviceDirectory


class DeviceCache:
    """Resolves each user's devices at most once.

    Build a new cache for every ingestion call. Failed lookups are not
    remembered, so a later request for the same user asks the directory again.
    """

    def __init__(self, directory: DeviceDirectory) -> None:
        self._directory = directory
        self._devices: Dict[str, FrozenSet[str]] = {}

    def get(self, user_id: str) -> FrozenSet[str]:
        devices = self._devices.get(user_id)
        if devices is None:
            devices = frozenset(self._directory.get_devices(user_id))
            self._devices[user_id] = devices
        return devices

    def __len__(self) -> int:
        return len(self._devices)
