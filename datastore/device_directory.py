from __future__ import annotations

import json
import logging
from functools import lru_cache
from pathlib import Path
from threading import Lock
from typing import Dict, FrozenSet, List, Optional, Protocol

from models.errors import AlreadyExists, InternalError, NotFound
from settings import get_settings

logger = logging.getLogger(__name__)


class DeviceDirectory(Protocol):
    """Maps a user to the set of sensors it owns."""

    def get_devices(self, user_id: str) -> FrozenSet[str]:
        ...

    def create_user_devices(self, user_id: str, device: str) -> None:
        ...

    def add_device(self, user_id: str, device: str) -> None:
        ...


class JsonDeviceDirectory:
    """User→devices table kept in memory and optionally mirrored to a JSON file."""

    def __init__(self, name: str, persistence_path: Optional[Path] = None) -> None:
        self.name = name
        self._items: Dict[str, List[str]] = {}
        self.persistence_path = persistence_path
        self._lock = Lock()
        if persistence_path:
            persistence_path.parent.mkdir(parents=True, exist_ok=True)
            self._load_from_disk()

    def get_devices(self, user_id: str) -> FrozenSet[str]:
        with self._lock:
            devices = self._items.get(user_id)
        if devices is None:
            raise NotFound().with_msg("user without correlated devices").with_details(
                user_id=user_id
            )
        return frozenset(devices)

    def create_user_devices(self, user_id: str, device: str) -> None:
        with self._lock:
            if user_id in self._items:
                raise AlreadyExists().with_msg("user already has correlated devices").with_details(
                    user_id=user_id
                )
            self._items[user_id] = [device]
            self._persist()

    def add_device(self, user_id: str, device: str) -> None:
        with self._lock:
            devices = self._items.get(user_id)
            if devices is None:
                raise NotFound().with_msg("user without correlated devices").with_details(
                    user_id=user_id
                )
            if device in devices:
                return
            devices.append(device)
            self._persist()

    def _persist(self) -> None:
        if not self.persistence_path:
            return
        payload = {
            user_id: {"user_id": user_id, "devices": devices}
            for user_id, devices in self._items.items()
        }
        try:
            self.persistence_path.write_text(json.dumps(payload, indent=2, sort_keys=True))
        except OSError as exc:
            raise InternalError().with_msg("failed to persist user devices").with_err(exc) from exc

    def _load_from_disk(self) -> None:
        if not self.persistence_path or not self.persistence_path.exists():
            return

        try:
            raw = self.persistence_path.read_text() or "{}"
            data = json.loads(raw)
            items = {
                user_id: [str(device) for device in entry.get("devices", [])]
                for user_id, entry in data.items()
            }
        except (OSError, json.JSONDecodeError, AttributeError, TypeError) as exc:
            logger.error(
                "Failed to load device directory",
                extra={"reason": str(exc)},
            )
            raise InternalError().with_msg("failed to parse user devices").with_details(
                path=str(self.persistence_path)
            ).with_err(exc) from exc

        self._items.update(items)


@lru_cache
def build_default_directory(
    name: Optional[str] = None,
    path: Optional[str] = None,
) -> JsonDeviceDirectory:
    settings = get_settings()
    directory_name = settings.directory_name if name is None else name
    directory_path = settings.directory_persistence_path if path is None else path
    persistence = Path(directory_path) if directory_path else None
    return JsonDeviceDirectory(name=directory_name, persistence_path=persistence)
