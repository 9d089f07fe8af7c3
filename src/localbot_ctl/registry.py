"""JSON registry loading: endpoints, model catalog, and room mappings."""

from __future__ import annotations

import json
import logging
import threading
from pathlib import Path
from typing import TypeVar

from pydantic import BaseModel, ValidationError

from .models import EndpointsRegistry, ModelsRegistry, RoomConfig, RoomsRegistry

logger = logging.getLogger(__name__)

_RegistryT = TypeVar("_RegistryT", bound=BaseModel)


def _load_registry(path: str | Path, model: type[_RegistryT], label: str) -> _RegistryT | None:
    registry_path = Path(path)
    try:
        raw = json.loads(registry_path.read_text(encoding="utf-8"))
        return model.model_validate(raw)
    except FileNotFoundError:
        logger.warning("%s registry not found: %s", label, registry_path)
    except (OSError, json.JSONDecodeError, ValidationError) as e:
        logger.warning("Could not load %s registry from %s: %s", label, registry_path, e)
    return None


def load_endpoints_registry(path: str | Path) -> EndpointsRegistry | None:
    return _load_registry(path, EndpointsRegistry, "endpoints")


def load_models_registry(path: str | Path) -> ModelsRegistry | None:
    return _load_registry(path, ModelsRegistry, "models")


def load_rooms_registry(path: str | Path) -> RoomsRegistry | None:
    return _load_registry(path, RoomsRegistry, "rooms")


class RoomDirectory:
    """Room config with a case-insensitive room-name index.

    The index is rebuilt whenever the backing file's modification time
    changes, so edits to the rooms file are picked up without a restart.
    """

    def __init__(self, path: str | Path):
        self._path = Path(path)
        self._lock = threading.Lock()
        self._stamp: int | None = None
        self._loaded = False
        self._rooms: dict[str, RoomConfig] = {}
        self._name_to_id: dict[str, str] = {}

    def _current_stamp(self) -> int | None:
        try:
            return self._path.stat().st_mtime_ns
        except OSError:
            return None

    def _rebuild(self, stamp: int | None) -> None:
        registry = load_rooms_registry(self._path) if stamp is not None else None
        rooms = dict(registry.rooms) if registry else {}

        name_to_id: dict[str, str] = {}
        ambiguous: set[str] = set()
        for room_id, room in rooms.items():
            key = room.room_name.strip().lower()
            if key in name_to_id:
                ambiguous.add(key)
                continue
            name_to_id[key] = room_id
        for key in ambiguous:
            logger.warning("Room name '%s' is configured more than once; it cannot be resolved", key)
            name_to_id.pop(key, None)

        self._rooms = rooms
        self._name_to_id = name_to_id
        self._stamp = stamp
        self._loaded = True

    def reload(self) -> None:
        with self._lock:
            self._rebuild(self._current_stamp())

    def rooms(self) -> dict[str, RoomConfig]:
        with self._lock:
            stamp = self._current_stamp()
            if not self._loaded or stamp != self._stamp:
                self._rebuild(stamp)
            return dict(self._rooms)

    def resolve(self, room_name: str | None) -> tuple[str, RoomConfig] | None:
        """Resolve a human room name (any case) to its room id and config."""
        if not room_name:
            return None
        rooms = self.rooms()
        with self._lock:
            room_id = self._name_to_id.get(room_name.strip().lower())
        if room_id is None or room_id not in rooms:
            return None
        return room_id, rooms[room_id]

    def agent_ids(self) -> list[str]:
        """Distinct agent ids across configured rooms, in declaration order."""
        seen: list[str] = []
        for room in self.rooms().values():
            if room.agent_id not in seen:
                seen.append(room.agent_id)
        return seen
