"""Per-agent session store access and authorized room session resets."""

from __future__ import annotations

import json
import logging
import math
import threading
import time
import uuid
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any

from .authorization import AuthorizationGate, Caller, Operation
from .models import RoomConfig
from .registry import RoomDirectory

logger = logging.getLogger(__name__)

# Newer host layout first, legacy layout second.
SESSION_STORE_DIRS = (".openclaw", ".clawdbot")


def format_thousands(tokens: int | float) -> str:
    """Token count rounded half-up to the nearest thousand, e.g. ``45k``."""
    return f"{int(math.floor(tokens / 1000 + 0.5))}k"


def _token_count(value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return 0
    return int(value)


class ResetStatus(str, Enum):
    LIST_ROOMS = "list-rooms"
    REJECTED = "rejected"
    ALREADY_FRESH = "already-fresh"
    RESET = "reset"
    FAILED = "failed"


@dataclass
class ResetOutcome:
    status: ResetStatus
    room_name: str | None = None
    cleared_tokens: int = 0
    rooms: list[str] = field(default_factory=list)
    error: str | None = None

    @property
    def success(self) -> bool:
        return self.status in (ResetStatus.ALREADY_FRESH, ResetStatus.RESET)


@dataclass(frozen=True)
class SessionStats:
    count: int = 0
    total_tokens: int = 0


class SessionStore:
    """JSON session stores owned by the agent runtime, one file per agent.

    Reads tolerate a missing or corrupt file. A reset rewrites the whole
    store atomically (temp file + replace) under an in-process lock; there
    is no lock shared with the agent runtime, so a reset that races a live
    turn on the same agent can lose one of the two writes.
    """

    def __init__(self, state_dir: str | Path):
        self._state_dir = Path(state_dir)
        self._lock = threading.Lock()

    def candidate_paths(self, agent_id: str) -> list[Path]:
        return [
            self._state_dir / root / "agents" / agent_id / "sessions" / "sessions.json"
            for root in SESSION_STORE_DIRS
        ]

    def path_for(self, agent_id: str) -> Path:
        candidates = self.candidate_paths(agent_id)
        for path in candidates:
            if path.exists():
                return path
        return candidates[-1]

    def read(self, agent_id: str) -> dict[str, Any]:
        path = self.path_for(agent_id)
        try:
            raw = json.loads(path.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, OSError):
            return {}
        return raw if isinstance(raw, dict) else {}

    def _persist(self, path: Path, store: dict[str, Any]) -> None:
        temp_path = path.with_suffix(f"{path.suffix}.tmp")
        payload = json.dumps(store, ensure_ascii=False, indent=2)
        try:
            temp_path.write_text(payload, encoding="utf-8")
            temp_path.replace(path)
        except OSError:
            temp_path.unlink(missing_ok=True)
            raise

    @staticmethod
    def find_session_key(store: dict[str, Any], agent_id: str, room_id: str) -> str | None:
        prefix = f"agent:{agent_id}:"
        needle = room_id.lower()
        for key in store:
            if key.startswith(prefix) and needle in key:
                return key
        return None

    def reset_room(self, room_id: str, room: RoomConfig) -> ResetOutcome:
        """Logically reset the room's session entry; a missing entry is a no-op."""
        with self._lock:
            path = self.path_for(room.agent_id)
            store = self.read(room.agent_id)
            session_key = self.find_session_key(store, room.agent_id, room_id)
            if session_key is None:
                logger.info("Room %s has no session entry; already fresh", room.room_name)
                return ResetOutcome(ResetStatus.ALREADY_FRESH, room_name=room.room_name)

            existing = store[session_key]
            if not isinstance(existing, dict):
                existing = {}
            old_tokens = _token_count(existing.get("totalTokens"))
            store[session_key] = {
                **existing,
                "sessionId": str(uuid.uuid4()),
                "updatedAt": int(time.time() * 1000),
                "systemSent": False,
                "abortedLastRun": False,
                "inputTokens": 0,
                "outputTokens": 0,
                "totalTokens": 0,
            }

            try:
                self._persist(path, store)
            except OSError as e:
                logger.error("Could not persist session store for agent %s: %s", room.agent_id, e)
                return ResetOutcome(
                    ResetStatus.FAILED,
                    room_name=room.room_name,
                    error=e.strerror or type(e).__name__,
                )

        logger.info("Reset session for room %s (%d tokens cleared)", room.room_name, old_tokens)
        return ResetOutcome(ResetStatus.RESET, room_name=room.room_name, cleared_tokens=old_tokens)

    def session_stats(self, agent_ids: list[str]) -> SessionStats:
        """Session count and token total over each distinct agent's entries."""
        count = 0
        total = 0
        for agent_id in dict.fromkeys(agent_ids):
            prefix = f"agent:{agent_id}:"
            for key, entry in self.read(agent_id).items():
                if not key.startswith(prefix) or not isinstance(entry, dict):
                    continue
                tokens = entry.get("totalTokens")
                if tokens is None:
                    tokens = _token_count(entry.get("inputTokens")) + _token_count(entry.get("outputTokens"))
                total += _token_count(tokens)
                count += 1
        return SessionStats(count=count, total_tokens=total)


def run_reset(
    room_arg: str | None,
    caller: Caller,
    directory: RoomDirectory,
    gate: AuthorizationGate,
    store: SessionStore,
) -> ResetOutcome:
    """Resolve the room, check authorization, then reset its session entry."""
    resolved = directory.resolve(room_arg)
    if resolved is None:
        return ResetOutcome(
            ResetStatus.LIST_ROOMS,
            rooms=gate.visible_rooms(caller, directory.rooms()),
        )

    room_id, room = resolved
    decision = gate.decide(Operation.RESET, caller, room)
    if not decision.allow:
        logger.info("Rejected guest reset of non-public room %s", room.room_name)
        return ResetOutcome(ResetStatus.REJECTED, room_name=room.room_name, error=decision.reason)

    return store.reset_room(room_id, room)
