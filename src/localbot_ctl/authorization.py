"""
Two-tier authorization for LocalBot commands.

Callers are either authorized (on the host's allow-list) or guests.

  - Status, listing, benchmark, switch, stop and help are authorized-only.
  - Room session reset is always allowed for authorized callers; guests
    may reset a room only when its publicReset flag is set.
  - Room listings follow the reset rule.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from .models import RoomConfig

RESET_DENIED_MESSAGE = "❌ Only authorized users can reset this room"
NOT_AUTHORIZED_MESSAGE = "❌ This command requires an authorized user"


class Operation(str, Enum):
    HELP = "help"
    STATUS = "status"
    LIST = "list"
    ENDPOINTS = "endpoints"
    BENCHMARK = "benchmark"
    SWITCH = "switch"
    STOP = "stop"
    RESET = "reset"


@dataclass(frozen=True)
class Caller:
    authorized: bool = False


@dataclass(frozen=True)
class AuthDecision:
    allow: bool
    reason: str


class AuthorizationGate:
    def decide(self, operation: Operation, caller: Caller, room: RoomConfig | None = None) -> AuthDecision:
        if caller.authorized:
            return AuthDecision(True, "authorized caller")

        if operation != Operation.RESET:
            return AuthDecision(False, NOT_AUTHORIZED_MESSAGE)

        if room is not None and room.public_reset:
            return AuthDecision(True, "room allows public reset")
        return AuthDecision(False, RESET_DENIED_MESSAGE)

    def visible_rooms(self, caller: Caller, rooms: dict[str, RoomConfig]) -> list[str]:
        """Room names the caller may reset, in declaration order."""
        return [
            room.room_name
            for room in rooms.values()
            if self.decide(Operation.RESET, caller, room).allow
        ]
