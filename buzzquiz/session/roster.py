"""Participant slots and the join / approve / evict workflow."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Literal

from .errors import SessionError
from .messages import CONTROLLER, PLAYER_SLOTS, ROLES

ConnectionState = Literal["pending", "approved", "connected", "evicted"]


def default_name(role: str) -> str:
    if role == CONTROLLER:
        return "Controller"
    return role.replace("player", "Player ")


def require_role(role: str) -> str:
    if role not in ROLES:
        raise ValueError(f"Unknown role: {role!r}")
    return role


def require_player_slot(role: str) -> str:
    if role not in PLAYER_SLOTS:
        raise ValueError(f"Unknown player slot: {role!r}")
    return role


@dataclass
class Participant:
    role: str
    display_name: str
    connection_state: ConnectionState = "pending"


class Roster:
    """Slot table plus display-name map.

    A slot absent from ``_slots`` is empty. The controller owns the pending
    and connected transitions; players only mirror the connected set from
    ``player-join`` / ``player-evict`` / ``player-leave`` broadcasts.
    """

    def __init__(self) -> None:
        self._slots: dict[str, Participant] = {}
        self._names: dict[str, str] = {}

    def get(self, role: str) -> Participant | None:
        return self._slots.get(role)

    def is_empty(self, role: str) -> bool:
        return role not in self._slots

    def is_connected(self, role: str) -> bool:
        participant = self._slots.get(role)
        return participant is not None and participant.connection_state == "connected"

    @property
    def connected(self) -> frozenset[str]:
        return frozenset(role for role, p in self._slots.items() if p.connection_state == "connected")

    @property
    def pending(self) -> list[Participant]:
        return [self._slots[role] for role in PLAYER_SLOTS if role in self._slots and self._slots[role].connection_state == "pending"]

    @property
    def names(self) -> dict[str, str]:
        return dict(self._names)

    def name_of(self, role: str) -> str:
        return self._names.get(role) or default_name(role)

    def request(self, role: str, display_name: str) -> bool:
        require_player_slot(role)
        if not self.is_empty(role):
            return False
        self._slots[role] = Participant(role=role, display_name=display_name, connection_state="pending")
        self._names[role] = display_name
        return True

    def approve(self, role: str) -> Participant:
        participant = self._slots.get(role)
        if participant is None or participant.connection_state != "pending":
            raise SessionError(f"No pending join request for {role}")
        participant.connection_state = "connected"
        return participant

    def reject(self, role: str) -> Participant:
        participant = self._slots.get(role)
        if participant is None or participant.connection_state != "pending":
            raise SessionError(f"No pending join request for {role}")
        del self._slots[role]
        self._names.pop(role, None)
        return participant

    def mark_connected(self, role: str, display_name: str = "") -> None:
        require_role(role)
        name = display_name or self._names.get(role) or default_name(role)
        participant = self._slots.get(role)
        if participant is None:
            self._slots[role] = Participant(role=role, display_name=name, connection_state="connected")
        else:
            participant.connection_state = "connected"
            participant.display_name = name
        self._names[role] = name

    def remove(self, role: str) -> bool:
        self._names.pop(role, None)
        return self._slots.pop(role, None) is not None

    def rename(self, role: str, display_name: str) -> None:
        require_role(role)
        self._names[role] = display_name
        participant = self._slots.get(role)
        if participant is not None:
            participant.display_name = display_name

    def clear(self) -> None:
        self._slots.clear()
        self._names.clear()

    def snapshot(self) -> dict[str, Any]:
        return {role: self._slots[role].display_name for role in ROLES if self.is_connected(role)}

    def load_snapshot(self, connected: dict[str, str]) -> None:
        for role, name in connected.items():
            if role in ROLES:
                self.mark_connected(role, str(name))
