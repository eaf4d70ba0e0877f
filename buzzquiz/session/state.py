"""The per-participant session aggregate."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from .buzz import BuzzState
from .chat import ChatLog
from .progression import DEFAULT_WORD_SPEED, GameSession, RevealState
from .roster import Roster


@dataclass
class SessionState:
    """Everything one participant knows about the room.

    On the controller ``game`` and ``buzz`` are authoritative; on players
    they are replicas written only by received envelopes.
    """

    roster: Roster = field(default_factory=Roster)
    game: GameSession = field(default_factory=GameSession)
    buzz: BuzzState = field(default_factory=BuzzState)
    chat: ChatLog = field(default_factory=ChatLog)
    reveal: RevealState = field(default_factory=RevealState)

    def summary(self) -> dict[str, Any]:
        return {
            "connected": sorted(self.roster.connected),
            "names": self.roster.names,
            "index": self.game.current_index,
            "started": self.game.started,
            "scores": dict(self.game.scores),
            "buzz": self.buzz.as_dict(),
        }


def build_initial_state(word_speed: int = DEFAULT_WORD_SPEED) -> SessionState:
    state = SessionState()
    state.game.word_speed = word_speed
    state.reveal.word_speed = word_speed
    return state
