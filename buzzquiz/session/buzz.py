"""First-buzz-wins arbitration state for the current question."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable


@dataclass
class BuzzState:
    winner: str | None = None
    locked_out: set[str] = field(default_factory=set)

    @property
    def locked(self) -> bool:
        return self.winner is not None

    def claim(self, slot: str, contenders: Iterable[str] = ()) -> bool:
        """Honour the buzz if the question is open, otherwise lock the slot out.

        Arrival order at the controller decides the race; there is no
        timestamp comparison.
        """
        if self.winner is not None:
            if slot != self.winner:
                self.locked_out.add(slot)
            return False
        self.lock(slot, contenders)
        return True

    def lock(self, slot: str, contenders: Iterable[str] = ()) -> None:
        self.winner = slot
        self.locked_out = {other for other in contenders if other != slot}

    def reset(self) -> None:
        self.winner = None
        self.locked_out = set()

    def as_dict(self) -> dict[str, object]:
        return {"winner": self.winner, "lockedOut": sorted(self.locked_out)}
