"""Authoritative question index, scores and text-reveal pacing."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Literal

from .messages import PLAYER_SLOTS
from .quiz import Card, normalize_text

DEFAULT_WORD_SPEED = 200
SCORE_DELTAS = (1, 0, -1)

Direction = Literal["next", "previous"]


def empty_scores() -> dict[str, int]:
    return {slot: 0 for slot in PLAYER_SLOTS}


@dataclass
class RevealState:
    """Word-by-word question reveal; paused while a buzz is being judged."""

    text: str = ""
    word_speed: int = DEFAULT_WORD_SPEED
    streaming: bool = False
    paused: bool = False

    @property
    def words(self) -> list[str]:
        return self.text.split() if self.text else []

    @property
    def delay_per_word_ms(self) -> float:
        return 60_000 / self.word_speed

    @property
    def duration_ms(self) -> float:
        return len(self.words) * self.delay_per_word_ms

    def begin(self, text: str, word_speed: int) -> None:
        self.text = normalize_text(text)
        self.word_speed = word_speed
        self.streaming = True
        self.paused = False

    def pause(self) -> None:
        if self.streaming:
            self.paused = True

    def resume(self) -> None:
        self.paused = False

    def stop(self) -> None:
        self.streaming = False
        self.paused = False


@dataclass
class GameSession:
    cards: list[Card] = field(default_factory=list)
    title: str = ""
    current_index: int = 0
    started: bool = False
    word_speed: int = DEFAULT_WORD_SPEED
    flipped: bool = False
    scores: dict[str, int] = field(default_factory=empty_scores)

    @property
    def current_card(self) -> Card | None:
        if not self.cards:
            return None
        return self.cards[self.current_index]

    def load(self, cards: list[Card], title: str = "") -> None:
        self.cards = list(cards)
        self.title = title
        self.current_index = 0
        self.started = False
        self.flipped = False

    def start(self) -> bool:
        if self.started or not self.cards:
            return False
        self.started = True
        self.current_index = 0
        self.flipped = False
        return True

    def advance(self, direction: Direction) -> bool:
        """Move one card; returns False at either end of the sequence."""
        if direction == "next":
            target = self.current_index + 1
        elif direction == "previous":
            target = self.current_index - 1
        else:
            raise ValueError(f"Unknown direction: {direction!r}")
        if not self.started or target < 0 or target >= len(self.cards):
            return False
        self.current_index = target
        self.flipped = False
        return True

    def apply_index(self, index: int) -> bool:
        if index < 0 or (self.cards and index >= len(self.cards)):
            return False
        self.current_index = index
        self.flipped = False
        return True

    def adjust_score(self, slot: str, delta: int) -> dict[str, int]:
        if delta not in SCORE_DELTAS:
            raise ValueError(f"Score delta must be one of {SCORE_DELTAS}, got {delta}")
        self.scores[slot] = self.scores.get(slot, 0) + delta
        return dict(self.scores)

    def replace_scores(self, scores: dict[str, int]) -> None:
        merged = empty_scores()
        merged.update({slot: int(value) for slot, value in scores.items() if slot in merged})
        self.scores = merged

    def snapshot(self) -> dict[str, object]:
        return {
            "title": self.title,
            "cards": [card.to_dict() for card in self.cards],
            "index": self.current_index,
            "started": self.started,
            "wordSpeed": self.word_speed,
            "scores": dict(self.scores),
        }
