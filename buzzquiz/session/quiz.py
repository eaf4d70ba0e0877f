"""Flattening of nested quiz documents into an ordered card sequence."""

from __future__ import annotations

import re
from dataclasses import asdict, dataclass, field
from typing import Any

REQUIRED_QUESTION_FIELDS = ("question_number", "question_text", "answer")


class QuizDataError(ValueError):
    """Raised when a quiz document lacks a required part."""


@dataclass(frozen=True)
class Card:
    round: Any
    round_name: str
    player: Any
    question_number: Any
    question_text: str
    answer: str
    accept: list[str] = field(default_factory=list)
    translations: dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> Card:
        if not isinstance(payload, dict):
            raise QuizDataError("Card must be an object")
        accept = payload.get("accept") or []
        translations = payload.get("translations") or {}
        if not isinstance(accept, list):
            raise QuizDataError("'accept' must be a list of answers")
        if not isinstance(translations, dict):
            raise QuizDataError("'translations' must map language codes to text")
        return cls(
            round=payload.get("round"),
            round_name=str(payload.get("round_name") or ""),
            player=payload.get("player"),
            question_number=payload.get("question_number"),
            question_text=str(payload.get("question_text", "")),
            answer=str(payload.get("answer", "")),
            accept=[str(item) for item in accept],
            translations={str(k): str(v) for k, v in translations.items()},
        )


def _require_list(container: dict[str, Any], key: str, where: str) -> list[Any]:
    value = container.get(key)
    if not isinstance(value, list):
        raise QuizDataError(f"{where} is missing '{key}'")
    return value


def flatten_quiz(quiz: Any) -> list[Card]:
    """Walk rounds -> players -> questions in order and emit one card each."""
    if not isinstance(quiz, dict):
        raise QuizDataError("Quiz data must be an object")

    cards: list[Card] = []
    for round_index, round_data in enumerate(_require_list(quiz, "rounds", "Quiz")):
        if not isinstance(round_data, dict):
            raise QuizDataError(f"Round {round_index + 1} is not an object")
        round_label = f"Round {round_data.get('round_number', round_index + 1)}"
        for player_data in _require_list(round_data, "players", round_label):
            if not isinstance(player_data, dict):
                raise QuizDataError(f"{round_label} has a malformed player entry")
            player_label = f"{round_label} player {player_data.get('player_number', '?')}"
            for question in _require_list(player_data, "questions", player_label):
                if not isinstance(question, dict):
                    raise QuizDataError(f"{player_label} has a malformed question")
                missing = [name for name in REQUIRED_QUESTION_FIELDS if question.get(name) in (None, "")]
                if missing:
                    raise QuizDataError(f"{player_label} question is missing {', '.join(missing)}")
                cards.append(
                    Card.from_dict(
                        {
                            **question,
                            "round": round_data.get("round_number"),
                            "round_name": round_data.get("round_name"),
                            "player": player_data.get("player_number"),
                        }
                    )
                )
    return cards


def quiz_title(quiz: dict[str, Any]) -> str:
    return str(quiz.get("title") or quiz.get("name") or "")


_SPACE_RUN = re.compile(r"\s{2,}")
# Source sheets sometimes split the last letter off a word ("Taois t").
_SPLIT_WORD = re.compile(r"(\w{3,})\s([bcdefghjklmnopqrstuvwxyz])\b", re.IGNORECASE)


def normalize_text(text: str) -> str:
    text = _SPACE_RUN.sub(" ", text)
    text = _SPLIT_WORD.sub(r"\1\2", text)
    return text.strip()
