"""Wire envelopes exchanged over the room broadcast channel."""

from __future__ import annotations

import logging
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError

logger = logging.getLogger(__name__)

CONTROLLER = "controller"
PLAYER_SLOTS = ("player1", "player2", "player3", "player4")
ROLES = (CONTROLLER, *PLAYER_SLOTS)

Role = Literal["controller", "player1", "player2", "player3", "player4"]
PlayerSlot = Literal["player1", "player2", "player3", "player4"]


class Envelope(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True)


class PlayerJoinRequest(Envelope):
    type: Literal["player-join-request"] = "player-join-request"
    player: PlayerSlot
    name: str


class PlayerApproved(Envelope):
    type: Literal["player-approved"] = "player-approved"
    player: PlayerSlot
    name: str
    snapshot: dict[str, Any] = Field(default_factory=dict)


class PlayerRejected(Envelope):
    type: Literal["player-rejected"] = "player-rejected"
    player: PlayerSlot


class PlayerJoin(Envelope):
    type: Literal["player-join"] = "player-join"
    player: Role
    name: str = ""


class NameChange(Envelope):
    type: Literal["name-change"] = "name-change"
    player: Role
    name: str


class Buzz(Envelope):
    type: Literal["buzz"] = "buzz"
    player: PlayerSlot
    name: str


class BuzzResult(Envelope):
    type: Literal["buzz-result"] = "buzz-result"
    player: PlayerSlot
    name: str
    buzzed: bool = True


class ResetBuzz(Envelope):
    type: Literal["reset-buzz"] = "reset-buzz"


class ScoreUpdate(Envelope):
    type: Literal["score-update"] = "score-update"
    scores: dict[str, int]


class QuizLoad(Envelope):
    type: Literal["quiz-load"] = "quiz-load"
    title: str = ""
    cards: list[dict[str, Any]]


class NextQuestion(Envelope):
    type: Literal["next-question"] = "next-question"
    index: int
    word_speed: int = Field(alias="wordSpeed", gt=0)


class StartQuiz(Envelope):
    type: Literal["start-quiz"] = "start-quiz"
    index: int = 0
    word_speed: int = Field(alias="wordSpeed", gt=0)


class PlaySound(Envelope):
    type: Literal["play-sound"] = "play-sound"
    sound: str
    sender: Role = Field(alias="from")


class ChatMessage(Envelope):
    type: Literal["chat-message"] = "chat-message"
    name: str
    text: str
    timestamp: int


class WebRTCOffer(Envelope):
    type: Literal["webrtc-offer"] = "webrtc-offer"
    sender: Role = Field(alias="from")
    to: Role
    sdp: str


class WebRTCAnswer(Envelope):
    type: Literal["webrtc-answer"] = "webrtc-answer"
    sender: Role = Field(alias="from")
    to: Role
    sdp: str


class WebRTCIceCandidate(Envelope):
    type: Literal["webrtc-ice-candidate"] = "webrtc-ice-candidate"
    sender: Role = Field(alias="from")
    to: Role
    candidate: dict[str, Any]


class StopVoiceAnswer(Envelope):
    type: Literal["stop-voice-answer"] = "stop-voice-answer"
    sender: Role = Field(alias="from")


class PlayerEvict(Envelope):
    type: Literal["player-evict"] = "player-evict"
    player: PlayerSlot


class PlayerLeave(Envelope):
    type: Literal["player-leave"] = "player-leave"
    player: PlayerSlot


Message = Annotated[
    Union[
        PlayerJoinRequest,
        PlayerApproved,
        PlayerRejected,
        PlayerJoin,
        NameChange,
        Buzz,
        BuzzResult,
        ResetBuzz,
        ScoreUpdate,
        QuizLoad,
        NextQuestion,
        StartQuiz,
        PlaySound,
        ChatMessage,
        WebRTCOffer,
        WebRTCAnswer,
        WebRTCIceCandidate,
        StopVoiceAnswer,
        PlayerEvict,
        PlayerLeave,
    ],
    Field(discriminator="type"),
]

MESSAGE_ADAPTER: TypeAdapter[Message] = TypeAdapter(Message)

MESSAGE_TYPES = frozenset(
    model.model_fields["type"].default
    for model in Envelope.__subclasses__()
)


def parse_message(payload: Any) -> Message | None:
    """Decode a raw envelope, returning None for unknown or malformed ones."""
    if not isinstance(payload, dict):
        logger.debug("Dropping non-object envelope: %r", payload)
        return None
    message_type = payload.get("type")
    if message_type not in MESSAGE_TYPES:
        logger.debug("Ignoring envelope with unknown type %r", message_type)
        return None
    try:
        return MESSAGE_ADAPTER.validate_python(payload)
    except ValidationError as exc:
        logger.debug("Dropping malformed %s envelope: %s", message_type, exc)
        return None
