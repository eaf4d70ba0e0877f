"""One participant's view of a room: local actions plus envelope handlers."""

from __future__ import annotations

import logging
import time
from typing import Any, Callable

import httpx

from . import messages as m
from .config import ClientSettings
from .errors import SessionError
from .history import save_history
from .progression import DEFAULT_WORD_SPEED, Direction
from .quiz import Card, QuizDataError, flatten_quiz, quiz_title
from .room import Room
from .roster import ConnectionState, default_name, require_player_slot
from .speech import HttpSpeechProvider, Narrator
from .state import SessionState, build_initial_state
from .transport import Transport
from .voice import PeerSessionFactory, VoiceSignaling

logger = logging.getLogger(__name__)

Observer = Callable[[str, dict[str, Any]], None]
Confirm = Callable[[str], bool]


def _now_ms() -> int:
    return int(time.time() * 1000)


def _ignore_event(event: str, payload: dict[str, Any]) -> None:
    return None


def _as_int(value: Any, name: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"{name} must be an integer, got {value!r}")
    return value


def _default_narrator(settings: ClientSettings | None) -> Narrator:
    if settings is None:
        return Narrator()
    provider = HttpSpeechProvider(settings.api_url) if settings.api_url else None
    return Narrator(provider=provider, voice_name=settings.ai_voice, speed=settings.voice_speed)


class SessionClient:
    """Controller or player endpoint bound to one room transport.

    Controller-only calls raise SessionError when made from a player and
    vice versa. Incoming envelopes never raise: unknown or out-of-place ones
    are dropped.
    """

    def __init__(
        self,
        transport: Transport,
        settings: ClientSettings | None = None,
        narrator: Narrator | None = None,
        voice_factory: PeerSessionFactory | None = None,
        observer: Observer | None = None,
        clock: Callable[[], int] | None = None,
    ) -> None:
        self.transport = transport
        self.settings = settings
        word_speed = settings.word_speed if settings is not None else DEFAULT_WORD_SPEED
        self.state: SessionState = build_initial_state(word_speed=word_speed)
        self.narrator = narrator if narrator is not None else _default_narrator(settings)
        self.role: str | None = None
        self.display_name = ""
        self.connection_state: ConnectionState | None = None
        self.buzz_enabled = False
        self.auto_read = False
        self.error: str | None = None
        self.voice: VoiceSignaling | None = None
        self._voice_factory = voice_factory
        self._observer = observer if observer is not None else _ignore_event
        self._clock = clock if clock is not None else _now_ms
        self._last_chat_ts = 0
        self._handlers: dict[str, Callable[[Any], None]] = {
            "player-join-request": self._on_join_request,
            "player-approved": self._on_approved,
            "player-rejected": self._on_rejected,
            "player-join": self._on_player_join,
            "name-change": self._on_name_change,
            "buzz": self._on_buzz,
            "buzz-result": self._on_buzz_result,
            "reset-buzz": self._on_reset_buzz,
            "score-update": self._on_score_update,
            "quiz-load": self._on_quiz_load,
            "next-question": self._on_next_question,
            "start-quiz": self._on_start_quiz,
            "play-sound": self._on_play_sound,
            "chat-message": self._on_chat,
            "webrtc-offer": self._on_voice_offer,
            "webrtc-answer": self._on_voice_answer,
            "webrtc-ice-candidate": self._on_voice_candidate,
            "stop-voice-answer": self._on_voice_stop,
            "player-evict": self._on_evict,
            "player-leave": self._on_leave,
        }
        transport.on_message(self.receive)

    @property
    def room(self) -> Room:
        return self.transport.room

    @property
    def is_controller(self) -> bool:
        return self.role == m.CONTROLLER

    @property
    def is_connected(self) -> bool:
        return self.role is not None and self.connection_state == "connected"

    # ------------------------------------------------------------------
    # role selection and membership
    # ------------------------------------------------------------------

    def host(self, display_name: str = "") -> None:
        """Take the controller role for this room."""
        if self.role is not None:
            raise SessionError(f"Already participating as {self.role}")
        self._assume_role(m.CONTROLLER, display_name or default_name(m.CONTROLLER))
        self.connection_state = "connected"
        self.state.roster.mark_connected(m.CONTROLLER, self.display_name)
        self._send(m.PlayerJoin(player=m.CONTROLLER, name=self.display_name))

    def request_join(self, role: str, display_name: str = "") -> None:
        require_player_slot(role)
        if self.role is not None:
            raise SessionError(f"Already participating as {self.role}")
        self._assume_role(role, display_name or default_name(role))
        self.connection_state = "pending"
        self._send(m.PlayerJoinRequest(player=role, name=self.display_name))

    def pending_requests(self) -> list[tuple[str, str]]:
        return [(p.role, p.display_name) for p in self.state.roster.pending]

    def approve(self, role: str) -> None:
        self._require_controller()
        participant = self.state.roster.approve(role)
        logger.info("Approved %s as %s in room %s", participant.display_name, role, self.room.code)
        self._send(m.PlayerApproved(player=role, name=participant.display_name, snapshot=self._snapshot()))
        self._send(m.PlayerJoin(player=role, name=participant.display_name))

    def reject(self, role: str) -> None:
        self._require_controller()
        participant = self.state.roster.reject(role)
        logger.info("Rejected %s for %s in room %s", participant.display_name, role, self.room.code)
        self._send(m.PlayerRejected(player=role))

    def evict(self, role: str, confirm: Confirm) -> bool:
        self._require_controller()
        require_player_slot(role)
        if self.state.roster.is_empty(role):
            raise SessionError(f"{role} is not in the room")
        if not self.state.roster.is_connected(role):
            raise SessionError(f"{role} is still waiting for approval; reject the request instead")
        if not confirm(f"Remove {self.state.roster.name_of(role)} from the room?"):
            return False
        if self.state.buzz.winner == role:
            self.reset_buzz()
        self.state.roster.remove(role)
        self._send(m.PlayerEvict(player=role))
        return True

    def leave(self) -> None:
        self._require_player()
        self._send(m.PlayerLeave(player=self.role))
        self._return_to_role_selection("left")

    def rename(self, display_name: str) -> None:
        if not self.is_connected:
            raise SessionError("Join the room before changing names")
        self.display_name = display_name
        self.state.roster.rename(self.role, display_name)
        self._send(m.NameChange(player=self.role, name=display_name))

    # ------------------------------------------------------------------
    # quiz progression (controller)
    # ------------------------------------------------------------------

    def load_quiz(self, quiz: Any) -> bool:
        """Load a nested quiz document; errors surface in ``self.error``."""
        self._require_controller()
        try:
            cards = flatten_quiz(quiz)
        except QuizDataError as exc:
            self.error = f"Failed to load quiz data: {exc}"
            logger.warning(self.error)
            self._observer("error", {"message": self.error})
            return False
        self.error = None
        game = self.state.game
        game.load(cards, quiz_title(quiz))
        self._clear_question()
        self._send(m.QuizLoad(title=game.title, cards=[card.to_dict() for card in cards]))
        return True

    def start(self) -> bool:
        self._require_controller()
        game = self.state.game
        if not game.start():
            return False
        self._show_current_card()
        self._send(m.StartQuiz(index=game.current_index, word_speed=game.word_speed))
        self._narrate_if_enabled()
        return True

    def advance(self, direction: Direction) -> bool:
        self._require_controller()
        game = self.state.game
        if not game.advance(direction):
            return False
        self._show_current_card()
        self._send(m.NextQuestion(index=game.current_index, word_speed=game.word_speed))
        self._narrate_if_enabled()
        return True

    def next_card(self) -> bool:
        return self.advance("next")

    def previous_card(self) -> bool:
        return self.advance("previous")

    def set_word_speed(self, word_speed: int) -> None:
        self._require_controller()
        if word_speed <= 0:
            raise ValueError("Word speed must be positive")
        self.state.game.word_speed = word_speed

    def flip(self) -> bool:
        self._require_controller()
        self.state.game.flipped = not self.state.game.flipped
        return self.state.game.flipped

    def save_history(self, http: httpx.Client | None = None) -> bool:
        self._require_controller()
        api_url = self.settings.api_url if self.settings is not None else None
        if not api_url:
            logger.info("No API URL configured; game history not saved")
            return False
        return save_history(api_url, self.summary(), client=http)

    def read_aloud(self) -> None:
        card = self.state.game.current_card
        if card is not None:
            self.narrator.speak(card.question_text)

    # ------------------------------------------------------------------
    # buzzing and scoring
    # ------------------------------------------------------------------

    def buzz(self) -> bool:
        self._require_player()
        if not self.is_connected or not self.state.game.started:
            return False
        if self.state.buzz.locked or not self.buzz_enabled:
            return False
        self.buzz_enabled = False
        self._send(m.Buzz(player=self.role, name=self.display_name))
        return True

    def reset_buzz(self) -> None:
        self._require_controller()
        self._reset_buzz_locally()
        self._send(m.ResetBuzz())

    def score_answer(self, delta: int) -> dict[str, int] | None:
        """Judge the locked-in buzz; a no-op returning None when nobody buzzed."""
        self._require_controller()
        winner = self.state.buzz.winner
        if winner is None:
            return None
        scores = self.state.game.adjust_score(winner, delta)
        self._send(m.ScoreUpdate(scores=scores))
        self.reset_buzz()
        return scores

    # ------------------------------------------------------------------
    # chat, sounds, voice
    # ------------------------------------------------------------------

    def send_chat(self, text: str) -> None:
        if not self.is_connected:
            raise SessionError("Join the room before chatting")
        timestamp = max(self._clock(), self._last_chat_ts + 1)
        self._last_chat_ts = timestamp
        self.state.chat.add(self.display_name, text, timestamp)
        self._send(m.ChatMessage(name=self.display_name, text=text, timestamp=timestamp))

    def play_sound(self, sound: str) -> None:
        if not self.is_connected:
            raise SessionError("Join the room before playing sounds")
        self._send(m.PlaySound(sound=sound, sender=self.role))

    def stop_voice_answer(self) -> None:
        if self.voice is not None:
            self.voice.stop()

    # ------------------------------------------------------------------
    # incoming envelopes
    # ------------------------------------------------------------------

    def receive(self, payload: dict[str, Any]) -> None:
        message = m.parse_message(payload)
        if message is None or self.role is None:
            return
        if self.connection_state == "pending" and message.type not in ("player-approved", "player-rejected"):
            return
        try:
            self._handlers[message.type](message)
        except ValueError as exc:
            logger.debug("Dropping malformed %s envelope: %s", message.type, exc)

    def _on_join_request(self, message: m.PlayerJoinRequest) -> None:
        if not self.is_controller:
            return
        if self.state.roster.request(message.player, message.name):
            logger.info("%s requests to join as %s", message.name, message.player)
            self._observer("join-requested", {"role": message.player, "name": message.name})
        else:
            logger.info("Ignoring join request for occupied slot %s", message.player)

    def _on_approved(self, message: m.PlayerApproved) -> None:
        if message.player != self.role or self.connection_state != "pending":
            return
        self.connection_state = "connected"
        try:
            self._apply_snapshot(message.snapshot)
        except ValueError as exc:
            logger.warning("Ignoring malformed room snapshot: %s", exc)
        self.state.roster.mark_connected(self.role, self.display_name)
        self._observer("approved", {"role": self.role})

    def _on_rejected(self, message: m.PlayerRejected) -> None:
        if message.player != self.role or self.connection_state != "pending":
            return
        self._return_to_role_selection("rejected")

    def _on_player_join(self, message: m.PlayerJoin) -> None:
        self.state.roster.mark_connected(message.player, message.name)

    def _on_name_change(self, message: m.NameChange) -> None:
        self.state.roster.rename(message.player, message.name)
        if message.player == self.role:
            self.display_name = message.name

    def _on_buzz(self, message: m.Buzz) -> None:
        if not self.is_controller or not self.state.game.started:
            return
        roster = self.state.roster
        if not roster.is_connected(message.player):
            logger.debug("Ignoring buzz from unconnected %s", message.player)
            return
        contenders = roster.connected - {m.CONTROLLER}
        if not self.state.buzz.claim(message.player, contenders):
            return
        self.state.reveal.pause()
        self.narrator.stop()
        self.state.game.flipped = True
        self._send(m.BuzzResult(player=message.player, name=message.name, buzzed=True))
        self._send(m.PlaySound(sound="buzz", sender=m.CONTROLLER))
        self._observer("buzz", {"role": message.player, "name": message.name})

    def _on_buzz_result(self, message: m.BuzzResult) -> None:
        if self.is_controller or not message.buzzed:
            return
        contenders = self.state.roster.connected - {m.CONTROLLER}
        self.state.buzz.lock(message.player, contenders)
        self.state.reveal.pause()
        self.narrator.stop()
        self.buzz_enabled = False
        self._observer("buzz", {"role": message.player, "name": message.name})
        if message.player == self.role and self.voice is not None:
            self.voice.start(self.state.roster.connected)

    def _on_reset_buzz(self, message: m.ResetBuzz) -> None:
        self._reset_buzz_locally()

    def _on_score_update(self, message: m.ScoreUpdate) -> None:
        self.state.game.replace_scores(message.scores)

    def _on_quiz_load(self, message: m.QuizLoad) -> None:
        if self.is_controller:
            return
        self.state.game.load([Card.from_dict(card) for card in message.cards], message.title)
        self._clear_question()
        self.buzz_enabled = False

    def _on_start_quiz(self, message: m.StartQuiz) -> None:
        self._follow_controller(message.index, message.word_speed)

    def _on_next_question(self, message: m.NextQuestion) -> None:
        self._follow_controller(message.index, message.word_speed)

    def _on_play_sound(self, message: m.PlaySound) -> None:
        if message.sender == self.role:
            return
        self._observer("play-sound", {"sound": message.sound})

    def _on_chat(self, message: m.ChatMessage) -> None:
        if self.state.chat.add(message.name, message.text, message.timestamp):
            self._observer("chat", {"name": message.name, "text": message.text})

    def _on_voice_offer(self, message: m.WebRTCOffer) -> None:
        if self.voice is not None:
            self.voice.handle_offer(message)

    def _on_voice_answer(self, message: m.WebRTCAnswer) -> None:
        if self.voice is not None:
            self.voice.handle_answer(message)

    def _on_voice_candidate(self, message: m.WebRTCIceCandidate) -> None:
        if self.voice is not None:
            self.voice.handle_candidate(message)

    def _on_voice_stop(self, message: m.StopVoiceAnswer) -> None:
        if self.voice is not None:
            self.voice.handle_stop(message)

    def _on_evict(self, message: m.PlayerEvict) -> None:
        if message.player == self.role:
            self._send(m.PlayerLeave(player=self.role))
            self.connection_state = "evicted"
            self._return_to_role_selection("evicted")
            return
        self.state.roster.remove(message.player)

    def _on_leave(self, message: m.PlayerLeave) -> None:
        if message.player == self.role:
            return
        self.state.roster.remove(message.player)
        if self.is_controller and self.state.buzz.winner == message.player:
            self.reset_buzz()

    # ------------------------------------------------------------------
    # helpers
    # ------------------------------------------------------------------

    def summary(self) -> dict[str, Any]:
        return {
            "room": self.room.code,
            "mode": self.room.transport_kind,
            "role": self.role,
            "title": self.state.game.title,
            "cardCount": len(self.state.game.cards),
            **self.state.summary(),
        }

    def _assume_role(self, role: str, display_name: str) -> None:
        self.role = role
        self.display_name = display_name
        self.voice = VoiceSignaling(local_role=role, send=self._send, factory=self._voice_factory)

    def _return_to_role_selection(self, reason: str) -> None:
        role = self.role
        self.stop_voice_answer()
        self.narrator.stop()
        self.role = None
        self.voice = None
        self.buzz_enabled = False
        if reason != "evicted":
            self.connection_state = None
        self.state = build_initial_state(word_speed=self.state.game.word_speed)
        logger.info("Left room %s as %s (%s)", self.room.code, role, reason)
        self._observer(reason, {"role": role})

    def _follow_controller(self, index: int, word_speed: int) -> None:
        if self.is_controller:
            return
        game = self.state.game
        game.word_speed = word_speed
        if not game.apply_index(index):
            logger.debug("Ignoring out-of-range question index %s", index)
            return
        game.started = True
        self._show_current_card()

    def _show_current_card(self) -> None:
        self._clear_question()
        card = self.state.game.current_card
        if card is None:
            return
        self.state.reveal.begin(card.question_text, self.state.game.word_speed)
        if not self.is_controller:
            self.buzz_enabled = True

    def _narrate_if_enabled(self) -> None:
        if self.auto_read:
            self.read_aloud()

    def _clear_question(self) -> None:
        # A buzz that was never judged is discarded with its question.
        self.state.buzz.reset()
        self.state.reveal.stop()
        self.narrator.stop()
        self.stop_voice_answer()

    def _reset_buzz_locally(self) -> None:
        self.state.buzz.reset()
        self.state.reveal.resume()
        self.stop_voice_answer()
        if self.role is not None and not self.is_controller:
            self.buzz_enabled = self.state.game.started

    def _apply_snapshot(self, snapshot: dict[str, Any]) -> None:
        """Catch a late joiner up; a malformed snapshot raises before anything changes."""
        roster = snapshot.get("roster")
        raw_cards = snapshot.get("cards")
        cards = [Card.from_dict(card) for card in raw_cards] if isinstance(raw_cards, list) else None
        scores = snapshot.get("scores")
        if scores is not None and not isinstance(scores, dict):
            raise ValueError("Snapshot scores must be an object")
        scores = {str(slot): _as_int(value, "score") for slot, value in (scores or {}).items()}
        game = self.state.game
        word_speed = _as_int(snapshot.get("wordSpeed", game.word_speed), "wordSpeed")
        if word_speed <= 0:
            raise ValueError("wordSpeed must be positive")
        index = _as_int(snapshot.get("index", 0), "index")

        if isinstance(roster, dict):
            self.state.roster.load_snapshot(roster)
        if cards is not None:
            game.load(cards, str(snapshot.get("title", "")))
        game.replace_scores(scores)
        game.word_speed = word_speed
        if snapshot.get("started") and game.cards:
            game.apply_index(index)
            game.started = True
            self._show_current_card()

    def _snapshot(self) -> dict[str, Any]:
        return {"roster": self.state.roster.snapshot(), **self.state.game.snapshot()}

    def _require_controller(self) -> None:
        if not self.is_controller:
            raise SessionError("Only the controller can do that")

    def _require_player(self) -> None:
        if self.role is None or self.is_controller:
            raise SessionError("Only players can do that")

    def _send(self, envelope: m.Envelope) -> None:
        self.transport.send(envelope.to_wire())
