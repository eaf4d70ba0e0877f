from typing import Any

import httpx
import pytest

from buzzquiz.session.client import SessionClient
from buzzquiz.session.config import ClientSettings
from buzzquiz.session.errors import SessionError
from buzzquiz.session.messages import Buzz
from buzzquiz.session.room import Room
from buzzquiz.session.speech import HttpSpeechProvider, Narrator
from buzzquiz.session.transport import LocalHub, LocalTransport

ROOM = "AB12K9"

QUIZ = {
    "title": "Pub Night",
    "rounds": [
        {
            "round_number": 1,
            "round_name": "Warm up",
            "players": [
                {
                    "player_number": 1,
                    "questions": [
                        {"question_number": 1, "question_text": "Capital of France?", "answer": "Paris"},
                        {"question_number": 2, "question_text": "Largest planet?", "answer": "Jupiter"},
                        {"question_number": 3, "question_text": "Boiling point of water?", "answer": "100C"},
                    ],
                }
            ],
        }
    ],
}


class Recorder:
    def __init__(self) -> None:
        self.events: list[tuple[str, dict[str, Any]]] = []

    def __call__(self, event: str, payload: dict[str, Any]) -> None:
        self.events.append((event, payload))

    def names(self) -> list[str]:
        return [event for event, _ in self.events]


class SpyTransport:
    kind = "local"

    def __init__(self) -> None:
        self.room = Room(code=ROOM)
        self.sent: list[dict[str, Any]] = []

    def send(self, envelope: dict[str, Any]) -> None:
        self.sent.append(envelope)

    def on_message(self, handler) -> None:
        self.handler = handler

    def close(self) -> None:
        return None


class FakePeer:
    def __init__(self, remote: str, on_candidate) -> None:
        self.remote = remote
        self.closed = False

    def create_offer(self) -> str:
        return "offer"

    def accept_offer(self, sdp: str) -> str:
        return "answer"

    def accept_answer(self, sdp: str) -> None:
        return None

    def add_candidate(self, candidate: dict[str, Any]) -> None:
        return None

    def close(self) -> None:
        self.closed = True


def _client(hub: LocalHub, **kwargs) -> SessionClient:
    return SessionClient(LocalTransport(ROOM, hub=hub), **kwargs)


def _join(controller: SessionClient, hub: LocalHub, role: str, name: str, **kwargs) -> SessionClient:
    player = _client(hub, **kwargs)
    player.request_join(role, name)
    controller.approve(role)
    return player


@pytest.fixture(params=[False, True], ids=["no-echo", "echo"])
def hub(request) -> LocalHub:
    return LocalHub(self_delivery=request.param)


def test_full_round_keeps_every_participant_in_sync(hub: LocalHub) -> None:
    controller_events = Recorder()
    bea_events = Recorder()
    controller = _client(hub, observer=controller_events)
    controller.host("Host")

    ann = _client(hub)
    ann.request_join("player1", "Ann")
    assert ann.connection_state == "pending"
    assert controller.pending_requests() == [("player1", "Ann")]
    assert controller_events.events == [("join-requested", {"role": "player1", "name": "Ann"})]

    controller.approve("player1")
    bea = _join(controller, hub, "player2", "Bea", observer=bea_events)

    assert ann.is_connected and bea.is_connected
    for client in (controller, ann, bea):
        assert client.state.roster.connected == frozenset({"controller", "player1", "player2"})

    assert controller.load_quiz(QUIZ) is True
    assert [card.answer for card in ann.state.game.cards] == ["Paris", "Jupiter", "100C"]
    assert controller.start() is True
    for client in (controller, ann, bea):
        assert client.state.game.started is True
        assert client.state.game.current_index == 0
    assert ann.buzz_enabled and bea.buzz_enabled

    assert ann.buzz() is True
    assert bea.buzz() is False
    for client in (controller, ann, bea):
        assert client.state.buzz.winner == "player1"
    assert controller.state.game.flipped is True
    assert controller.state.reveal.paused is True
    assert ("play-sound", {"sound": "buzz"}) in bea_events.events

    controller.score_answer(1)
    for client in (controller, ann, bea):
        assert client.state.game.scores["player1"] == 1
        assert client.state.buzz.winner is None
    assert ann.buzz_enabled is True

    assert controller.next_card() is True
    for client in (controller, ann, bea):
        assert client.state.game.current_index == 1
        assert client.state.game.current_card.answer == "Jupiter"

    summary = controller.summary()
    assert summary["room"] == ROOM
    assert summary["mode"] == "local"
    assert summary["title"] == "Pub Night"
    assert summary["cardCount"] == 3


def test_late_joiner_receives_snapshot(hub: LocalHub) -> None:
    controller = _client(hub)
    controller.host()
    ann = _join(controller, hub, "player1", "Ann")
    controller.load_quiz(QUIZ)
    controller.start()
    controller.next_card()
    ann.buzz()
    controller.score_answer(-1)

    cy = _join(controller, hub, "player3", "Cy")

    assert cy.state.game.started is True
    assert cy.state.game.current_index == 1
    assert len(cy.state.game.cards) == 3
    assert cy.state.game.scores["player1"] == -1
    assert cy.state.roster.connected == frozenset({"controller", "player1", "player3"})
    assert cy.buzz_enabled is True


def test_rejected_player_returns_to_role_selection(hub: LocalHub) -> None:
    controller = _client(hub)
    controller.host()
    events = Recorder()
    bea = _client(hub, observer=events)
    bea.request_join("player2", "Bea")

    controller.reject("player2")

    assert bea.role is None
    assert events.names() == ["rejected"]
    assert controller.state.roster.is_empty("player2")


def test_join_without_controller_stays_pending(hub: LocalHub) -> None:
    ann = _client(hub)

    ann.request_join("player1", "Ann")

    assert ann.role == "player1"
    assert ann.connection_state == "pending"
    assert ann.is_connected is False


def test_request_for_occupied_slot_is_ignored(hub: LocalHub) -> None:
    controller = _client(hub)
    controller.host()
    _join(controller, hub, "player1", "Ann")
    impostor = _client(hub)

    impostor.request_join("player1", "Impostor")

    assert controller.pending_requests() == []
    assert impostor.connection_state == "pending"
    assert controller.state.roster.name_of("player1") == "Ann"


def test_evict_requires_confirmation(hub: LocalHub) -> None:
    controller = _client(hub)
    controller.host()
    ann = _join(controller, hub, "player1", "Ann")
    bea_events = Recorder()
    bea = _join(controller, hub, "player2", "Bea", observer=bea_events)
    prompts: list[str] = []

    def decline(prompt: str) -> bool:
        prompts.append(prompt)
        return False

    assert controller.evict("player2", confirm=decline) is False
    assert prompts == ["Remove Bea from the room?"]
    assert bea.is_connected

    assert controller.evict("player2", confirm=lambda prompt: True) is True

    assert bea.role is None
    assert bea.connection_state == "evicted"
    assert "evicted" in bea_events.names()
    assert controller.state.roster.connected == frozenset({"controller", "player1"})
    assert ann.state.roster.connected == frozenset({"controller", "player1"})


def test_evicting_buzz_winner_reopens_question(hub: LocalHub) -> None:
    controller = _client(hub)
    controller.host()
    ann = _join(controller, hub, "player1", "Ann")
    bea = _join(controller, hub, "player2", "Bea")
    controller.load_quiz(QUIZ)
    controller.start()
    bea.buzz()

    controller.evict("player2", confirm=lambda prompt: True)

    assert controller.state.buzz.winner is None
    assert ann.state.buzz.winner is None
    assert ann.buzz_enabled is True


def test_leave_removes_player_everywhere(hub: LocalHub) -> None:
    controller = _client(hub)
    controller.host()
    ann = _join(controller, hub, "player1", "Ann")
    bea = _join(controller, hub, "player2", "Bea")

    bea.leave()

    assert bea.role is None
    assert controller.state.roster.connected == frozenset({"controller", "player1"})
    assert ann.state.roster.connected == frozenset({"controller", "player1"})


def test_only_first_buzz_is_honoured(hub: LocalHub) -> None:
    controller = _client(hub)
    controller.host()
    ann = _join(controller, hub, "player1", "Ann")
    _join(controller, hub, "player2", "Bea")
    controller.load_quiz(QUIZ)
    controller.start()

    ann.buzz()
    controller.receive(Buzz(player="player2", name="Bea").to_wire())

    assert controller.state.buzz.winner == "player1"
    assert "player2" in controller.state.buzz.locked_out


def test_buzz_before_start_is_ignored(hub: LocalHub) -> None:
    controller = _client(hub)
    controller.host()
    ann = _join(controller, hub, "player1", "Ann")
    controller.load_quiz(QUIZ)

    assert ann.buzz() is False
    controller.receive(Buzz(player="player1", name="Ann").to_wire())

    assert controller.state.buzz.winner is None


def test_reset_buzz_is_idempotent(hub: LocalHub) -> None:
    controller = _client(hub)
    controller.host()
    ann = _join(controller, hub, "player1", "Ann")
    controller.load_quiz(QUIZ)
    controller.start()
    ann.buzz()

    controller.reset_buzz()
    controller.reset_buzz()

    assert controller.state.buzz.winner is None
    assert ann.state.buzz.winner is None
    assert ann.buzz_enabled is True
    assert controller.score_answer(1) is None


def test_chat_is_recorded_once_per_participant(hub: LocalHub) -> None:
    controller = _client(hub)
    controller.host()
    ann = _join(controller, hub, "player1", "Ann", clock=lambda: 1000)
    bea_events = Recorder()
    bea = _join(controller, hub, "player2", "Bea", observer=bea_events)

    ann.send_chat("hello")
    ann.send_chat("again")

    assert [entry.timestamp for entry in ann.state.chat.entries] == [1000, 1001]
    for client in (controller, ann, bea):
        assert [entry.body for entry in client.state.chat.entries] == ["hello", "again"]
    assert bea_events.names().count("chat") == 2


def test_rename_propagates(hub: LocalHub) -> None:
    controller = _client(hub)
    controller.host()
    ann = _join(controller, hub, "player1", "Ann")

    ann.rename("Annie")

    assert controller.state.roster.name_of("player1") == "Annie"
    assert ann.display_name == "Annie"


def test_voice_answer_mesh_is_torn_down_on_reset(hub: LocalHub) -> None:
    peers: list[FakePeer] = []

    def factory(remote: str, on_candidate) -> FakePeer:
        peer = FakePeer(remote, on_candidate)
        peers.append(peer)
        return peer

    controller = _client(hub, voice_factory=factory)
    controller.host()
    ann = _join(controller, hub, "player1", "Ann", voice_factory=factory)
    bea = _join(controller, hub, "player2", "Bea", voice_factory=factory)
    controller.load_quiz(QUIZ)
    controller.start()

    ann.buzz()

    assert ann.voice.outgoing_peers == {"controller", "player2"}
    assert controller.voice.session_keys == {("player1", "controller")}
    assert bea.voice.session_keys == {("player1", "player2")}

    controller.reset_buzz()

    for client in (controller, ann, bea):
        assert client.voice.session_keys == set()
    assert peers and all(peer.closed for peer in peers)


def test_navigation_at_the_ends_broadcasts_nothing() -> None:
    transport = SpyTransport()
    controller = SessionClient(transport)
    controller.host()
    controller.load_quiz(QUIZ)
    controller.start()
    transport.sent.clear()

    assert controller.previous_card() is False
    controller.next_card()
    controller.next_card()
    transport.sent.clear()
    assert controller.next_card() is False

    assert transport.sent == []
    assert controller.state.game.current_index == 2


def test_malformed_quiz_surfaces_error_and_keeps_state() -> None:
    transport = SpyTransport()
    events = Recorder()
    controller = SessionClient(transport, observer=events)
    controller.host()
    controller.load_quiz(QUIZ)

    assert controller.load_quiz({"rounds": [{"players": [{}]}]}) is False

    assert controller.error is not None and controller.error.startswith("Failed to load quiz data")
    assert events.names() == ["error"]
    assert len(controller.state.game.cards) == 3


def test_role_checks_on_local_actions() -> None:
    controller = SessionClient(SpyTransport())
    player = SessionClient(SpyTransport())
    controller.host()
    player.request_join("player1", "Ann")

    with pytest.raises(SessionError):
        player.start()
    with pytest.raises(SessionError):
        controller.buzz()
    with pytest.raises(SessionError):
        controller.host()
    with pytest.raises(SessionError):
        player.send_chat("not yet")


def test_clients_without_role_ignore_traffic(hub: LocalHub) -> None:
    controller = _client(hub)
    observer = _client(hub)
    controller.host()

    controller.load_quiz(QUIZ)
    controller.start()

    assert observer.state.game.cards == []
    assert observer.state.game.started is False


def test_controller_tools_flip_pace_and_read_aloud() -> None:
    spoken: list[str] = []
    narrator = Narrator(speak_on_device=lambda text, speed: spoken.append(text))
    transport = SpyTransport()
    controller = SessionClient(transport, narrator=narrator)
    controller.host()
    controller.load_quiz(QUIZ)
    controller.set_word_speed(150)
    controller.start()

    assert controller.flip() is True
    assert controller.flip() is False
    controller.read_aloud()

    assert spoken == ["Capital of France?"]
    assert transport.sent[-1] == {"type": "start-quiz", "index": 0, "wordSpeed": 150}
    with pytest.raises(ValueError):
        controller.set_word_speed(0)


def test_play_sound_reaches_other_participants(hub: LocalHub) -> None:
    controller_events = Recorder()
    controller = _client(hub, observer=controller_events)
    controller.host()
    ann_events = Recorder()
    ann = _join(controller, hub, "player1", "Ann", observer=ann_events)

    ann.play_sound("applause")

    assert ("play-sound", {"sound": "applause"}) in controller_events.events
    assert "play-sound" not in ann_events.names()


def test_save_history_posts_summary_when_api_configured() -> None:
    requests: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(200, json={})

    settings = ClientSettings(
        relay_url=None, api_url="http://api.test", word_speed=200, voice_speed=1.2, ai_voice="en-US-Neural2-F"
    )
    controller = SessionClient(SpyTransport(), settings=settings, narrator=Narrator())
    controller.host()
    controller.load_quiz(QUIZ)

    assert controller.save_history(http=httpx.Client(transport=httpx.MockTransport(handler))) is True
    assert str(requests[0].url) == "http://api.test/api/rooms/AB12K9/history"


def test_quiz_with_mistyped_translations_surfaces_error() -> None:
    controller = SessionClient(SpyTransport())
    controller.host()
    quiz = {
        "rounds": [
            {
                "round_number": 1,
                "players": [
                    {
                        "player_number": 1,
                        "questions": [
                            {"question_number": 1, "question_text": "Q", "answer": "A", "translations": ["fr"]}
                        ],
                    }
                ],
            }
        ]
    }

    assert controller.load_quiz(quiz) is False
    assert controller.error is not None and controller.error.startswith("Failed to load quiz data")


def test_player_drops_quiz_load_with_bad_cards(hub: LocalHub) -> None:
    controller = _client(hub)
    controller.host()
    ann = _join(controller, hub, "player1", "Ann")
    controller.load_quiz(QUIZ)

    ann.receive({"type": "quiz-load", "title": "Broken", "cards": [{"question_text": "q", "accept": 5}]})

    assert ann.state.game.title == "Pub Night"
    assert len(ann.state.game.cards) == 3


def test_malformed_snapshot_still_connects_player() -> None:
    player = SessionClient(SpyTransport())
    player.request_join("player1", "Ann")

    player.receive(
        {
            "type": "player-approved",
            "player": "player1",
            "name": "Ann",
            "snapshot": {"cards": [], "index": "x", "started": True, "wordSpeed": 200},
        }
    )

    assert player.is_connected
    assert player.state.game.started is False
    assert player.state.game.cards == []


def test_navigation_broadcasts_even_when_ai_voice_misbehaves(hub: LocalHub) -> None:
    provider = HttpSpeechProvider(
        "http://api.test",
        client=httpx.Client(transport=httpx.MockTransport(lambda request: httpx.Response(200, text="<html>"))),
    )
    narrator = Narrator(provider=provider)
    controller = _client(hub, narrator=narrator)
    controller.host()
    controller.auto_read = True
    ann = _join(controller, hub, "player1", "Ann")
    controller.load_quiz(QUIZ)
    controller.start()

    assert controller.next_card() is True

    assert ann.state.game.current_index == controller.state.game.current_index == 1
    assert narrator.last_source == "device"


def test_pending_slot_cannot_be_evicted(hub: LocalHub) -> None:
    controller = _client(hub)
    controller.host()
    bea = _client(hub)
    bea.request_join("player2", "Bea")

    with pytest.raises(SessionError):
        controller.evict("player2", confirm=lambda prompt: True)

    controller.reject("player2")
    assert bea.role is None
