"""Peer audio session negotiation relayed over the room channel."""

from __future__ import annotations

import logging
from typing import Any, Callable, Iterable, Protocol

from .errors import NegotiationError
from .messages import Envelope, StopVoiceAnswer, WebRTCAnswer, WebRTCIceCandidate, WebRTCOffer

logger = logging.getLogger(__name__)

SessionKey = tuple[str, str]
CandidateCallback = Callable[[dict[str, Any]], None]


class PeerSession(Protocol):
    def create_offer(self) -> str:
        """Return the local offer description."""

    def accept_offer(self, sdp: str) -> str:
        """Apply a remote offer and return the local answer description."""

    def accept_answer(self, sdp: str) -> None:
        """Apply the remote answer to an offer created earlier."""

    def add_candidate(self, candidate: dict[str, Any]) -> None:
        """Add a remote network candidate."""

    def close(self) -> None:
        """Release audio capture and playback resources."""


# Called with the remote role and a callback for locally gathered candidates.
PeerSessionFactory = Callable[[str, CandidateCallback], PeerSession]


class VoiceSignaling:
    """Arena of peer sessions keyed by ``(from_role, to_role)``.

    Sessions are destroyed explicitly on stop or negotiation failure.
    """

    def __init__(
        self,
        local_role: str,
        send: Callable[[Envelope], None],
        factory: PeerSessionFactory | None = None,
    ) -> None:
        self.local_role = local_role
        self._send = send
        self._factory = factory
        self._sessions: dict[SessionKey, PeerSession] = {}

    @property
    def enabled(self) -> bool:
        return self._factory is not None

    @property
    def session_keys(self) -> set[SessionKey]:
        return set(self._sessions)

    @property
    def outgoing_peers(self) -> set[str]:
        return {to_role for from_role, to_role in self._sessions if from_role == self.local_role}

    def start(self, peers: Iterable[str]) -> int:
        """Offer a session to every peer; returns how many offers went out."""
        if self._factory is None:
            logger.info("Voice answer disabled: no peer session factory configured")
            return 0
        offered = 0
        for peer in sorted(set(peers)):
            if peer == self.local_role:
                continue
            key = (self.local_role, peer)
            self._discard(key)
            session = self._factory(peer, self._candidate_sender(peer))
            self._sessions[key] = session
            try:
                sdp = session.create_offer()
            except NegotiationError as exc:
                self._fail(key, exc)
                continue
            self._send(WebRTCOffer(sender=self.local_role, to=peer, sdp=sdp))
            offered += 1
        return offered

    def handle_offer(self, message: WebRTCOffer) -> None:
        if message.to != self.local_role:
            return
        if self._factory is None:
            logger.info("Ignoring voice offer from %s: voice disabled", message.sender)
            return
        key = (message.sender, self.local_role)
        self._discard(key)
        session = self._factory(message.sender, self._candidate_sender(message.sender))
        self._sessions[key] = session
        try:
            answer = session.accept_offer(message.sdp)
        except NegotiationError as exc:
            self._fail(key, exc)
            return
        self._send(WebRTCAnswer(sender=self.local_role, to=message.sender, sdp=answer))

    def handle_answer(self, message: WebRTCAnswer) -> None:
        if message.to != self.local_role:
            return
        key = (self.local_role, message.sender)
        session = self._sessions.get(key)
        if session is None:
            logger.debug("Answer from %s without a pending offer", message.sender)
            return
        try:
            session.accept_answer(message.sdp)
        except NegotiationError as exc:
            self._fail(key, exc)

    def handle_candidate(self, message: WebRTCIceCandidate) -> None:
        if message.to != self.local_role:
            return
        for key in ((self.local_role, message.sender), (message.sender, self.local_role)):
            session = self._sessions.get(key)
            if session is None:
                continue
            try:
                session.add_candidate(message.candidate)
            except NegotiationError as exc:
                self._fail(key, exc)
            return
        logger.debug("Candidate from %s without a session", message.sender)

    def handle_stop(self, message: StopVoiceAnswer) -> None:
        if message.sender == self.local_role:
            return
        self._discard((message.sender, self.local_role))
        self._discard((self.local_role, message.sender))

    def stop(self) -> bool:
        """Tear down every session; announce it when we were the offering side."""
        had_outgoing = bool(self.outgoing_peers)
        for key in list(self._sessions):
            self._discard(key)
        if had_outgoing:
            self._send(StopVoiceAnswer(sender=self.local_role))
        return had_outgoing

    def _candidate_sender(self, peer: str) -> CandidateCallback:
        def send_candidate(candidate: dict[str, Any]) -> None:
            self._send(WebRTCIceCandidate(sender=self.local_role, to=peer, candidate=candidate))

        return send_candidate

    def _discard(self, key: SessionKey) -> None:
        session = self._sessions.pop(key, None)
        if session is not None:
            session.close()

    def _fail(self, key: SessionKey, exc: NegotiationError) -> None:
        logger.warning("Voice negotiation %s -> %s failed: %s", key[0], key[1], exc)
        self._discard(key)
