"""Exceptions raised by the session layer."""

from __future__ import annotations


class SessionError(RuntimeError):
    """A local call that the participant's role or state does not allow."""


class NegotiationError(RuntimeError):
    """A peer audio session could not be negotiated."""


class SpeechProviderError(RuntimeError):
    """The speech-synthesis provider did not return audio."""
