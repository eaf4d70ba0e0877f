"""Participant-side session layer for buzzer quiz rooms."""

from .client import SessionClient
from .config import ClientSettings, load_client_settings
from .errors import NegotiationError, SessionError, SpeechProviderError
from .room import Room, generate_room_code, normalize_room_code, resolve_room_code
from .transport import HostedTransport, LocalHub, LocalTransport, connect_transport, create_transport

__all__ = [
    "ClientSettings",
    "connect_transport",
    "create_transport",
    "generate_room_code",
    "HostedTransport",
    "load_client_settings",
    "LocalHub",
    "LocalTransport",
    "NegotiationError",
    "normalize_room_code",
    "resolve_room_code",
    "Room",
    "SessionClient",
    "SessionError",
    "SpeechProviderError",
]
