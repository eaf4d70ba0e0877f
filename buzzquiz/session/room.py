"""Room codes and their association with a transport backend."""

from __future__ import annotations

import secrets
import string
from dataclasses import dataclass
from typing import Literal
from urllib.parse import parse_qs, urlencode, urlsplit

ROOM_CODE_LENGTH = 6
ROOM_CODE_ALPHABET = string.ascii_uppercase + string.digits
ROOM_QUERY_PARAM = "room"

TransportKind = Literal["local", "hosted"]


class InvalidRoomCode(ValueError):
    pass


@dataclass(frozen=True)
class Room:
    code: str
    transport_kind: TransportKind = "local"

    @property
    def channel_name(self) -> str:
        return f"buzzquiz-{self.code}"

    @property
    def mode_label(self) -> str:
        if self.transport_kind == "hosted":
            return "Connected via relay (multi-device)"
        return "Local mode (same device only)"


def generate_room_code(length: int = ROOM_CODE_LENGTH) -> str:
    """Generate a short, shareable upper-case alphanumeric room code."""
    return "".join(secrets.choice(ROOM_CODE_ALPHABET) for _ in range(length))


def normalize_room_code(raw: str) -> str:
    """Upper-case a user supplied code and reject anything non-alphanumeric."""
    code = raw.strip().upper()
    if not code or not code.isascii() or not code.isalnum():
        raise InvalidRoomCode(f"Invalid room code: {raw!r}")
    return code


def room_code_from_url(url: str) -> str | None:
    query = parse_qs(urlsplit(url).query)
    values = query.get(ROOM_QUERY_PARAM)
    if not values:
        return None
    return normalize_room_code(values[0])


def resolve_room_code(url: str = "") -> tuple[str, bool]:
    """Return the room code carried by ``url`` or a fresh one.

    The boolean is True when the code was generated, i.e. the caller is
    expected to host the room as controller and share the new URL.
    """
    code = room_code_from_url(url) if url else None
    if code is not None:
        return code, False
    return generate_room_code(), True


def build_room_url(base_url: str, code: str) -> str:
    parts = urlsplit(base_url)
    query = urlencode({ROOM_QUERY_PARAM: normalize_room_code(code)})
    return parts._replace(query=query, fragment="").geturl()
