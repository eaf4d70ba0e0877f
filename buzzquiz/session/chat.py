"""Room chat log tolerant of self-echoing backends."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class ChatEntry:
    sender_name: str
    body: str
    timestamp: int


class ChatLog:
    def __init__(self, limit: int = 200) -> None:
        self.limit = limit
        self._entries: list[ChatEntry] = []
        self._seen: set[tuple[str, int]] = set()

    @property
    def entries(self) -> list[ChatEntry]:
        return list(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def add(self, sender_name: str, body: str, timestamp: int) -> bool:
        """Record a message once per (sender, timestamp); returns False for repeats."""
        key = (sender_name, timestamp)
        if key in self._seen:
            return False
        self._seen.add(key)
        self._entries.append(ChatEntry(sender_name=sender_name, body=body, timestamp=timestamp))
        if len(self._entries) > self.limit:
            dropped = self._entries[: len(self._entries) - self.limit]
            self._entries = self._entries[-self.limit:]
            for entry in dropped:
                self._seen.discard((entry.sender_name, entry.timestamp))
        return True
