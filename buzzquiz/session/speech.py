"""Question narration through the speech provider with on-device fallback."""

from __future__ import annotations

import base64
import binascii
import logging
from typing import Callable, Literal, Protocol

import httpx

from .errors import SpeechProviderError
from .quiz import normalize_text

logger = logging.getLogger(__name__)

DEFAULT_AI_VOICE = "en-US-Neural2-F"
DEFAULT_VOICE_SPEED = 1.2

SpeechSource = Literal["provider", "cache", "device"]
CacheKey = tuple[str, float, str]


class SpeechProvider(Protocol):
    def synthesize(self, text: str, voice_name: str, language_code: str, speed: float) -> bytes:
        """Return encoded audio or raise SpeechProviderError."""


class HttpSpeechProvider:
    """Client for the backend's ``/api/text-to-speech`` proxy."""

    def __init__(self, api_url: str, client: httpx.Client | None = None, timeout: float = 10.0) -> None:
        self.endpoint = f"{api_url.rstrip('/')}/api/text-to-speech"
        self._client = client if client is not None else httpx.Client(timeout=timeout)

    def synthesize(self, text: str, voice_name: str, language_code: str, speed: float) -> bytes:
        try:
            response = self._client.post(
                self.endpoint,
                json={"text": text, "voiceName": voice_name, "languageCode": language_code, "speed": speed},
            )
        except httpx.HTTPError as exc:
            raise SpeechProviderError(f"Speech provider unreachable: {exc}") from exc

        if response.status_code != 200:
            raise SpeechProviderError(f"Speech provider returned {response.status_code}: {response.text}")
        try:
            data = response.json()
        except ValueError as exc:
            raise SpeechProviderError("Speech provider returned a non-JSON body") from exc
        audio = data.get("audioContent") if isinstance(data, dict) else None
        if not isinstance(audio, str) or not audio:
            raise SpeechProviderError("Speech provider response has no audioContent")
        try:
            return base64.b64decode(audio, validate=True)
        except binascii.Error as exc:
            raise SpeechProviderError("Speech provider returned invalid base64 audio") from exc


def _ignore_audio(audio: bytes) -> None:
    return None


def _ignore_device(text: str, speed: float) -> None:
    return None


class Narrator:
    """Reads question text aloud.

    Provider audio is cached per ``(voice, speed, text)``; any provider
    failure falls back to the device's own synthesis.
    """

    def __init__(
        self,
        provider: SpeechProvider | None = None,
        voice_name: str = DEFAULT_AI_VOICE,
        speed: float = DEFAULT_VOICE_SPEED,
        play_audio: Callable[[bytes], None] = _ignore_audio,
        speak_on_device: Callable[[str, float], None] = _ignore_device,
    ) -> None:
        self.provider = provider
        self.voice_name = voice_name
        self.speed = speed
        self._play_audio = play_audio
        self._speak_on_device = speak_on_device
        self._cache: dict[CacheKey, bytes] = {}
        self.speaking = False
        self.last_source: SpeechSource | None = None

    @property
    def language_code(self) -> str:
        return self.voice_name[:5]

    @property
    def cached_count(self) -> int:
        return len(self._cache)

    def speak(self, text: str) -> SpeechSource:
        self.stop()
        text = normalize_text(text)
        self.speaking = True
        if self.provider is None:
            return self._device(text)

        key = (self.voice_name, self.speed, text)
        cached = self._cache.get(key)
        if cached is not None:
            self._play_audio(cached)
            self.last_source = "cache"
            return "cache"

        try:
            audio = self.provider.synthesize(text, self.voice_name, self.language_code, self.speed)
        except SpeechProviderError as exc:
            logger.warning("AI voice unavailable, using device voice: %s", exc)
            return self._device(text)
        self._cache[key] = audio
        self._play_audio(audio)
        self.last_source = "provider"
        return "provider"

    def stop(self) -> None:
        self.speaking = False

    def _device(self, text: str) -> SpeechSource:
        self._speak_on_device(text, self.speed)
        self.last_source = "device"
        return "device"
