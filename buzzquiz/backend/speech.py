"""Upstream client for the cloud text-to-speech provider."""

from __future__ import annotations

import logging
from typing import Any

import httpx

logger = logging.getLogger(__name__)

GOOGLE_TTS_URL = "https://texttospeech.googleapis.com/v1/text:synthesize"


class SpeechUpstreamError(RuntimeError):
    def __init__(self, status_code: int, details: Any) -> None:
        super().__init__(f"Speech provider returned {status_code}")
        self.status_code = status_code
        self.details = details


class GoogleSpeechClient:
    def __init__(
        self,
        api_key: str,
        client: httpx.AsyncClient | None = None,
        endpoint: str = GOOGLE_TTS_URL,
    ) -> None:
        self.api_key = api_key
        self.endpoint = endpoint
        self._client = client

    async def synthesize(self, text: str, voice_name: str, language_code: str, speed: float) -> str:
        """Return base64 MP3 audio for ``text``."""
        body = {
            "input": {"text": text},
            "voice": {"languageCode": language_code, "name": voice_name},
            "audioConfig": {
                "audioEncoding": "MP3",
                "speakingRate": speed,
                "pitch": 0,
                "volumeGainDb": 0,
            },
        }
        if self._client is not None:
            response = await self._client.post(self.endpoint, params={"key": self.api_key}, json=body)
        else:
            async with httpx.AsyncClient(timeout=10.0) as client:
                response = await client.post(self.endpoint, params={"key": self.api_key}, json=body)

        if response.status_code != 200:
            try:
                details: Any = response.json()
            except ValueError:
                details = response.text
            logger.error("Text-to-speech provider error %s: %s", response.status_code, details)
            raise SpeechUpstreamError(response.status_code, details)
        return response.json()["audioContent"]
