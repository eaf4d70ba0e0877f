"""FastAPI relay for room broadcast channels plus speech and history endpoints."""

from __future__ import annotations

import json
import logging
from collections import defaultdict
from dataclasses import asdict
from typing import Any

import httpx
from fastapi import Depends, FastAPI, HTTPException, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field

from buzzquiz.session.room import InvalidRoomCode, generate_room_code, normalize_room_code

from .config import BackendSettings, load_settings
from .speech import GoogleSpeechClient, SpeechUpstreamError
from .store import HistoryStore, create_store

logger = logging.getLogger(__name__)


class CreateRoomResponse(BaseModel):
    room_code: str


class RoomStatusResponse(BaseModel):
    room_code: str
    subscribers: int


class TextToSpeechRequest(BaseModel):
    text: str = Field(min_length=1, max_length=5000)
    voiceName: str = "en-US-Neural2-F"
    languageCode: str = "en-US"
    speed: float = Field(default=1.0, gt=0, le=4)


class TextToSpeechResponse(BaseModel):
    audioContent: str
    voiceName: str
    languageCode: str


class SaveHistoryRequest(BaseModel):
    quizTitle: str = Field(default="", max_length=200)
    scores: dict[str, int]
    cardCount: int = Field(default=0, ge=0)


class HistoryRecordResponse(BaseModel):
    record_id: str
    room_code: str
    quiz_title: str
    card_count: int
    saved_at: str
    scores: dict[str, int]


class HistoryListResponse(BaseModel):
    records: list[HistoryRecordResponse]


class RoomRelayHub:
    """Fan-out of envelopes to every socket subscribed to a room, sender included."""

    def __init__(self) -> None:
        self._connections: dict[str, set[WebSocket]] = defaultdict(set)

    async def connect(self, room_code: str, websocket: WebSocket) -> None:
        await websocket.accept()
        self._connections[room_code].add(websocket)

    def disconnect(self, room_code: str, websocket: WebSocket) -> None:
        connections = self._connections.get(room_code)
        if connections is None:
            return
        connections.discard(websocket)
        if not connections:
            self._connections.pop(room_code, None)

    def subscriber_count(self, room_code: str) -> int:
        return len(self._connections.get(room_code, ()))

    async def broadcast(self, room_code: str, raw: str) -> None:
        stale_connections: list[WebSocket] = []
        for websocket in list(self._connections.get(room_code, set())):
            try:
                await websocket.send_text(raw)
            except (RuntimeError, WebSocketDisconnect):
                stale_connections.append(websocket)
        for websocket in stale_connections:
            self.disconnect(room_code=room_code, websocket=websocket)


def _room_code_or_400(room_code: str) -> str:
    try:
        return normalize_room_code(room_code)
    except InvalidRoomCode as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc


def _relayable(raw: str) -> bool:
    try:
        envelope: Any = json.loads(raw)
    except json.JSONDecodeError:
        return False
    return isinstance(envelope, dict) and isinstance(envelope.get("type"), str)


def create_app(
    store: HistoryStore | None = None,
    speech_client: GoogleSpeechClient | None = None,
    settings: BackendSettings | None = None,
) -> FastAPI:
    app = FastAPI(title="Buzzer Quiz Relay", version="0.1.0")
    local_settings = settings if settings is not None else load_settings()
    history_store = store if store is not None else create_store(local_settings.database_url)
    if speech_client is None and local_settings.tts_api_key:
        speech_client = GoogleSpeechClient(api_key=local_settings.tts_api_key)
    relay_hub = RoomRelayHub()
    app.state.relay_hub = relay_hub

    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(local_settings.cors_origins),
        allow_methods=["*"],
        allow_headers=["*"],
    )

    def get_store() -> HistoryStore:
        return history_store

    @app.post("/api/rooms", response_model=CreateRoomResponse)
    def create_room() -> CreateRoomResponse:
        return CreateRoomResponse(room_code=generate_room_code())

    @app.get("/api/rooms/{room_code}", response_model=RoomStatusResponse)
    def get_room(room_code: str) -> RoomStatusResponse:
        code = _room_code_or_400(room_code)
        return RoomStatusResponse(room_code=code, subscribers=relay_hub.subscriber_count(code))

    @app.post("/api/text-to-speech", response_model=TextToSpeechResponse)
    async def text_to_speech(payload: TextToSpeechRequest) -> TextToSpeechResponse:
        if speech_client is None:
            raise HTTPException(
                status_code=500,
                detail="Text-to-speech not configured. Set BUZZQUIZ_TTS_API_KEY to enable AI voices.",
            )
        try:
            audio = await speech_client.synthesize(
                text=payload.text,
                voice_name=payload.voiceName,
                language_code=payload.languageCode,
                speed=payload.speed,
            )
        except SpeechUpstreamError as exc:
            raise HTTPException(
                status_code=502,
                detail={"error": "Failed to generate speech", "details": exc.details},
            ) from exc
        except httpx.HTTPError as exc:
            logger.error("Text-to-speech provider unreachable: %s", exc)
            raise HTTPException(status_code=502, detail="Speech provider unreachable") from exc
        return TextToSpeechResponse(
            audioContent=audio,
            voiceName=payload.voiceName,
            languageCode=payload.languageCode,
        )

    @app.post("/api/rooms/{room_code}/history", response_model=HistoryRecordResponse)
    def save_history(
        room_code: str,
        payload: SaveHistoryRequest,
        local_store: HistoryStore = Depends(get_store),
    ) -> HistoryRecordResponse:
        code = _room_code_or_400(room_code)
        record = local_store.save(
            room_code=code,
            quiz_title=payload.quizTitle,
            scores=payload.scores,
            card_count=payload.cardCount,
        )
        return HistoryRecordResponse(**asdict(record))

    @app.get("/api/rooms/{room_code}/history", response_model=HistoryListResponse)
    def list_history(
        room_code: str,
        local_store: HistoryStore = Depends(get_store),
    ) -> HistoryListResponse:
        code = _room_code_or_400(room_code)
        records = local_store.list_for_room(room_code=code)
        return HistoryListResponse(records=[HistoryRecordResponse(**asdict(record)) for record in records])

    @app.websocket("/ws/rooms/{room_code}")
    async def room_ws(websocket: WebSocket, room_code: str) -> None:
        try:
            code = normalize_room_code(room_code)
        except InvalidRoomCode:
            await websocket.close(code=1008)
            return

        await relay_hub.connect(room_code=code, websocket=websocket)
        logger.info("Subscriber joined room %s (%d connected)", code, relay_hub.subscriber_count(code))

        try:
            while True:
                message = await websocket.receive()
                if message["type"] == "websocket.disconnect":
                    raise WebSocketDisconnect(code=message.get("code", 1000))
                raw = message.get("text")
                if raw is None or not _relayable(raw):
                    logger.debug("Dropping malformed frame in room %s", code)
                    continue
                await relay_hub.broadcast(room_code=code, raw=raw)
        except WebSocketDisconnect:
            logger.info("Subscriber left room %s", code)
        finally:
            relay_hub.disconnect(room_code=code, websocket=websocket)

    return app


app = create_app()
