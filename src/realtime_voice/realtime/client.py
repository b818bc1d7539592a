"""WebSocket client for the realtime conversational API."""

from __future__ import annotations

import asyncio
import binascii
import logging
from dataclasses import dataclass, field
from enum import Enum, auto
from typing import Callable, Dict, List, Optional, Protocol

import websockets
from pydantic import BaseModel, ValidationError

from ..audio.codec import from_base64
from ..audio.input.types import Utterance
from ..config.settings import DEFAULT_INSTRUCTIONS, DEFAULT_REALTIME_URL
from ..core.errors import ConnectionFailedError, NotConnectedError
from ..core.events import EventEmitter, SessionEvent
from .schemas import (
    ConversationItemCreate,
    ResponseCancel,
    ResponseCreate,
    ResponseOptions,
    ServerEvent,
    ServerEventType,
)

logger = logging.getLogger("RealtimeClient")


class ConnectionState(Enum):
    DISCONNECTED = auto()
    CONNECTING = auto()
    OPEN = auto()
    CLOSING = auto()


class AudioPlayback(Protocol):
    """What the client needs from the playback pipeline."""

    def enqueue_chunk(self, pcm16: bytes) -> None: ...

    def is_playing(self) -> bool: ...


@dataclass
class ResponseSession:
    """Client-side view of one server response, from response.created to response.done."""
    in_progress: bool = True
    done_received: bool = False
    transcript_parts: List[str] = field(default_factory=list)

    @property
    def transcript(self) -> str:
        return "".join(self.transcript_parts)


class RealtimeClient:
    """
    Owns the duplex connection: sends utterances and cancellations, receives typed
    server events and routes them through a dispatch table.

    Inbound audio goes to `playback`; everything else is raised on `events`.
    """

    def __init__(
        self,
        api_key: str,
        url: str = DEFAULT_REALTIME_URL,
        instructions: str = DEFAULT_INSTRUCTIONS,
        playback: Optional[AudioPlayback] = None,
    ):
        self._api_key = api_key
        self._url = url
        self._instructions = instructions
        self._playback = playback
        self.events: EventEmitter[SessionEvent] = EventEmitter("RealtimeClient")

        self._state = ConnectionState.DISCONNECTED
        self._ws: Optional[websockets.ClientConnection] = None
        self._receive_task: Optional[asyncio.Task] = None
        self._send_lock = asyncio.Lock()
        self._response: Optional[ResponseSession] = None

        self._handlers: Dict[str, Callable[[ServerEvent], None]] = {
            ServerEventType.AUDIO_DELTA.value: self._on_audio_delta,
            ServerEventType.TRANSCRIPT_DELTA.value: self._on_transcript_delta,
            ServerEventType.RESPONSE_CREATED.value: self._on_response_created,
            ServerEventType.RESPONSE_DONE.value: self._on_response_done,
            ServerEventType.ERROR.value: self._on_error,
            ServerEventType.SESSION_CREATED.value: self._notify(SessionEvent.SESSION_CREATED),
            ServerEventType.ITEM_CREATED.value: self._notify(SessionEvent.ITEM_CREATED),
            ServerEventType.AUDIO_DONE.value: self._notify(SessionEvent.AUDIO_DONE),
            ServerEventType.TRANSCRIPT_DONE.value: self._notify(SessionEvent.TRANSCRIPT_DONE),
            ServerEventType.CONTENT_PART_ADDED.value: self._notify(SessionEvent.CONTENT_PART_ADDED),
            ServerEventType.CONTENT_PART_DONE.value: self._notify(SessionEvent.CONTENT_PART_DONE),
            ServerEventType.OUTPUT_ITEM_ADDED.value: self._notify(SessionEvent.OUTPUT_ITEM_ADDED),
            ServerEventType.OUTPUT_ITEM_DONE.value: self._notify(SessionEvent.OUTPUT_ITEM_DONE),
            ServerEventType.RATE_LIMITS_UPDATED.value: self._notify(SessionEvent.RATE_LIMITS_UPDATED),
        }

    # -- state ---------------------------------------------------------------

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def is_connected(self) -> bool:
        return self._state is ConnectionState.OPEN and self._ws is not None

    @property
    def response_in_progress(self) -> bool:
        return self._response is not None and self._response.in_progress

    @property
    def transcript(self) -> str:
        """Transcript accumulated for the most recent response."""
        return self._response.transcript if self._response else ""

    @property
    def receive_task(self) -> Optional[asyncio.Task]:
        return self._receive_task

    # -- connection ----------------------------------------------------------

    async def connect(self) -> None:
        """Open the connection and start the receive loop. Raises ConnectionFailedError."""
        if self._state is not ConnectionState.DISCONNECTED:
            logger.warning("connect() ignored in state %s", self._state.name)
            return
        self._state = ConnectionState.CONNECTING
        headers = {
            "Authorization": f"Bearer {self._api_key}",
            "OpenAI-Beta": "realtime=v1",
        }
        try:
            ws = await websockets.connect(self._url, additional_headers=headers)
        except (OSError, asyncio.TimeoutError, websockets.WebSocketException) as e:
            self._state = ConnectionState.DISCONNECTED
            logger.error("Connection to %s failed: %s", self._url, e)
            self.events.emit(SessionEvent.CONNECTION_FAILED, str(e))
            raise ConnectionFailedError(str(e)) from e

        self._ws = ws
        self._response = None
        self._state = ConnectionState.OPEN
        logger.info("Connected to %s", self._url)
        self.events.emit(SessionEvent.CONNECTED)
        self._receive_task = asyncio.create_task(self.receive_loop())

    async def disconnect(self) -> None:
        """Close the connection (flushing a close frame first) and stop the receive loop."""
        ws = self._ws
        if ws is None or self._state is not ConnectionState.OPEN:
            return
        self._state = ConnectionState.CLOSING
        await self._close_socket(ws)

        task = self._receive_task
        if task is not None and task is not asyncio.current_task():
            if not task.done():
                task.cancel()
            await asyncio.wait({task})
        self._connection_closed(ws)

    async def _close_socket(self, ws: websockets.ClientConnection) -> None:
        try:
            await ws.close()
        except (OSError, websockets.WebSocketException) as e:
            logger.warning("Error while closing connection: %s", e)

    def _connection_closed(self, ws: websockets.ClientConnection) -> None:
        if self._ws is not ws:
            return
        self._ws = None
        self._receive_task = None
        self._response = None
        self._state = ConnectionState.DISCONNECTED
        logger.info("Disconnected")
        self.events.emit(SessionEvent.CLOSED)

    # -- outbound ------------------------------------------------------------

    async def _send(self, ws: websockets.ClientConnection, message: BaseModel) -> None:
        await ws.send(message.model_dump_json())

    async def _send_cancel(self, ws: websockets.ClientConnection) -> None:
        await self._send(ws, ResponseCancel())
        if self._response is not None:
            # no acknowledgment is awaited; the server may still send response.done
            self._response.in_progress = False
        logger.info("Response cancel sent")
        self.events.emit(SessionEvent.RESPONSE_CANCELLED)

    async def send_utterance(self, utterance: Utterance) -> None:
        """
        Submit one utterance: cancel the active response if there is one, then send
        conversation.item.create followed by response.create on the same connection.

        Raises NotConnectedError if the connection is not open, or closes mid-send.
        """
        async with self._send_lock:
            ws = self._ws
            if ws is None or self._state is not ConnectionState.OPEN:
                raise NotConnectedError("Cannot send utterance: not connected")
            try:
                if self.response_in_progress:
                    await self._send_cancel(ws)
                await self._send(ws, ConversationItemCreate.from_audio(utterance.audio_base64))
                await self._send(ws, ResponseCreate(response=ResponseOptions(instructions=self._instructions)))
            except websockets.ConnectionClosed as e:
                raise NotConnectedError(f"Connection closed while sending utterance: {e}") from e
            logger.info("Utterance sent (%.2fs)", utterance.duration_s)

    async def cancel(self) -> None:
        """Cancel the active response. No-op when none is active or the connection is not open."""
        async with self._send_lock:
            ws = self._ws
            if ws is None or self._state is not ConnectionState.OPEN or not self.response_in_progress:
                return
            try:
                await self._send_cancel(ws)
            except websockets.ConnectionClosed as e:
                logger.warning("Connection closed while sending cancel: %s", e)

    def playback_drained(self) -> None:
        """Clear the in-progress flag of a response whose response.done arrived while audio was still playing."""
        if self._response is not None and self._response.done_received:
            self._response.in_progress = False

    # -- inbound -------------------------------------------------------------

    async def receive_loop(self) -> None:
        """Main receive loop - run as asyncio task. Ends when the connection closes."""
        ws = self._ws
        if ws is None:
            return
        try:
            async for message in ws:
                self.handle_message(message)
        except websockets.ConnectionClosed as e:
            logger.info("WebSocket connection closed: %s", e)
        except Exception as e:
            logger.exception("WebSocket receive error: %s", e)
            if self._state is not ConnectionState.CLOSING:
                await self._close_socket(ws)
        finally:
            if self._state is not ConnectionState.CLOSING:
                self._connection_closed(ws)

    def handle_message(self, message) -> None:
        """Parse one complete frame and dispatch it. Malformed frames are logged and dropped."""
        if isinstance(message, bytes):
            logger.debug("Ignoring binary frame (%d bytes)", len(message))
            return
        try:
            event = ServerEvent.model_validate_json(message)
        except ValidationError as e:
            logger.warning("Dropping malformed message: %s", e)
            return
        handler = self._handlers.get(event.type)
        if handler is None:
            logger.debug("Unhandled event type: %s", event.type)
            return
        try:
            handler(event)
        except (binascii.Error, ValueError) as e:
            logger.warning("Dropping %s with bad payload: %s", event.type, e)

    def _notify(self, kind: SessionEvent) -> Callable[[ServerEvent], None]:
        def handler(event: ServerEvent) -> None:
            self.events.emit(kind)
        return handler

    def _on_audio_delta(self, event: ServerEvent) -> None:
        if not event.delta:
            return
        pcm16 = from_base64(event.delta)
        if self._playback is not None:
            self._playback.enqueue_chunk(pcm16)

    def _on_transcript_delta(self, event: ServerEvent) -> None:
        text = event.delta or ""
        if self._response is not None:
            self._response.transcript_parts.append(text)
        self.events.emit(SessionEvent.TRANSCRIPT_DELTA, text)

    def _on_response_created(self, event: ServerEvent) -> None:
        self._response = ResponseSession()
        logger.info("Response created")
        self.events.emit(SessionEvent.RESPONSE_CREATED)

    def _on_response_done(self, event: ServerEvent) -> None:
        if self._response is not None:
            self._response.done_received = True
            playing = self._playback is not None and self._playback.is_playing()
            if not playing:
                self._response.in_progress = False
        logger.info("Response done")
        self.events.emit(SessionEvent.RESPONSE_DONE)

    def _on_error(self, event: ServerEvent) -> None:
        message = event.error.message if event.error else ""
        logger.warning("Server error: %s", message)
        self.events.emit(SessionEvent.ERROR, message)
