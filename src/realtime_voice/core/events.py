"""Per-component observer registry and the event kinds each component raises."""

from __future__ import annotations

import logging
import threading
from collections import defaultdict
from enum import Enum, auto
from typing import Any, Callable, Dict, Generic, List, TypeVar

logger = logging.getLogger(__name__)

K = TypeVar("K", bound=Enum)

Listener = Callable[..., Any]


class CaptureEvent(Enum):
    """Notifications raised by the capture pipeline."""
    RECORDING_STARTED = auto()
    RECORDING_ENDED = auto()
    UTTERANCE = auto()       # payload: Utterance
    MODE_CHANGED = auto()    # payload: ListeningMode


class PlaybackEvent(Enum):
    """Notifications raised by the playback pipeline."""
    STARTED = auto()
    FINISHED = auto()
    CANCELLED = auto()


class SessionEvent(Enum):
    """Notifications raised by the protocol engine."""
    CONNECTED = auto()
    CLOSED = auto()
    CONNECTION_FAILED = auto()   # payload: message
    SESSION_CREATED = auto()
    ITEM_CREATED = auto()
    RESPONSE_CREATED = auto()
    RESPONSE_DONE = auto()
    RESPONSE_CANCELLED = auto()
    TRANSCRIPT_DELTA = auto()    # payload: text
    AUDIO_DONE = auto()
    TRANSCRIPT_DONE = auto()
    CONTENT_PART_ADDED = auto()
    CONTENT_PART_DONE = auto()
    OUTPUT_ITEM_ADDED = auto()
    OUTPUT_ITEM_DONE = auto()
    RATE_LIMITS_UPDATED = auto()
    ERROR = auto()               # payload: message


class EventEmitter(Generic[K]):
    """
    Callback registry owned by a single component.

    Listeners are called synchronously, in subscription order, on the thread that emits.
    A listener that raises is logged and skipped so the emitting loop keeps running.
    """

    def __init__(self, name: str = "events"):
        self._name = name
        self._lock = threading.Lock()
        self._listeners: Dict[K, List[Listener]] = defaultdict(list)

    def subscribe(self, kind: K, listener: Listener) -> Callable[[], None]:
        """Register `listener` for `kind`. Returns a callable that unsubscribes it."""
        with self._lock:
            self._listeners[kind].append(listener)
        return lambda: self.unsubscribe(kind, listener)

    def unsubscribe(self, kind: K, listener: Listener) -> None:
        with self._lock:
            listeners = self._listeners.get(kind)
            if listeners and listener in listeners:
                listeners.remove(listener)

    def listener_count(self, kind: K) -> int:
        with self._lock:
            return len(self._listeners.get(kind, ()))

    def emit(self, kind: K, *args: Any) -> None:
        with self._lock:
            listeners = list(self._listeners.get(kind, ()))
        for listener in listeners:
            try:
                listener(*args)
            except Exception:
                logger.exception("%s: listener for %s failed", self._name, kind.name)
