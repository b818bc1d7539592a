"""Core module."""

from .errors import ConnectionFailedError, NotConnectedError, RealtimeError
from .events import CaptureEvent, EventEmitter, PlaybackEvent, SessionEvent
from .scheduler import GracefulShutdown, StopSignal, run_periodic

__all__ = [
    "GracefulShutdown",
    "StopSignal",
    "run_periodic",
    "EventEmitter",
    "CaptureEvent",
    "PlaybackEvent",
    "SessionEvent",
    "RealtimeError",
    "NotConnectedError",
    "ConnectionFailedError",
]
