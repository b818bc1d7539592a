"""Errors surfaced by the protocol engine."""


class RealtimeError(Exception):
    """Base class for realtime session errors."""


class NotConnectedError(RealtimeError):
    """Raised when a send is attempted while the connection is not open."""


class ConnectionFailedError(RealtimeError):
    """Raised when the handshake or transport fails during connect()."""
