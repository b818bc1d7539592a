"""Realtime voice client: VAD capture, paced playback and a realtime API session."""

__version__ = "0.1.0"
