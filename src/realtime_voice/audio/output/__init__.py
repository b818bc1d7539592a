"""Audio output subsystem - paced playback of response audio."""

from .playback import PlaybackPipeline
from .types import OutputSink, PlaybackConfig

__all__ = [
    "OutputSink",
    "PlaybackConfig",
    "PlaybackPipeline",
]
