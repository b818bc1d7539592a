"""Audio input subsystem - capture, VAD segmentation and utterances."""

from .capture import CapturePipeline
from .ring_buffer import RingBuffer, available_since
from .types import AudioSource, CaptureConfig, ListeningMode, Utterance, VADConfig, VADState

__all__ = [
    "AudioSource",
    "CaptureConfig",
    "CapturePipeline",
    "ListeningMode",
    "RingBuffer",
    "Utterance",
    "VADConfig",
    "VADState",
    "available_since",
]
