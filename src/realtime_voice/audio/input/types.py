"""Audio input subsystem data types and configuration."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum, auto
from typing import Protocol, runtime_checkable

import numpy as np

from ..codec import encode_pcm16, to_base64


class ListeningMode(str, Enum):
    """How utterance boundaries are decided."""
    PUSH_TO_TALK = "push_to_talk"   # externally commanded start/stop
    VAD = "vad"                     # energy threshold + silence timeout


class VADState(Enum):
    IDLE = auto()
    RECORDING = auto()


@dataclass(frozen=True)
class VADConfig:
    """Energy-ratio VAD and endpointing configuration."""
    energy_threshold: float = 0.5
    last_seconds: float = 1.0
    silence_seconds: float = 2.0
    high_pass_hz: float = 0.0  # 0 disables the filter


@dataclass(frozen=True)
class CaptureConfig:
    """Capture pipeline configuration."""
    sample_rate: int = 24000
    fft_size: int = 1024
    max_buffer_seconds: int = 10
    interrupt_on_new_recording: bool = False
    vad: VADConfig = field(default_factory=VADConfig)

    @property
    def max_buffer_samples(self) -> int:
        return self.sample_rate * self.max_buffer_seconds


@dataclass(frozen=True, eq=False)
class Utterance:
    """One captured turn of user speech. Samples are read-only once created."""
    samples: np.ndarray      # float32 mono
    sample_rate: int
    pcm16: bytes
    audio_base64: str

    @classmethod
    def from_samples(cls, samples: np.ndarray, sample_rate: int) -> "Utterance":
        pcm = np.array(samples, dtype=np.float32).ravel()
        pcm.setflags(write=False)
        pcm16 = encode_pcm16(pcm)
        return cls(samples=pcm, sample_rate=sample_rate, pcm16=pcm16, audio_base64=to_base64(pcm16))

    @property
    def num_samples(self) -> int:
        return len(self.samples)

    @property
    def duration_s(self) -> float:
        return len(self.samples) / float(self.sample_rate)


@runtime_checkable
class AudioSource(Protocol):
    """Protocol for capture sources polled by the capture pipeline."""

    @property
    def is_active(self) -> bool: ...

    def start(self) -> None:
        """Start capturing audio."""
        ...

    def stop(self) -> None:
        """Stop capturing audio."""
        ...

    def read_new(self) -> np.ndarray:
        """Samples captured since the previous call (float32 mono)."""
        ...
