"""Audio output data types."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol, runtime_checkable

import numpy as np


@dataclass(frozen=True)
class PlaybackConfig:
    """Playback pipeline configuration."""
    sample_rate: int = 24000
    fft_size: int = 1024
    min_buffer_seconds: float = 0.1
    max_chunk_samples: int = 48000
    idle_poll_s: float = 0.1  # re-check interval before declaring playback finished

    @property
    def min_buffer_samples(self) -> int:
        return int(self.sample_rate * self.min_buffer_seconds)


@runtime_checkable
class OutputSink(Protocol):
    """Where paced playback slices are written (a sound device, or a fake in tests)."""

    @property
    def is_active(self) -> bool:
        """True while previously written samples are still being rendered."""
        ...

    def play(self, samples: np.ndarray, sample_rate: int) -> None: ...

    def stop(self) -> None:
        """Drop anything not yet rendered."""
        ...

    def close(self) -> None: ...
