"""Output sink: sounddevice stream in callback mode fed from a locked sample buffer."""

from __future__ import annotations

import logging
import threading
from typing import Optional

import numpy as np
import sounddevice as sd

logger = logging.getLogger("Sink")

# Callback block size: ~10 ms at 24 kHz
PLAYBACK_BLOCKSIZE = 256

# Short fade at the start of a burst to avoid pops (ms).
FADE_DURATION_MS = 5


def _apply_fade_in(frames: np.ndarray, n: int) -> None:
    """Apply linear fade-in to first n samples in-place. n may be 0."""
    if n <= 0 or len(frames) < n:
        return
    frames[:n] *= np.linspace(0.0, 1.0, n, dtype=np.float32)


class SoundDeviceSink:
    """
    Plays float32 mono slices through a sounddevice OutputStream.

    The stream is opened on the first `play()` and stays open; the callback fills
    `outdata` from an internal buffer and writes silence when the buffer runs dry.
    `stop()` drops whatever has not been rendered yet.
    """

    def __init__(
        self,
        device: Optional[int] = None,
        blocksize: int = PLAYBACK_BLOCKSIZE,
    ):
        self._device = device
        self._blocksize = blocksize
        self._stream: Optional[sd.OutputStream] = None
        self._sample_rate: Optional[int] = None
        self._buffer = np.zeros(0, dtype=np.float32)
        self._lock = threading.Lock()

    @property
    def is_active(self) -> bool:
        with self._lock:
            return len(self._buffer) > 0

    def _callback(self, outdata: np.ndarray, frames: int, time: object, status: sd.CallbackFlags) -> None:
        if status:
            logger.warning("Sink: callback status=%s", status)
        with self._lock:
            buf = self._buffer
            have = min(len(buf), frames)
            outdata[:have, 0] = buf[:have]
            outdata[have:, 0] = 0.0
            self._buffer = buf[have:]

    def _open(self, sample_rate: int) -> bool:
        if self._stream is not None and self._sample_rate == sample_rate:
            return True
        self._close_stream()
        try:
            stream = sd.OutputStream(
                samplerate=sample_rate,
                channels=1,
                dtype="float32",
                blocksize=self._blocksize,
                device=self._device,
                callback=self._callback,
            )
            stream.start()
        except (sd.PortAudioError, ValueError) as e:
            logger.warning("Could not open output device: %s", e)
            return False
        self._stream = stream
        self._sample_rate = sample_rate
        logger.info("Sink: output stream opened sr=%s device=%s", sample_rate, self._device)
        return True

    def play(self, samples: np.ndarray, sample_rate: int) -> None:
        if not self._open(sample_rate):
            return
        frames = np.array(samples, dtype=np.float32).ravel()
        with self._lock:
            if len(self._buffer) == 0:
                _apply_fade_in(frames, int(sample_rate * FADE_DURATION_MS / 1000))
            self._buffer = np.concatenate([self._buffer, frames])

    def stop(self) -> None:
        with self._lock:
            self._buffer = np.zeros(0, dtype=np.float32)

    def _close_stream(self) -> None:
        stream = self._stream
        self._stream = None
        self._sample_rate = None
        if stream is None:
            return
        try:
            if stream.active:
                stream.stop()
            stream.close()
        except sd.PortAudioError as e:
            logger.warning("Error closing playback stream: %s", e)

    def close(self) -> None:
        self.stop()
        self._close_stream()
