"""Microphone audio capture into a ring buffer."""

from __future__ import annotations

import logging
import threading
from typing import Optional

import numpy as np
import sounddevice as sd

from .ring_buffer import RingBuffer

logger = logging.getLogger(__name__)

# Length of the device-side circular buffer. The poll tick must drain it faster than this.
DEFAULT_RING_SECONDS = 10


def input_device_available(device: Optional[int] = None) -> bool:
    """True if sounddevice can resolve an input device (the default one when `device` is None)."""
    try:
        info = sd.query_devices(device, kind="input")
    except (ValueError, sd.PortAudioError) as e:
        logger.warning("No input device available: %s", e)
        return False
    return int(info.get("max_input_channels", 0)) > 0


class Mic:
    """
    Captures microphone audio into a fixed-capacity ring buffer.

    The sounddevice callback only writes into the ring; consumers call `read_new()`
    from their own tick to get everything captured since their last read.
    Important: keep the callback lightweight; no analysis here.
    """

    def __init__(
        self,
        sample_rate: int = 24000,
        device: Optional[int] = None,
        ring_seconds: int = DEFAULT_RING_SECONDS,
        blocksize: int = 0,
    ):
        self._sample_rate = sample_rate
        self._device = device
        self._blocksize = blocksize
        self._ring = RingBuffer(sample_rate * ring_seconds)
        self._cursor = 0
        self._stream: Optional[sd.InputStream] = None
        self._lock = threading.Lock()

    @property
    def sample_rate(self) -> int:
        return self._sample_rate

    @property
    def is_active(self) -> bool:
        return self._stream is not None

    def _audio_callback(self, indata, frames, time_info, status) -> None:
        """Callback function for sounddevice audio stream."""
        if status:
            logger.warning(f"Audio callback status: {status}")
        # indata shape is (frames, channels); keep the first channel
        if indata.ndim > 1 and indata.shape[1] > 0:
            pcm = indata[:, 0]
        else:
            pcm = indata.ravel()
        self._ring.write(pcm)

    def start(self) -> None:
        """Open the input stream. Leaves the mic inactive (and logs) if no device can be opened."""
        with self._lock:
            if self._stream is not None:
                return
            if not input_device_available(self._device):
                return
            self._ring.reset()
            self._cursor = 0
            try:
                stream = sd.InputStream(
                    callback=self._audio_callback,
                    samplerate=self._sample_rate,
                    channels=1,
                    blocksize=self._blocksize,
                    dtype="float32",
                    device=self._device,
                )
                stream.start()
            except (sd.PortAudioError, ValueError) as e:
                logger.warning("Could not open microphone: %s", e)
                return
            self._stream = stream
            logger.info("Microphone capture started (sr=%s device=%s)", self._sample_rate, self._device)

    def stop(self) -> None:
        with self._lock:
            stream = self._stream
            self._stream = None
        if stream is None:
            return
        try:
            stream.stop()
            stream.close()
        except sd.PortAudioError as e:
            logger.warning("Error closing microphone stream: %s", e)
        finally:
            logger.info("Microphone capture stopped")

    def read_new(self) -> np.ndarray:
        """Samples captured since the previous call, with ring wraparound handled."""
        samples, self._cursor = self._ring.read_since(self._cursor)
        return samples
