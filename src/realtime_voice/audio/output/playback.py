"""Streaming playback pipeline: FIFO of decoded response audio, paced to real time."""

from __future__ import annotations

import asyncio
import logging
import threading
from typing import Awaitable, Callable, Optional

import numpy as np

from ...core.events import EventEmitter, PlaybackEvent
from ..analysis import compute_spectrum
from ..codec import decode_pcm16
from .types import OutputSink, PlaybackConfig

logger = logging.getLogger("Playback")


class PlaybackPipeline:
    """
    Turns a trickle of PCM16 chunks into gap-free output.

    `enqueue_chunk` is called from the protocol receive loop; the driver task drains
    the queue in slices of at most `max_chunk_samples`, handing each slice to the sink
    and sleeping for its playback duration before the next one. The queue and the
    cancel flag are shared between the two, so both are guarded by `_lock`.

    Both `enqueue_chunk` and `cancel` must be called from the event loop thread.
    """

    def __init__(
        self,
        sink: OutputSink,
        cfg: PlaybackConfig = PlaybackConfig(),
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self._sink = sink
        self._cfg = cfg
        self._sleep = sleep
        self.events: EventEmitter[PlaybackEvent] = EventEmitter("PlaybackPipeline")

        self._lock = threading.Lock()
        self._queue = np.zeros(0, dtype=np.float32)
        self._cancel_pending = False
        self._task: Optional[asyncio.Task] = None
        self._slice_in_flight = False

        self.output_spectrum: Optional[np.ndarray] = None

    @property
    def cancel_pending(self) -> bool:
        with self._lock:
            return self._cancel_pending

    @property
    def queued_samples(self) -> int:
        with self._lock:
            return len(self._queue)

    def is_playing(self) -> bool:
        """True if a slice is being rendered or samples remain queued."""
        if self._slice_in_flight or self._sink.is_active:
            return True
        with self._lock:
            return len(self._queue) > 0

    def enqueue_chunk(self, pcm16: bytes) -> None:
        """Decode a PCM16 chunk and queue it. Dropped while a cancel is pending."""
        samples = decode_pcm16(pcm16)
        with self._lock:
            if self._cancel_pending:
                logger.debug("Dropping %d samples: cancel pending", len(samples))
                return
            if len(samples) == 0:
                return
            self._queue = np.concatenate([self._queue, samples])
        if self._task is None:
            self._task = asyncio.get_running_loop().create_task(self._drive())

    def cancel(self) -> None:
        """Stop output now and flush the queue. Safe to call when idle."""
        with self._lock:
            self._cancel_pending = True
            dropped = len(self._queue)
            self._queue = np.zeros(0, dtype=np.float32)
        task, self._task = self._task, None
        was_playing = task is not None or self._slice_in_flight
        if task is not None and not task.done():
            task.cancel()
        self._sink.stop()
        self._slice_in_flight = False
        self.output_spectrum = None
        if was_playing:
            logger.info("Playback cancelled (%d queued samples dropped)", dropped)
            self.events.emit(PlaybackEvent.CANCELLED)

    def reset_cancel_pending(self) -> None:
        """Accept chunks again. Called before the next recording cycle starts."""
        with self._lock:
            self._cancel_pending = False

    def _take_slice(self) -> Optional[np.ndarray]:
        with self._lock:
            if self._cancel_pending:
                return None
            queued = len(self._queue)
            if queued >= self._cfg.min_buffer_samples:
                n = min(queued, self._cfg.max_chunk_samples)
            elif queued > 0:
                # short remainder, flushed as a final slice
                n = queued
            else:
                return None
            chunk = self._queue[:n]
            self._queue = self._queue[n:]
            return chunk

    async def _drive(self) -> None:
        logger.info("Playback started")
        self.events.emit(PlaybackEvent.STARTED)
        finished = False
        try:
            while True:
                chunk = self._take_slice()
                if chunk is not None:
                    self._slice_in_flight = True
                    self.output_spectrum = compute_spectrum(chunk, self._cfg.fft_size)
                    self._sink.play(chunk, self._cfg.sample_rate)
                    await self._sleep(len(chunk) / float(self._cfg.sample_rate))
                    self._slice_in_flight = False
                    continue
                if self.cancel_pending:
                    break
                # queue drained: re-check once after a short wait before finishing
                await self._sleep(self._cfg.idle_poll_s)
                if self.queued_samples == 0 and not self._sink.is_active:
                    finished = True
                    break
        finally:
            if self._task is asyncio.current_task():
                self._task = None
                self._slice_in_flight = False
                self.output_spectrum = None
        if finished:
            logger.info("Playback finished")
            self.events.emit(PlaybackEvent.FINISHED)

    async def wait_idle(self) -> None:
        """Wait for the current driver task, if any, to finish."""
        task = self._task
        if task is not None:
            await asyncio.wait({task})

    def close(self) -> None:
        self.cancel()
        self._sink.close()
