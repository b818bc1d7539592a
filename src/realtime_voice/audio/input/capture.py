"""Capture pipeline: rolling sample buffer, push-to-talk and VAD utterance segmentation."""

from __future__ import annotations

import logging
from typing import Optional, Protocol

import numpy as np

from ...core.events import CaptureEvent, EventEmitter
from ..analysis import VoiceActivity, compute_spectrum, detect_voice_activity
from .types import AudioSource, CaptureConfig, ListeningMode, Utterance, VADState

logger = logging.getLogger("Capture")


class PlaybackControl(Protocol):
    """The part of the playback pipeline that recording start needs for barge-in."""

    def cancel(self) -> None: ...

    def reset_cancel_pending(self) -> None: ...


class CapturePipeline:
    """
    Turns a continuous capture source into discrete utterances.

    Owns the rolling sample buffer and the push-to-talk / VAD state machine.
    `poll()` is driven by a fixed-rate tick; all other operations are called from
    the same thread (the event loop), so the rolling buffer needs no locking.

    Raises on `events`: RECORDING_STARTED, RECORDING_ENDED, UTTERANCE(utterance),
    MODE_CHANGED(mode).
    """

    def __init__(
        self,
        source: AudioSource,
        cfg: CaptureConfig = CaptureConfig(),
        playback: Optional[PlaybackControl] = None,
        mode: ListeningMode = ListeningMode.PUSH_TO_TALK,
    ):
        self._source = source
        self._cfg = cfg
        self._playback = playback
        self._mode = mode
        self.events: EventEmitter[CaptureEvent] = EventEmitter("CapturePipeline")

        self._buffer = np.zeros(0, dtype=np.float32)
        self._vad_state = VADState.IDLE
        self._recording_start = 0
        self._silence_s = 0.0
        self._manual_recording = False

        self.spectrum: Optional[np.ndarray] = None
        self.last_activity: Optional[VoiceActivity] = None

    # -- state ---------------------------------------------------------------

    @property
    def mode(self) -> ListeningMode:
        return self._mode

    @property
    def vad_state(self) -> VADState:
        return self._vad_state

    @property
    def is_recording(self) -> bool:
        return self._manual_recording or self._vad_state is VADState.RECORDING

    @property
    def is_monitoring(self) -> bool:
        return self._mode is ListeningMode.VAD and self._source.is_active

    @property
    def buffered_samples(self) -> int:
        return len(self._buffer)

    @property
    def recording_start(self) -> int:
        """Offset in the rolling buffer where the current recording began."""
        return self._recording_start

    # -- mode ----------------------------------------------------------------

    def set_mode(self, mode: ListeningMode) -> None:
        """Switch listening mode, terminating any recording that belongs to the old mode."""
        if mode is self._mode:
            return
        if mode is ListeningMode.VAD:
            if self._manual_recording:
                self.stop_manual_recording()
            self._mode = mode
            self.start_monitoring()
        else:
            self.stop_monitoring()
            self._mode = mode
        logger.info("Listening mode: %s", mode.value)
        self.events.emit(CaptureEvent.MODE_CHANGED, mode)

    # -- push to talk --------------------------------------------------------

    def start_manual_recording(self) -> bool:
        """Begin a push-to-talk recording. Returns False (and logs) if it could not start."""
        if self._mode is not ListeningMode.PUSH_TO_TALK:
            logger.warning("Manual recording ignored in %s mode", self._mode.value)
            return False
        if self._manual_recording:
            logger.warning("Manual recording already in progress")
            return False
        self._source.start()
        if not self._source.is_active:
            logger.warning("No input device available; recording not started")
            return False
        self._prepare_playback_for_recording()
        self._reset_buffer()
        self._manual_recording = True
        self._recording_start = 0
        logger.info("Manual recording started")
        self.events.emit(CaptureEvent.RECORDING_STARTED)
        return True

    def stop_manual_recording(self) -> Optional[Utterance]:
        """Stop the push-to-talk recording and emit what was captured since it started."""
        if not self._manual_recording:
            logger.warning("No active recording found.")
            return None
        self._source.stop()
        self._pull()
        self._manual_recording = False
        utterance = self._finish_recording()
        self.spectrum = None
        logger.info("Manual recording stopped")
        self.events.emit(CaptureEvent.RECORDING_ENDED)
        return utterance

    # -- continuous monitoring (VAD) -----------------------------------------

    def start_monitoring(self) -> bool:
        """Open the always-on stream used by VAD mode."""
        if self._source.is_active:
            return True
        self._source.start()
        if not self._source.is_active:
            logger.warning("No input device available; monitoring not started")
            return False
        self._reset_buffer()
        logger.info("Continuous monitoring started")
        return True

    def stop_monitoring(self) -> None:
        """Close the always-on stream, finishing any VAD recording and clearing derived data."""
        if self._vad_state is VADState.RECORDING:
            self._end_vad_recording()
        if self._source.is_active:
            self._source.stop()
            logger.info("Continuous monitoring stopped")
        self._reset_buffer()
        self.spectrum = None
        self.last_activity = None

    # -- tick ----------------------------------------------------------------

    def poll(self, elapsed_s: Optional[float] = None) -> Optional[Utterance]:
        """
        One scheduler tick: pull new samples, refresh the spectrum and run VAD.

        `elapsed_s` is the time credited to the silence timer; it defaults to the
        duration of the samples pulled on this tick. Returns the utterance emitted
        on this tick, if any.
        """
        if not self._source.is_active:
            self.spectrum = None
            return None
        pulled = self._pull()
        if self._mode is not ListeningMode.VAD:
            return None
        if elapsed_s is None:
            elapsed_s = pulled / float(self._cfg.sample_rate)
        return self._step_vad(elapsed_s)

    def _pull(self) -> int:
        samples = self._source.read_new()
        n = len(samples)
        if n == 0:
            return 0
        self.spectrum = compute_spectrum(samples, self._cfg.fft_size)
        self._append(samples)
        return n

    def _append(self, samples: np.ndarray) -> None:
        self._buffer = np.concatenate((self._buffer, np.asarray(samples, dtype=np.float32)))
        excess = len(self._buffer) - self._cfg.max_buffer_samples
        if excess > 0:
            self._buffer = self._buffer[excess:]
            self._recording_start = max(0, self._recording_start - excess)

    def _step_vad(self, elapsed_s: float) -> Optional[Utterance]:
        vad = self._cfg.vad
        activity = detect_voice_activity(
            self._buffer,
            self._cfg.sample_rate,
            vad.last_seconds,
            vad.energy_threshold,
            vad.high_pass_hz,
        )
        self.last_activity = activity
        if activity.detected:
            self._silence_s = 0.0
            if self._vad_state is VADState.IDLE:
                self._start_vad_recording()
            return None
        if self._vad_state is VADState.RECORDING:
            self._silence_s += elapsed_s
            if self._silence_s >= vad.silence_seconds:
                return self._end_vad_recording()
        return None

    def _start_vad_recording(self) -> None:
        self._prepare_playback_for_recording()
        self._vad_state = VADState.RECORDING
        self._silence_s = 0.0
        self._recording_start = len(self._buffer)
        logger.info("VAD recording started")
        self.events.emit(CaptureEvent.RECORDING_STARTED)

    def _end_vad_recording(self) -> Optional[Utterance]:
        utterance = self._finish_recording()
        self._vad_state = VADState.IDLE
        self._silence_s = 0.0
        logger.info("VAD recording ended")
        self.events.emit(CaptureEvent.RECORDING_ENDED)
        return utterance

    # -- helpers -------------------------------------------------------------

    def _finish_recording(self) -> Optional[Utterance]:
        start = min(self._recording_start, len(self._buffer))
        segment = self._buffer[start:]
        self._recording_start = len(self._buffer)
        if len(segment) == 0:
            logger.info("Recording ended with no samples; nothing to send")
            return None
        utterance = Utterance.from_samples(segment, self._cfg.sample_rate)
        logger.info("Utterance captured: %d samples (%.2fs)", utterance.num_samples, utterance.duration_s)
        self.events.emit(CaptureEvent.UTTERANCE, utterance)
        return utterance

    def _prepare_playback_for_recording(self) -> None:
        if self._playback is None:
            return
        if self._cfg.interrupt_on_new_recording:
            self._playback.cancel()
        self._playback.reset_cancel_pending()

    def _reset_buffer(self) -> None:
        self._buffer = np.zeros(0, dtype=np.float32)
        self._recording_start = 0
        self._silence_s = 0.0
        self._vad_state = VADState.IDLE
