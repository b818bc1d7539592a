"""Voice session orchestrator: capture -> realtime client -> playback."""

from __future__ import annotations

import asyncio
import logging
from typing import Optional, Set, Tuple

import numpy as np

from ..audio.analysis import band_levels
from ..audio.input import AudioSource, CapturePipeline, ListeningMode, Utterance
from ..audio.input.mic import Mic
from ..audio.output import OutputSink, PlaybackPipeline
from ..audio.output.sink import SoundDeviceSink
from ..config.settings import RealtimeConfig
from ..realtime import RealtimeClient
from .errors import NotConnectedError
from .events import CaptureEvent, PlaybackEvent, SessionEvent
from .scheduler import GracefulShutdown, run_periodic

logger = logging.getLogger(__name__)


class VoiceSession:
    """
    Main orchestrator for a realtime voice conversation.

    Manages:
    - Capture pipeline (microphone + VAD / push-to-talk segmentation), polled at a fixed tick
    - Realtime client (utterances out, response events in)
    - Playback pipeline (response audio out)
    """

    def __init__(
        self,
        config: RealtimeConfig,
        source: Optional[AudioSource] = None,
        sink: Optional[OutputSink] = None,
    ):
        self._config = config
        self.shutdown_signal = GracefulShutdown()

        self.playback = PlaybackPipeline(
            sink if sink is not None else SoundDeviceSink(device=config.output_device),
            config.playback_config(),
        )
        self.capture = CapturePipeline(
            source if source is not None else Mic(
                sample_rate=config.sample_rate,
                device=config.input_device,
                ring_seconds=config.max_buffer_seconds,
            ),
            config.capture_config(),
            playback=self.playback,
        )
        self.client = RealtimeClient(
            api_key=config.api_key,
            url=config.url,
            instructions=config.instructions,
            playback=self.playback,
        )

        self.capture.events.subscribe(CaptureEvent.UTTERANCE, self._on_utterance)
        self.client.events.subscribe(SessionEvent.RESPONSE_CANCELLED, self._on_response_cancelled)
        self.playback.events.subscribe(PlaybackEvent.FINISHED, self.client.playback_drained)

        self._poll_task: Optional[asyncio.Task] = None
        self._send_tasks: Set[asyncio.Task] = set()

    @property
    def mode(self) -> ListeningMode:
        return self.capture.mode

    @property
    def is_recording(self) -> bool:
        return self.capture.is_recording

    async def start(self) -> None:
        """Connect, apply the configured listening mode and start the capture poll."""
        await self.client.connect()
        self.capture.set_mode(self._config.listening_mode)
        self._poll_task = asyncio.create_task(
            run_periodic(self.capture.poll, self._config.poll_interval_s, self.shutdown_signal, name="capture poll")
        )
        logger.info("Voice session started (mode=%s)", self.capture.mode.value)

    async def stop(self) -> None:
        """Stop polling, release the audio devices and close the connection."""
        self.shutdown_signal.stop()
        if self._poll_task is not None:
            await self._poll_task
            self._poll_task = None
        if self.capture.is_recording and self.capture.mode is ListeningMode.PUSH_TO_TALK:
            self.capture.stop_manual_recording()
        self.capture.stop_monitoring()
        if self._send_tasks:
            await asyncio.wait(set(self._send_tasks))
        self.playback.close()
        await self.client.disconnect()
        logger.info("Voice session stopped")

    # -- collaborator operations ---------------------------------------------

    def set_mode(self, mode: ListeningMode) -> None:
        self.capture.set_mode(mode)

    def start_recording(self) -> bool:
        return self.capture.start_manual_recording()

    def stop_recording(self) -> Optional[Utterance]:
        return self.capture.stop_manual_recording()

    def toggle_recording(self) -> None:
        """Push-to-talk toggle: start a recording, or stop (and send) the current one."""
        if self.capture.is_recording:
            self.stop_recording()
        else:
            self.start_recording()

    async def cancel(self) -> None:
        """Cancel the active response and silence any audio still playing."""
        await self.client.cancel()
        self.playback.cancel()

    def band_levels(self) -> Tuple[Optional[np.ndarray], Optional[np.ndarray]]:
        """Band levels of the latest microphone and playback spectra; None for a side that is idle."""
        def levels(spectrum: Optional[np.ndarray]) -> Optional[np.ndarray]:
            if spectrum is None:
                return None
            return band_levels(spectrum, self._config.sample_rate, self._config.fft_size)

        return levels(self.capture.spectrum), levels(self.playback.output_spectrum)

    # -- wiring --------------------------------------------------------------

    def _on_utterance(self, utterance: Utterance) -> None:
        task = asyncio.get_running_loop().create_task(self._send(utterance))
        self._send_tasks.add(task)
        task.add_done_callback(self._send_tasks.discard)

    def _on_response_cancelled(self) -> None:
        # emitted before the next utterance is sent; its response audio must still play
        self.playback.cancel()
        self.playback.reset_cancel_pending()

    async def _send(self, utterance: Utterance) -> None:
        try:
            await self.client.send_utterance(utterance)
        except NotConnectedError as e:
            logger.warning("Utterance dropped: %s", e)
