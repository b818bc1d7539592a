"""Tests for the capture pipeline: push-to-talk, VAD segmentation and buffer bookkeeping."""

import numpy as np
import pytest
from unittest.mock import MagicMock

from realtime_voice.audio.input import CaptureConfig, CapturePipeline, ListeningMode, Utterance, VADConfig, VADState
from realtime_voice.core.events import CaptureEvent

from tests.fakes import FakeSource

SAMPLE_RATE = 24000
TICK = 1200  # 50 ms of audio per poll


def generate_silence(seconds):
    return np.zeros(int(SAMPLE_RATE * seconds), dtype=np.float32)


def generate_loud(seconds, amplitude=0.5, frequency=200.0):
    """Square wave: every sample has magnitude `amplitude`."""
    t = np.arange(int(SAMPLE_RATE * seconds)) / SAMPLE_RATE
    return (amplitude * np.where(np.sin(2 * np.pi * frequency * t) >= 0, 1.0, -1.0)).astype(np.float32)


def ticks(samples, size=TICK):
    return [samples[i:i + size] for i in range(0, len(samples), size)]


class Recorder:
    """Collects capture events in order."""

    def __init__(self, pipeline):
        self.log = []
        self.utterances = []
        pipeline.events.subscribe(CaptureEvent.RECORDING_STARTED, lambda: self.log.append("started"))
        pipeline.events.subscribe(CaptureEvent.RECORDING_ENDED, lambda: self.log.append("ended"))
        pipeline.events.subscribe(CaptureEvent.UTTERANCE, self._on_utterance)
        pipeline.events.subscribe(CaptureEvent.MODE_CHANGED, lambda mode: self.log.append(mode))

    def _on_utterance(self, utterance):
        self.log.append("utterance")
        self.utterances.append(utterance)


@pytest.fixture
def playback():
    return MagicMock()


def make_pipeline(source, playback=None, **overrides):
    # With the 1.0 s default short window a 1 s burst stays detected for about
    # 0.84 s of the silence after it, so a 2.5 s tail never reaches the 2.0 s
    # silence timeout. A 0.3 s window ends the recording inside the tail.
    vad = VADConfig(
        energy_threshold=overrides.pop("energy_threshold", 0.5),
        last_seconds=overrides.pop("last_seconds", 0.3),
        silence_seconds=overrides.pop("silence_seconds", 2.0),
    )
    cfg = CaptureConfig(sample_rate=SAMPLE_RATE, vad=vad, **overrides)
    return CapturePipeline(source, cfg, playback=playback)


class TestPushToTalk:
    def test_manual_recording_emits_captured_samples(self, source):
        pipeline = make_pipeline(source)
        events = Recorder(pipeline)

        assert pipeline.start_manual_recording()
        speech = generate_loud(0.5)
        for chunk in ticks(speech):
            source.feed(chunk)
            pipeline.poll()
        utterance = pipeline.stop_manual_recording()

        assert events.log == ["started", "utterance", "ended"]
        assert utterance is events.utterances[0]
        np.testing.assert_array_equal(utterance.samples, speech)
        assert utterance.sample_rate == SAMPLE_RATE
        assert utterance.duration_s == pytest.approx(0.5)
        assert not source.is_active

    def test_stop_drains_samples_not_yet_polled(self, source):
        pipeline = make_pipeline(source)
        pipeline.start_manual_recording()
        source.feed(generate_loud(0.1))
        utterance = pipeline.stop_manual_recording()
        assert utterance.num_samples == int(SAMPLE_RATE * 0.1)

    def test_utterance_is_read_only_and_encoded(self, source):
        pipeline = make_pipeline(source)
        pipeline.start_manual_recording()
        source.feed(generate_loud(0.1))
        utterance = pipeline.stop_manual_recording()

        with pytest.raises(ValueError):
            utterance.samples[0] = 0.0
        assert len(utterance.pcm16) == 2 * utterance.num_samples
        assert utterance.audio_base64

    def test_utterances_compare_by_identity_and_are_hashable(self):
        samples = generate_loud(0.1)
        first = Utterance.from_samples(samples, SAMPLE_RATE)
        second = Utterance.from_samples(samples, SAMPLE_RATE)

        assert first == first
        assert first != second
        assert len({first, second}) == 2

    def test_empty_recording_emits_no_utterance(self, source):
        pipeline = make_pipeline(source)
        events = Recorder(pipeline)
        pipeline.start_manual_recording()
        assert pipeline.stop_manual_recording() is None
        assert events.log == ["started", "ended"]

    def test_stop_without_recording_is_noop(self, source):
        pipeline = make_pipeline(source)
        events = Recorder(pipeline)
        assert pipeline.stop_manual_recording() is None
        assert events.log == []
        assert source.stop_calls == 0

    def test_start_without_device_is_noop(self, playback):
        source = FakeSource(available=False)
        pipeline = make_pipeline(source, playback=playback)
        events = Recorder(pipeline)
        assert not pipeline.start_manual_recording()
        assert not pipeline.is_recording
        assert events.log == []
        assert playback.method_calls == []

    def test_start_ignored_in_vad_mode(self, source):
        pipeline = make_pipeline(source)
        pipeline.set_mode(ListeningMode.VAD)
        events = Recorder(pipeline)
        assert not pipeline.start_manual_recording()
        assert events.log == []

    def test_manual_recording_keeps_only_the_newest_buffer_length(self, source):
        pipeline = make_pipeline(source, max_buffer_seconds=1)
        pipeline.start_manual_recording()
        audio = np.arange(int(SAMPLE_RATE * 1.5), dtype=np.float32) / 1e6
        for chunk in ticks(audio):
            source.feed(chunk)
            pipeline.poll()
        utterance = pipeline.stop_manual_recording()
        np.testing.assert_array_equal(utterance.samples, audio[-SAMPLE_RATE:])

    def test_spectrum_tracks_latest_samples_and_clears_on_stop(self, source):
        pipeline = make_pipeline(source)
        assert pipeline.spectrum is None
        pipeline.start_manual_recording()
        source.feed(generate_loud(0.1))
        pipeline.poll()
        assert pipeline.spectrum is not None
        assert pipeline.spectrum.shape == (512,)
        pipeline.stop_manual_recording()
        assert pipeline.spectrum is None


class TestBargeIn:
    def test_interrupt_policy_cancels_playback_then_resets(self, source, playback):
        pipeline = make_pipeline(source, playback=playback, interrupt_on_new_recording=True)
        pipeline.start_manual_recording()
        assert [c[0] for c in playback.method_calls] == ["cancel", "reset_cancel_pending"]

    def test_without_interrupt_policy_only_resets(self, source, playback):
        pipeline = make_pipeline(source, playback=playback)
        pipeline.start_manual_recording()
        playback.cancel.assert_not_called()
        playback.reset_cancel_pending.assert_called_once()

    def test_vad_start_applies_policy(self, source, playback):
        pipeline = make_pipeline(source, playback=playback, interrupt_on_new_recording=True)
        pipeline.set_mode(ListeningMode.VAD)
        for chunk in ticks(np.concatenate([generate_silence(1.0), generate_loud(0.2)])):
            source.feed(chunk)
            pipeline.poll()
        assert pipeline.vad_state is VADState.RECORDING
        playback.cancel.assert_called_once()
        playback.reset_cancel_pending.assert_called_once()


class TestVAD:
    def test_silence_loud_silence_yields_one_utterance(self, source):
        pipeline = make_pipeline(source)
        pipeline.set_mode(ListeningMode.VAD)
        events = Recorder(pipeline)

        loud = generate_loud(1.0)
        audio = np.concatenate([generate_silence(2.0), loud, generate_silence(2.5)])
        for chunk in ticks(audio):
            source.feed(chunk)
            pipeline.poll()

        assert events.log == ["started", "utterance", "ended"]
        assert pipeline.vad_state is VADState.IDLE

        samples = events.utterances[0].samples
        # starts inside the loud segment, never in the leading silence
        assert abs(samples[0]) == pytest.approx(0.5)
        loud_count = int(np.count_nonzero(np.abs(samples) > 0.25))
        short_window = int(SAMPLE_RATE * 0.3)
        assert abs(loud_count - len(loud)) <= short_window

    def test_recording_continues_until_silence_timeout(self, source):
        pipeline = make_pipeline(source)
        pipeline.set_mode(ListeningMode.VAD)
        events = Recorder(pipeline)

        audio = np.concatenate([generate_silence(2.0), generate_loud(1.0), generate_silence(1.5)])
        for chunk in ticks(audio):
            source.feed(chunk)
            pipeline.poll()

        assert events.log == ["started"]
        assert pipeline.vad_state is VADState.RECORDING

    def test_explicit_elapsed_time_drives_silence_timer(self, source):
        pipeline = make_pipeline(source)
        pipeline.set_mode(ListeningMode.VAD)
        events = Recorder(pipeline)

        for chunk in ticks(np.concatenate([generate_silence(2.0), generate_loud(0.5), generate_silence(0.5)])):
            source.feed(chunk)
            pipeline.poll()
        assert events.log == ["started"]

        # one more silent tick credited with the full timeout ends the recording
        source.feed(generate_silence(0.05))
        utterance = pipeline.poll(elapsed_s=2.0)
        assert utterance is not None
        assert events.log == ["started", "utterance", "ended"]

    def test_last_activity_reports_energies(self, source):
        pipeline = make_pipeline(source)
        pipeline.set_mode(ListeningMode.VAD)
        for chunk in ticks(np.concatenate([generate_silence(1.0), generate_loud(0.2)])):
            source.feed(chunk)
            pipeline.poll()
        activity = pipeline.last_activity
        assert activity.detected
        assert activity.energy_last > activity.energy_all

    def test_poll_without_active_source_does_nothing(self, source):
        pipeline = make_pipeline(source)
        source.feed(generate_loud(0.1))
        assert pipeline.poll() is None
        assert pipeline.buffered_samples == 0


class TestModeSwitch:
    def test_switch_to_vad_starts_monitoring(self, source):
        pipeline = make_pipeline(source)
        events = Recorder(pipeline)
        pipeline.set_mode(ListeningMode.VAD)
        assert pipeline.mode is ListeningMode.VAD
        assert pipeline.is_monitoring
        assert events.log == [ListeningMode.VAD]

    def test_switch_to_vad_finishes_manual_recording(self, source):
        pipeline = make_pipeline(source)
        events = Recorder(pipeline)
        pipeline.start_manual_recording()
        source.feed(generate_loud(0.2))
        pipeline.set_mode(ListeningMode.VAD)
        assert events.log == ["started", "utterance", "ended", ListeningMode.VAD]
        assert source.is_active

    def test_switch_away_from_vad_stops_monitoring_and_clears_spectrum(self, source):
        pipeline = make_pipeline(source)
        pipeline.set_mode(ListeningMode.VAD)
        for chunk in ticks(generate_silence(1.0)):
            source.feed(chunk)
            pipeline.poll()
        assert pipeline.spectrum is not None
        assert pipeline.last_activity is not None

        pipeline.set_mode(ListeningMode.PUSH_TO_TALK)
        assert not source.is_active
        assert not pipeline.is_monitoring
        assert pipeline.spectrum is None
        assert pipeline.last_activity is None
        assert pipeline.buffered_samples == 0

    def test_switch_away_flushes_in_progress_vad_recording(self, source):
        pipeline = make_pipeline(source)
        pipeline.set_mode(ListeningMode.VAD)
        events = Recorder(pipeline)
        for chunk in ticks(np.concatenate([generate_silence(1.0), generate_loud(0.3)])):
            source.feed(chunk)
            pipeline.poll()
        pipeline.set_mode(ListeningMode.PUSH_TO_TALK)
        assert events.log == ["started", "utterance", "ended", ListeningMode.PUSH_TO_TALK]

    def test_same_mode_is_noop(self, source):
        pipeline = make_pipeline(source)
        events = Recorder(pipeline)
        pipeline.set_mode(ListeningMode.PUSH_TO_TALK)
        assert events.log == []


class TestBufferBounds:
    @pytest.mark.parametrize("mode", [ListeningMode.VAD, ListeningMode.PUSH_TO_TALK])
    def test_buffer_and_start_offset_stay_in_bounds(self, source, mode):
        sample_rate = 1000
        cfg = CaptureConfig(
            sample_rate=sample_rate,
            fft_size=64,
            max_buffer_seconds=1,
            vad=VADConfig(last_seconds=0.1, silence_seconds=0.3),
        )
        pipeline = CapturePipeline(source, cfg)
        if mode is ListeningMode.VAD:
            pipeline.set_mode(mode)
        else:
            pipeline.start_manual_recording()

        rng = np.random.default_rng(3)
        for _ in range(300):
            size = int(rng.integers(0, 400))
            gain = rng.choice([0.0, 0.01, 0.8])
            source.feed((gain * rng.standard_normal(size)).astype(np.float32))
            pipeline.poll()
            assert pipeline.buffered_samples <= sample_rate * cfg.max_buffer_seconds
            assert 0 <= pipeline.recording_start <= pipeline.buffered_samples
