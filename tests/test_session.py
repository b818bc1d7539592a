"""Tests for the VoiceSession orchestrator."""

import asyncio
import json

import numpy as np
import pytest
from unittest.mock import AsyncMock, patch

from realtime_voice.audio.codec import encode_base64_pcm16
from realtime_voice.audio.input import ListeningMode, Utterance
from realtime_voice.config.settings import RealtimeConfig
from realtime_voice.core.errors import ConnectionFailedError
from realtime_voice.core.session import VoiceSession
from realtime_voice.realtime.client import ConnectionState

CLIENT_MODULE = "realtime_voice.realtime.client"


def _make_idle_ws():
    """Create a mock WebSocket that yields nothing until close() is called."""
    mock_ws = AsyncMock()
    closed = asyncio.Event()

    async def async_iter():
        await closed.wait()
        for item in ():
            yield item

    mock_ws.__aiter__ = lambda self: async_iter()
    mock_ws.close.side_effect = lambda: closed.set()
    return mock_ws


def _sent_types(mock_ws):
    return [json.loads(c.args[0])["type"] for c in mock_ws.send.call_args_list]


@pytest.fixture
def config():
    return RealtimeConfig(api_key="sk-test", poll_interval_s=0.01)


@pytest.fixture
def session(config, source, sink):
    return VoiceSession(config, source=source, sink=sink)


@pytest.mark.asyncio
async def test_push_to_talk_round_trip(session, source):
    mock_ws = _make_idle_ws()
    with patch(f"{CLIENT_MODULE}.websockets.connect", AsyncMock(return_value=mock_ws)):
        await session.start()
    assert session.client.is_connected
    assert session.mode is ListeningMode.PUSH_TO_TALK

    session.toggle_recording()
    assert session.is_recording
    source.feed(np.full(2400, 0.2, dtype=np.float32))
    session.toggle_recording()
    assert not session.is_recording

    await asyncio.sleep(0.05)
    assert _sent_types(mock_ws) == ["conversation.item.create", "response.create"]

    await session.stop()
    assert session.client.state is ConnectionState.DISCONNECTED
    mock_ws.close.assert_called_once()


@pytest.mark.asyncio
async def test_start_applies_configured_vad_mode(source, sink):
    config = RealtimeConfig(api_key="sk-test", listening_mode=ListeningMode.VAD, poll_interval_s=0.01)
    session = VoiceSession(config, source=source, sink=sink)
    with patch(f"{CLIENT_MODULE}.websockets.connect", AsyncMock(return_value=_make_idle_ws())):
        await session.start()

    assert session.mode is ListeningMode.VAD
    assert source.is_active

    await session.stop()
    assert not source.is_active
    assert sink.closed


@pytest.mark.asyncio
async def test_start_propagates_connection_failure(session):
    with patch(f"{CLIENT_MODULE}.websockets.connect", AsyncMock(side_effect=OSError("refused"))):
        with pytest.raises(ConnectionFailedError):
            await session.start()


@pytest.mark.asyncio
async def test_utterance_while_disconnected_is_dropped(session, source):
    session.start_recording()
    source.feed(np.full(2400, 0.2, dtype=np.float32))
    utterance = session.stop_recording()
    assert utterance is not None

    # the send task logs the NotConnectedError and finishes
    await asyncio.sleep(0.01)
    assert not session._send_tasks


@pytest.mark.asyncio
async def test_cancel_cancels_response_and_playback(session):
    mock_ws = _make_idle_ws()
    with patch(f"{CLIENT_MODULE}.websockets.connect", AsyncMock(return_value=mock_ws)):
        await session.start()
    session.client.handle_message(json.dumps({"type": "response.created"}))

    await session.cancel()

    assert _sent_types(mock_ws) == ["response.cancel"]
    assert session.playback.cancel_pending
    await session.stop()


@pytest.mark.asyncio
async def test_new_utterance_flushes_cancelled_response_audio(session, source):
    assert not session._config.interrupt_on_new_recording
    mock_ws = _make_idle_ws()
    with patch(f"{CLIENT_MODULE}.websockets.connect", AsyncMock(return_value=mock_ws)):
        await session.start()
    session.client.handle_message(json.dumps({"type": "response.created"}))
    old_audio = encode_base64_pcm16(np.full(4800, 0.1, dtype=np.float32))
    session.client.handle_message(json.dumps({"type": "response.audio.delta", "delta": old_audio}))
    assert session.playback.queued_samples == 4800

    utterance = Utterance.from_samples(np.full(2400, 0.2, dtype=np.float32), 24000)
    await session.client.send_utterance(utterance)

    assert _sent_types(mock_ws) == ["response.cancel", "conversation.item.create", "response.create"]
    assert session.playback.queued_samples == 0
    assert not session.playback.cancel_pending

    # audio of the new response is accepted
    session.client.handle_message(json.dumps({"type": "response.audio.delta", "delta": old_audio}))
    assert session.playback.queued_samples == 4800
    await session.stop()


@pytest.mark.asyncio
async def test_band_levels_follow_capture_spectrum(session, source):
    assert session.band_levels() == (None, None)
    session.start_recording()
    source.feed(np.full(2400, 0.2, dtype=np.float32))
    session.capture.poll()

    input_levels, output_levels = session.band_levels()
    assert input_levels is not None
    assert len(input_levels) == 10
    assert output_levels is None
    session.stop_recording()
