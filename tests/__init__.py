"""
Realtime Voice Tests
====================

This package contains unit tests for the realtime voice client components.

Test Structure:
- test_codec.py / test_analysis.py: PCM16 codec, spectrum and VAD maths
- test_ring_buffer.py / test_mic.py / test_capture.py: capture side
- test_playback.py / test_sink.py: playback side
- test_client.py: realtime protocol client
- test_session.py / test_main.py: orchestration and console
- conftest.py / fakes.py: shared fixtures and in-memory devices

To run tests:
    pytest tests/

To run specific test file:
    pytest tests/test_capture.py
"""
