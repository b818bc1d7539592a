import pytest
import os

import numpy as np

from tests.fakes import FakeSink, FakeSource


@pytest.fixture
def setup_test_env():
    """Setup test environment variables"""
    original_env = os.environ.copy()

    os.environ["OPENAI_API_KEY"] = "sk-test-12345"
    os.environ["SAMPLE_RATE"] = "16000"
    os.environ["LISTENING_MODE"] = "vad"

    yield

    # Restore original environment
    os.environ.clear()
    os.environ.update(original_env)


@pytest.fixture
def source():
    return FakeSource()


@pytest.fixture
def sink():
    return FakeSink()


@pytest.fixture
def mock_audio_data():
    """One second of noise at 24kHz"""
    rng = np.random.default_rng(1234)
    return (rng.random(24000, dtype=np.float32) * 2.0 - 1.0) * 0.5
