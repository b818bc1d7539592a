import os
from pathlib import Path
from typing import Optional
from pydantic import BaseModel, Field, field_validator
from dotenv import load_dotenv
import logging

from ..audio.input.types import CaptureConfig, ListeningMode, VADConfig
from ..audio.output.types import PlaybackConfig

logger = logging.getLogger(__name__)

DEFAULT_REALTIME_URL = "wss://api.openai.com/v1/realtime?model=gpt-4o-realtime-preview-2024-10-01"
DEFAULT_INSTRUCTIONS = "Please provide a transcript."


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() in ("true", "1", "yes")


def _env_optional_int(name: str) -> Optional[int]:
    value = os.getenv(name, "").strip()
    return int(value) if value else None


class RealtimeConfig(BaseModel):
    api_key: str = Field(..., min_length=1, description="API key for the realtime conversational service")
    url: str = Field(default=DEFAULT_REALTIME_URL, description="WebSocket endpoint of the realtime service")
    instructions: str = Field(default=DEFAULT_INSTRUCTIONS, description="Instructions sent with every response request")
    sample_rate: int = Field(default=24000, gt=0, description="Capture and playback sample rate in Hz")
    fft_size: int = Field(default=1024, gt=0, description="FFT window size for spectrum feeds (power of two)")
    listening_mode: ListeningMode = Field(default=ListeningMode.PUSH_TO_TALK, description="push_to_talk or vad")
    vad_energy_threshold: float = Field(default=0.5, ge=0.0, description="Short/long window energy ratio that counts as speech")
    vad_last_seconds: float = Field(default=1.0, gt=0.0, description="Length of the short VAD window in seconds")
    vad_silence_seconds: float = Field(default=2.0, gt=0.0, description="Silence that ends a VAD recording, in seconds")
    vad_high_pass_hz: float = Field(default=0.0, ge=0.0, description="High-pass cutoff applied before VAD (0 disables)")
    max_buffer_seconds: int = Field(default=10, gt=0, description="Length of the rolling capture buffer in seconds")
    min_playback_buffer_seconds: float = Field(default=0.1, ge=0.0, description="Audio buffered before a full playback slice")
    max_playback_chunk_samples: int = Field(default=48000, gt=0, description="Largest slice handed to the output device")
    interrupt_on_new_recording: bool = Field(default=False, description="When True, starting a recording cancels playback")
    poll_interval_s: float = Field(default=0.05, gt=0.0, description="Capture poll tick in seconds")
    input_device: Optional[int] = Field(default=None, description="sounddevice input device index")
    output_device: Optional[int] = Field(default=None, description="sounddevice output device index")
    log_level: str = Field(default="INFO", description="Logging level")

    @field_validator("fft_size")
    @classmethod
    def _fft_size_is_power_of_two(cls, value: int) -> int:
        if value & (value - 1):
            raise ValueError(f"fft_size must be a power of two, got {value}")
        return value

    def vad_config(self) -> VADConfig:
        return VADConfig(
            energy_threshold=self.vad_energy_threshold,
            last_seconds=self.vad_last_seconds,
            silence_seconds=self.vad_silence_seconds,
            high_pass_hz=self.vad_high_pass_hz,
        )

    def capture_config(self) -> CaptureConfig:
        return CaptureConfig(
            sample_rate=self.sample_rate,
            fft_size=self.fft_size,
            max_buffer_seconds=self.max_buffer_seconds,
            interrupt_on_new_recording=self.interrupt_on_new_recording,
            vad=self.vad_config(),
        )

    def playback_config(self) -> PlaybackConfig:
        return PlaybackConfig(
            sample_rate=self.sample_rate,
            fft_size=self.fft_size,
            min_buffer_seconds=self.min_playback_buffer_seconds,
            max_chunk_samples=self.max_playback_chunk_samples,
        )


def load_config(config_path: Optional[Path] = None) -> RealtimeConfig:
    if config_path is None:
        config_path = Path(".env")

    if config_path.exists():
        load_dotenv(config_path)
        logger.info(f"Loaded environment variables from {config_path}")
    else:
        logger.warning(f"Config file {config_path} not found, using environment variables only")

    try:
        config = RealtimeConfig(
            api_key=os.getenv("OPENAI_API_KEY", ""),
            url=os.getenv("REALTIME_URL", DEFAULT_REALTIME_URL),
            instructions=os.getenv("RESPONSE_INSTRUCTIONS", DEFAULT_INSTRUCTIONS),
            sample_rate=int(os.getenv("SAMPLE_RATE", "24000")),
            fft_size=int(os.getenv("FFT_SIZE", "1024")),
            listening_mode=ListeningMode(os.getenv("LISTENING_MODE", "push_to_talk").lower()),
            vad_energy_threshold=float(os.getenv("VAD_ENERGY_THRESHOLD", "0.5")),
            vad_last_seconds=float(os.getenv("VAD_LAST_SECONDS", "1.0")),
            vad_silence_seconds=float(os.getenv("VAD_SILENCE_SECONDS", "2.0")),
            vad_high_pass_hz=float(os.getenv("VAD_HIGH_PASS_HZ", "0.0")),
            max_buffer_seconds=int(os.getenv("MAX_BUFFER_SECONDS", "10")),
            min_playback_buffer_seconds=float(os.getenv("MIN_PLAYBACK_BUFFER_SECONDS", "0.1")),
            max_playback_chunk_samples=int(os.getenv("MAX_PLAYBACK_CHUNK_SAMPLES", "48000")),
            interrupt_on_new_recording=_env_bool("INTERRUPT_ON_NEW_RECORDING", "false"),
            poll_interval_s=float(os.getenv("POLL_INTERVAL_SECONDS", "0.05")),
            input_device=_env_optional_int("INPUT_DEVICE"),
            output_device=_env_optional_int("OUTPUT_DEVICE"),
            log_level=os.getenv("LOG_LEVEL", "INFO"),
        )

        if not config.api_key:
            raise ValueError("OPENAI_API_KEY is required but not set")

        return config

    except Exception as e:
        logger.error(f"Failed to load configuration: {e}")
        raise

def create_example_env_file(path: Path = Path(".env.example")):
    example_content = f"""# API key for the realtime conversational service
OPENAI_API_KEY=your_api_key_here

# Realtime endpoint and the instructions sent with every response request
REALTIME_URL={DEFAULT_REALTIME_URL}
RESPONSE_INSTRUCTIONS={DEFAULT_INSTRUCTIONS}

# Audio format (capture and playback share the sample rate)
SAMPLE_RATE=24000
FFT_SIZE=1024

# Listening mode: push_to_talk or vad
LISTENING_MODE=push_to_talk

# Client-side VAD: energy ratio threshold, short window, silence timeout, high-pass cutoff (0 = off)
VAD_ENERGY_THRESHOLD=0.5
VAD_LAST_SECONDS=1.0
VAD_SILENCE_SECONDS=2.0
VAD_HIGH_PASS_HZ=0.0

# Rolling capture buffer length in seconds
MAX_BUFFER_SECONDS=10

# Playback buffering
MIN_PLAYBACK_BUFFER_SECONDS=0.1
MAX_PLAYBACK_CHUNK_SAMPLES=48000

# Barge-in: starting a new recording cancels the response being played (true/false)
INTERRUPT_ON_NEW_RECORDING=false

# Capture poll tick in seconds
POLL_INTERVAL_SECONDS=0.05

# sounddevice device indices (empty = system default)
INPUT_DEVICE=
OUTPUT_DEVICE=

# Logging level
LOG_LEVEL=INFO
"""

    with open(path, "w") as f:
        f.write(example_content)

    logger.info(f"Created example environment file at {path}")

def setup_logging(log_level: str = "INFO"):
    logging.basicConfig(
        level=getattr(logging, log_level.upper()),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S"
    )
