"""Float <-> PCM16 conversion and the base64 form used on the wire."""

from __future__ import annotations

import base64

import numpy as np

# Encode scales by the signed 16-bit max, decode divides by 2**15.
PCM16_MAX = 32767
PCM16_SCALE = 32768.0

_PCM16_DTYPE = np.dtype("<i2")


def encode_pcm16(samples: np.ndarray) -> bytes:
    """Convert float samples to little-endian PCM16. Values outside [-1, 1] are clamped."""
    pcm = np.asarray(samples, dtype=np.float32).ravel()
    if pcm.size == 0:
        return b""
    clipped = np.clip(pcm.astype(np.float64), -1.0, 1.0)
    # round away from zero: decode(encode(x)) then stays within one step of x
    scaled = np.sign(clipped) * np.ceil(np.abs(clipped) * PCM16_MAX)
    return scaled.astype(_PCM16_DTYPE).tobytes()


def decode_pcm16(data: bytes) -> np.ndarray:
    """Convert little-endian PCM16 bytes to float32 samples in [-1, 1).

    A trailing odd byte (half a sample) is ignored.
    """
    usable = len(data) - (len(data) % 2)
    if usable <= 0:
        return np.zeros(0, dtype=np.float32)
    int16 = np.frombuffer(data[:usable], dtype=_PCM16_DTYPE)
    return int16.astype(np.float32) / PCM16_SCALE


def to_base64(data: bytes) -> str:
    return base64.b64encode(data).decode("ascii")


def from_base64(text: str) -> bytes:
    """Decode a base64 payload. Raises binascii.Error on malformed input."""
    return base64.b64decode(text, validate=True)


def encode_base64_pcm16(samples: np.ndarray) -> str:
    return to_base64(encode_pcm16(samples))


def decode_base64_pcm16(text: str) -> np.ndarray:
    return decode_pcm16(from_base64(text))
