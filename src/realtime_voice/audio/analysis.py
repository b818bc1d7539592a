"""Spectrum and energy-ratio voice activity detection over sample windows."""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Sequence

import numpy as np
from scipy import signal

# Upper edges (Hz) of the visualization bands; the last band ends at Nyquist.
DEFAULT_BAND_EDGES_HZ = (85.0, 160.0, 255.0, 350.0, 500.0, 1000.0, 2000.0, 3000.0, 4000.0)


@dataclass(frozen=True)
class VoiceActivity:
    """Result of one energy-ratio VAD run."""
    detected: bool
    energy_last: float = 0.0   # mean |x| over the short (most recent) window
    energy_all: float = 0.0    # mean |x| over the whole window

    def __bool__(self) -> bool:
        return self.detected


def _is_power_of_two(n: int) -> bool:
    return n > 0 and (n & (n - 1)) == 0


def _bit_reversed_indices(n: int) -> np.ndarray:
    bits = n.bit_length() - 1
    idx = np.arange(n)
    rev = np.zeros(n, dtype=np.int64)
    for b in range(bits):
        rev |= ((idx >> b) & 1) << (bits - 1 - b)
    return rev


def fft_in_place(buf: np.ndarray) -> None:
    """Iterative radix-2 Cooley-Tukey FFT over a complex128 array, in place.

    len(buf) must be a power of two.
    """
    n = len(buf)
    assert _is_power_of_two(n), f"FFT size must be a power of two, got {n}"
    buf[:] = buf[_bit_reversed_indices(n)]
    size = 2
    while size <= n:
        half = size // 2
        twiddle = np.exp(-2j * np.pi * np.arange(half) / size)
        # contiguous reshape is a view, so the butterflies write straight into buf
        blocks = buf.reshape(-1, size)
        top = blocks[:, :half].copy()
        bottom = blocks[:, half:] * twiddle
        blocks[:, :half] = top + bottom
        blocks[:, half:] = top - bottom
        size *= 2


def compute_spectrum(window: np.ndarray, size: int) -> np.ndarray:
    """
    Magnitude spectrum of the most recent `size` samples of `window`.

    Shorter windows are zero-padded at the end. Returns `size // 2` bins covering
    0 Hz up to (but excluding) Nyquist; bin k is centred on k * sample_rate / size.

    `size` must be a power of two. This is a caller precondition, checked with an
    assert, not a recoverable error.
    """
    assert _is_power_of_two(size), f"FFT size must be a power of two, got {size}"
    samples = np.asarray(window, dtype=np.float64).ravel()
    buf = np.zeros(size, dtype=np.complex128)
    take = min(len(samples), size)
    if take:
        buf[:take] = samples[len(samples) - take:]
    fft_in_place(buf)
    return np.abs(buf[: size // 2])


def band_levels(
    spectrum: np.ndarray,
    sample_rate: int,
    fft_size: int,
    edges_hz: Sequence[float] = DEFAULT_BAND_EDGES_HZ,
) -> np.ndarray:
    """Average spectrum magnitude per frequency band (one value per edge, plus a Nyquist band)."""
    nyquist = sample_rate / 2.0
    upper_edges = [e for e in edges_hz if e < nyquist] + [nyquist]
    hz_per_bin = sample_rate / float(fft_size)
    levels = np.zeros(len(upper_edges), dtype=np.float32)
    start = 0
    for i, edge in enumerate(upper_edges):
        end = min(len(spectrum), int(math.floor(edge / hz_per_bin)))
        if end > start:
            levels[i] = float(np.mean(spectrum[start:end]))
        start = max(start, end)
    return levels


def high_pass_filter(samples: np.ndarray, cutoff_hz: float, sample_rate: int) -> np.ndarray:
    """
    Single-pole IIR high-pass: y[i] = a * (y[i-1] + x[i] - x[i-1]), y[0] = x[0].

    Returns a new float32 array; the input is not modified.
    """
    x = np.asarray(samples, dtype=np.float64).ravel()
    if x.size == 0 or cutoff_hz <= 0:
        return x.astype(np.float32)
    rc = 1.0 / (2.0 * math.pi * cutoff_hz)
    dt = 1.0 / sample_rate
    alpha = rc / (rc + dt)
    y = np.empty_like(x)
    y[0] = x[0]
    if x.size > 1:
        y[1:], _ = signal.lfilter([alpha], [1.0, -alpha], np.diff(x), zi=[alpha * x[0]])
    return y.astype(np.float32)


def detect_voice_activity(
    window: np.ndarray,
    sample_rate: int,
    last_seconds: float,
    energy_threshold: float,
    high_pass_hz: float = 0.0,
) -> VoiceActivity:
    """
    Energy-ratio VAD: speech if mean |x| over the last `last_seconds` exceeds
    `energy_threshold` times mean |x| over the whole window.

    Returns a negative result when the short window is not strictly shorter than
    the whole window.
    """
    data = np.asarray(window, dtype=np.float32).ravel()
    n_samples = len(data)
    n_last = int(sample_rate * last_seconds)
    if n_last <= 0 or n_last >= n_samples:
        return VoiceActivity(detected=False)

    if high_pass_hz > 0.0:
        data = high_pass_filter(data, high_pass_hz, sample_rate)

    magnitude = np.abs(data.astype(np.float64))
    energy_all = float(magnitude.mean())
    energy_last = float(magnitude[n_samples - n_last:].mean())
    return VoiceActivity(
        detected=energy_last > energy_threshold * energy_all,
        energy_last=energy_last,
        energy_all=energy_all,
    )

