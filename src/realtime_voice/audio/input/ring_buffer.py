"""Fixed-capacity sample ring buffer with overwrite-oldest semantics."""

from __future__ import annotations

import threading

import numpy as np


def available_since(cursor: int, position: int, capacity: int) -> int:
    """Number of samples written between read `cursor` and write `position` on a ring of `capacity`.

    A reader that falls a full lap behind sees only the remainder; the lapped
    samples are lost to overwrite.
    """
    if capacity <= 0:
        return 0
    return (position - cursor) % capacity


class RingBuffer:
    """
    Circular float32 buffer written by a device callback and read by a poller.

    The writer never blocks; once full, new samples overwrite the oldest ones.
    Readers keep their own cursor and ask for everything written since it.
    """

    def __init__(self, capacity: int):
        if capacity <= 0:
            raise ValueError(f"capacity must be positive, got {capacity}")
        self._data = np.zeros(capacity, dtype=np.float32)
        self._capacity = capacity
        self._position = 0
        self._lock = threading.Lock()

    @property
    def capacity(self) -> int:
        return self._capacity

    @property
    def position(self) -> int:
        """Index the next sample will be written to."""
        with self._lock:
            return self._position

    def reset(self) -> None:
        with self._lock:
            self._data[:] = 0.0
            self._position = 0

    def write(self, samples: np.ndarray) -> None:
        pcm = np.asarray(samples, dtype=np.float32).ravel()
        n = len(pcm)
        if n == 0:
            return
        with self._lock:
            if n >= self._capacity:
                # Only the newest lap survives.
                pcm = pcm[-self._capacity:]
                start = (self._position + n - self._capacity) % self._capacity
                first = self._capacity - start
                self._data[start:] = pcm[:first]
                self._data[:start] = pcm[first:]
                self._position = start
                return
            end = self._position + n
            if end <= self._capacity:
                self._data[self._position:end] = pcm
            else:
                first = self._capacity - self._position
                self._data[self._position:] = pcm[:first]
                self._data[: n - first] = pcm[first:]
            self._position = end % self._capacity

    def read_since(self, cursor: int) -> tuple[np.ndarray, int]:
        """Return (samples written since `cursor`, new cursor), unwrapping across the end."""
        with self._lock:
            position = self._position
            count = available_since(cursor, position, self._capacity)
            if count == 0:
                return np.zeros(0, dtype=np.float32), position
            if cursor + count <= self._capacity:
                out = self._data[cursor:cursor + count].copy()
            else:
                out = np.concatenate((self._data[cursor:], self._data[:position]))
            return out, position
