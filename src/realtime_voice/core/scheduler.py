"""Shutdown signalling and the fixed-rate tick used by the capture poll."""

from __future__ import annotations

import asyncio
import logging
import threading
from typing import Callable, Protocol

logger = logging.getLogger(__name__)


class StopSignal(Protocol):
    """Protocol for shutdown signals checked by long-running loops."""

    def is_set(self) -> bool: ...


class GracefulShutdown:
    def __init__(self):
        self.stop_event = threading.Event()

    def stop(self):
        self.stop_event.set()

    def is_set(self) -> bool:
        return self.stop_event.is_set()


async def run_periodic(
    tick: Callable[[], object],
    interval_s: float,
    stop_signal: StopSignal,
    name: str = "tick",
) -> None:
    """
    Call `tick()` every `interval_s` seconds until `stop_signal` is set.

    Deadlines are absolute so a slow tick does not accumulate drift.
    Exceptions from `tick` are logged and the loop continues.
    """
    loop = asyncio.get_running_loop()
    next_at = loop.time()
    while not stop_signal.is_set():
        try:
            tick()
        except Exception:
            logger.exception("%s failed", name)
        next_at += interval_s
        delay = next_at - loop.time()
        if delay < 0:
            # Fell behind; resync instead of firing a burst of late ticks.
            next_at = loop.time()
            delay = 0.0
        await asyncio.sleep(delay)
