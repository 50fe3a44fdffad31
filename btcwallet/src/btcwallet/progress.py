"""
Sync progress reporting.

Backends report progress through a ``ProgressBridge``, which forwards each
event to a user-supplied observer exactly once and in order. Observer
failures are logged and swallowed: a broken progress display must never
abort a sync.

Usage:
    class Printer:
        def update(self, progress: float, message: str | None) -> None:
            print(f"{progress:5.1f}% {message or ''}")

    await wallet.sync(progress=Printer())
"""

from __future__ import annotations

import threading
from typing import Protocol, runtime_checkable

from loguru import logger


@runtime_checkable
class ProgressObserver(Protocol):
    def update(self, progress: float, message: str | None) -> None:
        """Receive a progress event (``progress`` in percent, 0-100)."""
        ...


class LoggingProgress:
    """Default observer: logs every update."""

    def update(self, progress: float, message: str | None) -> None:
        if message:
            logger.info(f"Sync progress {progress:.1f}%: {message}")
        else:
            logger.info(f"Sync progress {progress:.1f}%")


class ProgressBridge:
    """
    Forwards backend progress events to an observer.

    Events are delivered inline on the caller's thread or task, unbuffered.
    The lock keeps concurrent reporters from interleaving deliveries. It is
    reentrant, so an observer may itself report through the same bridge.
    """

    def __init__(self, observer: ProgressObserver | None = None):
        self.observer: ProgressObserver = observer if observer is not None else LoggingProgress()
        self._lock = threading.RLock()
        self.events_delivered = 0

    def update(self, progress: float, message: str | None = None) -> None:
        with self._lock:
            self.events_delivered += 1
            try:
                self.observer.update(progress, message)
            except Exception:
                logger.exception(f"Progress observer failed on update ({progress:.1f}%)")
