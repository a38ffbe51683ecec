"""Closable event channel between an engine and the coordinator."""

from __future__ import annotations

import threading
from queue import Empty, Queue
from typing import Optional

from models import EngineEvent


class EventChannel:
    def __init__(self, name: str = "") -> None:
        self.name = name
        self._queue: Queue[EngineEvent] = Queue()
        self._closed = threading.Event()

    @property
    def closed(self) -> bool:
        return self._closed.is_set()

    def put(self, event: EngineEvent) -> bool:
        """Queue an event; returns False once the channel has been closed."""
        if self._closed.is_set():
            return False
        self._queue.put(event)
        return True

    def get(self, timeout: float = 0.1) -> Optional[EngineEvent]:
        if self._closed.is_set():
            return None
        try:
            return self._queue.get(timeout=timeout)
        except Empty:
            return None

    def close(self) -> None:
        self._closed.set()
        while True:
            try:
                self._queue.get_nowait()
            except Empty:
                break
