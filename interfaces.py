"""Protocol interfaces used by the capture coordinator and engines."""

from __future__ import annotations

from queue import Queue
from typing import Protocol

from channel import EventChannel
from models import AudioFrame, CaptureMode


class Recorder(Protocol):
    def start(self, audio_queue: Queue[AudioFrame | None]) -> None: ...

    def stop(self) -> None: ...


class CaptureEngine(Protocol):
    mode: CaptureMode

    def start(self, base_text: str, channel: EventChannel) -> None: ...

    def stop(self) -> None: ...

    def discard(self) -> None: ...

