"""Microphone recorder owning the exclusive input stream.

Only one engine at a time holds the microphone: the live engine streams the
slices straight to the recognizer, the network engine buffers them for
upload. Both read from the queue handed to ``start`` and stop at ``None``.
"""

from __future__ import annotations

import logging
import threading
import time
from queue import Empty, Full, Queue
from typing import Any, Optional

from errors import PERMISSION_DENIED, CaptureError
from models import AudioFrame

try:
    import numpy as np
except Exception:  # pragma: no cover
    np = None  # type: ignore

try:
    import sounddevice as sd
except Exception:  # pragma: no cover
    sd = None  # type: ignore

logger = logging.getLogger(__name__)


class SoundDeviceRecorder:
    """Pushes int16 PCM slices of ``chunk_ms`` onto a queue, ``None`` on stop."""

    def __init__(
        self,
        sample_rate: int = 16000,
        channels: int = 1,
        chunk_ms: int = 100,
    ) -> None:
        self.sample_rate = sample_rate
        self.channels = channels
        self.chunk_ms = chunk_ms
        self.dropped_chunks = 0
        self._mic: Any = None
        self._sink: Optional[Queue[AudioFrame | None]] = None
        self._guard = threading.Lock()

    @property
    def is_running(self) -> bool:
        return self._mic is not None

    @property
    def slice_frames(self) -> int:
        return self.sample_rate * self.chunk_ms // 1000

    def start(self, audio_queue: Queue[AudioFrame | None]) -> None:
        """Open the microphone. A second call while open does nothing."""
        with self._guard:
            if self._mic is not None:
                return
            if sd is None:
                raise RuntimeError("sounddevice is not installed")
            self.dropped_chunks = 0
            self._sink = audio_queue
            self._mic = self._open_mic()
        logger.debug("Microphone opened (%d Hz, %d ms slices)", self.sample_rate, self.chunk_ms)

    def stop(self) -> None:
        """Release the microphone and end the queue. Safe to repeat."""
        with self._guard:
            mic, self._mic = self._mic, None
            if mic is None:
                return
            try:
                mic.stop()
            finally:
                mic.close()
            if self.dropped_chunks:
                logger.warning("Dropped %d audio chunks (queue full)", self.dropped_chunks)
            self._end_queue()
        logger.debug("Microphone released")

    def _open_mic(self) -> Any:
        try:
            mic = sd.InputStream(
                samplerate=self.sample_rate,
                channels=self.channels,
                dtype="int16",
                blocksize=self.slice_frames,
                callback=self._on_audio,
            )
            mic.start()
        except Exception as exc:
            # PortAudio reports denied access and missing devices the same way
            logger.error("Could not open microphone: %s", exc)
            raise CaptureError(PERMISSION_DENIED, str(exc)) from exc
        return mic

    def _on_audio(self, indata: Any, frames: int, time_info: Any, status: Any) -> None:
        sink = self._sink
        if self._mic is None or sink is None or np is None:
            return
        if status:
            logger.debug("Input stream status: %s", status)
        frame = AudioFrame(
            pcm16_bytes=np.asarray(indata, dtype=np.int16).tobytes(),
            sample_rate=self.sample_rate,
            channels=self.channels,
            timestamp_ms=int(time.time() * 1000),
        )
        try:
            sink.put_nowait(frame)
        except Full:
            self.dropped_chunks += 1

    def _end_queue(self) -> None:
        sink = self._sink
        if sink is None:
            return
        try:
            sink.put_nowait(None)
        except Full:
            # make room: the consumer must see the end marker
            try:
                sink.get_nowait()
            except Empty:
                pass
            sink.put_nowait(None)
