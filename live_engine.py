"""Live recognition adapter using DashScope realtime (paraformer) recognition.

Microphone frames are pumped from the recorder into a streaming
``Recognition`` session. The engine answers with sentence updates: a
sentence that is still open becomes an interim event, a closed sentence
becomes a final event. Every engine error is reported as-is; deciding what
to do about it belongs to the coordinator.
"""

from __future__ import annotations

import logging
import os
import threading
from queue import Empty, Queue
from typing import Any, Optional

from channel import EventChannel
from config import CaptureSettings
from errors import PERMISSION_DENIED, RECOGNITION_ERROR, CaptureError
from interfaces import Recorder
from models import AudioFrame, CaptureMode, EngineEvent, EngineEventKind
from recorder import SoundDeviceRecorder

try:
    import dashscope
    from dashscope.audio.asr import Recognition
except Exception:  # pragma: no cover
    dashscope = None  # type: ignore
    Recognition = None  # type: ignore

logger = logging.getLogger(__name__)


def _is_sentence_end(sentence: dict) -> bool:
    if "sentence_end" in sentence:
        return bool(sentence["sentence_end"])
    return sentence.get("end_time") is not None


class _RecognitionCallback:
    """Implements the DashScope ``RecognitionCallback`` hooks."""

    def __init__(self, adapter: "LiveRecognitionAdapter") -> None:
        self._adapter = adapter

    def on_open(self) -> None:
        logger.info("Speech recognition started")

    def on_close(self) -> None:
        logger.debug("Speech recognition connection closed")

    def on_complete(self) -> None:
        self._adapter._emit_ended()

    def on_error(self, result: Any) -> None:
        message = getattr(result, "message", None) or str(result)
        logger.error("Speech recognition error: %s", message)
        self._adapter._emit(
            EngineEvent(kind=EngineEventKind.ERROR, code=RECOGNITION_ERROR, message=str(message))
        )

    def on_event(self, result: Any) -> None:
        sentence = result.get_sentence()
        if not isinstance(sentence, dict):
            return
        text = str(sentence.get("text", ""))
        kind = EngineEventKind.FINAL if _is_sentence_end(sentence) else EngineEventKind.INTERIM
        self._adapter._emit(EngineEvent(kind=kind, text=text))


class LiveRecognitionAdapter:
    mode = CaptureMode.LIVE

    def __init__(
        self,
        settings: CaptureSettings,
        recorder: Optional[Recorder] = None,
    ) -> None:
        self._settings = settings
        self._recorder = recorder or SoundDeviceRecorder(sample_rate=settings.sample_rate)
        self._lock = threading.Lock()
        self._channel: Optional[EventChannel] = None
        self._recognition: Any = None
        self._pump: Optional[threading.Thread] = None
        self._audio_queue: Queue[AudioFrame | None] = Queue(maxsize=200)
        self._ended = False
        self._stopped = False
        self.base_text = ""

    def start(self, base_text: str, channel: EventChannel) -> None:
        if Recognition is None:
            raise CaptureError(RECOGNITION_ERROR, "dashscope is not installed")
        with self._lock:
            self.base_text = base_text
            self._channel = channel
            self._ended = False
            self._stopped = False
            self._audio_queue = Queue(maxsize=200)

        api_key = self._settings.dashscope_api_key or os.getenv("DASHSCOPE_API_KEY", "")
        if api_key:
            dashscope.api_key = api_key

        self._recorder.start(self._audio_queue)
        try:
            recognition = Recognition(
                model=self._settings.live_model,
                format="pcm",
                sample_rate=self._settings.sample_rate,
                language_hints=[self._settings.language],
                callback=_RecognitionCallback(self),
            )
            recognition.start()
        except Exception as exc:
            self._recorder.stop()
            code = PERMISSION_DENIED if _looks_like_permission_error(exc) else RECOGNITION_ERROR
            raise CaptureError(code, str(exc)) from exc

        self._recognition = recognition
        self._pump = threading.Thread(target=self._pump_audio, daemon=True)
        self._pump.start()

    def stop(self) -> None:
        with self._lock:
            if self._stopped:
                return
            self._stopped = True
            recognition = self._recognition
        self._recorder.stop()
        if self._pump is not None and self._pump is not threading.current_thread():
            self._pump.join(timeout=1.0)
        if recognition is not None:
            try:
                recognition.stop()
            except Exception as exc:
                logger.debug("Recognition stop raised: %s", exc)
        # no completion callback arrives once the engine has failed
        self._emit_ended()

    def discard(self) -> None:
        with self._lock:
            self._channel = None
        self.stop()

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _pump_audio(self) -> None:
        while True:
            try:
                frame = self._audio_queue.get(timeout=0.2)
            except Empty:
                if self._stopped:
                    return
                continue
            if frame is None:
                return
            recognition = self._recognition
            if recognition is None:
                return
            try:
                recognition.send_audio_frame(frame.pcm16_bytes)
            except Exception as exc:
                logger.error("Sending audio to recognizer failed: %s", exc)
                self._emit(
                    EngineEvent(kind=EngineEventKind.ERROR, code=RECOGNITION_ERROR, message=str(exc))
                )
                return

    def _emit(self, event: EngineEvent) -> None:
        with self._lock:
            channel = self._channel
        if channel is not None:
            channel.put(event)

    def _emit_ended(self) -> None:
        with self._lock:
            if self._ended:
                return
            self._ended = True
        self._emit(EngineEvent(kind=EngineEventKind.ENDED))


def _looks_like_permission_error(exc: Exception) -> bool:
    low = str(exc).lower()
    return "permission" in low or "not allowed" in low
