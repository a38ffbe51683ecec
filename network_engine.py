"""Network transcription adapter: record locally, upload, stream the text back.

Audio is buffered in memory in one-second slices while the user speaks. On
stop the slices are wrapped into a single WAV upload to an OpenAI-compatible
``/audio/transcriptions`` endpoint with ``stream=true``; the server-sent
deltas are decoded as they arrive and reported as interim text, and the
complete transcript is reported as one final event.
"""

from __future__ import annotations

import io
import logging
import threading
import wave
from queue import Queue
from typing import Optional

import httpx

from channel import EventChannel
from config import CaptureSettings
from errors import ASR_PROTOCOL_ERROR, AUTH_FAILED, NETWORK_ERROR
from interfaces import Recorder
from models import AudioFrame, CaptureMode, EngineEvent, EngineEventKind
from recorder import SoundDeviceRecorder
from sse import TranscriptAccumulator, TranscriptStreamDecoder

logger = logging.getLogger(__name__)

SLICE_MS = 1000
PROMPT_CONTEXT_CHARS = 200


def _pcm_to_wav(
    pcm: bytes,
    sample_rate: int = 16000,
    channels: int = 1,
    sample_width: int = 2,
) -> bytes:
    """Wrap raw PCM bytes in a WAV container."""
    buf = io.BytesIO()
    with wave.open(buf, "wb") as wf:
        wf.setnchannels(channels)
        wf.setsampwidth(sample_width)
        wf.setframerate(sample_rate)
        wf.writeframes(pcm)
    return buf.getvalue()


class TranscriptionFailed(Exception):
    def __init__(self, code: str, message: str) -> None:
        super().__init__(message)
        self.code = code
        self.message = message


class NetworkTranscriptionAdapter:
    mode = CaptureMode.NETWORK

    def __init__(
        self,
        settings: CaptureSettings,
        recorder: Optional[Recorder] = None,
        client: Optional[httpx.Client] = None,
    ) -> None:
        self._settings = settings
        self._recorder = recorder or SoundDeviceRecorder(
            sample_rate=settings.sample_rate, chunk_ms=SLICE_MS
        )
        self._client = client
        self._lock = threading.Lock()
        self._channel: Optional[EventChannel] = None
        self._audio_queue: Queue[AudioFrame | None] = Queue()
        self._worker: Optional[threading.Thread] = None
        self._stopped = False
        self._discarded = False
        self.base_text = ""

    def start(self, base_text: str, channel: EventChannel) -> None:
        with self._lock:
            self.base_text = base_text
            self._channel = channel
            self._stopped = False
            self._discarded = False
            self._audio_queue = Queue()
        self._recorder.start(self._audio_queue)
        self._worker = threading.Thread(target=self._collect_and_submit, daemon=True)
        self._worker.start()
        logger.info("Recording for server-side transcription")

    def stop(self) -> None:
        with self._lock:
            if self._stopped:
                return
            self._stopped = True
        self._recorder.stop()

    def discard(self) -> None:
        with self._lock:
            self._discarded = True
            self._channel = None
        self.stop()

    def submit(self, audio: bytes) -> str:
        """Upload a WAV payload and stream the transcript back.

        Progress is pushed as interim events; the returned value is the full
        transcript. Raises ``TranscriptionFailed`` when the request or the
        response fails.
        """
        settings = self._settings
        data = {
            "model": settings.transcription_model,
            "response_format": "json",
            "stream": "true",
        }
        if settings.language:
            data["language"] = settings.language
        prompt = self.base_text[-PROMPT_CONTEXT_CHARS:].strip()
        if prompt:
            data["prompt"] = prompt
        files = {settings.audio_field: ("recording.wav", audio, "audio/wav")}
        headers = {"Accept": "text/event-stream"}
        if settings.transcription_api_key:
            headers["Authorization"] = f"Bearer {settings.transcription_api_key}"

        client = self._client or httpx.Client(
            timeout=httpx.Timeout(settings.request_timeout_s, read=None)
        )
        try:
            logger.info(
                "POST %s model=%s (%d bytes)",
                settings.transcription_endpoint,
                settings.transcription_model,
                len(audio),
            )
            with client.stream(
                "POST", settings.transcription_endpoint, data=data, files=files, headers=headers
            ) as response:
                if not response.is_success:
                    body = response.read().decode("utf-8", errors="ignore")
                    logger.error("Transcription error %s: %s", response.status_code, body[:200])
                    code = AUTH_FAILED if response.status_code in (401, 403) else NETWORK_ERROR
                    raise TranscriptionFailed(code, f"HTTP {response.status_code}: {body[:200]}")
                if response.headers.get("content-type", "").startswith("application/json"):
                    return self._read_json(response)
                return self._read_stream(response)
        except httpx.HTTPError as exc:
            logger.error("Transcription upload failed: %s", exc)
            raise TranscriptionFailed(NETWORK_ERROR, str(exc)) from exc
        finally:
            if self._client is None:
                client.close()

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _collect_and_submit(self) -> None:
        pcm = bytearray()
        sample_rate = self._settings.sample_rate
        channels = 1
        while True:
            frame = self._audio_queue.get()
            if frame is None:
                break
            pcm.extend(frame.pcm16_bytes)
            sample_rate = frame.sample_rate
            channels = frame.channels

        if self._discarded:
            return
        if not pcm:
            self._emit(EngineEvent(kind=EngineEventKind.FINAL, text=""))
            self._emit(EngineEvent(kind=EngineEventKind.ENDED))
            return

        try:
            text = self.submit(_pcm_to_wav(bytes(pcm), sample_rate, channels))
        except TranscriptionFailed as exc:
            self._emit(EngineEvent(kind=EngineEventKind.ERROR, code=exc.code, message=exc.message))
            return
        if self._discarded:
            return
        self._emit(EngineEvent(kind=EngineEventKind.FINAL, text=text))
        self._emit(EngineEvent(kind=EngineEventKind.ENDED))

    def _read_stream(self, response: httpx.Response) -> str:
        decoder = TranscriptStreamDecoder()
        accumulated = TranscriptAccumulator()
        for chunk in response.iter_bytes():
            for frame in decoder.feed(chunk):
                accumulated.apply(frame)
                self._emit(EngineEvent(kind=EngineEventKind.INTERIM, text=accumulated.text))
            if accumulated.done or self._discarded:
                return accumulated.text
        for frame in decoder.close():
            accumulated.apply(frame)
            self._emit(EngineEvent(kind=EngineEventKind.INTERIM, text=accumulated.text))
        return accumulated.text

    def _read_json(self, response: httpx.Response) -> str:
        response.read()
        try:
            payload = response.json()
        except ValueError as exc:
            raise TranscriptionFailed(ASR_PROTOCOL_ERROR, f"invalid JSON response: {exc}") from exc
        text = str(payload.get("text", "")) if isinstance(payload, dict) else ""
        if text:
            self._emit(EngineEvent(kind=EngineEventKind.INTERIM, text=text))
        return text

    def _emit(self, event: EngineEvent) -> None:
        with self._lock:
            channel = self._channel
        if channel is not None:
            channel.put(event)
