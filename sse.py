"""Incremental decoder for streamed transcription responses (text/event-stream)."""

from __future__ import annotations

import codecs
import json
import logging
from typing import Iterator, List, Optional

from models import FrameKind, TranscriptFrame

logger = logging.getLogger(__name__)

DONE_SENTINEL = "[DONE]"
DELTA_EVENT = "transcript.text.delta"
DONE_EVENT = "transcript.text.done"


def parse_frame(line: str) -> Optional[TranscriptFrame]:
    """Turn one ``data:`` line into a frame.

    Returns None for lines that carry nothing for the transcript: blanks,
    comments, other SSE fields and JSON events of other types. Raises
    ``ValueError`` when the payload is not valid JSON.
    """
    line = line.strip()
    if not line or line.startswith(":") or not line.startswith("data:"):
        return None
    payload = line[5:].strip()
    if payload == DONE_SENTINEL:
        return TranscriptFrame(kind=FrameKind.END)
    message = json.loads(payload)
    if not isinstance(message, dict):
        raise ValueError(f"unexpected SSE payload: {payload!r}")
    msg_type = message.get("type")
    if msg_type == DELTA_EVENT:
        delta = message.get("delta")
        return TranscriptFrame(kind=FrameKind.DELTA, text=str(delta)) if delta else None
    if msg_type == DONE_EVENT:
        return TranscriptFrame(kind=FrameKind.DONE, text=str(message.get("text") or ""))
    if not msg_type and message.get("text"):
        return TranscriptFrame(kind=FrameKind.TEXT, text=str(message["text"]))
    return None


class TranscriptStreamDecoder:
    """Feeds raw response bytes in, yields transcript frames out.

    Bytes are decoded as UTF-8 incrementally, so a multi-byte character split
    across reads is reassembled. The last partial line of each read is held
    until the next one completes it. A malformed frame is logged and skipped.
    """

    def __init__(self) -> None:
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._buffer = ""
        self.skipped: List[str] = []

    def feed(self, chunk: bytes) -> Iterator[TranscriptFrame]:
        self._buffer += self._decoder.decode(chunk)
        lines = self._buffer.split("\n")
        self._buffer = lines.pop()
        for line in lines:
            frame = self._parse(line)
            if frame is not None:
                yield frame

    def close(self) -> Iterator[TranscriptFrame]:
        self._buffer += self._decoder.decode(b"", final=True)
        tail, self._buffer = self._buffer, ""
        frame = self._parse(tail)
        if frame is not None:
            yield frame

    def _parse(self, line: str) -> Optional[TranscriptFrame]:
        try:
            return parse_frame(line)
        except ValueError:
            logger.warning("Failed to parse SSE data: %s", line.strip())
            self.skipped.append(line)
            return None


class TranscriptAccumulator:
    """Running transcript text built from decoded frames."""

    def __init__(self) -> None:
        self.text = ""
        self.done = False

    def apply(self, frame: TranscriptFrame) -> None:
        if frame.kind == FrameKind.DELTA:
            self.text += frame.text
        elif frame.kind == FrameKind.DONE:
            if frame.text:
                self.text = frame.text
            self.done = True
        elif frame.kind == FrameKind.TEXT:
            self.text = frame.text
        elif frame.kind == FrameKind.END:
            self.done = True
