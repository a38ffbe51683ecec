"""Core data models for the capture engine."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional


class SessionState(str, Enum):
    IDLE = "IDLE"
    RECORDING = "RECORDING"
    FINALIZING = "FINALIZING"
    ENDED = "ENDED"
    FAILED = "FAILED"


class CaptureMode(str, Enum):
    LIVE = "live"
    NETWORK = "network"


class EngineEventKind(str, Enum):
    INTERIM = "interim"
    FINAL = "final"
    ERROR = "error"
    ENDED = "ended"


class FrameKind(str, Enum):
    DELTA = "delta"
    DONE = "done"
    TEXT = "text"
    END = "end"


@dataclass
class AudioFrame:
    pcm16_bytes: bytes
    sample_rate: int = 16000
    channels: int = 1
    timestamp_ms: int = 0


@dataclass
class EngineEvent:
    kind: EngineEventKind
    text: str = ""
    code: str = ""
    message: str = ""


@dataclass
class TranscriptFrame:
    """One decoded server-sent frame of a streamed transcription."""

    kind: FrameKind
    text: str = ""


@dataclass
class CaptureSession:
    session_id: int
    base_text: str
    mode: Optional[CaptureMode] = None
    state: SessionState = SessionState.IDLE
    fell_back: bool = False
    final_text: Optional[str] = None
    error: Optional[Exception] = None
