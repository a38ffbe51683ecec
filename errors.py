"""Shared error codes, user-facing messages and the capture exception."""

from __future__ import annotations

PERMISSION_DENIED = "PERMISSION_DENIED"
NETWORK_ERROR = "NETWORK_ERROR"
AUTH_FAILED = "AUTH_FAILED"
RECOGNITION_ERROR = "RECOGNITION_ERROR"
ASR_PROTOCOL_ERROR = "ASR_PROTOCOL_ERROR"
FINALIZE_TIMEOUT = "FINALIZE_TIMEOUT"
ENGINE_START_FAILED = "ENGINE_START_FAILED"

ERROR_MESSAGES = {
    PERMISSION_DENIED: "Microphone permission denied. Please allow microphone access.",
    NETWORK_ERROR: "Failed to transcribe audio. Please try again.",
    AUTH_FAILED: "Transcription API key is invalid.",
    RECOGNITION_ERROR: "Speech recognition error.",
    ASR_PROTOCOL_ERROR: "Transcription response format is invalid.",
    FINALIZE_TIMEOUT: "Transcription did not finish in time.",
    ENGINE_START_FAILED: "Could not start recording.",
}


class CaptureError(Exception):
    """Terminal capture failure surfaced to the caller."""

    def __init__(self, code: str, message: str = "") -> None:
        self.code = code
        self.message = message or ERROR_MESSAGES.get(code, code)
        super().__init__(f"{code}: {self.message}")
