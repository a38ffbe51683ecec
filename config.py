"""JSON-based config store and the settings the capture engine reads."""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional

logger = logging.getLogger(__name__)

DEFAULT_LIVE_MODEL = "paraformer-realtime-v2"
DEFAULT_TRANSCRIPTION_ENDPOINT = "https://api.openai.com/v1/audio/transcriptions"
DEFAULT_TRANSCRIPTION_MODEL = "gpt-4o-transcribe"
DEFAULT_HOTKEY = "Key.f9"


@dataclass
class CaptureSettings:
    dashscope_api_key: str = ""
    live_model: str = DEFAULT_LIVE_MODEL
    prefer_live: bool = True
    language: str = "en"
    sample_rate: int = 16000
    transcription_endpoint: str = DEFAULT_TRANSCRIPTION_ENDPOINT
    transcription_api_key: str = ""
    transcription_model: str = DEFAULT_TRANSCRIPTION_MODEL
    audio_field: str = "file"
    request_timeout_s: float = 30.0
    finalize_timeout_s: float = 60.0


class JsonConfigStore:
    def __init__(self, path: Path | None = None) -> None:
        self._path = path or Path.home() / ".config" / "bio_dictation" / "config.json"
        self._path.parent.mkdir(parents=True, exist_ok=True)

    def get_dashscope_api_key(self) -> str:
        return str(self._get("dashscope_api_key", ""))

    def set_dashscope_api_key(self, key: str) -> None:
        self._set("dashscope_api_key", key)

    def get_transcription_api_key(self) -> str:
        return str(self._get("transcription_api_key", ""))

    def set_transcription_api_key(self, key: str) -> None:
        self._set("transcription_api_key", key)

    def get_transcription_endpoint(self) -> str:
        return str(self._get("transcription_endpoint", DEFAULT_TRANSCRIPTION_ENDPOINT))

    def set_transcription_endpoint(self, url: str) -> None:
        self._set("transcription_endpoint", url)

    def get_live_model(self) -> str:
        return str(self._get("live_model", DEFAULT_LIVE_MODEL))

    def get_language(self) -> str:
        return str(self._get("language", "en"))

    def get_prefer_live(self) -> bool:
        return bool(self._get("prefer_live", True))

    def get_hotkey(self) -> str:
        return str(self._get("hotkey", DEFAULT_HOTKEY))

    def set_hotkey(self, hotkey: str) -> None:
        self._set("hotkey", hotkey)

    def _get(self, key: str, default: Any) -> Any:
        return self._read_all().get(key, default)

    def _set(self, key: str, value: Any) -> None:
        data = self._read_all()
        data[key] = value
        self._write_all(data)

    def _read_all(self) -> dict:
        if not self._path.exists():
            return {}
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, OSError) as exc:
            logger.warning("Ignoring unreadable config %s: %s", self._path, exc)
            return {}
        return data if isinstance(data, dict) else {}

    def _write_all(self, data: dict) -> None:
        self._path.write_text(json.dumps(data, ensure_ascii=False, indent=2), encoding="utf-8")


def load_settings(store: Optional[JsonConfigStore] = None) -> CaptureSettings:
    """Build settings from the store, letting the environment fill missing keys."""
    store = store or JsonConfigStore()
    return CaptureSettings(
        dashscope_api_key=store.get_dashscope_api_key() or os.getenv("DASHSCOPE_API_KEY", ""),
        live_model=store.get_live_model(),
        prefer_live=store.get_prefer_live(),
        language=store.get_language(),
        transcription_endpoint=store.get_transcription_endpoint(),
        transcription_api_key=store.get_transcription_api_key() or os.getenv("OPENAI_API_KEY", ""),
    )
