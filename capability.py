"""Decides whether the live recognition engine can be used for a capture."""

from __future__ import annotations

import logging
import os

from config import CaptureSettings

try:
    import dashscope
except Exception:  # pragma: no cover
    dashscope = None  # type: ignore

try:
    import sounddevice as sd
except Exception:  # pragma: no cover
    sd = None  # type: ignore

logger = logging.getLogger(__name__)

# Model families known to stream continuous interim results reliably.
RELIABLE_LIVE_FAMILIES = ("paraformer-realtime",)


def can_use_live_engine(settings: CaptureSettings) -> bool:
    try:
        return _probe(settings)
    except Exception as exc:
        logger.debug("Live engine probe failed: %s", exc)
        return False


def _probe(settings: CaptureSettings) -> bool:
    if not settings.prefer_live:
        return False
    if dashscope is None or sd is None:
        return False
    asr = getattr(getattr(dashscope, "audio", None), "asr", None)
    if asr is None or not hasattr(asr, "Recognition"):
        return False
    if not (settings.dashscope_api_key or os.getenv("DASHSCOPE_API_KEY", "")):
        return False
    model = (settings.live_model or "").lower()
    if not model.startswith(RELIABLE_LIVE_FAMILIES):
        logger.info("Live model %s is not in a supported family", settings.live_model)
        return False
    return True
