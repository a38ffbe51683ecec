from __future__ import annotations

from unittest.mock import MagicMock, patch

import pytest

import capability
from capability import can_use_live_engine
from config import CaptureSettings


@pytest.fixture
def live_ready(monkeypatch):  # noqa: ANN001, ANN201
    monkeypatch.setattr(capability, "dashscope", MagicMock())
    monkeypatch.setattr(capability, "sd", MagicMock())
    monkeypatch.delenv("DASHSCOPE_API_KEY", raising=False)


def test_live_engine_usable_when_everything_is_present(live_ready) -> None:  # noqa: ANN001
    assert can_use_live_engine(CaptureSettings(dashscope_api_key="ds")) is True


def test_api_key_from_environment_counts(live_ready, monkeypatch) -> None:  # noqa: ANN001
    monkeypatch.setenv("DASHSCOPE_API_KEY", "env-ds")
    assert can_use_live_engine(CaptureSettings()) is True


def test_missing_api_key_disables_live_engine(live_ready) -> None:  # noqa: ANN001
    assert can_use_live_engine(CaptureSettings()) is False


def test_unsupported_model_family_disables_live_engine(live_ready) -> None:  # noqa: ANN001
    settings = CaptureSettings(dashscope_api_key="ds", live_model="qwen3-asr-flash")
    assert can_use_live_engine(settings) is False


def test_preference_can_turn_live_engine_off(live_ready) -> None:  # noqa: ANN001
    settings = CaptureSettings(dashscope_api_key="ds", prefer_live=False)
    assert can_use_live_engine(settings) is False


@pytest.mark.parametrize("missing", ["dashscope", "sd"])
def test_missing_library_disables_live_engine(live_ready, monkeypatch, missing: str) -> None:  # noqa: ANN001
    monkeypatch.setattr(capability, missing, None)
    assert can_use_live_engine(CaptureSettings(dashscope_api_key="ds")) is False


def test_sdk_without_realtime_recognition(live_ready, monkeypatch) -> None:  # noqa: ANN001
    monkeypatch.setattr(capability, "dashscope", MagicMock(spec=[]))
    assert can_use_live_engine(CaptureSettings(dashscope_api_key="ds")) is False


def test_probe_never_raises(live_ready) -> None:  # noqa: ANN001
    with patch("capability._probe", side_effect=RuntimeError("boom")):
        assert can_use_live_engine(CaptureSettings(dashscope_api_key="ds")) is False
