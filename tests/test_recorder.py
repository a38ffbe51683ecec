"""Tests for SoundDeviceRecorder with a patched sounddevice module."""

from __future__ import annotations

from queue import Queue
from unittest.mock import MagicMock, patch

import numpy as np
import pytest

import recorder as recorder_mod
from errors import PERMISSION_DENIED, CaptureError
from models import AudioFrame
from recorder import SoundDeviceRecorder


@pytest.fixture
def mic():
    with patch("recorder.sd") as mock_sd:
        stream = MagicMock()
        mock_sd.InputStream.return_value = stream
        yield mock_sd, stream


def _slice(n_samples: int = 1600) -> np.ndarray:
    return np.arange(n_samples, dtype=np.int16).reshape(-1, 1)


def test_start_opens_one_stream_until_stopped(mic) -> None:
    mock_sd, stream = mic
    rec = SoundDeviceRecorder()
    q: Queue[AudioFrame | None] = Queue()

    rec.start(q)
    rec.start(q)

    assert mock_sd.InputStream.call_count == 1
    stream.start.assert_called_once()
    assert rec.is_running


def test_stop_releases_mic_once_and_ends_queue(mic) -> None:
    _, stream = mic
    rec = SoundDeviceRecorder()
    q: Queue[AudioFrame | None] = Queue()
    rec.start(q)

    rec.stop()
    rec.stop()

    stream.stop.assert_called_once()
    stream.close.assert_called_once()
    assert not rec.is_running
    assert q.get_nowait() is None
    assert q.empty()


def test_mic_can_be_reopened_after_stop(mic) -> None:
    mock_sd, _ = mic
    rec = SoundDeviceRecorder()
    rec.start(Queue())
    rec.stop()
    rec.start(Queue())

    assert mock_sd.InputStream.call_count == 2
    rec.stop()


def test_slice_size_follows_chunk_ms(mic) -> None:
    mock_sd, _ = mic
    rec = SoundDeviceRecorder(sample_rate=16000, chunk_ms=1000)
    rec.start(Queue())

    kwargs = mock_sd.InputStream.call_args.kwargs
    assert kwargs["blocksize"] == 16000
    assert kwargs["samplerate"] == 16000
    assert kwargs["dtype"] == "int16"
    rec.stop()


def test_audio_callback_queues_pcm_frames(mic) -> None:
    rec = SoundDeviceRecorder(sample_rate=16000, chunk_ms=100)
    q: Queue[AudioFrame | None] = Queue()
    rec.start(q)

    rec._on_audio(_slice(1600), frames=1600, time_info=None, status=None)

    frame = q.get_nowait()
    assert isinstance(frame, AudioFrame)
    assert frame.sample_rate == 16000
    assert frame.channels == 1
    assert len(frame.pcm16_bytes) == 1600 * 2
    assert frame.pcm16_bytes == _slice(1600).tobytes()
    rec.stop()


def test_full_queue_counts_dropped_slices(mic) -> None:
    rec = SoundDeviceRecorder()
    q: Queue[AudioFrame | None] = Queue(maxsize=1)
    rec.start(q)

    rec._on_audio(_slice(), frames=1600, time_info=None, status=None)
    rec._on_audio(_slice(), frames=1600, time_info=None, status=None)

    assert rec.dropped_chunks == 1


def test_end_marker_still_delivered_when_queue_full(mic) -> None:
    rec = SoundDeviceRecorder()
    q: Queue[AudioFrame | None] = Queue(maxsize=1)
    rec.start(q)
    rec._on_audio(_slice(), frames=1600, time_info=None, status=None)

    rec.stop()

    assert q.get_nowait() is None


def test_audio_after_stop_is_ignored(mic) -> None:
    rec = SoundDeviceRecorder()
    q: Queue[AudioFrame | None] = Queue()
    rec.start(q)
    rec.stop()
    assert q.get_nowait() is None

    rec._on_audio(_slice(), frames=1600, time_info=None, status=None)

    assert q.empty()


def test_open_failure_is_reported_as_permission_denied(mic) -> None:
    mock_sd, _ = mic
    mock_sd.InputStream.side_effect = Exception("Error querying device -1")
    rec = SoundDeviceRecorder()

    with pytest.raises(CaptureError) as excinfo:
        rec.start(Queue())

    assert excinfo.value.code == PERMISSION_DENIED
    assert not rec.is_running


def test_start_without_sounddevice(monkeypatch) -> None:  # noqa: ANN001
    monkeypatch.setattr(recorder_mod, "sd", None)

    with pytest.raises(RuntimeError, match="sounddevice is not installed"):
        SoundDeviceRecorder().start(Queue())
