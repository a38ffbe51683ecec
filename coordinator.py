"""State-machine based capture orchestration with live-to-network fallback."""

from __future__ import annotations

import logging
import threading
from typing import Callable, Optional

from capability import can_use_live_engine
from channel import EventChannel
from config import CaptureSettings
from errors import ENGINE_START_FAILED, FINALIZE_TIMEOUT, PERMISSION_DENIED, CaptureError
from interfaces import CaptureEngine
from live_engine import LiveRecognitionAdapter
from models import CaptureMode, CaptureSession, EngineEvent, EngineEventKind, SessionState
from network_engine import NetworkTranscriptionAdapter
from transcript_buffer import TranscriptMergeBuffer

logger = logging.getLogger(__name__)

UpdateCallback = Callable[[str], None]
StateCallback = Callable[[SessionState, SessionState], None]
ErrorCallback = Callable[[str, str], None]
EngineFactory = Callable[[], CaptureEngine]

_TERMINAL = (SessionState.ENDED, SessionState.FAILED)


class CaptureHandle:
    """Caller-side view of one capture session."""

    def __init__(self, coordinator: "FallbackCoordinator", session: CaptureSession) -> None:
        self._coordinator = coordinator
        self._session = session

    @property
    def session_id(self) -> int:
        return self._session.session_id

    @property
    def base_text(self) -> str:
        return self._session.base_text

    @property
    def mode(self) -> Optional[CaptureMode]:
        return self._session.mode

    @property
    def state(self) -> SessionState:
        return self._session.state

    @property
    def final_text(self) -> Optional[str]:
        return self._session.final_text

    @property
    def error(self) -> Optional[Exception]:
        return self._session.error

    @property
    def fell_back(self) -> bool:
        return self._session.fell_back

    @property
    def is_active(self) -> bool:
        return self._coordinator._is_current(self._session) and self.state not in _TERMINAL

    def stop(self, timeout: Optional[float] = None) -> str:
        if self._coordinator._is_current(self._session):
            return self._coordinator.stop_capture(timeout=timeout)
        return self.final_text if self.final_text is not None else self.base_text


class FallbackCoordinator:
    """Owns the single capture slot.

    Capture starts on the live engine when the prober allows it, otherwise on
    the network engine. A live failure moves the session onto the network
    engine once, keeping the text captured so far. Engine events are consumed
    by one control-loop thread per session; each engine gets its own channel,
    and closing it detaches the engine.
    """

    def __init__(
        self,
        settings: Optional[CaptureSettings] = None,
        live_factory: Optional[EngineFactory] = None,
        network_factory: Optional[EngineFactory] = None,
        can_use_live: Optional[Callable[[], bool]] = None,
        finalize_timeout_s: Optional[float] = None,
        on_state_change: Optional[StateCallback] = None,
        on_error: Optional[ErrorCallback] = None,
    ) -> None:
        self._settings = settings or CaptureSettings()
        self._live_factory = live_factory or (lambda: LiveRecognitionAdapter(self._settings))
        self._network_factory = network_factory or (
            lambda: NetworkTranscriptionAdapter(self._settings)
        )
        self._can_use_live = can_use_live or (lambda: can_use_live_engine(self._settings))
        self._finalize_timeout_s = (
            finalize_timeout_s if finalize_timeout_s is not None else self._settings.finalize_timeout_s
        )
        self._on_state_change = on_state_change
        self._on_error = on_error

        self._lock = threading.RLock()
        self._start_lock = threading.Lock()
        self._session_id = 0
        self._session: Optional[CaptureSession] = None
        self._buffer = TranscriptMergeBuffer()
        self._engine: Optional[CaptureEngine] = None
        self._channel: Optional[EventChannel] = None
        self._on_update: Optional[UpdateCallback] = None
        self._ended_event = threading.Event()
        self._error_pending = False

    @property
    def state(self) -> SessionState:
        session = self._session
        return session.state if session is not None else SessionState.IDLE

    @property
    def is_recording(self) -> bool:
        return self.state == SessionState.RECORDING

    @property
    def is_busy(self) -> bool:
        """True while a session is recording or waiting for its final text."""
        return self.state in (SessionState.RECORDING, SessionState.FINALIZING)

    @property
    def mode(self) -> Optional[CaptureMode]:
        session = self._session
        return session.mode if session is not None else None

    def start_capture(self, base_text: str, on_update: Optional[UpdateCallback] = None) -> CaptureHandle:
        # starts are serialized; the control loop never takes this lock
        with self._start_lock:
            if self.is_busy:
                logger.info("Stopping active capture before starting a new one")
                try:
                    self.stop_capture()
                except CaptureError as exc:
                    logger.warning("Previous capture ended with %s", exc)
            return self._open_session(base_text, on_update)

    def _open_session(self, base_text: str, on_update: Optional[UpdateCallback]) -> CaptureHandle:
        with self._lock:
            self._session_id += 1
            session = CaptureSession(session_id=self._session_id, base_text=base_text)
            self._session = session
            self._buffer = TranscriptMergeBuffer(base_text)
            self._on_update = on_update
            self._ended_event = threading.Event()
            self._error_pending = False
            self._transition(SessionState.RECORDING)

            use_live = self._can_use_live()
            if use_live:
                try:
                    self._start_engine(CaptureMode.LIVE, base_text)
                except CaptureError as exc:
                    if exc.code == PERMISSION_DENIED:
                        self._fail(exc.code, exc.message)
                        self._error_pending = False
                        raise
                    logger.info("Live recognition unavailable (%s), falling back to transcription", exc)
                    session.fell_back = True
                    use_live = False
            if not use_live:
                try:
                    self._start_engine(CaptureMode.NETWORK, base_text)
                except CaptureError as exc:
                    self._fail(exc.code, exc.message)
                    self._error_pending = False
                    raise

            handle = CaptureHandle(self, session)
            threading.Thread(target=self._run, args=(session,), daemon=True).start()
        return handle

    def stop_capture(self, timeout: Optional[float] = None) -> str:
        """Finish the active session and return the merged text.

        Safe to call repeatedly and with nothing running. A terminal error of
        the session is raised once, by the first call that observes it.
        """
        with self._lock:
            session = self._session
            if session is None:
                return ""
            engine = None
            if session.state == SessionState.RECORDING:
                self._transition(SessionState.FINALIZING)
                engine = self._engine
            ended = self._ended_event

        if engine is not None:
            self._safe_stop(engine)

        wait_s = self._finalize_timeout_s if timeout is None else timeout
        got_end = ended.wait(timeout=wait_s)

        with self._lock:
            current = session is self._session
            if current and not got_end and session.state == SessionState.FINALIZING:
                self._fail(FINALIZE_TIMEOUT, f"no final transcript after {wait_s:.1f}s")
            if current and session.state == SessionState.FAILED and self._error_pending:
                self._error_pending = False
                raise session.error
            if session.final_text is not None:
                return session.final_text
            return session.base_text

    def discard_capture(self) -> None:
        """Drop the active session, restoring the text it started from."""
        with self._lock:
            session = self._session
            if session is None or session.state in _TERMINAL:
                return
            self._detach_engine(discard=True)
            self._emit_update(session.base_text)
            self._finish(session, SessionState.ENDED, session.base_text)

    # ------------------------------------------------------------------
    # Control loop
    # ------------------------------------------------------------------

    def _run(self, session: CaptureSession) -> None:
        while True:
            with self._lock:
                if session is not self._session or session.state in _TERMINAL:
                    return
                channel = self._channel
            if channel is None:
                return
            event = channel.get(timeout=0.1)
            if event is None:
                continue
            with self._lock:
                # a detached engine's late events never reach the buffer
                if session is not self._session or channel is not self._channel:
                    continue
                self._handle_event(session, event)

    def _handle_event(self, session: CaptureSession, event: EngineEvent) -> None:
        kind = event.kind
        if kind == EngineEventKind.INTERIM:
            self._buffer.set_interim(event.text)
            if self._buffer.has_capture():
                self._emit_update(self._buffer.merged())
        elif kind == EngineEventKind.FINAL:
            self._buffer.apply_final(event.text)
            if self._buffer.has_capture():
                self._emit_update(self._buffer.merged())
        elif kind == EngineEventKind.ERROR:
            self._handle_error(session, event)
        elif kind == EngineEventKind.ENDED:
            text = self._buffer.finalized()
            self._detach_engine(discard=False)
            self._emit_update(text)
            self._finish(session, SessionState.ENDED, text)

    def _handle_error(self, session: CaptureSession, event: EngineEvent) -> None:
        can_fall_back = (
            session.mode == CaptureMode.LIVE
            and not session.fell_back
            and event.code != PERMISSION_DENIED
        )
        if not can_fall_back:
            self._fail(event.code, event.message)
            return
        if session.state == SessionState.FINALIZING:
            # the user already stopped; keep what the live engine delivered
            logger.info("Live recognition failed while stopping: %s", event.message)
            text = self._buffer.finalized()
            self._detach_engine(discard=True)
            self._emit_update(text)
            self._finish(session, SessionState.ENDED, text)
            return

        logger.info("Live recognition failed (%s), falling back to transcription", event.message)
        self._detach_engine(discard=True)
        session.fell_back = True
        self._buffer.clear_interim()
        self._emit_update(self._buffer.merged())
        try:
            self._start_engine(CaptureMode.NETWORK, self._buffer.effective_base())
        except CaptureError as exc:
            self._fail(exc.code, exc.message)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _start_engine(self, mode: CaptureMode, base_text: str) -> None:
        assert self._session is not None
        factory = self._live_factory if mode == CaptureMode.LIVE else self._network_factory
        channel = EventChannel(name=f"{mode.value}-{self._session.session_id}")
        engine = None
        try:
            engine = factory()
            engine.start(base_text, channel)
        except CaptureError:
            raise
        except Exception as exc:
            logger.exception("Starting %s engine failed", mode.value)
            if engine is not None:
                self._safe_discard(engine)
            raise CaptureError(ENGINE_START_FAILED, f"start failed: {exc}") from exc
        self._engine = engine
        self._channel = channel
        self._session.mode = mode
        logger.info("Capture session %d recording in %s mode", self._session.session_id, mode.value)

    def _detach_engine(self, discard: bool) -> None:
        engine, channel = self._engine, self._channel
        self._engine = None
        self._channel = None
        if channel is not None:
            channel.close()
        if engine is not None:
            if discard:
                self._safe_discard(engine)
            else:
                self._safe_stop(engine)

    def _fail(self, code: str, message: str) -> None:
        session = self._session
        assert session is not None
        logger.error("Capture failed: %s %s", code, message)
        error = CaptureError(code, message)
        session.error = error
        self._error_pending = True
        text = self._buffer.finalized()
        self._detach_engine(discard=True)
        if self._on_error:
            self._on_error(code, error.message)
        self._finish(session, SessionState.FAILED, text)

    def _finish(self, session: CaptureSession, state: SessionState, text: str) -> None:
        session.final_text = text
        self._transition(state)
        self._ended_event.set()

    def _is_current(self, session: CaptureSession) -> bool:
        return self._session is session

    def _emit_update(self, text: str) -> None:
        if self._on_update is None:
            return
        try:
            self._on_update(text)
        except Exception:
            logger.exception("Transcript update callback failed")

    def _safe_stop(self, engine: CaptureEngine) -> None:
        try:
            engine.stop()
        except Exception as exc:
            logger.warning("Stopping %s engine failed: %s", engine.mode.value, exc)

    def _safe_discard(self, engine: CaptureEngine) -> None:
        try:
            engine.discard()
        except Exception as exc:
            logger.warning("Discarding %s engine failed: %s", engine.mode.value, exc)

    def _transition(self, to_state: SessionState) -> None:
        session = self._session
        assert session is not None
        from_state = session.state
        if from_state == to_state:
            return
        session.state = to_state
        if self._on_state_change:
            self._on_state_change(from_state, to_state)
