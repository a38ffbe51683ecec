"""Application entrypoint: a bio editor with live dictation."""

from __future__ import annotations

import logging
import sys
import threading

from config import JsonConfigStore, load_settings
from coordinator import FallbackCoordinator
from errors import CaptureError
from hotkey import ToggleHotkeyAdapter
from models import SessionState

try:
    from PySide6.QtCore import QObject, Signal
    from PySide6.QtWidgets import (
        QApplication,
        QLabel,
        QMessageBox,
        QPlainTextEdit,
        QPushButton,
        QVBoxLayout,
        QWidget,
    )
except Exception as exc:  # pragma: no cover
    raise SystemExit(f"PySide6 is required to run the desktop app: {exc}")

logger = logging.getLogger(__name__)


class UIBridge(QObject):
    text_signal = Signal(str)
    error_signal = Signal(str)
    state_signal = Signal(str, str)  # from_state, to_state
    toggle_signal = Signal()


class BioWindow(QWidget):
    def __init__(self) -> None:
        super().__init__()
        self.setWindowTitle("Bio")
        self.editor = QPlainTextEdit()
        self.editor.setPlaceholderText("Tell us about yourself, or press Record and speak.")
        self.record_button = QPushButton("Record")
        self.status = QLabel("Ready")
        layout = QVBoxLayout(self)
        layout.addWidget(self.editor)
        layout.addWidget(self.record_button)
        layout.addWidget(self.status)
        self.resize(520, 360)


class App:
    def __init__(self) -> None:
        self.app = QApplication(sys.argv)
        self.config_store = JsonConfigStore()
        self.window = BioWindow()
        self.ui = UIBridge()
        self.ui.text_signal.connect(self._on_text_ui)
        self.ui.error_signal.connect(self._on_error_ui)
        self.ui.state_signal.connect(self._on_state_change_ui)
        self.ui.toggle_signal.connect(self.toggle_recording)

        self.coordinator = FallbackCoordinator(
            settings=load_settings(self.config_store),
            on_state_change=self._on_state_change,
            on_error=self._on_error,
        )
        self.hotkey = ToggleHotkeyAdapter(hotkey_name=self.config_store.get_hotkey())
        self.window.record_button.clicked.connect(self.toggle_recording)

    # ------------------------------------------------------------------
    # Callbacks from worker threads, re-emitted as signals for the UI thread
    # ------------------------------------------------------------------

    def _on_update(self, text: str) -> None:
        self.ui.text_signal.emit(text)

    def _on_state_change(self, from_state: SessionState, to_state: SessionState) -> None:
        self.ui.state_signal.emit(from_state.value, to_state.value)

    def _on_error(self, code: str, message: str) -> None:
        self.ui.error_signal.emit(message)

    # ------------------------------------------------------------------
    # UI thread handlers (safe for Qt)
    # ------------------------------------------------------------------

    def _on_text_ui(self, text: str) -> None:
        if self.window.editor.toPlainText() != text:
            self.window.editor.setPlainText(text)

    def _on_error_ui(self, message: str) -> None:
        QMessageBox.warning(self.window, "Recording", message)

    def _on_state_change_ui(self, from_state: str, to_state: str) -> None:
        if to_state == SessionState.RECORDING.value:
            self.window.record_button.setText("Stop")
            self.window.editor.setReadOnly(True)
            mode = self.coordinator.mode
            self.window.status.setText(f"Listening ({mode.value})..." if mode else "Listening...")
        elif to_state == SessionState.FINALIZING.value:
            self.window.record_button.setEnabled(False)
            self.window.status.setText("Transcribing...")
        else:
            self.window.record_button.setText("Record")
            self.window.record_button.setEnabled(True)
            self.window.editor.setReadOnly(False)
            self.window.status.setText("Ready" if to_state == SessionState.ENDED.value else "Failed")

    # ------------------------------------------------------------------
    # Recording control
    # ------------------------------------------------------------------

    def toggle_recording(self) -> None:
        if self.coordinator.is_recording:
            # stop waits for the final transcript; keep the Qt thread free
            threading.Thread(target=self._stop, daemon=True).start()
            return
        if self.coordinator.is_busy:
            logger.debug("Ignoring toggle while the transcript is being finalized")
            return
        try:
            self.coordinator.start_capture(self.window.editor.toPlainText(), self._on_update)
        except CaptureError as exc:
            logger.error("Could not start recording: %s", exc)

    def _stop(self) -> None:
        try:
            self.coordinator.stop_capture()
        except CaptureError as exc:
            logger.error("Recording ended with error: %s", exc)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def run(self) -> int:
        self.window.show()
        try:
            # pynput calls back on its own thread
            self.hotkey.start(on_toggle=self.ui.toggle_signal.emit)
        except Exception as exc:
            logger.warning("Hotkey disabled: %s", exc)
        self.app.aboutToQuit.connect(self.quit)
        return self.app.exec()

    def quit(self) -> None:
        self.hotkey.stop()
        self.coordinator.discard_capture()


def main() -> int:
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    app = App()
    return app.run()


if __name__ == "__main__":
    raise SystemExit(main())
