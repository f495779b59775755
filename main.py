"""Application entrypoint."""

from __future__ import annotations

import argparse
import logging
import sys
from dataclasses import replace
from pathlib import Path

from auto_paste import ClipboardPasteService
from config import AppConfig, JsonConfigStore, ToggleVad
from errors import ERROR_MESSAGES, ConfigError
from hotkey import GlobalHotkeyAdapter
from model_store import fetch_vad_model, fetch_whisper_model
from models import SessionState
from overlay import StatusOverlay
from recognizer import FasterWhisperRecognizer
from recorder import SoundDeviceRecorder
from service import DictationService
from vad import SileroClassifier

try:
    from PySide6.QtCore import QObject, QSize, Signal
    from PySide6.QtGui import QAction, QBrush, QColor, QIcon, QPainter, QPixmap
    from PySide6.QtWidgets import QApplication, QInputDialog, QMenu, QMessageBox, QSystemTrayIcon
except Exception as exc:  # pragma: no cover
    raise SystemExit(f"PySide6 is required to run the desktop app: {exc}")

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s %(levelname)-7s %(name)s: %(message)s"
NOISY_LOGGERS = ("faster_whisper", "huggingface_hub")


def _create_icon(color: str = "#888888", size: int = 22) -> QIcon:
    """Generate a simple circular tray icon with the given color."""
    pixmap = QPixmap(QSize(size, size))
    pixmap.fill(QColor(0, 0, 0, 0))
    painter = QPainter(pixmap)
    painter.setRenderHint(QPainter.Antialiasing, True)
    painter.setBrush(QBrush(QColor(color)))
    painter.setPen(QColor(color))
    painter.drawEllipse(2, 2, size - 4, size - 4)
    painter.end()
    return QIcon(pixmap)


ICON_COLORS = {
    SessionState.IDLE.value: "#888888",  # grey
    SessionState.ARMED.value: "#FFB000",  # amber
    SessionState.RECORDING.value: "#FF4444",  # red
    SessionState.FINALIZING.value: "#4488FF",  # blue
}

TOOLTIPS = {
    SessionState.IDLE.value: "murmur - Ready",
    SessionState.ARMED.value: "murmur - Listening...",
    SessionState.RECORDING.value: "murmur - Recording...",
    SessionState.FINALIZING.value: "murmur - Transcribing...",
}


class UIBridge(QObject):
    status_signal = Signal(str)
    error_signal = Signal(str)
    state_signal = Signal(str, str)  # from_state, to_state


def setup_logging(level: str = "INFO") -> None:
    logging.basicConfig(level=getattr(logging, level.upper(), logging.INFO), format=LOG_FORMAT)
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def build_service(config: AppConfig, **callbacks) -> DictationService:
    """Assemble the real adapters for ``config``."""
    cache_dir = config.paths.cache_dir
    engine = FasterWhisperRecognizer(
        lambda: fetch_whisper_model(config.model.repo, config.model.filename, cache_dir),
        device=config.model.device,
        compute_type=config.model.compute_type,
        language=config.model.language,
    )
    classifier = None
    if isinstance(config.activation.trigger, ToggleVad):
        classifier = SileroClassifier(fetch_model=lambda: fetch_vad_model(cache_dir))
    recorder = SoundDeviceRecorder(
        sample_rate=config.audio.sample_rate,
        channels=config.audio.channels,
        sample_format=config.audio.sample_format,
        device=config.audio.device,
    )
    return DictationService(
        config,
        recorder=recorder,
        hotkeys=GlobalHotkeyAdapter(),
        engine=engine,
        output=ClipboardPasteService(),
        classifier=classifier,
        **callbacks,
    )


class App:
    def __init__(self, config_store: JsonConfigStore, config: AppConfig) -> None:
        self.app = QApplication(sys.argv)
        self.app.setQuitOnLastWindowClosed(False)
        self.config_store = config_store
        self.config = config
        self.overlay = StatusOverlay()
        self.ui = UIBridge()
        self.ui.status_signal.connect(self._on_status_ui)
        self.ui.error_signal.connect(self._on_error_ui)
        self.ui.state_signal.connect(self._on_state_change_ui)

        self.service = build_service(
            config,
            notifier=self,
            on_state_change=self._on_state_change,
            on_error=self._on_error,
        )

        self.tray = QSystemTrayIcon()
        self.tray.setIcon(_create_icon(ICON_COLORS[SessionState.IDLE.value]))
        self.tray.setToolTip(TOOLTIPS[SessionState.IDLE.value])
        self._setup_menu()
        self.tray.show()

    def _setup_menu(self) -> None:
        menu = QMenu()

        cancel_action = QAction("Cancel Recording", menu)
        cancel_action.triggered.connect(self.service.cancel)
        menu.addAction(cancel_action)

        keys_action = QAction("Set Keys", menu)
        keys_action.triggered.connect(self._set_keys)
        menu.addAction(keys_action)

        menu.addSeparator()
        quit_action = QAction("Quit", menu)
        quit_action.triggered.connect(self.quit)
        menu.addAction(quit_action)

        self.tray.setContextMenu(menu)

    def _set_keys(self) -> None:
        current = " + ".join(self.config.activation.keys)
        value, ok = QInputDialog.getText(
            None, "Keys", "Key names joined with '+', e.g. ControlLeft + Space", text=current
        )
        if not ok or not value.strip():
            return
        keys = tuple(k.strip() for k in value.split("+") if k.strip())
        try:
            trigger = replace(self.config.activation.trigger, keys=keys)
        except ConfigError as exc:
            QMessageBox.warning(None, "Invalid keys", exc.message)
            return
        self.config = replace(self.config, activation=replace(self.config.activation, trigger=trigger))
        self.config_store.save(self.config)
        QMessageBox.information(None, "Saved", "Keys saved. Restart app to apply.")

    # ------------------------------------------------------------------
    # Callbacks (called from worker threads, emit signals for UI thread)
    # ------------------------------------------------------------------

    def notify(self, status_label: str) -> None:
        self.ui.status_signal.emit(status_label)

    def _on_state_change(self, from_state: SessionState, to_state: SessionState) -> None:
        self.ui.state_signal.emit(from_state.value, to_state.value)

    def _on_error(self, code: str, message: str) -> None:
        self.ui.error_signal.emit(ERROR_MESSAGES.get(code, message))

    # ------------------------------------------------------------------
    # UI thread handlers (safe for Qt)
    # ------------------------------------------------------------------

    def _on_status_ui(self, text: str) -> None:
        self.overlay.show_status(text, hide_after_ms=None if text.endswith("...") else 1500)

    def _on_error_ui(self, msg: str) -> None:
        self.overlay.show_error(msg)

    def _on_state_change_ui(self, from_state: str, to_state: str) -> None:
        self.tray.setIcon(_create_icon(ICON_COLORS[to_state]))
        self.tray.setToolTip(TOOLTIPS[to_state])
        # After Finalizing the transcription result replaces the label.
        if to_state == SessionState.IDLE.value and from_state != SessionState.FINALIZING.value:
            self.overlay.hide_with_delay(400)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def run(self) -> int:
        try:
            self.service.start()
        except Exception as exc:
            logger.exception("Cannot start dictation")
            self.ui.error_signal.emit(f"Dictation disabled: {exc}")
        return self.app.exec()

    def quit(self) -> None:
        self.service.stop()
        self.app.quit()


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="murmur", description="Trigger-activated local dictation.")
    parser.add_argument("--config", type=Path, default=None, help="path to config.json")
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="logging verbosity",
    )
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    setup_logging(args.log_level)
    store = JsonConfigStore(args.config)
    try:
        config = store.load()
    except ConfigError as exc:
        raise SystemExit(f"{store.path}: {exc.message}")
    app = App(store, config)
    return app.run()


if __name__ == "__main__":
    raise SystemExit(main())
