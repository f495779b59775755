"""Small always-on-top window used for status notifications."""

from __future__ import annotations

try:
    from PySide6.QtCore import Qt, QTimer
    from PySide6.QtWidgets import QApplication, QLabel, QVBoxLayout, QWidget
except Exception:  # pragma: no cover
    Qt = None  # type: ignore
    QTimer = None  # type: ignore
    QApplication = None  # type: ignore
    QLabel = object  # type: ignore
    QWidget = object  # type: ignore
    QVBoxLayout = object  # type: ignore

STATUS_STYLE = (
    "color: white; font-size: 16px; padding: 10px 16px;"
    "background: rgba(0,0,0,190); border-radius: 10px;"
)
ERROR_STYLE = (
    "color: #FF6B6B; font-size: 16px; padding: 10px 16px;"
    "background: rgba(0,0,0,210); border-radius: 10px;"
)


class StatusOverlay(QWidget):
    def __init__(self) -> None:
        if Qt is None:
            raise RuntimeError("PySide6 is not installed")
        super().__init__()
        self.setWindowFlags(
            Qt.WindowStaysOnTopHint | Qt.FramelessWindowHint | Qt.Tool | Qt.WindowDoesNotAcceptFocus
        )
        self.setAttribute(Qt.WA_TranslucentBackground, True)
        self.setAttribute(Qt.WA_ShowWithoutActivating, True)

        self._label = QLabel("")
        self._label.setStyleSheet(STATUS_STYLE)

        layout = QVBoxLayout()
        layout.setContentsMargins(0, 0, 0, 0)
        layout.addWidget(self._label)
        self.setLayout(layout)

        self._hide_timer = QTimer(self)
        self._hide_timer.setSingleShot(True)
        self._hide_timer.timeout.connect(self.hide)

    def _place(self) -> None:
        """Bottom center of the primary screen, clear of the focused text."""
        screen = QApplication.primaryScreen()
        if screen is None:
            return
        geom = screen.availableGeometry()
        self.adjustSize()
        x = geom.x() + (geom.width() - self.width()) // 2
        y = geom.y() + geom.height() - self.height() - 60
        self.move(x, y)

    def show_status(self, text: str, hide_after_ms: int | None = None) -> None:
        self._hide_timer.stop()
        self._label.setStyleSheet(STATUS_STYLE)
        self._label.setText(text)
        self._place()
        self.show()
        if hide_after_ms is not None:
            self._hide_timer.start(hide_after_ms)

    def show_error(self, text: str, hide_after_ms: int = 2500) -> None:
        self.show_status(text)
        self._label.setStyleSheet(ERROR_STYLE)
        self._hide_timer.start(hide_after_ms)

    def hide_with_delay(self, delay_ms: int = 400) -> None:
        self._hide_timer.start(delay_ms)
