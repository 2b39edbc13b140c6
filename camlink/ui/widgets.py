"""Custom Qt widget implementations for camlink."""

from __future__ import annotations

from typing import Optional

from PySide6 import QtCore, QtGui, QtWidgets

from ..config import ACCENT


class PulseButton(QtWidgets.QPushButton):
    """Push button that pulses its highlight while an operation is pending."""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self._glow = QtWidgets.QGraphicsColorizeEffect(self)
        self._glow.setColor(QtGui.QColor(ACCENT))
        self._glow.setStrength(0.0)
        self.setGraphicsEffect(self._glow)

        self._pulse = QtCore.QPropertyAnimation(self._glow, b"strength", self)
        self._pulse.setDuration(700)
        self._pulse.setKeyValueAt(0.0, 0.0)
        self._pulse.setKeyValueAt(0.5, 0.6)
        self._pulse.setKeyValueAt(1.0, 0.0)
        self._pulse.setEasingCurve(QtCore.QEasingCurve.InOutSine)
        self._pulse.setLoopCount(-1)

    def set_busy(self, busy: bool) -> None:
        if busy:
            if self._pulse.state() != QtCore.QAbstractAnimation.Running:
                self._pulse.start()
            return
        self._pulse.stop()
        self._glow.setStrength(0.0)


class VideoSurface(QtWidgets.QLabel):
    """Label that keeps the last frame scaled to its size, or a placeholder."""

    def __init__(self, placeholder: str = "", parent: Optional[QtWidgets.QWidget] = None):
        super().__init__(placeholder, parent)
        self.setAlignment(QtCore.Qt.AlignCenter)
        self.setMinimumSize(320, 180)
        self._placeholder = placeholder
        self._last_pixmap: Optional[QtGui.QPixmap] = None

    @QtCore.Slot(QtGui.QImage)
    def show_image(self, img: QtGui.QImage) -> None:
        if img.isNull():
            return
        self._last_pixmap = QtGui.QPixmap.fromImage(img)
        self._rescale()

    @QtCore.Slot()
    def clear_image(self) -> None:
        self._last_pixmap = None
        self.clear()
        self.setText(self._placeholder)

    def _rescale(self) -> None:
        if self._last_pixmap is None:
            return
        scaled = self._last_pixmap.scaled(
            self.size(),
            QtCore.Qt.KeepAspectRatio,
            QtCore.Qt.SmoothTransformation,
        )
        self.setPixmap(scaled)

    def resizeEvent(self, e: QtGui.QResizeEvent) -> None:
        self._rescale()
        return super().resizeEvent(e)
