"""Main Qt window for the camlink client."""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

from PySide6 import QtCore, QtWidgets
from qasync import QEventLoop

from ..config import APP_TITLE, DARK_CARD, LOG_ROOT, SIGNALING_URL, VIDEO_CODEC
from ..core import ConnectionLifecycle, ConnectionState
from ..errors import CamlinkError, ConnectionBusyError
from ..media.display import VideoSink
from ..negotiation import NegotiationState
from ..utils import setup_file_logging
from .style import style
from .widgets import PulseButton, VideoSurface


class _LogBridge(QtCore.QObject):
    message = QtCore.Signal(str)


class QtLogHandler(logging.Handler):
    """Forwards ``camlink`` log records to the window's log panel."""

    def __init__(self, bridge: _LogBridge):
        super().__init__(level=logging.INFO)
        self._bridge = bridge
        self.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(message)s", "%H:%M:%S"))

    def emit(self, record: logging.LogRecord) -> None:
        try:
            self._bridge.message.emit(self.format(record))
        except RuntimeError:
            # Window already destroyed during shutdown.
            pass


_STATUS_TEXT = {
    ConnectionState.IDLE: "Ready",
    ConnectionState.STARTING: "Starting...",
    ConnectionState.ACTIVE: "Connected ✅",
    ConnectionState.STOPPING: "Stopping...",
}


class Main(QtWidgets.QMainWindow):
    def __init__(
        self,
        *,
        signaling_url: Optional[str] = None,
        audio: Optional[bool] = None,
        video: Optional[bool] = None,
        debug: Optional[bool] = None,
    ):
        super().__init__()
        self.setWindowTitle(APP_TITLE)
        self.resize(1100, 640)

        self.ui_logger = logging.getLogger(f"{__name__}.UI")

        central = QtWidgets.QWidget(); self.setCentralWidget(central)
        root = QtWidgets.QHBoxLayout(central)
        root.setContentsMargins(12, 12, 12, 12)
        root.setSpacing(12)

        side = QtWidgets.QFrame(); side.setFixedWidth(320)
        side.setStyleSheet(f"QFrame {{ background-color:{DARK_CARD}; border-radius:12px; }}")
        s = QtWidgets.QVBoxLayout(side); s.setContentsMargins(12, 12, 12, 12); s.setSpacing(10)

        s.addWidget(QtWidgets.QLabel(f"<b>{APP_TITLE}</b><br>Codec: <code>{VIDEO_CODEC}</code>"))

        self.status = QtWidgets.QLabel(_STATUS_TEXT[ConnectionState.IDLE])
        self.status.setObjectName("status"); self.status.setWordWrap(True)
        s.addWidget(self.status)

        s.addWidget(QtWidgets.QLabel("Signaling server:"))
        self.url_edit = QtWidgets.QLineEdit()
        s.addWidget(self.url_edit)

        self.chk_video = QtWidgets.QCheckBox("Send camera video")
        self.chk_audio = QtWidgets.QCheckBox("Send microphone audio")
        self.chk_debug = QtWidgets.QCheckBox("Log connection states (debug)")
        for chk in (self.chk_video, self.chk_audio, self.chk_debug):
            s.addWidget(chk)

        s.addWidget(QtWidgets.QLabel("Event log:"))
        self.log = QtWidgets.QPlainTextEdit(); self.log.setReadOnly(True); self.log.setMaximumBlockCount(5000)
        s.addWidget(self.log, 1)
        root.addWidget(side)

        panel = QtWidgets.QGroupBox("Session")
        v = QtWidgets.QVBoxLayout(panel)
        row = QtWidgets.QHBoxLayout()
        self.btn_start = PulseButton("Start")
        self.btn_stop = PulseButton("Stop")
        row.addWidget(self.btn_start); row.addWidget(self.btn_stop); row.addStretch(1)
        v.addLayout(row)

        videos = QtWidgets.QHBoxLayout()
        self.source_view = VideoSurface("No local preview")
        self.destination_view = VideoSurface("No incoming video")
        for view in (self.source_view, self.destination_view):
            view.setStyleSheet(
                "QLabel { background-color: #1e1f22; border: 1px solid #3a3c41; border-radius: 8px; }"
            )
            videos.addWidget(view, 1)
        v.addLayout(videos, 1)
        root.addWidget(panel, 1)

        self.source_sink = VideoSink("source", self)
        self.destination_sink = VideoSink("destination", self)
        self.source_sink.frame.connect(self.source_view.show_image)
        self.source_sink.cleared.connect(self.source_view.clear_image)
        self.destination_sink.frame.connect(self.destination_view.show_image)
        self.destination_sink.cleared.connect(self.destination_view.clear_image)

        self._log_bridge = _LogBridge(self)
        self._log_bridge.message.connect(self.log.appendPlainText)
        self._log_handler = QtLogHandler(self._log_bridge)
        logging.getLogger("camlink").addHandler(self._log_handler)

        self.settings = QtCore.QSettings("camlink", "camlink")
        self._restore_settings()
        if signaling_url is not None:
            self.url_edit.setText(signaling_url)
        if audio is not None:
            self.chk_audio.setChecked(audio)
        if video is not None:
            self.chk_video.setChecked(video)
        if debug is not None:
            self.chk_debug.setChecked(debug)

        self.lifecycle = ConnectionLifecycle(self.destination_sink, self.source_sink)
        self.lifecycle.add_state_listener(self.on_state_changed)
        self.lifecycle.add_negotiation_listener(self.on_negotiation_state)
        self._shutdown_task: Optional[asyncio.Task] = None
        self._ready_to_close = False

        self.btn_start.clicked.connect(self.on_start)
        self.btn_stop.clicked.connect(self.on_stop)
        self.chk_audio.toggled.connect(lambda checked: self._save_setting("ui/audio", checked))
        self.chk_video.toggled.connect(lambda checked: self._save_setting("ui/video", checked))
        self.chk_debug.toggled.connect(lambda checked: self._save_setting("ui/debug", checked))
        self.url_edit.editingFinished.connect(
            lambda: self._save_setting("ui/signaling_url", self.url_edit.text().strip())
        )

    def log_ui_message(self, message: str, level: int = logging.INFO) -> None:
        self.ui_logger.log(level, message)

    def _configure_lifecycle(self) -> None:
        lc = self.lifecycle
        lc.audio = self.chk_audio.isChecked()
        lc.video = self.chk_video.isChecked()
        lc.debug = self.chk_debug.isChecked()
        lc.signaling_url = self.url_edit.text().strip() or SIGNALING_URL

    @QtCore.Slot()
    def on_start(self):
        if self.lifecycle.state is ConnectionState.IDLE:
            self._configure_lifecycle()
            self.log_ui_message(
                f"Starting: url={self.lifecycle.signaling_url}, "
                f"video={self.lifecycle.video}, audio={self.lifecycle.audio}"
            )

        async def _run():
            try:
                await self.lifecycle.toggle()
            except ConnectionBusyError as e:
                self.log_ui_message(str(e), logging.WARNING)
            except CamlinkError as e:
                self.log_ui_message(f"Start failed: {e}", logging.ERROR)
        asyncio.create_task(_run())

    @QtCore.Slot()
    def on_stop(self):
        async def _run():
            try:
                await self.lifecycle.stop()
            except ConnectionBusyError as e:
                self.log_ui_message(str(e), logging.WARNING)
        asyncio.create_task(_run())

    def on_state_changed(self, state: ConnectionState) -> None:
        self.status.setText(_STATUS_TEXT[state])
        idle = state is ConnectionState.IDLE
        self.btn_start.setText("Start" if idle else "Stop")
        self.btn_start.setEnabled(state in (ConnectionState.IDLE, ConnectionState.ACTIVE))
        self.btn_stop.setEnabled(state is ConnectionState.ACTIVE)
        busy = state in (ConnectionState.STARTING, ConnectionState.STOPPING)
        self.btn_start.set_busy(busy)
        for widget in (self.chk_audio, self.chk_video, self.chk_debug, self.url_edit):
            widget.setEnabled(idle)

    def on_negotiation_state(self, state: NegotiationState) -> None:
        if state in (NegotiationState.COMPLETED, NegotiationState.FAILED):
            return
        self.status.setText(f"Negotiating: {state.name.replace('_', ' ').lower()}...")

    def closeEvent(self, event) -> None:
        # The qasync loop ends with the window, so the connection is closed first.
        if not self._ready_to_close and self.lifecycle.state is not ConnectionState.IDLE:
            event.ignore()
            if self._shutdown_task is None:
                self.log_ui_message("Closing the connection before exit...")
                self._shutdown_task = asyncio.create_task(self._shutdown_then_close())
            return
        self._save_setting("window/geometry", self.saveGeometry())
        self.settings.sync()
        logging.getLogger("camlink").removeHandler(self._log_handler)
        super().closeEvent(event)

    async def _shutdown_then_close(self) -> None:
        try:
            await self.lifecycle.shutdown()
        except Exception as e:
            self.ui_logger.warning("Shutdown did not finish cleanly: %s", e)
        finally:
            self._ready_to_close = True
            self.close()

    def _restore_settings(self) -> None:
        geometry = self.settings.value("window/geometry")
        if isinstance(geometry, (QtCore.QByteArray, bytes)) and geometry:
            self.restoreGeometry(QtCore.QByteArray(geometry))

        self.url_edit.setText(str(self.settings.value("ui/signaling_url", SIGNALING_URL)))
        self.chk_video.setChecked(self._to_bool(self.settings.value("ui/video", True)))
        self.chk_audio.setChecked(self._to_bool(self.settings.value("ui/audio", False)))
        self.chk_debug.setChecked(self._to_bool(self.settings.value("ui/debug", False)))

    def _save_setting(self, key: str, value) -> None:
        self.settings.setValue(key, value)

    @staticmethod
    def _to_bool(value) -> bool:
        if isinstance(value, bool):
            return value
        if isinstance(value, str):
            return value.lower() in {"1", "true", "t", "yes", "on"}
        return bool(value)


def main(
    *,
    signaling_url: Optional[str] = None,
    audio: Optional[bool] = None,
    video: Optional[bool] = None,
    debug: bool = False,
    autostart: bool = False,
):
    setup_file_logging(LOG_ROOT, level=logging.DEBUG if debug else logging.INFO)
    app = QtWidgets.QApplication([])
    app.setStyleSheet(style())
    loop = QEventLoop(app); asyncio.set_event_loop(loop)
    w = Main(signaling_url=signaling_url, audio=audio, video=video, debug=debug or None)
    w.show()
    if autostart:
        QtCore.QTimer.singleShot(0, w.on_start)
    with loop:
        loop.run_forever()
