"""Qt display sink for local preview and remote playback."""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

import numpy as np
from PySide6 import QtCore, QtGui
from aiortc import MediaStreamTrack
from aiortc.mediastreams import MediaStreamError


class VideoSink(QtCore.QObject):
    """Renders the frames of the attached video track as ``QImage`` objects.

    ``attach(None)`` detaches the current track and emits ``cleared``.
    """

    frame = QtCore.Signal(QtGui.QImage)
    cleared = QtCore.Signal()

    def __init__(self, name: str, parent: Optional[QtCore.QObject] = None):
        super().__init__(parent)
        self.name = name
        self._track: Optional[MediaStreamTrack] = None
        self._task: Optional[asyncio.Task] = None
        self._logger = logging.getLogger(f"{__name__}.{name}")

    @property
    def track(self) -> Optional[MediaStreamTrack]:
        return self._track

    def attach(self, track: Optional[MediaStreamTrack]) -> None:
        if track is self._track:
            return
        task = self._task
        self._task = None
        if task and not task.done():
            task.cancel()
        self._track = track
        if track is None:
            self.cleared.emit()
            return
        if track.kind != "video":
            self._logger.debug("Ignoring %s track: only video is rendered.", track.kind)
            return
        self._task = asyncio.create_task(self._consume_video(track))

    async def _consume_video(self, track: MediaStreamTrack) -> None:
        try:
            while True:
                frame = await track.recv()
                img = np.ascontiguousarray(frame.to_ndarray(format="rgb24"))
                h, w, _ = img.shape
                qimg = QtGui.QImage(img.data, w, h, 3 * w, QtGui.QImage.Format_RGB888).copy()
                self.frame.emit(qimg)
        except MediaStreamError:
            self._logger.info("Video track ended.")
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            self._logger.error("Video consumer ended: %s", exc)
