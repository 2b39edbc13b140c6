"""Local camera and microphone capture."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import List, Optional

from aiortc import MediaStreamTrack
from aiortc.contrib.media import MediaPlayer
from av.error import FFmpegError

from ..config import CAPTURE_DEVICES
from ..errors import MediaAcquisitionError

logger = logging.getLogger(__name__)


@dataclass
class LocalMedia:
    """Tracks opened for one session together with the players feeding them."""

    audio: Optional[MediaStreamTrack] = None
    video: Optional[MediaStreamTrack] = None
    players: List[MediaPlayer] = field(default_factory=list)

    @property
    def tracks(self) -> List[MediaStreamTrack]:
        return [track for track in (self.audio, self.video) if track is not None]

    def stop(self) -> None:
        # A MediaPlayer shuts its decoder thread down once all its tracks stopped.
        for track in self.tracks:
            track.stop()


def _open_player(kind: str) -> MediaPlayer:
    file, fmt, options = CAPTURE_DEVICES[kind]
    logger.info("Opening %s capture: %s (%s)", kind, file, fmt)
    return MediaPlayer(file, format=fmt, options=dict(options))


async def acquire_local_tracks(audio: bool, video: bool) -> LocalMedia:
    """Open the configured capture devices and return their tracks.

    ``MediaPlayer`` creates its track queues on the running loop, so the
    players are opened on the loop thread.
    """

    if not audio and not video:
        raise MediaAcquisitionError("Neither audio nor video was requested.")

    media = LocalMedia()
    for kind, wanted in (("video", video), ("audio", audio)):
        if not wanted:
            continue
        try:
            player = _open_player(kind)
        except (FFmpegError, OSError, ValueError) as exc:
            media.stop()
            raise MediaAcquisitionError(f"Could not open the {kind} capture device: {exc}") from exc
        media.players.append(player)
        track = player.video if kind == "video" else player.audio
        if track is None:
            media.stop()
            raise MediaAcquisitionError(f"The {kind} capture device provides no {kind} stream.")
        setattr(media, kind, track)
    return media
