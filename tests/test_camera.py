"""Tests for local capture device handling."""

import asyncio

import pytest

from camlink.errors import MediaAcquisitionError
from camlink.media import camera
from camlink.media.camera import LocalMedia, acquire_local_tracks
from conftest import FakeTrack


class FakePlayer:
    def __init__(self, audio=None, video=None):
        self.audio = audio
        self.video = video


def test_local_media_stops_every_track():
    audio, video = FakeTrack("audio"), FakeTrack("video")
    media = LocalMedia(audio=audio, video=video)
    assert media.tracks == [audio, video]
    media.stop()
    assert audio.stopped and video.stopped


@pytest.mark.asyncio
async def test_acquire_requires_at_least_one_kind():
    with pytest.raises(MediaAcquisitionError):
        await acquire_local_tracks(audio=False, video=False)


@pytest.mark.asyncio
async def test_acquire_opens_players_on_loop_thread(monkeypatch):
    video, audio = FakeTrack("video"), FakeTrack("audio")
    loops = []

    def open_player(kind):
        loops.append(asyncio.get_running_loop())
        return FakePlayer(video=video) if kind == "video" else FakePlayer(audio=audio)

    monkeypatch.setattr(camera, "_open_player", open_player)
    media = await acquire_local_tracks(audio=True, video=True)

    assert media.video is video
    assert media.audio is audio
    assert len(media.players) == 2
    assert loops == [asyncio.get_running_loop()] * 2


@pytest.mark.asyncio
async def test_device_open_failure_becomes_media_error(monkeypatch):
    def open_player(kind):
        raise OSError("No such device")

    monkeypatch.setattr(camera, "_open_player", open_player)
    with pytest.raises(MediaAcquisitionError) as excinfo:
        await acquire_local_tracks(audio=False, video=True)
    assert isinstance(excinfo.value.__cause__, OSError)


@pytest.mark.asyncio
async def test_missing_stream_stops_already_opened_tracks(monkeypatch):
    video = FakeTrack("video")

    def open_player(kind):
        return FakePlayer(video=video) if kind == "video" else FakePlayer()

    monkeypatch.setattr(camera, "_open_player", open_player)
    with pytest.raises(MediaAcquisitionError):
        await acquire_local_tracks(audio=True, video=True)
    assert video.stopped
