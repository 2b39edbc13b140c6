"""Shared test fixtures."""

from __future__ import annotations

import json
from collections import defaultdict
from typing import Any, Callable, Optional

import pytest
import pytest_asyncio
from aiohttp import web
from aiohttp.test_utils import TestServer
from aiortc import RTCSessionDescription
from aiortc.mediastreams import MediaStreamError

from camlink.media.camera import LocalMedia

OFFER_SDP = (
    "v=0\r\n"
    "o=- 4611731400430051336 2 IN IP4 127.0.0.1\r\n"
    "s=-\r\n"
    "t=0 0\r\n"
    "a=group:BUNDLE 0 1\r\n"
    "m=audio 9 UDP/TLS/RTP/SAVPF 111 0\r\n"
    "c=IN IP4 0.0.0.0\r\n"
    "a=mid:0\r\n"
    "a=rtpmap:111 opus/48000/2\r\n"
    "a=rtcp-fb:111 transport-cc\r\n"
    "a=fmtp:111 minptime=10;useinbandfec=1\r\n"
    "a=rtpmap:0 PCMU/8000\r\n"
    "m=video 9 UDP/TLS/RTP/SAVPF 98 96 97 99\r\n"
    "c=IN IP4 0.0.0.0\r\n"
    "a=mid:1\r\n"
    "a=rtpmap:98 VP8/90000\r\n"
    "a=rtcp-fb:98 nack\r\n"
    "a=rtcp-fb:98 nack pli\r\n"
    "a=rtpmap:96 H264/90000\r\n"
    "a=rtcp-fb:96 nack\r\n"
    "a=rtcp-fb:96 goog-remb\r\n"
    "a=fmtp:96 level-asymmetry-allowed=1;packetization-mode=1;profile-level-id=42e01f\r\n"
    "a=rtpmap:97 rtx/90000\r\n"
    "a=fmtp:97 apt=96\r\n"
    "a=rtpmap:99 rtx/90000\r\n"
    "a=fmtp:99 apt=98\r\n"
    "a=rtcp-fb:* ccm fir\r\n"
    "a=ssrc:1001 cname:camlink\r\n"
)

ANSWER_SDP = (
    "v=0\r\n"
    "o=- 1 1 IN IP4 127.0.0.1\r\n"
    "s=-\r\n"
    "t=0 0\r\n"
    "m=video 9 UDP/TLS/RTP/SAVPF 96 97\r\n"
    "a=rtpmap:96 H264/90000\r\n"
    "a=rtpmap:97 rtx/90000\r\n"
    "a=fmtp:97 apt=96\r\n"
)


class FakeTrack:
    def __init__(self, kind: str):
        self.kind = kind
        self.stopped = False

    def stop(self) -> None:
        self.stopped = True

    async def recv(self):
        raise MediaStreamError


class FakeSender:
    def __init__(self, track: Optional[FakeTrack]):
        self.track = track


class FakeTransceiver:
    def __init__(self, kind: str, direction: str, sender: FakeSender):
        self.kind = kind
        self.direction = direction
        self.sender = sender
        self.stopped = False

    async def stop(self) -> None:
        self.stopped = True


class BasePeerConnection:
    """Peer connection double without transceiver enumeration."""

    def __init__(self, configuration: Any = None, *, offer_sdp: str = OFFER_SDP, gather_on_set_local: bool = True):
        self.configuration = configuration
        self.offer_sdp = offer_sdp
        self.gather_on_set_local = gather_on_set_local
        self.iceGatheringState = "new"
        self.iceConnectionState = "new"
        self.signalingState = "stable"
        self.localDescription: Optional[RTCSessionDescription] = None
        self.remoteDescription: Optional[RTCSessionDescription] = None
        self.remote_error: Optional[Exception] = None
        self.closed = False
        self.listeners: dict[str, list[Callable]] = defaultdict(list)
        self.transceivers: list[FakeTransceiver] = []

    def on(self, event: str, f: Optional[Callable] = None):
        if f is None:
            def decorator(func):
                self.listeners[event].append(func)
                return func
            return decorator
        self.listeners[event].append(f)
        return f

    def remove_listener(self, event: str, f: Callable) -> None:
        self.listeners[event].remove(f)

    def emit(self, event: str, *args: Any) -> None:
        for f in list(self.listeners[event]):
            f(*args)

    def finish_gathering(self) -> None:
        self.iceGatheringState = "complete"
        self.emit("icegatheringstatechange")

    async def createOffer(self) -> RTCSessionDescription:
        return RTCSessionDescription(sdp=self.offer_sdp, type="offer")

    async def setLocalDescription(self, description: RTCSessionDescription) -> None:
        self.localDescription = description
        self.signalingState = "have-local-offer"
        if self.gather_on_set_local:
            self.finish_gathering()
        else:
            self.iceGatheringState = "gathering"

    async def setRemoteDescription(self, description: RTCSessionDescription) -> None:
        if self.remote_error is not None:
            raise self.remote_error
        self.remoteDescription = description
        self.signalingState = "stable"

    def addTrack(self, track: FakeTrack) -> FakeSender:
        sender = FakeSender(track)
        self.transceivers.append(FakeTransceiver(track.kind, "sendrecv", sender))
        return sender

    def addTransceiver(self, kind: str, direction: str = "sendrecv") -> FakeTransceiver:
        transceiver = FakeTransceiver(kind, direction, FakeSender(None))
        self.transceivers.append(transceiver)
        return transceiver

    def getSenders(self) -> list[FakeSender]:
        return [t.sender for t in self.transceivers]

    async def close(self) -> None:
        self.closed = True


class FakePeerConnection(BasePeerConnection):
    def getTransceivers(self) -> list[FakeTransceiver]:
        return list(self.transceivers)


class RecordingSink:
    """Display sink double remembering every attach() call."""

    def __init__(self) -> None:
        self.attached: list[Any] = []

    @property
    def current(self) -> Any:
        return self.attached[-1] if self.attached else None

    def attach(self, track: Any) -> None:
        self.attached.append(track)


class FakeSignaling:
    """aiohttp handler standing in for the remote ``/offer`` endpoint."""

    def __init__(self) -> None:
        self.url = ""
        self.requests: list[dict[str, Any]] = []
        self.content_types: list[str] = []
        self.status = 200
        self.body: Optional[str] = json.dumps({"sdp": ANSWER_SDP, "type": "answer"})

    async def handle(self, request: web.Request) -> web.Response:
        self.content_types.append(request.headers.get("Content-Type", ""))
        self.requests.append(await request.json())
        return web.Response(status=self.status, text=self.body, content_type="application/json")


def make_track_factory(*tracks: FakeTrack, error: Optional[Exception] = None):
    calls: list[tuple[bool, bool]] = []

    async def factory(audio: bool, video: bool) -> LocalMedia:
        calls.append((audio, video))
        if error is not None:
            raise error
        media = LocalMedia()
        for track in tracks:
            setattr(media, track.kind, track)
        return media

    factory.calls = calls  # type: ignore[attr-defined]
    return factory


@pytest.fixture
def offer_sdp() -> str:
    return OFFER_SDP


@pytest_asyncio.fixture
async def signaling():
    fake = FakeSignaling()
    app = web.Application()
    app.router.add_post("/offer", fake.handle)
    server = TestServer(app)
    await server.start_server()
    fake.url = str(server.make_url("/")).rstrip("/")
    yield fake
    await server.close()
