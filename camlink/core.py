"""Connection lifecycle for the camlink client."""

from __future__ import annotations

import asyncio
import inspect
import logging
from enum import Enum, auto
from typing import (
    Any,
    Awaitable,
    Callable,
    List,
    Optional,
    Protocol,
    Sequence,
    Set,
    runtime_checkable,
)

from aiohttp import ClientSession
from aiortc import (
    MediaStreamTrack,
    RTCConfiguration,
    RTCIceServer,
    RTCPeerConnection,
)
from aiortc.mediastreams import MediaStreamError

from .config import (
    ICE_GATHERING_TIMEOUT,
    SDP_SEMANTICS,
    SIGNALING_URL,
    STUN_URLS,
    TEARDOWN_DELAY,
)
from .errors import ConnectionBusyError
from .media.camera import LocalMedia, acquire_local_tracks
from .negotiation import NegotiationOrchestrator, NegotiationState


class ConnectionState(Enum):
    IDLE = auto()
    STARTING = auto()
    ACTIVE = auto()
    STOPPING = auto()


@runtime_checkable
class SupportsTransceivers(Protocol):
    def getTransceivers(self) -> List[Any]: ...


class DisplaySink(Protocol):
    def attach(self, track: Optional[MediaStreamTrack]) -> None: ...


TrackFactory = Callable[[bool, bool], Awaitable[LocalMedia]]


def make_rtc_config(stun_urls: Optional[Sequence[str]] = None) -> RTCConfiguration:
    urls = list(stun_urls) if stun_urls is not None else list(STUN_URLS)
    return RTCConfiguration(iceServers=[RTCIceServer(urls=urls)])


class ConnectionLifecycle:
    """Owns the single peer connection and drives start/stop around it.

    ``pc`` is written only by :meth:`start` and by the teardown scheduled in
    :meth:`stop`.  Re-entry is rejected: ``start()`` outside ``IDLE`` and
    ``stop()`` while ``STARTING`` raise :class:`ConnectionBusyError`.
    """

    def __init__(
        self,
        destination: DisplaySink,
        source: Optional[DisplaySink] = None,
        *,
        audio: bool = False,
        video: bool = True,
        debug: bool = False,
        signaling_url: str = SIGNALING_URL,
        stun_urls: Optional[Sequence[str]] = None,
        track_factory: TrackFactory = acquire_local_tracks,
        pc_factory: Callable[..., RTCPeerConnection] = RTCPeerConnection,
        teardown_delay: float = TEARDOWN_DELAY,
        ice_timeout: Optional[float] = ICE_GATHERING_TIMEOUT,
    ):
        self.destination = destination
        self.source = source
        self.audio = audio
        self.video = video
        self.debug = debug
        self.signaling_url = signaling_url
        self.stun_urls = stun_urls

        self.pc: Optional[RTCPeerConnection] = None
        self.session: Optional[ClientSession] = None
        self.negotiation: Optional[NegotiationOrchestrator] = None

        self._track_factory = track_factory
        self._pc_factory = pc_factory
        self._teardown_delay = teardown_delay
        self._ice_timeout = ice_timeout

        self._logger = logging.getLogger(f"{__name__}.ConnectionLifecycle")
        self._state = ConnectionState.IDLE
        self._state_listeners: List[Callable[[ConnectionState], None]] = []
        self._negotiation_listeners: List[Callable[[NegotiationState], None]] = []
        self._media: Optional[LocalMedia] = None
        self._remote_video_routed = False
        self._drain_tasks: Set[asyncio.Task] = set()
        self._teardown_task: Optional[asyncio.Task] = None
        self._start_task: Optional[asyncio.Task] = None

    @property
    def state(self) -> ConnectionState:
        return self._state

    def add_state_listener(self, callback: Callable[[ConnectionState], None]) -> None:
        self._state_listeners.append(callback)

    def add_negotiation_listener(self, callback: Callable[[NegotiationState], None]) -> None:
        self._negotiation_listeners.append(callback)

    def _set_state(self, state: ConnectionState) -> None:
        if self._state is state:
            return
        self._logger.debug("State change: %s -> %s", self._state.name, state.name)
        self._state = state
        for callback in list(self._state_listeners):
            callback(state)

    def _on_negotiation_state(self, state: NegotiationState) -> None:
        for callback in list(self._negotiation_listeners):
            callback(state)

    async def toggle(self) -> None:
        """Single-button trigger: stop when a connection exists, start otherwise."""

        if self.pc is not None:
            await self.stop()
        else:
            await self.start()

    async def start(self) -> None:
        if self._state is not ConnectionState.IDLE:
            raise ConnectionBusyError(f"Cannot start while the connection is {self._state.name}.")
        self._set_state(ConnectionState.STARTING)
        self._start_task = asyncio.current_task()
        try:
            await self._establish_connection()
        except asyncio.CancelledError:
            await self._abort_start()
            raise
        except Exception as exc:
            self._logger.error("Start failed: %s", exc)
            await self._abort_start()
            raise
        finally:
            self._start_task = None
        self._set_state(ConnectionState.ACTIVE)
        self._logger.info("Connection active.")

    async def _establish_connection(self) -> None:
        self._logger.info(
            "Creating peer connection (%s, STUN: %s).",
            SDP_SEMANTICS,
            ", ".join(self.stun_urls or STUN_URLS),
        )
        self.pc = pc = self._pc_factory(configuration=make_rtc_config(self.stun_urls))
        self._remote_video_routed = False
        pc.on("track", self._on_track)
        if self.debug:
            self._attach_debug_logging(pc)

        self._media = media = await self._track_factory(self.audio, self.video)
        if self.source is not None and media.video is not None:
            self.source.attach(media.video)
        for track in media.tracks:
            pc.addTrack(track)
        for kind, wanted, track in (
            ("audio", self.audio, media.audio),
            ("video", self.video, media.video),
        ):
            if wanted and track is None:
                pc.addTransceiver(kind, direction="recvonly")

        self.session = ClientSession()
        self.negotiation = NegotiationOrchestrator(
            pc,
            session=self.session,
            signaling_url=self.signaling_url,
            ice_timeout=self._ice_timeout,
            on_state=self._on_negotiation_state,
        )
        await self.negotiation.run()

    async def _abort_start(self) -> None:
        media = self._media
        self._media = None
        if self.source is not None:
            self.source.attach(None)
        if media is not None:
            media.stop()
        await self._close_connection()
        self._set_state(ConnectionState.IDLE)

    def _on_track(self, track: MediaStreamTrack) -> None:
        self._logger.info("Remote %s track received.", track.kind)
        if track.kind == "video":
            if self._remote_video_routed:
                self._logger.debug("Additional remote video track ignored.")
                return
            self._remote_video_routed = True
            self.destination.attach(track)
            return
        task = asyncio.create_task(self._drain(track))
        self._drain_tasks.add(task)
        task.add_done_callback(self._drain_tasks.discard)

    async def _drain(self, track: MediaStreamTrack) -> None:
        try:
            while True:
                await track.recv()
        except MediaStreamError:
            return

    def _attach_debug_logging(self, pc: RTCPeerConnection) -> None:
        self._logger.info(
            "iceGatheringState=%s iceConnectionState=%s signalingState=%s",
            pc.iceGatheringState,
            pc.iceConnectionState,
            pc.signalingState,
        )
        for event, attr in (
            ("icegatheringstatechange", "iceGatheringState"),
            ("iceconnectionstatechange", "iceConnectionState"),
            ("signalingstatechange", "signalingState"),
        ):
            def _log(attr: str = attr) -> None:
                self._logger.info("%s: %s", attr, getattr(pc, attr))

            pc.on(event, _log)

    async def stop(self) -> None:
        if self._state is ConnectionState.STARTING:
            raise ConnectionBusyError("Cannot stop while the connection is still starting.")
        pc = self.pc
        if self._state is not ConnectionState.ACTIVE or pc is None:
            self._logger.debug("Stop ignored: no active connection (%s).", self._state.name)
            return

        self._set_state(ConnectionState.STOPPING)
        if self.source is not None:
            self.source.attach(None)
        if isinstance(pc, SupportsTransceivers):
            for transceiver in pc.getTransceivers():
                try:
                    result = transceiver.stop()
                    if inspect.isawaitable(result):
                        await result
                except Exception as exc:
                    self._logger.warning("Stopping a transceiver failed: %s", exc)
        for sender in pc.getSenders():
            if sender.track is not None:
                sender.track.stop()
        self._media = None

        self._teardown_task = asyncio.create_task(self._teardown_after(self._teardown_delay))

    async def _teardown_after(self, delay: float) -> None:
        try:
            await asyncio.sleep(delay)
            await self._close_connection()
        finally:
            self._teardown_task = None
            self._set_state(ConnectionState.IDLE)
            self._logger.info("Connection closed.")

    async def wait_closed(self) -> None:
        task = self._teardown_task
        if task is not None:
            await asyncio.shield(task)

    async def shutdown(self) -> None:
        """Close whatever connection exists and wait until it is gone.

        An active connection goes through :meth:`stop`; a start still in
        flight is cancelled.
        """

        if self._state is ConnectionState.ACTIVE:
            await self.stop()
        elif self._state is ConnectionState.STARTING and self._start_task is not None:
            task = self._start_task
            task.cancel()
            await asyncio.wait([task])
        await self.wait_closed()

    async def _close_connection(self) -> None:
        for task in list(self._drain_tasks):
            task.cancel()

        session = self.session
        self.session = None
        if session is not None:
            try:
                await session.close()
            except Exception as exc:
                self._logger.debug("Closing the HTTP session failed: %s", exc)

        pc = self.pc
        self.pc = None
        if pc is not None:
            try:
                await pc.close()
            except Exception as exc:
                self._logger.warning("Closing the peer connection failed: %s", exc)
