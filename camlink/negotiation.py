"""Offer/answer negotiation against the HTTP signaling endpoint."""

from __future__ import annotations

import asyncio
import json
import logging
from enum import Enum, auto
from typing import Callable, Optional

from aiohttp import ClientError, ClientSession, ClientTimeout
from aiortc import RTCPeerConnection, RTCSessionDescription

from .config import (
    ICE_GATHERING_TIMEOUT,
    OFFER_PATH,
    SIGNALING_TIMEOUT,
    SIGNALING_URL,
    VIDEO_CODEC,
    VIDEO_KIND,
)
from .errors import NegotiationError
from .sdp import SessionDescription, filter_codec

logger = logging.getLogger(__name__)


class NegotiationState(Enum):
    IDLE = auto()
    CREATING_OFFER = auto()
    GATHERING_ICE = auto()
    FILTERING = auto()
    SIGNALING = auto()
    APPLYING = auto()
    COMPLETED = auto()
    FAILED = auto()


_NEXT_STATE = {
    NegotiationState.IDLE: NegotiationState.CREATING_OFFER,
    NegotiationState.CREATING_OFFER: NegotiationState.GATHERING_ICE,
    NegotiationState.GATHERING_ICE: NegotiationState.FILTERING,
    NegotiationState.FILTERING: NegotiationState.SIGNALING,
    NegotiationState.SIGNALING: NegotiationState.APPLYING,
    NegotiationState.APPLYING: NegotiationState.COMPLETED,
}


async def wait_ice_complete(pc: RTCPeerConnection, timeout: Optional[float] = None) -> None:
    """Suspend until ``pc.iceGatheringState`` is ``"complete"``.

    The state is checked before the listener is registered and once more right
    after, so a transition that happens in between is never missed.
    """

    if pc.iceGatheringState == "complete":
        return
    loop = asyncio.get_running_loop()
    fut = loop.create_future()

    def _check() -> None:
        if pc.iceGatheringState == "complete" and not fut.done():
            fut.set_result(True)

    pc.on("icegatheringstatechange", _check)
    try:
        _check()
        if timeout is None:
            await fut
        else:
            await asyncio.wait_for(fut, timeout)
    finally:
        pc.remove_listener("icegatheringstatechange", _check)


class NegotiationOrchestrator:
    """Runs a single offer/answer attempt for a peer connection.

    The attempt walks ``CREATING_OFFER -> GATHERING_ICE -> FILTERING ->
    SIGNALING -> APPLYING -> COMPLETED`` without skipping a step.  Any error
    moves it to ``FAILED`` and is raised to the caller as
    :class:`NegotiationError`; nothing is retried.
    """

    def __init__(
        self,
        pc: RTCPeerConnection,
        *,
        session: Optional[ClientSession] = None,
        signaling_url: str = SIGNALING_URL,
        kind: str = VIDEO_KIND,
        codec: str = VIDEO_CODEC,
        ice_timeout: Optional[float] = ICE_GATHERING_TIMEOUT,
        signaling_timeout: Optional[float] = SIGNALING_TIMEOUT,
        on_state: Optional[Callable[[NegotiationState], None]] = None,
    ):
        self._pc = pc
        self._session = session
        self._signaling_url = signaling_url
        self._kind = kind
        self._codec = codec
        self._ice_timeout = ice_timeout
        self._signaling_timeout = signaling_timeout
        self._on_state = on_state
        self._state = NegotiationState.IDLE
        self._created_offer: Optional[RTCSessionDescription] = None

        self.offer: Optional[SessionDescription] = None
        self.answer: Optional[SessionDescription] = None
        self.error: Optional[BaseException] = None

    @property
    def state(self) -> NegotiationState:
        return self._state

    @property
    def offer_url(self) -> str:
        return self._signaling_url.rstrip("/") + OFFER_PATH

    def _set_state(self, state: NegotiationState) -> None:
        if state is not NegotiationState.FAILED and _NEXT_STATE.get(self._state) is not state:
            raise NegotiationError(
                f"Illegal negotiation transition: {self._state.name} -> {state.name}"
            )
        logger.debug("Negotiation: %s -> %s", self._state.name, state.name)
        self._state = state
        if self._on_state is not None:
            self._on_state(state)

    async def run(self) -> SessionDescription:
        """Negotiate and return the applied remote answer."""

        if self._state is not NegotiationState.IDLE:
            raise NegotiationError(f"Negotiation already ran (state: {self._state.name}).")
        try:
            self._set_state(NegotiationState.CREATING_OFFER)
            await self._create_offer()

            self._set_state(NegotiationState.GATHERING_ICE)
            await self._gather_candidates()

            self._set_state(NegotiationState.FILTERING)
            self.offer = self._filter_offer()

            self._set_state(NegotiationState.SIGNALING)
            self.answer = await self._exchange(self.offer)

            self._set_state(NegotiationState.APPLYING)
            await self._pc.setRemoteDescription(self.answer.to_rtc())

            self._set_state(NegotiationState.COMPLETED)
        except asyncio.CancelledError:
            self._set_state(NegotiationState.FAILED)
            raise
        except Exception as exc:
            step = self._state
            self.error = exc
            self._set_state(NegotiationState.FAILED)
            logger.error("Negotiation failed during %s: %s", step.name, exc)
            if isinstance(exc, NegotiationError):
                raise
            raise NegotiationError(f"Negotiation failed during {step.name}: {exc}") from exc
        return self.answer

    async def _create_offer(self) -> None:
        offer = await self._pc.createOffer()
        await self._pc.setLocalDescription(offer)
        self._created_offer = offer

    async def _gather_candidates(self) -> None:
        try:
            await wait_ice_complete(self._pc, self._ice_timeout)
        except asyncio.TimeoutError as exc:
            raise NegotiationError(
                f"ICE gathering did not complete within {self._ice_timeout} s."
            ) from exc

    def _filter_offer(self) -> SessionDescription:
        # The engine may have rewritten the offer while gathering candidates.
        local = self._pc.localDescription or self._created_offer
        if local is None:
            raise NegotiationError("The connection has no local description to send.")
        return filter_codec(SessionDescription.from_rtc(local), self._kind, self._codec)

    async def _exchange(self, offer: SessionDescription) -> SessionDescription:
        session = self._session
        owns_session = session is None
        if session is None:
            session = ClientSession()
        url = self.offer_url
        body = json.dumps({"sdp": offer.sdp, "type": offer.type})
        headers = {"Content-Type": "application/json"}
        try:
            async with session.post(
                url,
                data=body,
                headers=headers,
                timeout=ClientTimeout(total=self._signaling_timeout),
            ) as response:
                response.raise_for_status()
                text = await response.text()
        except (ClientError, asyncio.TimeoutError) as exc:
            raise NegotiationError(f"Signaling request to {url} failed: {exc}") from exc
        finally:
            if owns_session:
                await session.close()

        try:
            answer = SessionDescription.from_json(json.loads(text))
        except ValueError as exc:
            raise NegotiationError(f"Signaling response is not a session description: {exc}") from exc
        logger.info("Received %s from %s (%d lines).", answer.type, url, len(answer.lines))
        return answer
