"""Session descriptions and the single-codec SDP filter.

The filter keeps one codec (plus the retransmission payloads that point at
it) inside every media section of the requested kind and leaves every other
line of the document untouched.  It works in two forward passes:

1. collect the allowed payload types in first-seen order;
2. rewrite the ``m=`` line and drop the ``rtpmap``/``fmtp``/``rtcp-fb``
   lines of payload types that were not collected.

A retransmission payload only qualifies when its ``apt`` target was already
collected, so an ``fmtp ... apt=`` line placed before its base codec's
``rtpmap`` line is dropped.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Any, Iterable, Iterator, List, Mapping, Optional, Tuple, Union

from aiortc import RTCSessionDescription

from .config import VIDEO_CODEC, VIDEO_KIND
from .errors import MalformedDescriptionError

logger = logging.getLogger(__name__)

_HEADER_PREFIX = re.compile(r"\s*\S+\s+\S+\s+\S+")

DESCRIPTION_TYPES = ("offer", "pranswer", "answer", "rollback")


@dataclass(frozen=True)
class SessionDescription:
    """Offer or answer body stored as an immutable sequence of lines."""

    type: str
    lines: Tuple[str, ...] = ()

    @classmethod
    def parse(cls, text: Optional[str], type: str = "offer") -> "SessionDescription":
        if not text:
            return cls(type=type)
        parts = text.split("\n")
        if parts[-1] == "":
            parts.pop()
        return cls(
            type=type,
            lines=tuple(part[:-1] if part.endswith("\r") else part for part in parts),
        )

    @property
    def sdp(self) -> str:
        return "".join(f"{line}\r\n" for line in self.lines)

    @classmethod
    def from_rtc(cls, description: RTCSessionDescription) -> "SessionDescription":
        return cls.parse(description.sdp, description.type)

    def to_rtc(self) -> RTCSessionDescription:
        return RTCSessionDescription(sdp=self.sdp, type=self.type)

    @classmethod
    def from_json(cls, data: Any) -> "SessionDescription":
        """Build a description from a signaling payload ``{"sdp": ..., "type": ...}``."""

        if not isinstance(data, Mapping):
            raise ValueError("session description must be a JSON object")
        sdp = data.get("sdp")
        type_ = data.get("type")
        if not isinstance(sdp, str):
            raise ValueError("session description has no 'sdp' string")
        if type_ not in DESCRIPTION_TYPES:
            raise ValueError(f"unknown session description type: {type_!r}")
        return cls.parse(sdp, type_)

    def to_json(self) -> dict[str, str]:
        return {"sdp": self.sdp, "type": self.type}


@dataclass(frozen=True)
class SectionHeader:
    line: str
    kind: str
    prefix: Tuple[str, ...]
    payload_types: Tuple[int, ...]


@dataclass(frozen=True)
class CodecMap:
    line: str
    payload_type: int
    encoding: str


@dataclass(frozen=True)
class RetransmissionMap:
    line: str
    payload_type: int
    apt: int


@dataclass(frozen=True)
class FeedbackOrFormatParam:
    line: str
    payload_type: int
    attribute: str


@dataclass(frozen=True)
class Other:
    line: str


LineKind = Union[SectionHeader, CodecMap, RetransmissionMap, FeedbackOrFormatParam, Other]

# Lines that belong to a single payload type and go away with it.
_PAYLOAD_LINES = (CodecMap, RetransmissionMap, FeedbackOrFormatParam)


def _payload_type(token: str, line: str) -> int:
    token = token.strip()
    if not (token.isascii() and token.isdigit()):
        raise MalformedDescriptionError(f"invalid payload type {token!r} in {line!r}")
    return int(token)


def _parse_header(line: str) -> SectionHeader:
    # m=<media> <port> <proto> <fmt> ...
    tokens = line.split()
    if len(tokens) < 3:
        raise MalformedDescriptionError(f"media line is missing port or protocol: {line!r}")
    payloads = tuple(int(t) for t in tokens[3:] if t.isascii() and t.isdigit())
    return SectionHeader(line, tokens[0][2:], tuple(tokens[:3]), payloads)


def _header_prefix(line: str) -> str:
    """Text of ``m=<media> <port> <proto>`` exactly as written in ``line``."""

    return _HEADER_PREFIX.match(line).group(0)


def _parse_rtpmap(line: str) -> Union[CodecMap, FeedbackOrFormatParam]:
    pt, _, encoding = line[len("a=rtpmap:"):].partition(" ")
    payload_type = _payload_type(pt, line)
    if not encoding.strip():
        logger.debug("rtpmap without encoding: %r", line)
        return FeedbackOrFormatParam(line, payload_type, "rtpmap")
    return CodecMap(line, payload_type, encoding.strip())


def _parse_fmtp(line: str) -> Union[RetransmissionMap, FeedbackOrFormatParam]:
    pt, _, params = line[len("a=fmtp:"):].partition(" ")
    payload_type = _payload_type(pt, line)
    for param in params.split(";"):
        key, _, value = param.strip().partition("=")
        if key.lower() == "apt":
            try:
                apt = _payload_type(value, line)
            except MalformedDescriptionError:
                logger.debug("fmtp with invalid apt: %r", line)
                break
            return RetransmissionMap(line, payload_type, apt)
    return FeedbackOrFormatParam(line, payload_type, "fmtp")


def _parse_rtcp_fb(line: str) -> LineKind:
    pt = line[len("a=rtcp-fb:"):].split(" ", 1)[0]
    if pt == "*":
        return Other(line)
    return FeedbackOrFormatParam(line, _payload_type(pt, line), "rtcp-fb")


def classify_line(line: str) -> LineKind:
    """Map one SDP line to its tagged variant; unparseable lines become ``Other``."""

    try:
        if line.startswith("m="):
            return _parse_header(line)
        if line.startswith("a=rtpmap:"):
            return _parse_rtpmap(line)
        if line.startswith("a=fmtp:"):
            return _parse_fmtp(line)
        if line.startswith("a=rtcp-fb:"):
            return _parse_rtcp_fb(line)
    except MalformedDescriptionError as exc:
        logger.debug("Passing malformed SDP line through: %s", exc)
    return Other(line)


def _iter_sections(lines: Iterable[str], kind: str) -> Iterator[Tuple[bool, str]]:
    header = f"m={kind} "
    in_kind = False
    for line in lines:
        if line.startswith("m="):
            in_kind = line.startswith(header)
        yield in_kind, line


def _matches_codec(encoding: str, codec: str) -> bool:
    encoding = encoding.lower()
    codec = codec.lower()
    return encoding == codec or encoding.startswith(codec + "/")


def collect_allowed(lines: Iterable[str], kind: str, codec: str) -> List[int]:
    """First pass: payload types of ``codec`` and of retransmissions pointing at them."""

    allowed: List[int] = []
    for in_kind, line in _iter_sections(lines, kind):
        if not in_kind:
            continue
        entry = classify_line(line)
        if isinstance(entry, CodecMap) and _matches_codec(entry.encoding, codec):
            payload_type = entry.payload_type
        elif isinstance(entry, RetransmissionMap) and entry.apt in allowed:
            payload_type = entry.payload_type
        else:
            continue
        if payload_type not in allowed:
            allowed.append(payload_type)
    return allowed


def filter_codec(
    sdp: Optional[SessionDescription],
    kind: str = VIDEO_KIND,
    codec: str = VIDEO_CODEC,
) -> SessionDescription:
    """Restrict every ``kind`` media section of ``sdp`` to ``codec``.

    Never raises: a missing description yields an empty offer and lines that
    do not parse are copied through unchanged.
    """

    if sdp is None:
        return SessionDescription(type="offer")

    allowed = collect_allowed(sdp.lines, kind, codec)
    payload_tokens = tuple(str(pt) for pt in allowed)

    out: List[str] = []
    dropped = 0
    headers = 0
    for in_kind, line in _iter_sections(sdp.lines, kind):
        if not in_kind:
            out.append(line)
            continue
        entry = classify_line(line)
        if isinstance(entry, SectionHeader):
            out.append(" ".join((_header_prefix(line),) + payload_tokens))
            headers += 1
        elif isinstance(entry, _PAYLOAD_LINES) and entry.payload_type not in allowed:
            dropped += 1
        else:
            out.append(line)

    if headers and not allowed:
        logger.warning("No %s payload matches %s; the %s section carries no codec.", kind, codec, kind)
    logger.debug("Filtered %s to %s: allowed=%s, dropped %d lines", kind, codec, allowed, dropped)
    return SessionDescription(type=sdp.type, lines=tuple(out))
