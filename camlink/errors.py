"""Exception types raised by camlink."""

from __future__ import annotations


class CamlinkError(RuntimeError):
    """Base class for every camlink failure."""


class MediaAcquisitionError(CamlinkError):
    """Raised when local camera/microphone tracks cannot be opened."""


class NegotiationError(CamlinkError):
    """Raised when an offer/answer exchange fails at any step."""


class ConnectionBusyError(CamlinkError):
    """Raised when start/stop is requested while a transition is in flight."""


class MalformedDescriptionError(ValueError):
    """Raised by the SDP line parsers; the codec filter absorbs it."""
