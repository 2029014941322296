"""Exceptions raised while converting XMIDI data."""

from __future__ import annotations


class XMIError(ValueError):
    """Base class for every structural problem found in XMIDI input."""


class MalformedContainer(XMIError):
    """An expected IFF chunk tag was not where the layout requires it."""


class CapacityExceeded(XMIError):
    """Too many notes were sounding at once."""


class TruncatedInput(XMIError):
    """A read ran past the end of the buffer or of the current chunk."""


class MalformedEvent(XMIError):
    """An event stream contained a status byte the decoder cannot size."""
