"""Exception hierarchy for WasteSort.

Every failure is local to the single operation that raised it. None of these
leave slot, cursor, or aggregate state partially written.
"""

from __future__ import annotations


class WasteSortError(Exception):
    """Base class for all WasteSort errors."""


class DecodeError(WasteSortError):
    """Raw image bytes could not be decoded into a supported pixel format."""


class ModelNotReadyError(WasteSortError):
    """The classifier is still loading or failed to load."""


class InferenceError(WasteSortError):
    """The model call failed or produced malformed output."""


class SessionCompleteError(WasteSortError):
    """All capture slots are already filled; reset before capturing again."""


class InvalidCodeError(WasteSortError):
    """Scanned bin code does not carry the expected prefix."""


class NoBinCodeError(WasteSortError):
    """A capture was attempted before a valid bin code was scanned."""


class SessionBusyError(WasteSortError):
    """Another capture is already in flight for this session."""
