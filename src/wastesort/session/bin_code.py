"""Bin code validation for scanned QR text."""

from __future__ import annotations

from wastesort.errors import InvalidCodeError

DEFAULT_PREFIX: str = "HS"


def is_valid_bin_code(text: str, prefix: str = DEFAULT_PREFIX) -> bool:
    return text.startswith(prefix)


def validate_bin_code(text: str, prefix: str = DEFAULT_PREFIX) -> str:
    """Return the scanned text if it identifies a bin.

    Raises:
        InvalidCodeError: If the text does not start with ``prefix``.
    """
    if not is_valid_bin_code(text, prefix):
        raise InvalidCodeError("Invalid QR Code")
    return text
