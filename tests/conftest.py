"""Shared fixtures."""

from __future__ import annotations

import io
from typing import TYPE_CHECKING

import pytest
from PIL import Image

if TYPE_CHECKING:
    from collections.abc import Callable


@pytest.fixture()
def make_image_bytes() -> Callable[..., bytes]:
    """Factory for solid-colour encoded images."""

    def _make(
        width: int = 32,
        height: int = 24,
        color: tuple[int, int, int] = (200, 120, 40),
        fmt: str = "PNG",
    ) -> bytes:
        buffer = io.BytesIO()
        Image.new("RGB", (width, height), color).save(buffer, format=fmt)
        return buffer.getvalue()

    return _make
