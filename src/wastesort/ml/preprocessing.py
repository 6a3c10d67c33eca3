"""Image preprocessing pipeline.

Decodes a captured photograph, applies EXIF orientation, crops the largest
centered square, resizes it to the model input side, and scales channel
values to float32 in [0, 1].
"""

from __future__ import annotations

import io
import logging
import warnings
from typing import TYPE_CHECKING

import numpy as np
from PIL import Image, ImageOps, UnidentifiedImageError

from wastesort.errors import DecodeError

if TYPE_CHECKING:
    from numpy.typing import NDArray

    from wastesort.config import Settings

logger = logging.getLogger(__name__)


def center_square_box(width: int, height: int) -> tuple[int, int, int, int]:
    """Return the (left, upper, right, lower) box of the largest centered square."""
    side = min(width, height)
    left = (width - side) // 2
    upper = (height - side) // 2
    return left, upper, left + side, upper + side


class ImagePreprocessor:
    """Turns raw capture bytes into a model-ready HxWx3 float32 tensor."""

    def __init__(self, settings: Settings) -> None:
        self._input_size = settings.input_size
        self._max_pixels = settings.max_image_pixels

    @property
    def input_size(self) -> int:
        return self._input_size

    def preprocess(self, raw_image: bytes) -> NDArray[np.float32]:
        """Prepare a captured photograph for the classifier.

        Args:
            raw_image: Raw file bytes (any format Pillow can decode).

        Returns:
            (input_size, input_size, 3) float32 array with values in [0, 1].

        Raises:
            DecodeError: If the bytes cannot be decoded or exceed size limits.
        """
        if not raw_image:
            raise DecodeError("Image is empty")

        with self._decode(raw_image) as image:
            box = center_square_box(image.width, image.height)
            with image.crop(box) as square:
                side = self._input_size
                with square.resize((side, side), Image.Resampling.BILINEAR) as resized:
                    pixels = np.asarray(resized, dtype=np.uint8)

        tensor = pixels.astype(np.float32) / np.float32(255.0)
        logger.debug("Preprocessed image crop=%s -> %s", box, tensor.shape)
        return tensor

    def _decode(self, raw_image: bytes) -> Image.Image:
        try:
            with warnings.catch_warnings():
                warnings.simplefilter("error", Image.DecompressionBombWarning)
                opened = Image.open(io.BytesIO(raw_image))
                if opened.width * opened.height > self._max_pixels:
                    opened.close()
                    raise DecodeError(
                        f"Image is {opened.width}x{opened.height}, exceeds {self._max_pixels} pixel limit"
                    )
                opened.load()
        except DecodeError:
            raise
        except (UnidentifiedImageError, OSError, Image.DecompressionBombError, Image.DecompressionBombWarning) as exc:
            raise DecodeError(f"Cannot decode image: {exc}") from exc

        with opened:
            oriented = ImageOps.exif_transpose(opened)
            if oriented is None:
                oriented = opened.copy()
            if oriented.mode != "RGB":
                converted = oriented.convert("RGB")
                oriented.close()
                return converted
            return oriented
