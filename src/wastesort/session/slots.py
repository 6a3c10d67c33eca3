"""Fixed-length capture slot sequence."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from wastesort.errors import SessionCompleteError

if TYPE_CHECKING:
    from wastesort.labels import ClassLabel
    from wastesort.ml.waste_classifier import PredictionResult

logger = logging.getLogger(__name__)

SLOT_COUNT: int = 3


@dataclass(frozen=True)
class CaptureSlot:
    """One capture position: an image reference and its predicted label."""

    index: int
    image_ref: str | None = None
    label: ClassLabel | None = None

    @property
    def is_filled(self) -> bool:
        return self.label is not None


class CaptureSlotManager:
    """Owns N capture slots filled strictly in index order.

    The cursor always equals the number of filled slots, and slots
    ``[0, cursor)`` are exactly the filled ones.
    """

    def __init__(self, size: int = SLOT_COUNT) -> None:
        if size < 1:
            raise ValueError(f"Slot count must be positive, got {size}")
        self._size = size
        self._slots: list[CaptureSlot] = [CaptureSlot(index=i) for i in range(size)]
        self._cursor = 0

    @property
    def size(self) -> int:
        return self._size

    @property
    def cursor(self) -> int:
        """Index of the next slot to fill."""
        return self._cursor

    @property
    def filled_count(self) -> int:
        return self._cursor

    @property
    def is_complete(self) -> bool:
        return self._cursor == self._size

    def record_capture(self, image_ref: str, prediction: PredictionResult) -> int:
        """Fill the slot at the cursor and advance it.

        Returns:
            Index of the slot that was filled.

        Raises:
            SessionCompleteError: If every slot is already filled.
        """
        if self.is_complete:
            raise SessionCompleteError(f"All {self._size} slots are filled; reset to capture again")

        index = self._cursor
        self._slots[index] = CaptureSlot(index=index, image_ref=image_ref, label=prediction.label)
        self._cursor += 1
        logger.debug("Slot %d/%d filled with %s", index + 1, self._size, prediction.label)
        return index

    def reset(self) -> None:
        """Empty every slot and move the cursor back to 0."""
        self._slots = [CaptureSlot(index=i) for i in range(self._size)]
        self._cursor = 0

    def snapshot(self) -> tuple[CaptureSlot, ...]:
        return tuple(self._slots)
