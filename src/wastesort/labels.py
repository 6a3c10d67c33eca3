"""Class labels produced by the dry/wet classifier."""

from __future__ import annotations

from enum import StrEnum

from wastesort.errors import InferenceError


class ClassLabel(StrEnum):
    """Closed set of waste classes, in model output order."""

    DRY_WASTE = "dry waste"
    WET_WASTE = "wet waste"

    @classmethod
    def from_index(cls, index: int) -> ClassLabel:
        """Map a score-vector index to its label.

        Raises:
            InferenceError: If the index is outside the enumeration.
        """
        match index:
            case 0:
                return cls.DRY_WASTE
            case 1:
                return cls.WET_WASTE
            case _:
                raise InferenceError(f"Class index {index} is out of range for {len(cls)} labels")

    @property
    def short_name(self) -> str:
        """First word of the label ("dry" / "wet"), as shown on per-slot badges."""
        return self.value.split(" ", 1)[0]


NUM_CLASSES: int = len(ClassLabel)
