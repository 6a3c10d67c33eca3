"""Majority vote over per-slot labels."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Iterable

    from wastesort.labels import ClassLabel
    from wastesort.session.slots import CaptureSlot


def vote_counts(slots: Iterable[CaptureSlot]) -> dict[ClassLabel, int]:
    """Count each label among filled slots, keyed in first-seen slot order."""
    counts: dict[ClassLabel, int] = {}
    for slot in slots:
        if slot.label is not None:
            counts[slot.label] = counts.get(slot.label, 0) + 1
    return counts


def compute_final(slots: Iterable[CaptureSlot]) -> ClassLabel | None:
    """Return the majority label, or None when no slot is filled.

    The running best is only replaced on a strictly greater count, so a tie
    goes to the label seen in the lowest-indexed slot.
    """
    final: ClassLabel | None = None
    max_count = 0
    for label, count in vote_counts(slots).items():
        if count > max_count:
            max_count = count
            final = label
    return final
