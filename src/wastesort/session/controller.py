"""Session controller: sequences scan, capture, and reset events.

Lifecycle: construct -> ``await load_model()`` -> events -> ``dispose()``.

All session mutation happens on the event loop. The busy flag is checked and
set without an intervening ``await``, so it acts as a cooperative mutex: a
second capture while one is in flight is rejected, never queued.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, NoReturn

from wastesort.errors import (
    ModelNotReadyError,
    NoBinCodeError,
    SessionBusyError,
    SessionCompleteError,
    WasteSortError,
)
from wastesort.ml.model_manager import ModelState
from wastesort.session.aggregator import compute_final, vote_counts
from wastesort.session.bin_code import validate_bin_code
from wastesort.session.slots import CaptureSlotManager

if TYPE_CHECKING:
    from wastesort.labels import ClassLabel
    from wastesort.ml.inference import InferencePool
    from wastesort.ml.model_manager import OnnxModelManager
    from wastesort.ml.preprocessing import ImagePreprocessor
    from wastesort.ml.waste_classifier import PredictionResult, WasteClassifier
    from wastesort.session.slots import CaptureSlot

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SessionSnapshot:
    """Read-only view of the session for the presentation layer."""

    bin_code: str | None
    slots: tuple[CaptureSlot, ...]
    cursor: int
    final_label: ClassLabel | None
    votes: tuple[tuple[ClassLabel, int], ...]
    model_state: ModelState
    model_error: str | None
    busy: bool
    processing_slot: int | None
    last_error: str | None

    @property
    def slot_count(self) -> int:
        return len(self.slots)

    @property
    def filled_count(self) -> int:
        return sum(1 for slot in self.slots if slot.is_filled)

    @property
    def is_complete(self) -> bool:
        return self.filled_count == self.slot_count

    @property
    def model_ready(self) -> bool:
        return self.model_state is ModelState.READY


class SessionController:
    """Owns one classification session and drives the capture pipeline."""

    def __init__(
        self,
        model_manager: OnnxModelManager,
        classifier: WasteClassifier,
        preprocessor: ImagePreprocessor,
        pool: InferencePool,
        bin_code_prefix: str,
        slots: CaptureSlotManager | None = None,
    ) -> None:
        self._model_manager = model_manager
        self._classifier = classifier
        self._preprocessor = preprocessor
        self._pool = pool
        self._bin_code_prefix = bin_code_prefix
        self._slots = slots if slots is not None else CaptureSlotManager()

        self._bin_code: str | None = None
        self._final_label: ClassLabel | None = None
        self._busy = False
        self._processing_slot: int | None = None
        self._last_error: str | None = None

    # -- Lifecycle ----------------------------------------------------------

    async def load_model(self) -> ModelState:
        """Load the classifier on the inference thread. Runs at most once."""
        state = await self._pool.run(self._model_manager.load)
        if state is ModelState.LOAD_FAILED:
            logger.error("Model unavailable: %s", self._model_manager.error)
        return state

    def dispose(self) -> None:
        self._pool.shutdown()
        self._model_manager.shutdown()

    # -- Events -------------------------------------------------------------

    def scan_bin_code(self, text: str) -> SessionSnapshot:
        """Accept a scanned QR code and start a fresh session for that bin.

        Raises:
            SessionBusyError: If a capture is in flight.
            InvalidCodeError: If the code lacks the bin prefix. State is unchanged.
        """
        if self._busy:
            self._reject(SessionBusyError("A capture is in progress"))
        try:
            code = validate_bin_code(text, self._bin_code_prefix)
        except WasteSortError as exc:
            self._reject(exc)

        self._bin_code = code
        self._clear()
        logger.info("Bin %s scanned, new session started", code)
        return self.snapshot()

    async def capture(self, raw_image: bytes, image_ref: str) -> SessionSnapshot:
        """Classify one photograph and record it in the next slot.

        Raises:
            ModelNotReadyError: Model not loaded (or failed to load).
            SessionBusyError: Another capture is in flight.
            NoBinCodeError: No valid bin code has been scanned.
            SessionCompleteError: All slots are filled.
            DecodeError: The image bytes could not be decoded.
            InferenceError: The model call failed or returned bad output.
        """
        self._check_can_capture()

        self._busy = True
        self._processing_slot = self._slots.cursor
        try:
            prediction = await self._pool.run(self._preprocess_and_classify, raw_image)
            index = self._slots.record_capture(image_ref, prediction)
            self._final_label = compute_final(self._slots.snapshot())
        except WasteSortError as exc:
            self._last_error = str(exc)
            logger.warning("Capture for slot %s failed: %s", self._processing_slot, exc)
            raise
        finally:
            self._busy = False
            self._processing_slot = None

        self._last_error = None
        logger.info(
            "Slot %d/%d classified as %s (confidence=%.3f), final=%s",
            index + 1,
            self._slots.size,
            prediction.label,
            prediction.confidence,
            self._final_label,
        )
        if self._slots.is_complete:
            votes = vote_counts(self._slots.snapshot())
            logger.info(
                "Final classification (%d/%d votes): %s",
                max(votes.values()),
                self._slots.size,
                self._final_label,
            )
        return self.snapshot()

    def reset(self) -> SessionSnapshot:
        """Clear all slots and the final label, keeping the scanned bin.

        Raises:
            SessionBusyError: If a capture is in flight.
        """
        if self._busy:
            self._reject(SessionBusyError("Cannot reset while a capture is in progress"))
        self._clear()
        logger.info("Session reset")
        return self.snapshot()

    def snapshot(self) -> SessionSnapshot:
        slots = self._slots.snapshot()
        return SessionSnapshot(
            bin_code=self._bin_code,
            slots=slots,
            cursor=self._slots.cursor,
            final_label=self._final_label,
            votes=tuple(vote_counts(slots).items()),
            model_state=self._model_manager.state,
            model_error=self._model_manager.error,
            busy=self._busy,
            processing_slot=self._processing_slot,
            last_error=self._last_error,
        )

    @property
    def busy(self) -> bool:
        return self._busy

    # -- Internal -----------------------------------------------------------

    def _check_can_capture(self) -> None:
        state = self._model_manager.state
        if state is not ModelState.READY:
            error = self._model_manager.error
            detail = f"Model is {state}" + (f": {error}" if error else "")
            self._reject(ModelNotReadyError(detail))
        if self._busy:
            self._reject(SessionBusyError("A capture is already in progress"))
        if self._bin_code is None:
            self._reject(NoBinCodeError("Scan a bin QR code before capturing"))
        if self._slots.is_complete:
            self._reject(
                SessionCompleteError(f"All {self._slots.size} images captured; reset to start again")
            )

    def _preprocess_and_classify(self, raw_image: bytes) -> PredictionResult:
        tensor = self._preprocessor.preprocess(raw_image)
        return self._classifier.classify(tensor)

    def _clear(self) -> None:
        self._slots.reset()
        self._final_label = None
        self._last_error = None

    def _reject(self, exc: WasteSortError) -> NoReturn:
        self._last_error = str(exc)
        logger.warning("Rejected: %s", exc)
        raise exc
