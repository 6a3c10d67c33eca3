"""Pydantic request/response schemas for the WasteSort API."""

from __future__ import annotations

from typing import TYPE_CHECKING

from pydantic import BaseModel, Field

from wastesort.labels import ClassLabel  # noqa: TC001
from wastesort.ml.model_manager import ModelState  # noqa: TC001

if TYPE_CHECKING:
    from wastesort.session.controller import SessionSnapshot


class BinCodeRequest(BaseModel):
    """Decoded QR text delivered by the scanner."""

    code: str = Field(min_length=1)


class SlotState(BaseModel):
    """A single capture slot."""

    index: int = Field(ge=0)
    filled: bool
    image_ref: str | None = None
    label: ClassLabel | None = None


class VoteCount(BaseModel):
    label: ClassLabel
    count: int = Field(ge=0)


class SessionResponse(BaseModel):
    """Full session snapshot, returned after every event."""

    bin_code: str | None
    slots: list[SlotState]
    filled_count: int
    slot_count: int
    final_label: ClassLabel | None = Field(description="Majority-vote label over filled slots")
    votes: list[VoteCount]
    model_ready: bool
    model_state: ModelState
    model_error: str | None = None
    busy: bool
    processing_slot: int | None = None
    last_error: str | None = None

    @classmethod
    def from_snapshot(cls, snapshot: SessionSnapshot) -> SessionResponse:
        return cls(
            bin_code=snapshot.bin_code,
            slots=[
                SlotState(index=s.index, filled=s.is_filled, image_ref=s.image_ref, label=s.label)
                for s in snapshot.slots
            ],
            filled_count=snapshot.filled_count,
            slot_count=snapshot.slot_count,
            final_label=snapshot.final_label,
            votes=[VoteCount(label=label, count=count) for label, count in snapshot.votes],
            model_ready=snapshot.model_ready,
            model_state=snapshot.model_state,
            model_error=snapshot.model_error,
            busy=snapshot.busy,
            processing_slot=snapshot.processing_slot,
            last_error=snapshot.last_error,
        )


class HealthResponse(BaseModel):
    """Health check response."""

    status: str = "ok"
    gpu: bool
    model_state: ModelState
    busy: bool
    active_tasks: int


class ModelInfo(BaseModel):
    """Information about the configured classifier."""

    name: str
    source: str = Field(description="Local file path or Hugging Face Hub repo id")
    labels: list[ClassLabel]
    input_size: int
    status: ModelState


class ModelsResponse(BaseModel):
    """Response for the models listing endpoint."""

    models: list[ModelInfo]


class ErrorResponse(BaseModel):
    """Standard error response."""

    detail: str
