"""API route definitions."""

from __future__ import annotations

import uuid
from typing import TYPE_CHECKING, Annotated

from fastapi import APIRouter, Depends, Form, HTTPException, Request, UploadFile, status

from wastesort.api.middleware import verify_api_key
from wastesort.api.schemas import (
    BinCodeRequest,
    ErrorResponse,
    HealthResponse,
    ModelInfo,
    ModelsResponse,
    SessionResponse,
)
from wastesort.labels import ClassLabel

if TYPE_CHECKING:
    from wastesort.config import Settings
    from wastesort.ml.inference import InferencePool
    from wastesort.ml.model_manager import OnnxModelManager
    from wastesort.session.controller import SessionController

router = APIRouter(prefix="/api/v1", dependencies=[Depends(verify_api_key)])

_PAYLOAD_TOO_LARGE = 413


def _get_settings(request: Request) -> Settings:
    settings: Settings = request.app.state.settings
    return settings


def _get_controller(request: Request) -> SessionController:
    controller: SessionController = request.app.state.controller
    return controller


def _get_model_manager(request: Request) -> OnnxModelManager:
    manager: OnnxModelManager = request.app.state.model_manager
    return manager


def _get_inference_pool(request: Request) -> InferencePool:
    pool: InferencePool = request.app.state.inference_pool
    return pool


@router.get(
    "/session",
    response_model=SessionResponse,
    summary="Current session snapshot",
)
async def get_session(request: Request) -> SessionResponse:
    """Return slot states, progressive/final label, and model readiness."""
    return SessionResponse.from_snapshot(_get_controller(request).snapshot())


@router.post(
    "/bin-code",
    response_model=SessionResponse,
    responses={
        status.HTTP_400_BAD_REQUEST: {"model": ErrorResponse},
        status.HTTP_409_CONFLICT: {"model": ErrorResponse},
    },
    summary="Submit a scanned bin QR code",
)
async def scan_bin_code(request: Request, body: BinCodeRequest) -> SessionResponse:
    """Validate the scanned code and start a new session for that bin."""
    snapshot = _get_controller(request).scan_bin_code(body.code)
    return SessionResponse.from_snapshot(snapshot)


@router.post(
    "/captures",
    response_model=SessionResponse,
    responses={
        status.HTTP_409_CONFLICT: {"model": ErrorResponse},
        status.HTTP_415_UNSUPPORTED_MEDIA_TYPE: {"model": ErrorResponse},
        status.HTTP_500_INTERNAL_SERVER_ERROR: {"model": ErrorResponse},
        status.HTTP_503_SERVICE_UNAVAILABLE: {"model": ErrorResponse},
    },
    summary="Classify a captured photograph into the next slot",
)
async def capture(
    request: Request,
    file: UploadFile,
    image_ref: Annotated[str | None, Form()] = None,
) -> SessionResponse:
    """Classify an uploaded photograph and record it in the next free slot."""
    settings = _get_settings(request)
    raw_image = await file.read(settings.max_file_size + 1)
    if len(raw_image) > settings.max_file_size:
        raise HTTPException(
            status_code=_PAYLOAD_TOO_LARGE,
            detail=f"File exceeds {settings.max_file_size} bytes",
        )

    ref = image_ref or file.filename or f"capture-{uuid.uuid4().hex}"
    snapshot = await _get_controller(request).capture(raw_image, ref)
    return SessionResponse.from_snapshot(snapshot)


@router.post(
    "/reset",
    response_model=SessionResponse,
    responses={status.HTTP_409_CONFLICT: {"model": ErrorResponse}},
    summary="Clear all capture slots",
)
async def reset(request: Request) -> SessionResponse:
    """Empty every slot and the final label; the scanned bin is kept."""
    return SessionResponse.from_snapshot(_get_controller(request).reset())


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Health check",
)
async def health(request: Request) -> HealthResponse:
    """Return service health status."""
    settings = _get_settings(request)
    manager = _get_model_manager(request)
    pool = _get_inference_pool(request)
    return HealthResponse(
        status="ok",
        gpu=settings.device == "cuda",
        model_state=manager.state,
        busy=_get_controller(request).busy,
        active_tasks=pool.active_count,
    )


@router.get(
    "/models",
    response_model=ModelsResponse,
    summary="Describe the configured classifier",
)
async def list_models(request: Request) -> ModelsResponse:
    """Return the classifier, its labels, and its load status."""
    manager = _get_model_manager(request)
    spec = manager.spec
    source = str(spec.local_path) if spec.local_path is not None else f"{spec.repo_id}/{spec.filename}"
    return ModelsResponse(
        models=[
            ModelInfo(
                name=spec.name,
                source=source,
                labels=list(ClassLabel),
                input_size=spec.input_size,
                status=manager.state,
            )
        ]
    )
