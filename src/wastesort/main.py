"""FastAPI application entry point."""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from wastesort.config import Settings

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from wastesort.api.middleware import register_error_handlers
from wastesort.api.routes import router
from wastesort.config import get_settings
from wastesort.ml.inference import InferencePool
from wastesort.ml.model_manager import OnnxModelManager
from wastesort.ml.preprocessing import ImagePreprocessor
from wastesort.ml.waste_classifier import WasteClassifier
from wastesort.session.controller import SessionController

logger = logging.getLogger(__name__)


def init_app_state(app: FastAPI, settings: Settings) -> SessionController:
    """Build the pipeline components and attach them to ``app.state``."""
    model_manager = OnnxModelManager(settings)
    inference_pool = InferencePool()
    controller = SessionController(
        model_manager=model_manager,
        classifier=WasteClassifier(model_manager, settings.input_size),
        preprocessor=ImagePreprocessor(settings),
        pool=inference_pool,
        bin_code_prefix=settings.bin_code_prefix,
    )

    app.state.settings = settings
    app.state.model_manager = model_manager
    app.state.inference_pool = inference_pool
    app.state.controller = controller
    return controller


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Application lifespan: initialize on startup, clean up on shutdown."""
    settings = get_settings()

    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )

    logger.info(
        "Starting WasteSort (device=%s, model=%s, input_size=%s, bin_prefix=%s)",
        settings.device,
        settings.model_path or f"{settings.model_repo_id}/{settings.model_filename}",
        settings.input_size,
        settings.bin_code_prefix,
    )

    controller = init_app_state(app, settings)
    # Captures are rejected, not queued, until this finishes.
    load_task = asyncio.create_task(controller.load_model())

    logger.info("WasteSort accepting requests")
    yield

    logger.info("Shutting down WasteSort")
    await load_task
    controller.dispose()
    logger.info("WasteSort shutdown complete")


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    application = FastAPI(
        title="WasteSort",
        description="Bin QR scan and three-shot dry/wet waste classification",
        version="0.1.0",
        lifespan=lifespan,
    )

    application.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    register_error_handlers(application)
    application.include_router(router)
    return application


app = create_app()


def run() -> None:
    """Serve the app with uvicorn using the configured host and port."""
    import uvicorn

    settings = get_settings()
    uvicorn.run("wastesort.main:app", host=settings.host, port=settings.port)
