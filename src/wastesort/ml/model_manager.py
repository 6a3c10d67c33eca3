"""Model manager: resolve, load, and hold the dry/wet ONNX classifier.

Resolves the model bundle (local file or Hugging Face Hub download), creates
the ONNX InferenceSession, and tracks the one-shot readiness state machine:

    UNLOADED -> LOADING -> READY
    UNLOADED -> LOADING -> LOAD_FAILED   (terminal, no retry)
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from enum import StrEnum
from pathlib import Path
from typing import TYPE_CHECKING, Protocol

from huggingface_hub import hf_hub_download
from onnxruntime import InferenceSession, SessionOptions
from onnxruntime.capi.onnxruntime_pybind11_state import ExecutionMode

from wastesort.errors import ModelNotReadyError
from wastesort.labels import NUM_CLASSES

if TYPE_CHECKING:
    from wastesort.config import Settings

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Protocol (kept for test mocking)
# ---------------------------------------------------------------------------


class ModelManager(Protocol):
    """Protocol for model lifecycle management."""

    @property
    def state(self) -> ModelState:
        """Return the current readiness state."""
        ...

    def load(self) -> ModelState:
        """Load the model once and return the resulting state."""
        ...

    def get_session(self) -> InferenceSession:
        """Return the loaded InferenceSession."""
        ...

    def shutdown(self) -> None:
        """Drop the loaded session."""
        ...


# ---------------------------------------------------------------------------
# Model description
# ---------------------------------------------------------------------------


class ModelState(StrEnum):
    UNLOADED = "unloaded"
    LOADING = "loading"
    READY = "ready"
    LOAD_FAILED = "load_failed"


@dataclass(frozen=True)
class ModelSpec:
    """Static metadata for the configured classifier."""

    name: str
    repo_id: str
    filename: str
    local_path: Path | None
    input_size: int
    num_classes: int


def model_spec_from_settings(settings: Settings) -> ModelSpec:
    local_path = Path(settings.model_path) if settings.model_path else None
    filename = local_path.name if local_path is not None else settings.model_filename
    return ModelSpec(
        name=Path(filename).stem,
        repo_id=settings.model_repo_id,
        filename=filename,
        local_path=local_path,
        input_size=settings.input_size,
        num_classes=NUM_CLASSES,
    )


# ---------------------------------------------------------------------------
# Concrete implementation
# ---------------------------------------------------------------------------


class OnnxModelManager:
    """Loads the classifier into an ONNX InferenceSession exactly once."""

    def __init__(self, settings: Settings) -> None:
        self._settings = settings
        self._spec = model_spec_from_settings(settings)
        self._models_dir = Path(settings.models_dir)

        self._lock = threading.Lock()
        self._state = ModelState.UNLOADED
        self._session: InferenceSession | None = None
        self._error: str | None = None

        self._providers = self._build_providers()
        self._session_options = self._build_session_options()

    # -- Public API ---------------------------------------------------------

    @property
    def spec(self) -> ModelSpec:
        return self._spec

    @property
    def state(self) -> ModelState:
        with self._lock:
            return self._state

    @property
    def error(self) -> str | None:
        """Load failure message, if the model failed to load."""
        with self._lock:
            return self._error

    def ensure_downloaded(self) -> Path:
        """Return the local model file, downloading it from the Hub if needed."""
        if self._spec.local_path is not None:
            if not self._spec.local_path.is_file():
                raise FileNotFoundError(f"Model file not found: {self._spec.local_path}")
            return self._spec.local_path

        self._models_dir.mkdir(parents=True, exist_ok=True)
        downloaded = Path(
            hf_hub_download(
                repo_id=self._spec.repo_id,
                filename=self._spec.filename,
                local_dir=str(self._models_dir),
            )
        )
        logger.info("Downloaded %s to %s", self._spec.name, downloaded)
        return downloaded

    def load(self) -> ModelState:
        """Resolve and load the model. Only the first call does any work."""
        with self._lock:
            if self._state is not ModelState.UNLOADED:
                logger.debug("Model load skipped, state is %s", self._state)
                return self._state
            self._state = ModelState.LOADING

        logger.info("Loading model %s (device=%s)", self._spec.name, self._settings.device)
        try:
            model_path = self.ensure_downloaded()
            session = InferenceSession(
                str(model_path),
                sess_options=self._session_options,
                providers=self._providers,
            )
        except Exception as exc:
            logger.exception("Failed to load model %s", self._spec.name)
            with self._lock:
                self._state = ModelState.LOAD_FAILED
                self._error = f"{type(exc).__name__}: {exc}"
                return self._state

        with self._lock:
            self._session = session
            self._state = ModelState.READY
        logger.info("Model %s ready", self._spec.name)
        return ModelState.READY

    def get_session(self) -> InferenceSession:
        """Return the loaded session.

        Raises:
            ModelNotReadyError: If the model is not in the READY state.
        """
        with self._lock:
            if self._state is not ModelState.READY or self._session is None:
                detail = f": {self._error}" if self._error else ""
                raise ModelNotReadyError(f"Model is {self._state}{detail}")
            return self._session

    def shutdown(self) -> None:
        """Drop the loaded session. A failed load stays failed."""
        with self._lock:
            self._session = None
            if self._state is ModelState.READY:
                self._state = ModelState.UNLOADED
            logger.info("Model session cleared")

    # -- Internal -----------------------------------------------------------

    def _build_providers(self) -> list[str | tuple[str, dict[str, object]]]:
        device = self._settings.device
        if device == "cuda":
            return [
                (
                    "CUDAExecutionProvider",
                    {
                        "device_id": 0,
                        "gpu_mem_limit": self._settings.gpu_mem_limit,
                        "arena_extend_strategy": "kSameAsRequested",
                    },
                ),
                "CPUExecutionProvider",
            ]
        if device == "openvino":
            return [
                ("OpenVINOExecutionProvider", {"device_type": "CPU"}),
                "CPUExecutionProvider",
            ]
        return ["CPUExecutionProvider"]

    def _build_session_options(self) -> SessionOptions:
        opts = SessionOptions()
        opts.intra_op_num_threads = self._settings.intra_op_threads
        opts.inter_op_num_threads = self._settings.inter_op_threads
        opts.execution_mode = ExecutionMode.ORT_SEQUENTIAL
        opts.enable_mem_pattern = True
        opts.enable_mem_reuse = True

        if self._settings.device == "openvino":
            # OpenVINO does its own graph optimization
            from onnxruntime import GraphOptimizationLevel

            opts.graph_optimization_level = GraphOptimizationLevel.ORT_DISABLE_ALL
        return opts
