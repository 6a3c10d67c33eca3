"""Inference execution layer.

Architecture:
    FastAPI (async) -> SessionController busy flag -> ThreadPoolExecutor(1) -> ONNX inference

Model loading, preprocessing and inference are blocking, so they run on a
single dedicated worker thread. One worker means two inference calls never
overlap, which the classifier relies on.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from typing import TYPE_CHECKING, TypeVar

if TYPE_CHECKING:
    from collections.abc import Callable

logger = logging.getLogger(__name__)

T = TypeVar("T")


class InferencePool:
    """Runs blocking model work off the event loop on one worker thread."""

    def __init__(self) -> None:
        self._executor = ThreadPoolExecutor(
            max_workers=1,
            thread_name_prefix="onnx-inference",
        )
        self._active_count: int = 0
        self._counter_lock = threading.Lock()

    async def run(self, func: Callable[..., T], *args: object) -> T:
        """Submit a synchronous function to the inference thread and await it."""
        with self._counter_lock:
            self._active_count += 1
        try:
            loop = asyncio.get_running_loop()
            return await loop.run_in_executor(self._executor, func, *args)
        finally:
            with self._counter_lock:
                self._active_count -= 1

    @property
    def active_count(self) -> int:
        """Number of submitted tasks not yet finished."""
        with self._counter_lock:
            return self._active_count

    def shutdown(self) -> None:
        """Shut down the executor, waiting for running work."""
        self._executor.shutdown(wait=True)
        logger.debug("Inference pool shut down")
