"""
Lazy, shared model loading with device fallback.

The first caller starts the load; every concurrent caller awaits the same
task. A failed load stays failed for the lifetime of the loader.
"""

import asyncio
import time
from typing import Callable, Generic, List, Optional, TypeVar

import torch

from models.errors import ModelLoadError
from observability import trace_logger


T = TypeVar("T")

# (stage, fraction_complete, model_name)
ProgressCallback = Callable[[str, float, str], None]

STAGE_INITIATE = "initiate"
STAGE_LOADING = "loading"
STAGE_DEVICE_FALLBACK = "device_fallback"
STAGE_READY = "ready"


def select_devices() -> List[str]:
    """Preferred accelerator first, CPU as the universal fallback."""
    if torch.cuda.is_available():
        return ["cuda", "cpu"]
    if torch.backends.mps.is_available():
        return ["mps", "cpu"]
    return ["cpu"]


class LazyModelLoader(Generic[T]):
    """Loads a model once, on first use, trying each device in order."""

    def __init__(
        self,
        model_name: str,
        factory: Callable[[str], T],
        devices: Optional[List[str]] = None
    ):
        """
        Initialize the loader.

        Args:
            model_name: Name reported in progress events and errors
            factory: Blocking callable building the model for a device
            devices: Devices to try in order (auto-detected when None)
        """
        self.model_name = model_name
        self._factory = factory
        self._devices = devices
        self._model: Optional[T] = None
        self._task: Optional[asyncio.Task] = None
        self._callbacks: List[ProgressCallback] = []
        self.device: Optional[str] = None

    @property
    def is_loaded(self) -> bool:
        return self._model is not None

    async def get(self, progress_callback: Optional[ProgressCallback] = None) -> T:
        """Return the loaded model, loading it on first call."""
        if self._model is not None:
            return self._model

        if self._task is None:
            self._task = asyncio.get_running_loop().create_task(self._load())

        # Only a pending load can still report progress
        if progress_callback is not None and not self._task.done():
            self._callbacks.append(progress_callback)

        # A cancelled waiter must not cancel the shared load
        return await asyncio.shield(self._task)

    def _notify(self, stage: str, fraction: float, **kwargs) -> None:
        trace_logger.model_load_progress(
            model_name=self.model_name,
            stage=stage,
            progress=fraction,
            **kwargs
        )
        for callback in list(self._callbacks):
            try:
                callback(stage, fraction, self.model_name)
            except Exception as e:
                trace_logger.warning(
                    "Progress callback failed",
                    model_name=self.model_name,
                    error=str(e)
                )

    async def _load(self) -> T:
        devices = self._devices or select_devices()
        failures = {}
        started = time.perf_counter()

        self._notify(STAGE_INITIATE, 0.0, devices=devices)

        try:
            for index, device in enumerate(devices):
                if index > 0:
                    self._notify(STAGE_DEVICE_FALLBACK, index / len(devices), device=device)
                self._notify(STAGE_LOADING, index / len(devices), device=device)

                try:
                    model = await asyncio.to_thread(self._factory, device)
                except Exception as e:
                    failures[device] = e
                    trace_logger.warning(
                        "Model load failed on device",
                        model_name=self.model_name,
                        device=device,
                        error=str(e)
                    )
                    continue

                self._model = model
                self.device = device
                self._notify(STAGE_READY, 1.0, device=device)
                trace_logger.model_loaded(
                    model_name=self.model_name,
                    device=device,
                    duration_ms=(time.perf_counter() - started) * 1000
                )
                return model
        finally:
            self._callbacks.clear()

        error = ModelLoadError(self.model_name, failures)
        trace_logger.error_occurred(
            error_type="model_load_error",
            error_message=str(error),
            context={"model_name": self.model_name, "devices": devices}
        )
        raise error
