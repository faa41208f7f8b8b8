"""Tests for lazy model loading and device fallback."""

import asyncio
import threading

import pytest

from models.errors import ModelLoadError
from rag.model_loader import LazyModelLoader


class CountingFactory:
    def __init__(self, fail_on=()):
        self.fail_on = set(fail_on)
        self.calls = []
        self._lock = threading.Lock()

    def __call__(self, device):
        with self._lock:
            self.calls.append(device)
        if device in self.fail_on:
            raise RuntimeError(f"{device} unavailable")
        return {"device": device}


@pytest.mark.asyncio
async def test_concurrent_callers_share_one_load():
    factory = CountingFactory()
    loader = LazyModelLoader("test-model", factory, devices=["cpu"])

    models = await asyncio.gather(*[loader.get() for _ in range(5)])

    assert factory.calls == ["cpu"]
    assert all(m is models[0] for m in models)
    assert loader.is_loaded
    assert loader.device == "cpu"


@pytest.mark.asyncio
async def test_falls_back_to_next_device():
    factory = CountingFactory(fail_on={"cuda"})
    loader = LazyModelLoader("test-model", factory, devices=["cuda", "cpu"])
    events = []

    model = await loader.get(lambda stage, fraction, name: events.append((stage, fraction, name)))

    assert model == {"device": "cpu"}
    assert factory.calls == ["cuda", "cpu"]
    stages = [stage for stage, _, _ in events]
    assert stages[0] == "initiate"
    assert "device_fallback" in stages
    assert events[-1] == ("ready", 1.0, "test-model")


@pytest.mark.asyncio
async def test_failure_on_every_device_names_each_failure():
    factory = CountingFactory(fail_on={"cuda", "cpu"})
    loader = LazyModelLoader("test-model", factory, devices=["cuda", "cpu"])

    with pytest.raises(ModelLoadError) as exc_info:
        await loader.get()

    message = str(exc_info.value)
    assert "test-model" in message
    assert "cuda unavailable" in message
    assert "cpu unavailable" in message
    assert set(exc_info.value.failures) == {"cuda", "cpu"}


@pytest.mark.asyncio
async def test_failed_load_stays_failed():
    factory = CountingFactory(fail_on={"cpu"})
    loader = LazyModelLoader("test-model", factory, devices=["cpu"])

    with pytest.raises(ModelLoadError):
        await loader.get()
    with pytest.raises(ModelLoadError):
        await loader.get()

    assert factory.calls == ["cpu"]
    assert not loader.is_loaded


@pytest.mark.asyncio
async def test_cancelled_waiter_does_not_cancel_load():
    release = threading.Event()
    calls = []

    def slow_factory(device):
        calls.append(device)
        release.wait(timeout=5)
        return "model"

    loader = LazyModelLoader("slow-model", slow_factory, devices=["cpu"])

    waiter = asyncio.create_task(loader.get())
    await asyncio.sleep(0.05)
    waiter.cancel()
    with pytest.raises(asyncio.CancelledError):
        await waiter

    release.set()
    assert await loader.get() == "model"
    assert calls == ["cpu"]


@pytest.mark.asyncio
async def test_failing_progress_callback_is_ignored():
    def broken_callback(stage, fraction, name):
        raise ValueError("boom")

    loader = LazyModelLoader("test-model", CountingFactory(), devices=["cpu"])

    assert await loader.get(broken_callback) == {"device": "cpu"}


@pytest.mark.asyncio
async def test_callbacks_after_failed_load_are_not_retained():
    factory = CountingFactory(fail_on={"cpu"})
    loader = LazyModelLoader("test-model", factory, devices=["cpu"])

    for _ in range(3):
        with pytest.raises(ModelLoadError):
            await loader.get(lambda stage, fraction, name: None)

    assert loader._callbacks == []
    assert factory.calls == ["cpu"]
