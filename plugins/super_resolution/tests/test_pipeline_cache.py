import asyncio

import pytest

from plugins.super_resolution.core import (
    IMAGE_TO_IMAGE,
    ModelQuality,
    PipelineCache,
    SuperResolutionModelError,
)
from support import FakeBackend


def test_same_tier_reuses_instance():
    backend = FakeBackend()

    async def scenario():
        cache = PipelineCache(backend)
        first = await cache.get_instance("low")
        second = await cache.get_instance("low")
        return cache, first, second

    cache, first, second = asyncio.run(scenario())
    assert first is second
    assert backend.requests == [(IMAGE_TO_IMAGE, "RealESRGAN_x2plus")]
    assert cache.tier is ModelQuality.LOW
    assert cache.generation == 1


def test_tier_change_replaces_instance():
    backend = FakeBackend()

    async def scenario():
        cache = PipelineCache(backend)
        low = await cache.get_instance(ModelQuality.LOW)
        high = await cache.get_instance(ModelQuality.HIGH)
        low_again = await cache.get_instance(ModelQuality.LOW)
        return cache, low, high, low_again

    cache, low, high, low_again = asyncio.run(scenario())
    assert low is not high
    assert low_again is not low
    assert [p.model_id for p in backend.created] == [
        "RealESRGAN_x2plus",
        "RealESRGAN_x4plus",
        "RealESRGAN_x2plus",
    ]
    assert cache.model_id == "RealESRGAN_x2plus"
    assert cache.generation == 3


@pytest.mark.parametrize("tier", [None, "ultra", "HIGH", 4])
def test_unknown_tiers_fall_back_to_high(tier):
    backend = FakeBackend()

    async def scenario():
        cache = PipelineCache(backend)
        await cache.get_instance(tier)
        await cache.get_instance("high")
        return cache

    cache = asyncio.run(scenario())
    assert cache.tier is ModelQuality.HIGH
    assert backend.requests == [(IMAGE_TO_IMAGE, "RealESRGAN_x4plus")]


def test_progress_callback_only_used_while_constructing():
    backend = FakeBackend()
    first_events, second_events = [], []

    async def scenario():
        cache = PipelineCache(backend)
        await cache.get_instance("low", first_events.append)
        await cache.get_instance("low", second_events.append)

    asyncio.run(scenario())
    assert [event["status"] for event in first_events] == ["initiate", "ready"]
    assert second_events == []


def test_failed_construction_is_retried():
    backend = FakeBackend(load_failures=1)

    async def scenario():
        cache = PipelineCache(backend)
        with pytest.raises(SuperResolutionModelError):
            await cache.get_instance("low")
        assert cache.tier is None
        return await cache.get_instance("low")

    pipeline = asyncio.run(scenario())
    assert pipeline.model_id == "RealESRGAN_x2plus"
    assert len(backend.requests) == 2


def test_concurrent_requests_share_one_construction():
    backend = FakeBackend()

    async def scenario():
        cache = PipelineCache(backend)
        return await asyncio.gather(cache.get_instance("high"), cache.get_instance("high"))

    first, second = asyncio.run(scenario())
    assert first is second
    assert len(backend.requests) == 1


def test_custom_tier_table():
    backend = FakeBackend()
    tiers = {ModelQuality.LOW: "tiny", ModelQuality.HIGH: "huge"}

    async def scenario():
        cache = PipelineCache(backend, tiers)
        await cache.get_instance("low")
        await cache.get_instance("other")

    asyncio.run(scenario())
    assert [model for _, model in backend.requests] == ["tiny", "huge"]
