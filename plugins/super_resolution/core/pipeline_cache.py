"""Single-entry cache of the active super-resolution pipeline."""

from __future__ import annotations

import asyncio
from typing import Mapping

from common.logging import get_logger

from .engine import IMAGE_TO_IMAGE, InferenceBackend, Pipeline, ProgressCallback
from .quality import ModelQuality
from .settings import DEFAULT_TIERS

logger = get_logger("pipeline_cache")


class PipelineCache:
    """Hold at most one pipeline, rebuilt only when the tier changes.

    The pending construction itself is cached, so callers asking for the
    current tier while it is still loading share that construction. A
    replaced entry is dropped without cancelling work already running on
    it (last writer wins).
    """

    task = IMAGE_TO_IMAGE

    def __init__(
        self,
        backend: InferenceBackend,
        tiers: Mapping[ModelQuality, str] | None = None,
    ) -> None:
        self.backend = backend
        self.tiers = dict(tiers or DEFAULT_TIERS)
        self.generation = 0
        self._tier: ModelQuality | None = None
        self._instance: asyncio.Future[Pipeline] | None = None

    @property
    def tier(self) -> ModelQuality | None:
        return self._tier

    @property
    def model_id(self) -> str | None:
        return self.model_for(self._tier) if self._tier is not None else None

    def model_for(self, tier: object) -> str:
        resolved = ModelQuality.resolve(tier)
        return self.tiers.get(resolved) or self.tiers[ModelQuality.HIGH]

    async def get_instance(
        self,
        tier: object,
        progress_callback: ProgressCallback | None = None,
    ) -> Pipeline:
        resolved = ModelQuality.resolve(tier)
        if self._instance is None or resolved != self._tier:
            if self._tier is not None:
                logger.info(
                    "replacing %s pipeline with %s", self._tier.value, resolved.value
                )
            self.generation += 1
            self._tier = resolved
            self._instance = asyncio.ensure_future(
                self.backend.pipeline(
                    self.task,
                    self.model_for(resolved),
                    progress_callback=progress_callback,
                )
            )
        instance = self._instance
        try:
            return await instance
        except Exception:
            if self._instance is instance:
                self._instance = None
                self._tier = None
            raise

    def clear(self) -> None:
        self._instance = None
        self._tier = None


__all__ = ["PipelineCache"]
