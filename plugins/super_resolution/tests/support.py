"""Test doubles for the inference backend."""

from __future__ import annotations

import asyncio
from io import BytesIO

from PIL import Image

from plugins.super_resolution.core import (
    SuperResolutionInferenceError,
    SuperResolutionModelError,
    UpscaleResult,
)


def sample_png(size: tuple[int, int] = (10, 10), color=(40, 120, 200)) -> bytes:
    buffer = BytesIO()
    Image.new("RGB", size, color=color).save(buffer, format="PNG")
    return buffer.getvalue()


def _scale_of(model_id: str) -> int:
    return 2 if "x2" in model_id else 4


class FakePipeline:
    def __init__(self, model_id: str, *, gated: bool = False, error: str | None = None):
        self.model_id = model_id
        self.gated = gated
        self.error = error
        self.calls: list[str] = []
        self.gate: asyncio.Event | None = None

    async def __call__(self, image_url: str) -> UpscaleResult:
        if self.gated and self.gate is None:
            self.gate = asyncio.Event()
        self.calls.append(image_url)
        if self.gate is not None:
            await self.gate.wait()
        if self.error:
            raise SuperResolutionInferenceError(self.error)
        scale = _scale_of(self.model_id)
        return UpscaleResult(
            image_bytes=sample_png((4 * scale, 4 * scale)),
            width=4 * scale,
            height=4 * scale,
            scale=float(scale),
            output_format="png",
        )


class FakeBackend:
    """Records every pipeline it builds; failures can be scripted per model."""

    def __init__(
        self,
        *,
        load_failures: int = 0,
        inference_errors: dict[str, str] | None = None,
        gated: set[str] | None = None,
    ) -> None:
        self.load_failures = load_failures
        self.inference_errors = inference_errors or {}
        self.gated = gated or set()
        self.created: list[FakePipeline] = []
        self.requests: list[tuple[str, str]] = []

    async def pipeline(self, task, model_id, *, progress_callback=None):
        self.requests.append((task, model_id))
        if progress_callback is not None:
            progress_callback({"status": "initiate", "name": model_id})
        await asyncio.sleep(0)
        if self.load_failures:
            self.load_failures -= 1
            raise SuperResolutionModelError(f"Missing weights file: {model_id}.pth")
        if progress_callback is not None:
            progress_callback({"status": "ready", "task": task, "model": model_id})
        pipeline = FakePipeline(
            model_id,
            gated=model_id in self.gated,
            error=self.inference_errors.get(model_id),
        )
        self.created.append(pipeline)
        return pipeline

    def release(self, model_id: str) -> None:
        for pipeline in self.created:
            if pipeline.model_id == model_id and pipeline.gate is not None:
                pipeline.gate.set()
