"""Real-ESRGAN powered super-resolution backend."""

from __future__ import annotations

import asyncio
import shutil
import tempfile
import urllib.request
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Awaitable, Callable, Mapping, Protocol

import numpy as np
from PIL import Image

from common.imaging import image_to_bytes, open_image, prepare_rgb
from common.io import UrlReadError, encode_data_url, read_url_bytes
from common.logging import get_logger

REAL_ESRGAN_AVAILABLE = False
IMPORT_ERROR: str | None = None

try:  # Optional dependency (heavy)
    import torch
    from basicsr.archs.rrdbnet_arch import RRDBNet
    from realesrgan import RealESRGANer

    REAL_ESRGAN_AVAILABLE = True
except Exception as exc:  # pragma: no cover - exercised in integration
    IMPORT_ERROR = repr(exc)

IMAGE_TO_IMAGE = "image-to-image"

ProgressCallback = Callable[[Mapping[str, Any]], None]

logger = get_logger("engine")


class SuperResolutionError(RuntimeError):
    """Base error for super-resolution failures."""


class SuperResolutionUnavailableError(SuperResolutionError):
    """Raised when Real-ESRGAN dependencies are missing."""


class SuperResolutionModelError(SuperResolutionError):
    """Raised when model weights cannot be resolved or loaded."""


class SuperResolutionInferenceError(SuperResolutionError):
    """Raised when the model fails while enhancing an image."""


class SuperResolutionInputError(SuperResolutionError):
    """Raised when the input image is invalid."""


@dataclass(frozen=True)
class ModelSpec:
    name: str
    weights_path: Path
    scale: int
    url: str | None = None
    num_block: int = 23
    num_feat: int = 64
    num_grow_ch: int = 32


@dataclass(frozen=True)
class UpscaleResult:
    image_bytes: bytes
    width: int
    height: int
    scale: float
    output_format: str

    @property
    def mimetype(self) -> str:
        return "image/png" if self.output_format == "png" else "image/jpeg"

    def to_data_url(self) -> str:
        return encode_data_url(self.image_bytes, self.mimetype)


@dataclass(frozen=True)
class ModelBundle:
    spec: ModelSpec
    device: str
    upsampler: Any


class Pipeline(Protocol):
    def __call__(self, image_url: str) -> Awaitable[UpscaleResult]: ...


class InferenceBackend(Protocol):
    """Capability that turns a task and model identifier into a pipeline."""

    async def pipeline(
        self,
        task: str,
        model_id: str,
        *,
        progress_callback: ProgressCallback | None = None,
    ) -> Pipeline: ...


def is_available() -> bool:
    return REAL_ESRGAN_AVAILABLE


def import_error() -> str | None:
    return IMPORT_ERROR


def select_device(preference: str) -> str:
    normalized = (preference or "auto").lower()
    if normalized not in {"auto", "cpu", "cuda"}:
        normalized = "auto"
    if normalized == "cpu" or not REAL_ESRGAN_AVAILABLE:
        return "cpu"
    return "cuda" if torch.cuda.is_available() else "cpu"


def download_weights(
    url: str,
    target: Path,
    *,
    on_progress: Callable[[int, int], None] | None = None,
) -> Path:
    """Download ``url`` to ``target`` atomically.

    ``on_progress`` receives ``(loaded, total)`` byte counts; ``total`` is 0
    when the server does not announce a length.
    """

    target.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = target.with_suffix(target.suffix + ".download")

    def _hook(block_num: int, block_size: int, total_size: int) -> None:
        if on_progress is None:
            return
        total = max(total_size, 0)
        loaded = block_num * block_size
        on_progress(min(loaded, total) if total else loaded, total)

    try:
        urllib.request.urlretrieve(url, tmp_path, reporthook=_hook)
        tmp_path.replace(target)
    except OSError as exc:
        raise SuperResolutionModelError(f"Unable to download {url}: {exc}") from exc
    finally:
        tmp_path.unlink(missing_ok=True)
    return target


def _forward_progress(emit: Callable[[dict[str, Any]], None], event: dict[str, Any]) -> None:
    # Runs as a bare loop callback, outside any job's error handling.
    try:
        emit(event)
    except Exception:
        logger.exception("progress listener failed on %s event", event.get("status"))


def _load_upsampler(spec: ModelSpec, weights_path: Path, device: str) -> ModelBundle:
    if not REAL_ESRGAN_AVAILABLE:
        raise SuperResolutionUnavailableError(
            "Real-ESRGAN is unavailable. Install torch and realesrgan."
        )
    if not weights_path.exists():
        raise SuperResolutionModelError(f"Missing weights file: {weights_path}")

    model = RRDBNet(
        num_in_ch=3,
        num_out_ch=3,
        num_feat=spec.num_feat,
        num_block=spec.num_block,
        num_grow_ch=spec.num_grow_ch,
        scale=spec.scale,
    )
    try:
        upsampler = RealESRGANer(
            scale=spec.scale,
            model_path=str(weights_path),
            model=model,
            tile=0,
            tile_pad=10,
            pre_pad=0,
            half=device == "cuda",
            device=torch.device(device),
        )
    except (RuntimeError, OSError, KeyError) as exc:
        raise SuperResolutionModelError(f"Unable to load {spec.name}: {exc}") from exc
    return ModelBundle(spec=spec, device=device, upsampler=upsampler)


def _normalize_output_format(value: str) -> str:
    normalized = (value or "png").lower()
    if normalized in {"jpg", "jpeg"}:
        return "jpg"
    if normalized == "png":
        return "png"
    raise SuperResolutionInputError("Output format must be png or jpg")


def upscale_bytes(data: bytes, *, bundle: ModelBundle, output_format: str) -> UpscaleResult:
    try:
        image = prepare_rgb(open_image(data))
    except ValueError as exc:
        raise SuperResolutionInputError(str(exc)) from exc

    rgb = np.asarray(image)
    if rgb.ndim != 3 or rgb.shape[2] < 3:
        raise SuperResolutionInputError("Input image must be RGB")
    bgr = rgb[:, :, ::-1]

    scale = float(bundle.spec.scale)
    try:
        output, _ = bundle.upsampler.enhance(bgr, outscale=scale)
    except RuntimeError as exc:
        raise SuperResolutionInferenceError(f"Inference failed: {exc}") from exc
    output_rgb = np.ascontiguousarray(output[:, :, ::-1])

    result_image = Image.fromarray(output_rgb)
    fmt = _normalize_output_format(output_format)
    image_bytes = image_to_bytes(result_image, "JPEG" if fmt == "jpg" else "PNG")

    return UpscaleResult(
        image_bytes=image_bytes,
        width=result_image.width,
        height=result_image.height,
        scale=scale,
        output_format=fmt,
    )


class RealEsrganPipeline:
    """Loaded Real-ESRGAN model, invoked with an image URL."""

    def __init__(self, bundle: ModelBundle, *, output_format: str = "png") -> None:
        self.bundle = bundle
        self.output_format = output_format

    @property
    def model_id(self) -> str:
        return self.bundle.spec.name

    async def __call__(self, image_url: str) -> UpscaleResult:
        try:
            data = await asyncio.to_thread(read_url_bytes, image_url)
        except UrlReadError as exc:
            raise SuperResolutionInputError(str(exc)) from exc
        return await asyncio.to_thread(
            upscale_bytes, data, bundle=self.bundle, output_format=self.output_format
        )


class RealEsrganBackend:
    """:class:`InferenceBackend` built on Real-ESRGAN weights.

    Weight lookup order: the local ``weights_dir`` (only when
    ``allow_local_models`` is set), then a previous download in
    ``cache_dir`` (only when ``use_cache`` is set), then a fresh download
    from the model URL.
    """

    def __init__(
        self,
        models: Mapping[str, ModelSpec],
        *,
        device: str = "cpu",
        cache_dir: Path,
        allow_local_models: bool = False,
        use_cache: bool = True,
        output_format: str = "png",
    ) -> None:
        self.models = dict(models)
        self.device = device
        self.cache_dir = cache_dir
        self.allow_local_models = allow_local_models
        self.use_cache = use_cache
        self.output_format = output_format

    @classmethod
    def from_settings(cls, settings) -> "RealEsrganBackend":
        return cls(
            settings.models,
            device=select_device(settings.device),
            cache_dir=settings.cache_dir,
            allow_local_models=settings.allow_local_models,
            use_cache=settings.use_cache,
            output_format=settings.output_format,
        )

    def _resolve_weights(
        self, spec: ModelSpec, on_progress: Callable[[int, int], None]
    ) -> tuple[Path, bool]:
        if self.allow_local_models and spec.weights_path.exists():
            return spec.weights_path, False
        cached = self.cache_dir / spec.weights_path.name
        if self.use_cache and cached.exists():
            return cached, False
        if not spec.url:
            raise SuperResolutionModelError(f"Missing weights file: {spec.weights_path}")
        if self.use_cache:
            return download_weights(spec.url, cached, on_progress=on_progress), False
        target = Path(tempfile.mkdtemp(prefix="superres-")) / spec.weights_path.name
        return download_weights(spec.url, target, on_progress=on_progress), True

    async def pipeline(
        self,
        task: str,
        model_id: str,
        *,
        progress_callback: ProgressCallback | None = None,
    ) -> RealEsrganPipeline:
        if task != IMAGE_TO_IMAGE:
            raise SuperResolutionModelError(f"Unsupported task '{task}'")
        spec = self.models.get(model_id)
        if spec is None:
            raise SuperResolutionModelError(f"Unknown model '{model_id}'")
        if not REAL_ESRGAN_AVAILABLE:
            raise SuperResolutionUnavailableError(
                "Real-ESRGAN is unavailable. Install torch and realesrgan."
            )

        loop = asyncio.get_running_loop()
        file_name = spec.weights_path.name

        def emit(event: dict[str, Any]) -> None:
            if progress_callback is not None:
                progress_callback(event)

        def on_download(loaded: int, total: int) -> None:
            event = {
                "status": "progress",
                "name": model_id,
                "file": file_name,
                "loaded": loaded,
                "total": total,
                "progress": (loaded / total * 100.0) if total else 0.0,
            }
            loop.call_soon_threadsafe(_forward_progress, emit, event)

        emit({"status": "initiate", "name": model_id, "file": file_name})
        weights_path, temporary = await asyncio.to_thread(
            self._resolve_weights, spec, on_download
        )
        emit({"status": "done", "name": model_id, "file": file_name})
        try:
            bundle = await asyncio.to_thread(
                _load_upsampler, spec, weights_path, self.device
            )
        finally:
            if temporary:
                shutil.rmtree(weights_path.parent, ignore_errors=True)
        logger.info("loaded %s on %s", model_id, self.device)
        emit({"status": "ready", "task": task, "model": model_id})
        return RealEsrganPipeline(bundle, output_format=self.output_format)


__all__ = [
    "IMAGE_TO_IMAGE",
    "InferenceBackend",
    "ModelBundle",
    "ModelSpec",
    "Pipeline",
    "ProgressCallback",
    "RealEsrganBackend",
    "RealEsrganPipeline",
    "UpscaleResult",
    "SuperResolutionError",
    "SuperResolutionUnavailableError",
    "SuperResolutionModelError",
    "SuperResolutionInferenceError",
    "SuperResolutionInputError",
    "download_weights",
    "import_error",
    "is_available",
    "select_device",
    "upscale_bytes",
]
