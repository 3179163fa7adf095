"""Configuration helpers for super-resolution."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Mapping

from common.forms import get_bool

from .engine import ModelSpec
from .quality import ModelQuality

MAX_SELECTION_SIZE = 200

DEFAULT_URLS = {
    "RealESRGAN_x4plus": "https://github.com/xinntao/Real-ESRGAN/releases/download/v0.1.0/RealESRGAN_x4plus.pth",
    "RealESRGAN_x2plus": "https://github.com/xinntao/Real-ESRGAN/releases/download/v0.2.1/RealESRGAN_x2plus.pth",
}

DEFAULT_TIERS = {
    ModelQuality.LOW: "RealESRGAN_x2plus",
    ModelQuality.HIGH: "RealESRGAN_x4plus",
}


@dataclass(frozen=True)
class SuperResolutionSettings:
    enabled: bool
    device: str
    max_upload_mb: int
    default_quality: ModelQuality
    max_selection_size: float
    job_timeout_s: float
    output_format: str
    allow_local_models: bool
    use_cache: bool
    weights_dir: Path
    cache_dir: Path
    tiers: dict[ModelQuality, str]
    models: dict[str, ModelSpec]


def _resolve_path(root: Path, value: str) -> Path:
    path = Path(value).expanduser()
    if path.is_absolute():
        return path
    return (root / path).resolve()


def _number(raw: object, default: float, *, minimum: float) -> float:
    try:
        value = float(raw)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return default
    return max(minimum, value)


def _model_defaults(weights_dir: Path) -> dict[str, ModelSpec]:
    return {
        "RealESRGAN_x2plus": ModelSpec(
            name="RealESRGAN_x2plus",
            weights_path=weights_dir / "RealESRGAN_x2plus.pth",
            scale=2,
            url=DEFAULT_URLS["RealESRGAN_x2plus"],
        ),
        "RealESRGAN_x4plus": ModelSpec(
            name="RealESRGAN_x4plus",
            weights_path=weights_dir / "RealESRGAN_x4plus.pth",
            scale=4,
            url=DEFAULT_URLS["RealESRGAN_x4plus"],
        ),
    }


def _load_models(raw: object, *, root: Path, weights_dir: Path) -> dict[str, ModelSpec]:
    models: dict[str, ModelSpec] = {}
    if not isinstance(raw, Mapping):
        return models
    for name, data in raw.items():
        if not isinstance(data, Mapping):
            continue
        weights_path = data.get("weights_path") or str(weights_dir / f"{name}.pth")
        models[str(name)] = ModelSpec(
            name=str(name),
            weights_path=_resolve_path(root, str(weights_path)),
            scale=int(_number(data.get("scale"), 4, minimum=1)),
            url=data.get("url") or DEFAULT_URLS.get(str(name)),
            num_block=int(_number(data.get("num_block"), 23, minimum=1)),
            num_feat=int(_number(data.get("num_feat"), 64, minimum=1)),
            num_grow_ch=int(_number(data.get("num_grow_ch"), 32, minimum=1)),
        )
    return models


def _load_tiers(raw: object, models: Mapping[str, ModelSpec]) -> dict[ModelQuality, str]:
    tiers = dict(DEFAULT_TIERS)
    if isinstance(raw, Mapping):
        for key, model_name in raw.items():
            if model_name:
                tiers[ModelQuality.resolve(key)] = str(model_name)
    fallback = next(iter(models.keys()))
    return {tier: (name if name in models else fallback) for tier, name in tiers.items()}


def load_settings(raw: Mapping[str, object] | None, *, root: Path) -> SuperResolutionSettings:
    raw = raw or {}
    max_upload_mb = raw.get("max_upload_mb")
    if max_upload_mb is None:
        upload = raw.get("upload")
        max_upload_mb = upload.get("max_mb", 20) if isinstance(upload, Mapping) else 20
    weights_dir = _resolve_path(
        root, str(raw.get("weights_dir", "models/super_resolution/weights"))
    )
    cache_dir = _resolve_path(root, str(raw.get("cache_dir", "models/super_resolution/cache")))

    models = _load_models(raw.get("models"), root=root, weights_dir=weights_dir)
    if not models:
        models = _model_defaults(weights_dir)

    output_format = str(raw.get("output_format") or "png").lower()
    if output_format not in {"png", "jpg", "jpeg"}:
        output_format = "png"

    return SuperResolutionSettings(
        enabled=get_bool(raw, "enabled", default=True),
        device=str(raw.get("device", "auto")),
        max_upload_mb=int(_number(max_upload_mb, 20, minimum=1)),
        default_quality=ModelQuality.resolve(raw.get("default_quality", "low")),
        max_selection_size=_number(
            raw.get("max_selection_size"), MAX_SELECTION_SIZE, minimum=1
        ),
        job_timeout_s=_number(raw.get("job_timeout_s"), 300.0, minimum=1.0),
        output_format="jpg" if output_format == "jpeg" else output_format,
        allow_local_models=get_bool(raw, "allow_local_models", default=False),
        use_cache=get_bool(raw, "use_cache", default=True),
        weights_dir=weights_dir,
        cache_dir=cache_dir,
        tiers=_load_tiers(raw.get("tiers"), models),
        models=models,
    )


__all__ = [
    "DEFAULT_TIERS",
    "DEFAULT_URLS",
    "MAX_SELECTION_SIZE",
    "SuperResolutionSettings",
    "load_settings",
]
