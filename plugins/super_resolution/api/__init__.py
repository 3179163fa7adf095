"""Super resolution API blueprint."""

from __future__ import annotations

import threading
import uuid
from pathlib import Path
from typing import Any, Literal

from flask import Blueprint, Response, current_app, request, send_file
from pydantic import Field

from common.errors import (
    InternalAppError,
    NotFoundAppError,
    PayloadTooLargeAppError,
    TimeoutAppError,
    UnavailableAppError,
    ValidationAppError,
)
from common.forms import get_choice, get_float
from common.io import buffer_from_bytes
from common.logging import get_logger
from common.responses import fail, ok
from common.validation import SchemaModel, ValidationError, parse_model, validate_mime

from ..core import (
    DisplayedImage,
    ImageProcessorSession,
    ModelQuality,
    PipelineCache,
    PointerInput,
    RealEsrganBackend,
    SelectionController,
    SelectionError,
    SuperResolutionInputError,
    SuperResolutionSettings,
    UpscaleWorker,
    import_error,
    is_available,
    load_settings,
    normalize_event,
    select_device,
)

WORKER_KEY = "super_resolution_worker"

api_bp = Blueprint(
    "super_resolution_api", __name__, url_prefix="/api/v1/super_resolution"
)

logger = get_logger("super_resolution.api")
_WORKER_LOCK = threading.Lock()

_SELECTION_FIELDS = ("start_x", "start_y", "end_x", "end_y")


class DisplayedImagePayload(SchemaModel):
    natural_width: int = Field(gt=0)
    natural_height: int = Field(gt=0)
    width: float = Field(gt=0)
    height: float = Field(gt=0)


class SelectionStep(SchemaModel):
    action: Literal["begin", "resize", "end", "reset"]
    event: dict[str, Any] | None = None


class SelectionPayload(SchemaModel):
    image: DisplayedImagePayload
    steps: list[SelectionStep] = Field(min_length=1, max_length=512)


def _repo_root() -> Path:
    return Path(current_app.root_path).resolve().parent


def _settings() -> SuperResolutionSettings:
    settings = current_app.config.get("PLUGIN_SETTINGS", {}).get("super_resolution", {})
    return load_settings(settings, root=_repo_root())


def build_backend(settings: SuperResolutionSettings):
    return RealEsrganBackend.from_settings(settings)


def _worker(settings: SuperResolutionSettings) -> UpscaleWorker:
    worker = current_app.extensions.get(WORKER_KEY)
    if worker is not None:
        return worker
    with _WORKER_LOCK:
        worker = current_app.extensions.get(WORKER_KEY)
        if worker is None:
            cache = PipelineCache(build_backend(settings), settings.tiers)
            worker = UpscaleWorker(cache).start()
            current_app.extensions[WORKER_KEY] = worker
    return worker


def _file_size(file) -> int:
    stream = file.stream
    try:
        current = stream.tell()
    except (AttributeError, OSError):
        current = None
    try:
        stream.seek(0, 2)
        size = stream.tell()
    finally:
        try:
            stream.seek(current or 0)
        except (AttributeError, OSError):
            pass
    return size


def _parse_selection(form) -> dict[str, float] | None:
    values = {key: get_float(form, key, None) for key in _SELECTION_FIELDS}
    if all(value is None for value in values.values()):
        return None
    if any(value is None for value in values.values()):
        raise ValidationError("Selection requires start_x, start_y, end_x and end_y")
    for key in ("display_width", "display_height"):
        values[key] = get_float(form, key, None, minimum=1)
    return values


def _apply_selection(session: ImageProcessorSession, selection: dict[str, float]) -> None:
    width, height = selection.get("display_width"), selection.get("display_height")
    if width is not None and height is not None:
        session.bind_image(width, height)
    session.start_selection(PointerInput(selection["start_x"], selection["start_y"]))
    session.resize_selection(PointerInput(selection["end_x"], selection["end_y"]))
    session.end_selection()


@api_bp.get("/health")
def health() -> Response:
    settings = _settings()
    worker = current_app.extensions.get(WORKER_KEY)
    cache = worker.cache if worker is not None else None
    payload = {
        "status": "ok",
        "available": is_available(),
        "import_error": import_error(),
        "device": select_device(settings.device),
        "default_quality": settings.default_quality.value,
        "max_selection_size": settings.max_selection_size,
        "tiers": {tier.value: name for tier, name in settings.tiers.items()},
        "loaded_tier": cache.tier.value if cache and cache.tier else None,
        "loaded_model": cache.model_id if cache else None,
        "generation": cache.generation if cache else 0,
    }
    return ok(payload)


@api_bp.post("/selection")
def selection() -> Response:
    settings = _settings()
    try:
        payload = parse_model(SelectionPayload, request.get_json(silent=True))
    except ValidationError as exc:
        return fail(
            ValidationAppError(
                message=str(exc),
                code="super_resolution.invalid_selection",
                details={"errors": getattr(exc, "details", None)},
            )
        )

    controller = SelectionController(max_selection_size=settings.max_selection_size)
    controller.image = DisplayedImage(**payload.image.model_dump())
    try:
        for step in payload.steps:
            if step.action == "end":
                controller.end()
            elif step.action == "reset":
                controller.reset()
            else:
                event = normalize_event(step.event or {})
                if step.action == "begin":
                    controller.begin(event)
                else:
                    controller.resize(event)
    except SelectionError as exc:
        return fail(
            ValidationAppError(message=str(exc), code="super_resolution.invalid_selection")
        )

    box = controller.natural_box()
    return ok(
        {
            "selecting": controller.selecting,
            "selection": controller.selection.as_dict(),
            "selectionStyle": controller.selection_style,
            "naturalBox": list(box) if box else None,
        }
    )


@api_bp.post("/predict")
def predict() -> Response:
    settings = _settings()
    if not settings.enabled:
        return fail(
            NotFoundAppError(
                message="Super-resolution is disabled in config.yml",
                code="super_resolution.disabled",
            )
        )

    file = request.files.get("image")
    if not file:
        return fail(
            ValidationAppError(
                message="Image file is required",
                code="super_resolution.missing_image",
            )
        )

    max_bytes = max(1, settings.max_upload_mb) * 1024 * 1024
    if _file_size(file) > max_bytes:
        return fail(
            PayloadTooLargeAppError(
                message=f"File exceeds {settings.max_upload_mb} MB limit",
                code="super_resolution.too_large",
            )
        )

    try:
        validate_mime([file], {"image/png", "image/jpeg", "image/webp"})
        quality = get_choice(
            request.form,
            "quality",
            settings.default_quality.value,
            [tier.value for tier in ModelQuality],
            field_name="Quality",
        )
        selection_fields = _parse_selection(request.form)
    except ValidationError as exc:
        return fail(
            ValidationAppError(
                message=str(exc),
                code="super_resolution.invalid_parameters",
            )
        )

    worker = _worker(settings)
    if isinstance(worker.cache.backend, RealEsrganBackend) and not is_available():
        return fail(
            UnavailableAppError(
                message="Real-ESRGAN is unavailable. Install torch and realesrgan.",
                code="super_resolution.unavailable",
            )
        )

    session = ImageProcessorSession(
        worker,
        model_quality=quality,
        max_selection_size=settings.max_selection_size,
    )
    try:
        file.stream.seek(0)
    except (AttributeError, OSError):
        pass
    try:
        session.upload(file.read())
    except SuperResolutionInputError as exc:
        return fail(
            ValidationAppError(message=str(exc), code="super_resolution.invalid_input")
        )
    if selection_fields is not None:
        _apply_selection(session, selection_fields)

    job = session.submit(job_id=uuid.uuid4().hex)
    if not session.wait(settings.job_timeout_s):
        logger.warning("job %s timed out after %ss", job.job_id, settings.job_timeout_s)
        return fail(
            TimeoutAppError(
                message="Upscaling did not finish in time",
                code="super_resolution.timeout",
                details={"job_id": job.job_id},
            )
        )
    if session.error is not None or session.result is None:
        return fail(
            InternalAppError(
                message=session.error or "Upscaling produced no result",
                code="super_resolution.inference_failed",
                details={"job_id": job.job_id},
            )
        )

    result = session.result
    response = send_file(
        buffer_from_bytes(result.image_bytes),
        mimetype=result.mimetype,
        as_attachment=True,
        download_name=f"upscaled.{result.output_format}",
        max_age=0,
    )
    response.headers["X-Upscale-Quality"] = session.model_quality.value
    response.headers["X-Upscale-Job"] = job.job_id or ""
    if job.region is not None:
        region = job.region
        response.headers["X-Upscale-Region"] = (
            f"{region.left},{region.top},{region.right},{region.bottom}"
        )
    return response


blueprints = [api_bp]


__all__ = ["blueprints", "build_backend", "health", "predict", "selection"]
