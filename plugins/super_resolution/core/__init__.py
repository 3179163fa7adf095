"""Super resolution core functionality."""

from .engine import (
    IMAGE_TO_IMAGE,
    InferenceBackend,
    ModelSpec,
    RealEsrganBackend,
    SuperResolutionError,
    SuperResolutionInferenceError,
    SuperResolutionInputError,
    SuperResolutionModelError,
    SuperResolutionUnavailableError,
    UpscaleResult,
    download_weights,
    import_error,
    is_available,
    select_device,
)
from .messages import JobRequest, Region, complete_message, error_message, is_terminal
from .pipeline_cache import PipelineCache
from .quality import ModelQuality
from .selection import (
    BoundingBox,
    DisplayedImage,
    InputPoint,
    OverlayCanvas,
    PointerInput,
    SelectionController,
    SelectionError,
    SelectionRect,
    TouchInput,
    TouchPoint,
    coordinates_of,
    normalize_event,
)
from .session import (
    ImageProcessorSession,
    SessionBusyError,
    SessionError,
    SessionStateError,
)
from .settings import MAX_SELECTION_SIZE, SuperResolutionSettings, load_settings
from .worker import UpscaleWorker, WorkerPort

__all__ = [
    "IMAGE_TO_IMAGE",
    "MAX_SELECTION_SIZE",
    "BoundingBox",
    "DisplayedImage",
    "ImageProcessorSession",
    "InferenceBackend",
    "InputPoint",
    "JobRequest",
    "ModelQuality",
    "ModelSpec",
    "OverlayCanvas",
    "PipelineCache",
    "PointerInput",
    "RealEsrganBackend",
    "Region",
    "SelectionController",
    "SelectionError",
    "SelectionRect",
    "SessionBusyError",
    "SessionError",
    "SessionStateError",
    "SuperResolutionError",
    "SuperResolutionInferenceError",
    "SuperResolutionInputError",
    "SuperResolutionModelError",
    "SuperResolutionSettings",
    "SuperResolutionUnavailableError",
    "TouchInput",
    "TouchPoint",
    "UpscaleResult",
    "UpscaleWorker",
    "WorkerPort",
    "complete_message",
    "coordinates_of",
    "download_weights",
    "error_message",
    "import_error",
    "is_available",
    "is_terminal",
    "load_settings",
    "normalize_event",
    "select_device",
]
