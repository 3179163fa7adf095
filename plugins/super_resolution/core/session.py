"""Caller-side state for one image being selected and upscaled."""

from __future__ import annotations

import functools
import threading
import uuid
from typing import Any, Mapping

from PIL import Image

from common.imaging import image_to_data_url, open_image
from common.logging import get_logger

from .engine import SuperResolutionInputError, UpscaleResult
from .messages import STATUS_COMPLETE, JobRequest, Region, is_terminal
from .quality import ModelQuality
from .selection import (
    Canvas,
    DisplayedImage,
    InputEvent,
    SelectionController,
    SelectionRect,
)
from .settings import MAX_SELECTION_SIZE
from .worker import UpscaleWorker

logger = get_logger("session")


class SessionError(RuntimeError):
    """Base error for invalid session operations."""


class SessionBusyError(SessionError):
    """Raised when a job is submitted while another is outstanding."""


class SessionStateError(SessionError):
    """Raised when an operation needs state the session does not have."""


class ImageProcessorSession:
    """Aggregate the observable state of one upscale interaction.

    Terminal messages from the worker arrive on the worker thread; they only
    flip plain attributes and release :meth:`wait`.
    """

    def __init__(
        self,
        worker: UpscaleWorker,
        *,
        model_quality: ModelQuality | str = ModelQuality.LOW,
        max_selection_size: float = MAX_SELECTION_SIZE,
    ) -> None:
        self.model_quality = ModelQuality.resolve(model_quality)
        self.is_processing = False
        self.uploaded_image_src = ""
        self.has_superresolution = False
        self.selected_image_url = ""
        self.result: UpscaleResult | None = None
        self.error: str | None = None
        self.progress: list[dict[str, Any]] = []
        self.controller = SelectionController(
            max_selection_size=max_selection_size,
            is_processing=lambda: self.is_processing,
        )
        self._image: Image.Image | None = None
        self._pending_job: str | None = None
        self._done = threading.Event()
        self._lock = threading.Lock()
        self._worker = worker

    # -- references bound by the surface ---------------------------------

    @property
    def canvas(self) -> Canvas | None:
        return self.controller.canvas

    @canvas.setter
    def canvas(self, value: Canvas | None) -> None:
        self.controller.canvas = value

    @property
    def image(self) -> DisplayedImage | None:
        return self.controller.image

    @property
    def selection(self) -> SelectionRect:
        return self.controller.selection

    @property
    def selection_style(self) -> dict[str, str]:
        return self.controller.selection_style

    @property
    def result_image_url(self) -> str:
        return self.result.to_data_url() if self.result is not None else ""

    # -- image lifecycle ---------------------------------------------------

    def upload(self, data: bytes) -> str:
        try:
            image = open_image(data)
        except ValueError as exc:
            raise SuperResolutionInputError(str(exc)) from exc
        self.reset()
        self._image = image
        self.uploaded_image_src = image_to_data_url(image)
        self.bind_image(image.width, image.height)
        return self.uploaded_image_src

    def bind_image(self, displayed_width: float, displayed_height: float) -> DisplayedImage:
        if self._image is None:
            raise SessionStateError("Upload an image before binding it")
        self.controller.image = DisplayedImage(
            natural_width=self._image.width,
            natural_height=self._image.height,
            width=displayed_width,
            height=displayed_height,
        )
        return self.controller.image

    # -- selection ---------------------------------------------------------

    def _redraw(self) -> None:
        if self.canvas is not None:
            self.canvas.draw_selection(self.selection)

    def start_selection(self, event: InputEvent) -> None:
        self.controller.begin(event)
        self._redraw()

    def resize_selection(self, event: InputEvent) -> None:
        self.controller.resize(event)
        self._redraw()

    def end_selection(self) -> None:
        self.controller.end()
        self._redraw()

    def reset(self) -> None:
        self._pending_job = None
        self.controller.reset()
        self.controller.image = None
        self._image = None
        self.uploaded_image_src = ""
        self.has_superresolution = False
        self.selected_image_url = ""
        self.is_processing = False
        self.result = None
        self.error = None
        self.progress = []

    def crop_selection(self) -> Region | None:
        box = self.controller.natural_box()
        if box is None or self._image is None:
            self.selected_image_url = ""
            return None
        self.selected_image_url = image_to_data_url(self._image.crop(box))
        left, top, right, bottom = box
        return Region(left=left, top=top, right=right, bottom=bottom)

    # -- worker round trip -------------------------------------------------

    def submit(self, *, job_id: str | None = None) -> JobRequest:
        """Send the current image (or its selected region) to the worker.

        Messages from the job are routed through a port bound to its id, so
        replies from a job abandoned by :meth:`reset` or :meth:`upload`
        never reach the session's state.
        """

        with self._lock:
            if self.is_processing:
                raise SessionBusyError("A job is already being processed")
            if not self.uploaded_image_src:
                raise SessionStateError("Upload an image first")
            job_id = job_id or uuid.uuid4().hex
            region = self.crop_selection()
            request = JobRequest(
                image_url=self.selected_image_url or self.uploaded_image_src,
                model_quality=self.model_quality.value,
                region=region,
                job_id=job_id,
            )
            self.error = None
            self.progress = []
            self._done.clear()
            self._pending_job = job_id
            self.is_processing = True
        port = self._worker.connect(functools.partial(self._receive, job_id))
        port.post_message({"payload": request.to_payload()})
        return request

    def _receive(self, job_id: str, message: Mapping[str, Any]) -> None:
        if job_id != self._pending_job:
            logger.debug("dropping %s from abandoned job %s", message.get("status"), job_id)
            return
        self.handle_message(message)

    def handle_message(self, message: Mapping[str, Any]) -> None:
        reply_to = message.get("jobId")
        if reply_to is not None and reply_to != self._pending_job:
            logger.debug("dropping %s for job %s", message.get("status"), reply_to)
            return
        if not is_terminal(message):
            self.progress.append(dict(message))
            return
        self.is_processing = False
        self._pending_job = None
        if message.get("status") == STATUS_COMPLETE:
            self.result = message.get("result")
            self.has_superresolution = True
        else:
            self.error = str(message.get("message") or "Unknown error")
            logger.info("upscale failed: %s", self.error)
        self._done.set()

    def wait(self, timeout: float | None = None) -> bool:
        return self._done.wait(timeout)

    def snapshot(self) -> dict[str, Any]:
        return {
            "modelQuality": self.model_quality.value,
            "isProcessing": self.is_processing,
            "hasSuperresolution": self.has_superresolution,
            "hasUpload": bool(self.uploaded_image_src),
            "selection": self.selection.as_dict(),
            "selectionStyle": self.selection_style,
            "error": self.error,
            "progressEvents": len(self.progress),
        }


__all__ = [
    "ImageProcessorSession",
    "SessionBusyError",
    "SessionError",
    "SessionStateError",
]
