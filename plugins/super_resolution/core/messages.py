"""Messages exchanged with the upscale worker."""

from __future__ import annotations

from typing import Any, Mapping

import pydantic
from pydantic import Field

from common.validation import SchemaModel, ValidationError, parse_model

from .quality import ModelQuality

STATUS_COMPLETE = "complete"
STATUS_ERROR = "error"
TERMINAL_STATUSES = frozenset({STATUS_COMPLETE, STATUS_ERROR})


class Region(SchemaModel):
    """Natural-pixel box the submitted image was cropped from."""

    model_config = pydantic.ConfigDict(extra="forbid", frozen=True)

    left: int = Field(ge=0)
    top: int = Field(ge=0)
    right: int = Field(ge=0)
    bottom: int = Field(ge=0)


class JobRequest(SchemaModel):
    model_config = pydantic.ConfigDict(
        extra="forbid",
        str_strip_whitespace=True,
        populate_by_name=True,
        frozen=True,
    )

    image_url: str = Field(alias="imageUrl", min_length=1)
    model_quality: str | None = Field(default=None, alias="modelQuality")
    region: Region | None = None
    job_id: str | None = Field(default=None, alias="jobId")

    @property
    def tier(self) -> ModelQuality:
        return ModelQuality.resolve(self.model_quality)

    def to_payload(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


def parse_job_request(data: object) -> JobRequest:
    """Extract the job from an inbound ``{"payload": {...}}`` message."""

    if not isinstance(data, Mapping):
        raise ValidationError("Message must be a mapping")
    payload = data.get("payload")
    if not isinstance(payload, Mapping):
        raise ValidationError("Message is missing its payload")
    return parse_model(JobRequest, payload)


def complete_message(result: Any, *, job_id: str | None = None) -> dict[str, Any]:
    message: dict[str, Any] = {"status": STATUS_COMPLETE, "result": result}
    if job_id is not None:
        message["jobId"] = job_id
    return message


def error_message(message: str, *, job_id: str | None = None) -> dict[str, Any]:
    payload: dict[str, Any] = {"status": STATUS_ERROR, "message": message}
    if job_id is not None:
        payload["jobId"] = job_id
    return payload


def is_terminal(message: Mapping[str, Any]) -> bool:
    return message.get("status") in TERMINAL_STATUSES


__all__ = [
    "STATUS_COMPLETE",
    "STATUS_ERROR",
    "JobRequest",
    "Region",
    "complete_message",
    "error_message",
    "is_terminal",
    "parse_job_request",
]
