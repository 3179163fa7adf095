"""Validation primitives for plugin APIs."""

from __future__ import annotations

from typing import Any, Iterable, Mapping, TypeVar

import pydantic
from pydantic import BaseModel
from werkzeug.datastructures import FileStorage


class ValidationError(ValueError):
    """Raised when validation fails."""

    def __init__(self, message: str, *, details: Any | None = None):
        super().__init__(message)
        self.details = details


class SchemaModel(BaseModel):
    """Strict base model for request/response validation."""

    model_config = pydantic.ConfigDict(extra="forbid", str_strip_whitespace=True)


TModel = TypeVar("TModel", bound=SchemaModel)


def parse_model(model: type[TModel], payload: Mapping[str, Any] | None) -> TModel:
    payload = payload or {}
    try:
        return model.model_validate(payload)
    except pydantic.ValidationError as exc:
        raise ValidationError("Invalid request payload", details=exc.errors()) from exc


_SIGNATURES: dict[str, tuple[bytes, ...]] = {
    "image/png": (b"\x89PNG\r\n\x1a\n",),
    "image/jpeg": (b"\xff\xd8\xff",),
    "image/tiff": (b"II*\x00", b"MM\x00*"),
}


def _looks_like_webp(sample: bytes) -> bool:
    return len(sample) >= 12 and sample[:4] == b"RIFF" and sample[8:12] == b"WEBP"


def _matches_signature(sample: bytes, allowed: set[str]) -> bool:
    for mime in allowed:
        if mime == "image/webp":
            if _looks_like_webp(sample):
                return True
            continue
        signatures = _SIGNATURES.get(mime, ())
        if any(sample.startswith(signature) for signature in signatures):
            return True
    return False


def _peek(file: FileStorage, size: int = 1024) -> bytes:
    """Read the leading bytes of an upload and rewind to where it was."""

    stream = file.stream
    try:
        position = stream.tell()
    except (AttributeError, OSError):
        position = 0
    try:
        stream.seek(0)
        sample = stream.read(size)
    finally:
        stream.seek(position)
    if isinstance(sample, str):
        sample = sample.encode("utf-8", "ignore")
    return sample or b""


def validate_mime(files: Iterable[FileStorage], allowed: set[str]) -> None:
    """Reject uploads whose magic bytes match none of the ``allowed`` types."""

    for file in files:
        if not _matches_signature(_peek(file), allowed):
            raise ValidationError("Unsupported or invalid file signature")


__all__ = [
    "ValidationError",
    "SchemaModel",
    "parse_model",
    "validate_mime",
]
