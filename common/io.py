"""Common IO helpers for plugins."""

from __future__ import annotations

import base64
import binascii
import urllib.request
from io import BytesIO
from pathlib import Path
from urllib.parse import unquote, urlsplit

DEFAULT_URL_TIMEOUT = 30.0


class UrlReadError(ValueError):
    """Raised when an image URL cannot be resolved to bytes."""


def buffer_from_bytes(data: bytes) -> BytesIO:
    buffer = BytesIO()
    buffer.write(data)
    buffer.seek(0)
    return buffer


def encode_data_url(data: bytes, mimetype: str) -> str:
    encoded = base64.b64encode(data).decode("ascii")
    return f"data:{mimetype};base64,{encoded}"


def decode_data_url(url: str) -> tuple[str, bytes]:
    """Split a ``data:`` URL into its mimetype and raw bytes."""

    if not url.startswith("data:"):
        raise UrlReadError("Not a data URL")
    header, sep, body = url[5:].partition(",")
    if not sep:
        raise UrlReadError("Malformed data URL")
    parts = header.split(";")
    mimetype = parts[0] or "text/plain"
    if "base64" in parts[1:]:
        try:
            return mimetype, base64.b64decode(body, validate=True)
        except (binascii.Error, ValueError) as exc:
            raise UrlReadError("Malformed base64 payload in data URL") from exc
    return mimetype, unquote(body).encode("latin-1")


def read_url_bytes(url: str, *, timeout: float = DEFAULT_URL_TIMEOUT) -> bytes:
    """Resolve ``data:``, ``http(s)://``, ``file://`` URLs or plain paths."""

    if not url:
        raise UrlReadError("Image URL is empty")
    if url.startswith("data:"):
        return decode_data_url(url)[1]

    parsed = urlsplit(url)
    if parsed.scheme in {"http", "https"}:
        try:
            with urllib.request.urlopen(url, timeout=timeout) as response:
                return response.read()
        except OSError as exc:
            raise UrlReadError(f"Unable to fetch {url}: {exc}") from exc

    path = Path(unquote(parsed.path)) if parsed.scheme == "file" else Path(url)
    try:
        return path.read_bytes()
    except OSError as exc:
        raise UrlReadError(f"Unable to read {path}") from exc


__all__ = [
    "UrlReadError",
    "buffer_from_bytes",
    "encode_data_url",
    "decode_data_url",
    "read_url_bytes",
]
