"""Configuration classes for the Flask application."""

from __future__ import annotations

import os
import secrets


def _load_secret() -> str:
    """Return the Flask secret key for the current process."""

    secret = os.environ.get("SUPERRES_SECRET")
    if secret:
        return secret
    # Per-process key for local development.
    return secrets.token_urlsafe(64)


class BaseConfig:
    SECRET_KEY = _load_secret()
    MAX_CONTENT_LENGTH = 25 * 1024 * 1024  # 25 MiB
    JSON_SORT_KEYS = False
    RESPONSE_HEADERS = {
        "X-Content-Type-Options": "nosniff",
        "X-Frame-Options": "DENY",
        "Content-Security-Policy": (
            "default-src 'self'; "
            "img-src 'self' data: blob:; "
            "object-src 'none'; "
            "frame-ancestors 'none'"
        ),
        "Referrer-Policy": "no-referrer",
    }


class TestingConfig(BaseConfig):
    TESTING = True


__all__ = ["BaseConfig", "TestingConfig"]
