"""Logging helpers with request correlation."""

from __future__ import annotations

import logging
import time
import uuid

from flask import Flask, g, request

DEFAULT_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"
ROOT_LOGGER = "superres_studio"


def get_logger(name: str | None = None) -> logging.Logger:
    """Return the application logger or one of its children.

    Only the root application logger carries a handler; children propagate
    to it so records are emitted once.
    """

    root = logging.getLogger(ROOT_LOGGER)
    if not root.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(DEFAULT_FORMAT))
        root.addHandler(handler)
        root.setLevel(logging.INFO)
    if not name or name == ROOT_LOGGER:
        return root
    return root.getChild(name)


def install_request_logging(app: Flask) -> None:
    logger = get_logger("http")

    @app.before_request
    def _begin_request() -> None:
        g.request_id = uuid.uuid4().hex
        g.request_started = time.perf_counter()

    @app.after_request
    def _after_request(response):
        duration_ms = 0.0
        if hasattr(g, "request_started"):
            duration_ms = (time.perf_counter() - g.request_started) * 1000
        logger.info(
            "%s %s -> %s in %.2f ms [%s]",
            request.method,
            request.path,
            response.status_code,
            duration_ms,
            getattr(g, "request_id", "-"),
        )
        response.headers.setdefault("X-Request-ID", getattr(g, "request_id", ""))
        return response

    @app.teardown_request
    def _teardown_request(exc):  # pragma: no cover - flask hooks
        if exc is not None:
            logger.error(
                "request error on %s [%s]",
                request.path,
                getattr(g, "request_id", "-"),
                exc_info=exc,
            )


__all__ = ["get_logger", "install_request_logging"]
