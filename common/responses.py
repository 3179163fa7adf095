"""Standardized JSON response helpers."""

from __future__ import annotations

from typing import Any, Mapping

from flask import Response, g, has_request_context, jsonify

from .errors import AppError


def _envelope(success: bool, key: str, value: Any) -> dict[str, Any]:
    payload: dict[str, Any] = {"success": success, key: value}
    if has_request_context() and getattr(g, "request_id", None):
        payload["request_id"] = g.request_id
    return payload


def ok(data: Any, *, status: int = 200) -> Response:
    """Return a success envelope."""

    response = jsonify(_envelope(True, "data", data))
    response.status_code = status
    return response


def fail(error: AppError | Mapping[str, Any], *, status: int | None = None) -> Response:
    """Return a standardized failure envelope."""

    if isinstance(error, AppError):
        response = jsonify(_envelope(False, "error", error.to_dict()))
        response.status_code = status or error.status_code
        return response

    response = jsonify(_envelope(False, "error", dict(error)))
    response.status_code = status or 400
    return response


__all__ = ["ok", "fail"]
