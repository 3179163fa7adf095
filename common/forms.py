"""Form value parsing helpers shared across plugins."""

from __future__ import annotations

from typing import Any, Iterable, Mapping

from .validation import ValidationError


FormDataLike = Mapping[str, Any] | Any


def _lookup(data: FormDataLike, key: str) -> Any:
    if data is None:
        return None
    getter = getattr(data, "get", None)
    if callable(getter):
        return getter(key)
    return data[key] if isinstance(data, Mapping) and key in data else None


def _is_blank(raw: Any) -> bool:
    return raw is None or (isinstance(raw, str) and raw.strip() == "")


def get_float(
    data: FormDataLike,
    key: str,
    default: float | None,
    *,
    field_name: str | None = None,
    minimum: float | None = None,
    maximum: float | None = None,
) -> float | None:
    """Extract a float from *data* with validation.

    Missing or blank values fall back to ``default`` (which may be ``None``
    for optional fields). ``minimum`` and ``maximum`` bounds are inclusive.
    """

    field_label = field_name or key
    raw = _lookup(data, key)
    if _is_blank(raw):
        value = default
    else:
        try:
            value = float(raw)
        except (TypeError, ValueError) as exc:
            raise ValidationError(f"Invalid value for {field_label}") from exc

    if value is None:
        return None
    if minimum is not None and value < minimum:
        raise ValidationError(f"{field_label} must be ≥ {minimum}")
    if maximum is not None and value > maximum:
        raise ValidationError(f"{field_label} must be ≤ {maximum}")

    return value


def get_choice(
    data: FormDataLike,
    key: str,
    default: str,
    choices: Iterable[str],
    *,
    field_name: str | None = None,
    aliases: Mapping[str, str] | None = None,
) -> str:
    """Extract a lower-cased value that must be one of ``choices``."""

    raw = _lookup(data, key)
    if _is_blank(raw):
        return default
    value = str(raw).strip().lower()
    value = (aliases or {}).get(value, value)
    allowed = tuple(choices)
    if value not in allowed:
        label = field_name or key
        raise ValidationError(f"{label} must be one of: {', '.join(allowed)}")
    return value


def get_bool(
    data: FormDataLike,
    key: str,
    default: bool = False,
    *,
    truthy: tuple[str, ...] = ("1", "true", "on", "yes"),
) -> bool:
    """Extract a boolean flag from *data*."""

    raw = _lookup(data, key)
    if raw is None:
        return default
    if isinstance(raw, bool):
        return raw
    if isinstance(raw, (int, float)):
        return bool(raw)
    if isinstance(raw, str):
        return raw.strip().lower() in truthy
    return default


__all__ = ["get_float", "get_choice", "get_bool"]
