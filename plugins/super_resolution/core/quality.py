"""Model quality tiers."""

from __future__ import annotations

from enum import Enum


class ModelQuality(str, Enum):
    LOW = "low"
    HIGH = "high"

    @classmethod
    def resolve(cls, value: object) -> "ModelQuality":
        """Map ``value`` onto a tier.

        Only ``"low"`` selects the lightweight tier; every other value,
        including ``None`` and unknown names, selects :attr:`HIGH`.
        """

        if isinstance(value, cls):
            return value
        if value == cls.LOW.value:
            return cls.LOW
        return cls.HIGH


__all__ = ["ModelQuality"]
