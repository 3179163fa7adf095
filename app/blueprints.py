"""Blueprint registration helpers."""

from __future__ import annotations

import importlib
import pkgutil
from pathlib import Path

from flask import Blueprint, Flask

from common.logging import get_logger

logger = get_logger("app")


def _iter_blueprints(package: str = "plugins") -> list[Blueprint]:
    module_path = Path(__file__).resolve().parent.parent / package
    if not module_path.exists():
        return []
    blueprints: list[Blueprint] = []
    for module_info in pkgutil.iter_modules([str(module_path)]):
        if not module_info.ispkg:
            continue
        dotted = f"{package}.{module_info.name}.api"
        try:
            module = importlib.import_module(dotted)
        except ModuleNotFoundError as exc:
            if exc.name != dotted:
                raise
            logger.debug("plugin %s has no api module", module_info.name)
            continue
        blueprints.extend(getattr(module, "blueprints", None) or [])
    return blueprints


def register_plugin_blueprints(app: Flask) -> None:
    for bp in _iter_blueprints():
        app.register_blueprint(bp)
        logger.debug("registered blueprint %s at %s", bp.name, bp.url_prefix)


__all__ = ["register_plugin_blueprints"]
