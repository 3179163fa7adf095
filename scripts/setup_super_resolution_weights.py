#!/usr/bin/env python3
"""Prefetch Real-ESRGAN weights for the super-resolution tiers."""

from __future__ import annotations

import argparse
import shutil
import sys
from pathlib import Path
from typing import Mapping

import yaml

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from plugins.super_resolution.core import (  # noqa: E402
    ModelQuality,
    SuperResolutionModelError,
    SuperResolutionSettings,
    download_weights,
    load_settings,
)


def _load_config(path: Path) -> Mapping[str, object]:
    if not path.exists():
        return {}
    with path.open("r", encoding="utf-8") as handle:
        return yaml.safe_load(handle) or {}


def _plugin_settings(config: Mapping[str, object]) -> Mapping[str, object]:
    plugins = config.get("plugins", {})
    if not isinstance(plugins, Mapping):
        return {}
    settings = plugins.get("super_resolution", {})
    return settings if isinstance(settings, Mapping) else {}


def _targets(settings: SuperResolutionSettings, *, local: bool) -> dict[str, Path]:
    names = dict.fromkeys(settings.tiers.values())
    if local:
        return {name: settings.models[name].weights_path for name in names}
    return {name: settings.cache_dir / settings.models[name].weights_path.name for name in names}


def _print_progress(name: str):
    def _report(loaded: int, total: int) -> None:
        if total:
            print(f"\r{name}: {loaded / total:6.1%}", end="", flush=True)
        else:
            print(f"\r{name}: {loaded} bytes", end="", flush=True)

    return _report


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument(
        "--config",
        type=Path,
        default=ROOT / "config.yml",
        help="Path to config.yml",
    )
    parser.add_argument(
        "--quality",
        choices=[tier.value for tier in ModelQuality],
        help="Only fetch the model behind this tier.",
    )
    parser.add_argument(
        "--source",
        type=Path,
        help="Directory containing weight files to copy instead of downloading.",
    )
    parser.add_argument(
        "--local",
        action="store_true",
        help="Place weights in weights_dir (used with allow_local_models) "
        "instead of the download cache.",
    )
    parser.add_argument(
        "--force",
        action="store_true",
        help="Overwrite existing weights if present.",
    )
    args = parser.parse_args(argv)

    settings = load_settings(_plugin_settings(_load_config(args.config)), root=ROOT)
    targets = _targets(settings, local=args.local)
    if args.quality:
        name = settings.tiers[ModelQuality.resolve(args.quality)]
        targets = {name: targets[name]}

    for name, target in targets.items():
        if target.exists() and not args.force:
            print(f"{target} already exists (use --force to overwrite)")
            continue
        if args.source:
            candidate = args.source / target.name
            if not candidate.exists():
                raise SystemExit(f"Missing {candidate} for model {name}")
            target.parent.mkdir(parents=True, exist_ok=True)
            shutil.copy2(candidate, target)
            print(f"Copied {candidate} -> {target}")
            continue
        url = settings.models[name].url
        if not url:
            raise SystemExit(f"No download URL configured for model {name}")
        try:
            download_weights(url, target, on_progress=_print_progress(name))
        except SuperResolutionModelError as exc:
            print()
            raise SystemExit(str(exc)) from exc
        print(f"\nDownloaded {name} -> {target}")

    return 0


if __name__ == "__main__":
    sys.exit(main())
