"""Run the SuperRes Studio server locally."""

import argparse
import os
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parent.parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from app import create_app  # noqa: E402
from common.logging import get_logger  # noqa: E402


def _resolve_port(value: str | None) -> int:
    value = value or os.getenv("SUPERRES_PORT") or os.getenv("PORT") or "5001"
    try:
        return int(value)
    except ValueError as exc:
        raise SystemExit(
            f"Invalid port '{value}'. Set SUPERRES_PORT to a number."
        ) from exc


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--host", default=os.getenv("SUPERRES_HOST", "127.0.0.1"))
    parser.add_argument("--port", default=None)
    args = parser.parse_args(argv)

    port = _resolve_port(args.port)
    app = create_app()
    get_logger("dev").info("serving on http://%s:%s", args.host, port)
    # Worker jobs run on a background loop; the reloader would fork a second one.
    app.run(host=args.host, port=port, debug=False, use_reloader=False, threaded=True)


if __name__ == "__main__":
    main()
