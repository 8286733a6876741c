from __future__ import annotations

import argparse

import uvicorn

from companion.infrastructure.config import get_settings

APP_PATH = "companion.web.main:app"


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Run the Safety Companion API server")
    parser.add_argument("--host", default="0.0.0.0")
    parser.add_argument("--port", type=int, default=8000)
    parser.add_argument(
        "--no-reload",
        dest="reload",
        action="store_false",
        help="Disable auto-reload (on by default outside production)",
    )
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> None:
    args = parse_args(argv)
    reload = args.reload and not get_settings().is_production()

    uvicorn.run(
        APP_PATH,
        host=args.host,
        port=args.port,
        reload=reload,
    )


if __name__ == "__main__":
    main()
