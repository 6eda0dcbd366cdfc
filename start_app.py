# start_app.py
"""Launch the hostel meals API server."""

from __future__ import annotations

import argparse
import os
import sys

import uvicorn
from dotenv import load_dotenv

import config


def main(argv: list[str] | None = None) -> None:
    """Load settings from ``.env`` and the environment, then serve the API."""

    parser = argparse.ArgumentParser()
    parser.add_argument("--host", default=os.getenv("HOST", "127.0.0.1"))
    parser.add_argument("--port", type=int, default=int(os.getenv("PORT", "8000")))
    parser.add_argument(
        "--sqlite",
        action="store_true",
        help="Use a local SQLite file instead of DATABASE_URL",
    )
    args = parser.parse_args(argv)

    load_dotenv()

    if args.sqlite:
        os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///./dev_meals.db"
        config.get_settings.cache_clear()

    settings = config.get_settings()
    print(f"starting env={settings.env} db={settings.database_url.split('@')[-1]}")

    try:
        uvicorn.run(
            "api.app.main:app",
            host=args.host,
            port=args.port,
            log_level=settings.log_level.lower(),
        )
    except ModuleNotFoundError as exc:
        missing = exc.name or str(exc)
        print(
            f"Missing dependency: {missing}. Install it with 'pip install {missing}'",
            file=sys.stderr,
        )
        raise SystemExit(1)


if __name__ == "__main__":
    main()
