"""API server entry point.

Reads the service URLs, the composition key and the listen address from the
environment (see songsmith.config); --host/--port override the latter.
"""

from __future__ import annotations

import argparse
import logging
import sys

import uvicorn

from songsmith.api.routes import create_app
from songsmith.config import Settings

log = logging.getLogger(__name__)


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Run the Songsmith API server.")
    parser.add_argument("--host", default=None, help="Interface to bind (SONGSMITH_HOST).")
    parser.add_argument("--port", type=int, default=None, help="Port to bind (SONGSMITH_PORT).")
    parser.add_argument("--verbose", "-v", action="store_true", help="Log debug output.")
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> None:
    """Run the API server."""
    args = parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )

    settings = Settings.from_env(host=args.host, port=args.port)
    if not settings.beatoven_api_key:
        log.warning("BEATOVEN_API_KEY is not set; /api/generate-music will answer 503")

    app = create_app(settings=settings)
    log.info("Serving on %s:%d (lyrics backend %s)", settings.host, settings.port,
             settings.lyrics_base_url)
    uvicorn.run(
        app,
        host=settings.host,
        port=settings.port,
        log_level="debug" if args.verbose else "info",
    )


if __name__ == "__main__":
    main()
