"""
Chorus backend entry point.
Serves the FastAPI app that owns the request queue and client pool.
"""

import sys

import uvicorn
from loguru import logger

from chorus.settings import global_settings


def setup_logging(level: str) -> None:
    """Route loguru output to stderr at the configured level."""
    logger.remove()
    logger.add(sys.stderr, level=level.upper())


def main() -> None:
    """Configure logging and serve the app."""
    setup_logging(global_settings.log_level)
    logger.info(
        f"Starting chorus on {global_settings.host}:{global_settings.port}"
    )
    uvicorn.run(
        "chorus.api.app:create_app",
        factory=True,
        host=global_settings.host,
        port=global_settings.port,
        log_level=global_settings.log_level.lower(),
    )


if __name__ == "__main__":
    main()
