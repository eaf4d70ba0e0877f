"""Run the relay service with uvicorn."""

from __future__ import annotations

import uvicorn

from buzzquiz.backend.api import create_app
from buzzquiz.backend.config import configure_logging, load_settings


def main() -> None:
    settings = load_settings()
    logger = configure_logging(settings.log_level)
    app = create_app(settings=settings)
    logger.info("Starting relay on %s:%s", settings.host, settings.port)
    uvicorn.run(app, host=settings.host, port=settings.port, log_level=settings.log_level.lower())


if __name__ == "__main__":
    main()
