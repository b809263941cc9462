from __future__ import annotations

import uvicorn

from .app import create_app
from .config import AuthSettings
from .observability import configure_logging


def main() -> None:
    settings = AuthSettings()
    configure_logging(settings.log_level)
    # uvicorn owns SIGINT/SIGTERM and runs the lifespan shutdown (store close).
    uvicorn.run(
        create_app(settings),
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    main()
