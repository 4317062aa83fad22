"""ASGI entrypoint for running the service."""
from __future__ import annotations

import uvicorn

from .config import get_settings


def run() -> None:
    """Serve ``bar_inventory.api:app`` with uvicorn using the configured bind address."""

    settings = get_settings()
    uvicorn.run(
        "bar_inventory.api:app",
        host=settings.host,
        port=settings.port,
        reload=settings.environment == "development",
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    run()
