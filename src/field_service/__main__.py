"""Entry point for the field service.

Usage::

    CONFIG_PATH=config.yaml python -m field_service
"""

from __future__ import annotations

import uvicorn

from field_service.app import create_app
from field_service.config import get_settings


def main() -> None:
    """Serve the API with uvicorn using the configured host and port."""
    settings = get_settings()
    uvicorn.run(
        create_app(),
        host=settings.server.host,
        port=settings.server.port,
        log_level=settings.server.log_level,
    )


if __name__ == "__main__":
    main()
