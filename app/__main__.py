from __future__ import annotations

import os

import uvicorn

from app.core.logging import configure_logging
from app.core.settings import get_settings


def main() -> None:
    configure_logging()
    settings = get_settings()

    port = int(os.getenv("PORT", str(settings.API_PORT)))
    uvicorn.run("app.main:app", host=settings.API_HOST, port=port, log_config=None)


if __name__ == "__main__":
    main()
