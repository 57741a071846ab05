from __future__ import annotations

import os

import uvicorn
from safety_devkit.config import load_settings
from safety_devkit.observability import configure_logging


def main() -> None:
    settings = load_settings("companion-api")
    configure_logging(settings.SERVICE_NAME, settings.LOG_LEVEL)
    host = os.getenv("COMPANION_API_HOST", "0.0.0.0")
    port = int(os.getenv("COMPANION_API_PORT", "8110"))
    uvicorn.run("companion_api.app:app", host=host, port=port, log_level=settings.LOG_LEVEL.lower(), reload=False)


if __name__ == "__main__":
    main()
