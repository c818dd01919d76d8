"""Run mcpo-sync with uvicorn: ``python -m mcpo_sync``."""

import uvicorn

from .config import get_settings


def main():
    settings = get_settings()
    uvicorn.run(
        "mcpo_sync.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
        log_level="debug" if settings.debug else "info",
    )


if __name__ == "__main__":
    main()
