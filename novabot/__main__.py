"""Run the bot with ``python -m novabot``."""

import uvicorn

from novabot.core.config import settings


def main() -> None:
    uvicorn.run(
        "novabot.main:app",
        host=settings.server.host,
        port=settings.server.port,
        reload=settings.app.is_development,
        log_level="debug" if settings.app.debug else "info",
    )


if __name__ == "__main__":
    main()
