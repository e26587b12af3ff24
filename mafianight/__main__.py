# mafianight/__main__.py
from __future__ import annotations

import uvicorn

from mafianight.settings import get_settings


def main() -> None:
    settings = get_settings()
    uvicorn.run(
        "mafianight.main:app",
        host=settings.HOST,
        port=settings.PORT,
        log_level=settings.LOG_LEVEL.lower(),
    )


if __name__ == "__main__":
    main()
