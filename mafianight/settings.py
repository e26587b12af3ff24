# mafianight/settings.py
from __future__ import annotations

from typing import Literal
from pydantic import BaseModel
import os


DEV_AUTH_SECRET = "dev-only-change-me"


class Settings(BaseModel):
    APP_NAME: str = "mafianight-server"

    # Store
    STORE_BACKEND: Literal["redis", "memory"] = "redis"
    REDIS_URL: str = "redis://localhost:6379/0"
    STORE_PREFIX: str = "mafianight"
    # ended sessions stay readable for history this long
    SESSION_RETENTION_SEC: int = 7 * 24 * 3600

    # Server
    HOST: str = "0.0.0.0"
    PORT: int = 8000

    # Dev
    LOG_LEVEL: str = "INFO"

    # Shared with the identity provider; signs user tokens
    AUTH_SECRET: str = DEV_AUTH_SECRET

    # WebSocket origin policy (comma-separated)
    WS_ALLOWED_ORIGINS: str = "http://localhost:8081,http://127.0.0.1:8081,http://localhost:19006,null"
    # Dev helper: allow any private LAN IP (Expo dev server on a phone)
    WS_ALLOW_LAN_ORIGINS: bool = True


def get_settings() -> Settings:
    return Settings(
        APP_NAME=os.getenv("APP_NAME", "mafianight-server"),
        STORE_BACKEND=os.getenv("STORE_BACKEND", "redis").lower(),
        REDIS_URL=os.getenv("REDIS_URL", "redis://localhost:6379/0"),
        STORE_PREFIX=os.getenv("STORE_PREFIX", "mafianight"),
        SESSION_RETENTION_SEC=int(os.getenv("SESSION_RETENTION_SEC", str(7 * 24 * 3600))),
        HOST=os.getenv("HOST", "0.0.0.0"),
        PORT=int(os.getenv("PORT", "8000")),
        LOG_LEVEL=os.getenv("LOG_LEVEL", "INFO"),
        AUTH_SECRET=os.getenv("AUTH_SECRET", DEV_AUTH_SECRET),

        WS_ALLOWED_ORIGINS=os.getenv(
            "WS_ALLOWED_ORIGINS",
            "http://localhost:8081,http://127.0.0.1:8081,http://localhost:19006,null",
        ),
        WS_ALLOW_LAN_ORIGINS=os.getenv("WS_ALLOW_LAN_ORIGINS", "true").lower()
        in ("1", "true", "yes", "y", "on"),
    )
