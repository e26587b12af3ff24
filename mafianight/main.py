# mafianight/main.py
from __future__ import annotations

import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from redis.asyncio import Redis

from mafianight.domain.stats import StoreStatsSink
from mafianight.settings import DEV_AUTH_SECRET, get_settings
from mafianight.store.memory_store import MemoryStore
from mafianight.store.redis_store import RedisStore
from mafianight.store.repo import SessionRepo
from mafianight.transport.admin import router as admin_router
from mafianight.transport.http import router as users_router
from mafianight.transport.ws import router as ws_router
from mafianight.transport.ws_manager import WSManager

logger = logging.getLogger(__name__)


def create_app() -> FastAPI:
    settings = get_settings()
    logging.basicConfig(
        level=settings.LOG_LEVEL.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if settings.AUTH_SECRET == DEV_AUTH_SECRET:
        logger.warning("AUTH_SECRET is the development default; set it before deploying")

    app = FastAPI(title=settings.APP_NAME)
    allowed_origins = [o.strip() for o in settings.WS_ALLOWED_ORIGINS.split(",") if o.strip()]
    if "null" not in allowed_origins:
        allowed_origins.append("null")

    app.add_middleware(
        CORSMiddleware,
        allow_origins=allowed_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.on_event("startup")
    async def _startup() -> None:
        if settings.STORE_BACKEND == "memory":
            app.state.redis = None
            store = MemoryStore()
        else:
            r = Redis.from_url(settings.REDIS_URL, decode_responses=False)
            app.state.redis = r
            store = RedisStore(r, prefix=settings.STORE_PREFIX, doc_ttl_sec=settings.SESSION_RETENTION_SEC)
            await r.ping()
        app.state.store = store
        app.state.repo = SessionRepo(store)
        app.state.stats = StoreStatsSink(app.state.repo)
        app.state.wsman = WSManager()
        logger.info("%s started with %s store", settings.APP_NAME, settings.STORE_BACKEND)

    @app.on_event("shutdown")
    async def _shutdown() -> None:
        await app.state.store.close()

    @app.get("/health")
    async def health():
        r = app.state.redis
        if r is None:
            return {"ok": True, "store": "memory"}
        pong = await r.ping()
        return {"ok": True, "store": "redis", "redis": str(pong)}

    app.include_router(ws_router)
    app.include_router(users_router)
    app.include_router(admin_router)
    return app


app = create_app()
