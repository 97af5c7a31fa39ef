"""FastAPI application factory."""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from redis.exceptions import RedisError
from sqlalchemy.exc import SQLAlchemyError

from shamba.challenges.router import router as challenges_router
from shamba.config import get_settings
from shamba.database import close_db, get_session, init_db
from shamba.gamification.router import router as gamification_router
from shamba.gamification.seed import seed_catalogs
from shamba.health.router import router as health_router
from shamba.middleware import setup_middleware
from shamba.missions.router import router as missions_router
from shamba.raffles.router import router as raffles_router
from shamba.redis_client import close_redis, get_redis, init_redis
from shamba.referrals.router import router as referrals_router
from shamba.shop.router import router as shop_router
from shamba.teams.router import router as teams_router

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncGenerator[None, None]:
    """Startup and shutdown lifecycle."""
    settings = get_settings()
    await init_db(settings.database_url)

    # Redis is optional
    if settings.redis_url:
        await init_redis(settings.redis_url)
        try:
            await get_redis().ping()
        except RedisError:
            logger.warning("Redis unreachable at startup; events and rate limiting disabled", exc_info=True)
            await close_redis()

    # Seed catalogs (idempotent upserts)
    if settings.seed_catalogs_on_startup:
        try:
            async for db in get_session():
                await seed_catalogs(db)
                await db.commit()
                break
        except SQLAlchemyError:
            logger.warning("Catalog seeding failed (tables may not exist yet)", exc_info=True)

    yield

    await close_db()
    await close_redis()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title="Shamba Progress Engine",
        description="Gamification and progress API for the farmer app: XP, points, streaks, "
        "challenges, missions, referrals, teams and the rewards shop",
        version=settings.app_version,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        lifespan=lifespan,
    )

    setup_middleware(app, settings)
    app.include_router(health_router, tags=["Health"])
    app.include_router(gamification_router)
    app.include_router(challenges_router)
    app.include_router(missions_router)
    app.include_router(referrals_router)
    app.include_router(raffles_router)
    app.include_router(shop_router)
    app.include_router(teams_router)

    return app


app = create_app()
