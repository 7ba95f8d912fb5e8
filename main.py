"""
FastAPI application entry point
"""
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from api.middleware import LocaleMiddleware, LoggingMiddleware, RequestIDMiddleware
from api.routes import bank_settings as bank_settings_routes
from api.routes import payments as payments_routes
from api.routes import qris as qris_routes
from core.config import settings
from core.exceptions import register_exception_handlers
from core.i18n import t
from core.logging_config import configure_logging, get_logger
from core.response import success_response
from infrastructure.database import create_tables, engine
from infrastructure.external.cache import init_redis_client, shutdown_redis_client


configure_logging()
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Development creates tables; other environments run `alembic upgrade head`
    if settings.DEBUG:
        await create_tables()
        logger.info("database_initialized", url=engine.url.render_as_string(hide_password=True))

    # Without Redis the webhook dedupe is skipped; CAS guards still hold
    redis_ready = False
    if settings.redis.url:
        try:
            await init_redis_client()
            redis_ready = True
        except Exception as exc:
            logger.error("redis_client_init_failed", error=str(exc))

    logger.info("application_started", environment=settings.ENVIRONMENT, redis=redis_ready)
    yield

    if redis_ready:
        await shutdown_redis_client()
    await engine.dispose()
    logger.info("application_shutdown")


app = FastAPI(
    title=settings.PROJECT_NAME,
    version=settings.VERSION,
    debug=settings.DEBUG,
    lifespan=lifespan,
    description="Bank transfer reconciliation with unique-code orders and dynamic QRIS",
)

# Middleware runs bottom-up: CORS, locale, logging, then request id outermost
app.add_middleware(RequestIDMiddleware)
app.add_middleware(LoggingMiddleware)
app.add_middleware(LocaleMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_exception_handlers(app)

app.include_router(payments_routes.router, prefix="/api/v1")
app.include_router(bank_settings_routes.router, prefix="/api/v1")
app.include_router(qris_routes.router, prefix="/api/v1")


@app.get("/", tags=["Root"])
async def root():
    return success_response(
        data={"name": settings.PROJECT_NAME, "version": settings.VERSION, "docs": "/docs"},
        message=t("welcome", default="Welcome"),
    )


@app.get("/health", tags=["Health"])
async def health_check():
    return success_response(data={"status": "healthy"}, message=t("health.ok", default="OK"))


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.DEBUG,
        log_level="debug" if settings.DEBUG else "info"
    )
