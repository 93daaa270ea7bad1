import importlib

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from src.config.common_settings import ALLOWED_ORIGINS, AUTH_MIDDLEWARE
from src.realm_feed.exceptions import RealmFeedError
from src.realm_feed.router import realm_feed_error_handler, router as realm_feed_router
from src.utils.logger import logger

logger.info("Realm Feed backend starting up...")

app = FastAPI(title="Realm Feed", version="0.1.0")

app.add_middleware(
    CORSMiddleware,
    allow_origins=ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["*"],
)
logger.info("Allowed origins: %s", ALLOWED_ORIGINS)


def install_auth_middleware(target: FastAPI, middleware_path: str) -> None:
    """
    Add the authentication middleware named by `middleware_path` ("module:Class").

    The middleware authenticates passively: it sets `request.state.user` for
    signed-in members and leaves it unset otherwise. Vote routes answer 403
    without it.
    """
    module_name, _, class_name = middleware_path.partition(":")
    middleware_class = getattr(importlib.import_module(module_name), class_name)
    target.add_middleware(middleware_class)
    logger.info("Authentication middleware %s enabled (passive mode)", middleware_path)


if AUTH_MIDDLEWARE:
    install_auth_middleware(app, AUTH_MIDDLEWARE)
else:
    logger.warning("No AUTH_MIDDLEWARE configured: every request is anonymous")

app.add_exception_handler(RealmFeedError, realm_feed_error_handler)
app.include_router(realm_feed_router)


@app.get("/healthz")
def healthz() -> dict:
    """Health check with connection pool status."""
    health_status = {"status": "ok"}

    try:
        from src.services.connection_pool import get_connection_pool
        pool_stats = get_connection_pool().get_stats()
        health_status["database"] = "backoff mode" if pool_stats["in_backoff"] else "ok"
        if pool_stats["in_backoff"]:
            health_status["status"] = "degraded"
        health_status["pool_stats"] = {
            "failure_count": pool_stats["failure_count"],
            "pool_exists": pool_stats["pool_exists"],
        }
    except Exception as e:
        health_status["database"] = f"error: {str(e)[:100]}"
        health_status["status"] = "degraded"

    return health_status


@app.on_event("startup")
async def startup_event():
    """Make sure the feed tables exist."""
    try:
        from src.realm_feed.repository import PostgresFeedItemRepository
        PostgresFeedItemRepository().ensure_schema()
    except Exception as e:
        logger.warning("Could not ensure feed schema at startup: %s", e)


@app.on_event("shutdown")
async def shutdown_event():
    from src.services.connection_pool import close_connection_pool
    close_connection_pool()
    logger.info("Realm Feed backend shut down")
