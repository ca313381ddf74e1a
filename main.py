import logging
import os
import time
from contextlib import asynccontextmanager

import psutil
import structlog
from fastapi import Depends, FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles
from starlette.exceptions import HTTPException as StarletteHTTPException

from comment_routes import router as comment_router
from config import get_settings
from dashboard_routes import router as dashboard_router
from database import DocumentStore, get_db, utcnow
from errors import ApiError, http_error_handler, request_validation_handler, unhandled_error_handler
from like_routes import dislikes_router, likes_router
from playlist_routes import router as playlist_router
from responses import ok
from subscription_routes import router as subscription_router
from tweet_routes import router as tweet_router
from user_routes import router as user_router
from video_routes import router as video_router

settings = get_settings()

# -------------------- Logging --------------------

structlog.configure(
    processors=[
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.StackInfoRenderer(),
        structlog.dev.set_exc_info,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.dev.ConsoleRenderer(),
    ],
    wrapper_class=structlog.make_filtering_bound_logger(
        logging.getLevelName(settings.log_level)
    ),
)

logger = structlog.get_logger()

STARTED_AT = time.monotonic()


# -------------------- Lifespan --------------------

@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Starting backend", version=settings.app_version, environment=settings.environment)
    get_db().ensure_indexes()
    yield
    logger.info("Shutting down backend")


app = FastAPI(title=settings.app_name, version=settings.app_version, lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.add_exception_handler(StarletteHTTPException, http_error_handler)
app.add_exception_handler(RequestValidationError, request_validation_handler)
app.add_exception_handler(Exception, unhandled_error_handler)

# Uploaded media is served straight from the upload directory
os.makedirs(settings.upload_dir, exist_ok=True)
app.mount(settings.media_url_prefix, StaticFiles(directory=settings.upload_dir), name="static")

for router in (
    user_router, video_router, comment_router, likes_router, dislikes_router,
    subscription_router, tweet_router, playlist_router, dashboard_router,
):
    app.include_router(router, prefix=settings.api_prefix)


# -------------------- Helpers --------------------

def format_duration(seconds: float) -> str:
    """``HH:MM:SS``; the hour part wraps every 24 hours."""
    seconds = int(seconds)
    hours = (seconds % 86400) // 3600
    minutes = (seconds % 3600) // 60
    return f"{hours:02d}:{minutes:02d}:{seconds % 60:02d}"


def memory_usage() -> dict:
    info = psutil.Process().memory_info()
    return {"rss": info.rss, "vms": info.vms}


# -------------------- Basic Routes --------------------

@app.get("/")
def read_root():
    return {"message": "Video Sharing Backend is running"}


@app.get("/test")
def test_database(db: DocumentStore = Depends(get_db)):
    info = {
        "backend": "running",
        "database": db.name,
        "database_connected": False,
        "collections": [],
    }
    try:
        info["collections"] = db.collection_names()
        info["database_connected"] = True
    except ApiError as e:
        info["error"] = e.message
    return info


@app.get(f"{settings.api_prefix}/healthcheck", tags=["Healthcheck"])
def healthcheck():
    data = {
        "status": "OK",
        "timestamp": utcnow().isoformat(),
        "uptime": format_duration(time.monotonic() - STARTED_AT),
        "memory": memory_usage(),
        "env": settings.environment,
        "version": settings.app_version,
    }
    return ok(data, "Health check passed")


if __name__ == "__main__":
    import uvicorn
    port = int(os.getenv("PORT", 8000))
    uvicorn.run(app, host="0.0.0.0", port=port)
