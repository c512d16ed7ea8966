import logging
import time
import uuid
from contextlib import asynccontextmanager
from datetime import datetime, timezone

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

import config
import database
from admin_routes import router as admin_router
from auth_routes import router as auth_router
from errors import register_exception_handlers
from legacy_routes import router as legacy_router
from media_routes import router as media_router
from services import build_services
from subscription_routes import router as subscription_router

logging.basicConfig(
    level=getattr(logging, config.LOG_LEVEL, logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s %(message)s",
)
logger = logging.getLogger("cfa")

START_TIME = time.monotonic()

REDACTED_QUERY_KEYS = {"token", "otp", "password", "signature", "authorization"}


@asynccontextmanager
async def lifespan(app: FastAPI):
    app.state.services = build_services()
    if database.db is not None:
        database.ensure_indexes(database.db)
        logger.info("Connected to database %s", database.db.name)
    else:
        logger.warning("DATABASE_URL not set, data endpoints will return 503")
    yield
    if database.client is not None:
        database.client.close()


app = FastAPI(
    title=config.APP_NAME,
    version=config.APP_VERSION,
    description="Accounts, subscriptions and media content for the CFA platform",
    docs_url="/api-docs",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _safe_query(request: Request) -> str:
    parts = []
    for key, value in request.query_params.multi_items():
        parts.append(f"{key}={'***' if key.lower() in REDACTED_QUERY_KEYS else value}")
    return "&".join(parts)


@app.middleware("http")
async def request_logging_middleware(request: Request, call_next):
    request_id = str(uuid.uuid4())
    request.state.request_id = request_id
    start = time.perf_counter()
    try:
        response = await call_next(request)
    except Exception:
        duration_ms = int((time.perf_counter() - start) * 1000)
        logger.error(
            "request_id=%s method=%s path=%s status=500 duration_ms=%s",
            request_id,
            request.method,
            request.url.path,
            duration_ms,
        )
        raise
    duration_ms = int((time.perf_counter() - start) * 1000)
    response.headers["X-Request-ID"] = request_id
    logger.info(
        "request_id=%s method=%s path=%s query=%s status=%s duration_ms=%s subject=%s",
        request_id,
        request.method,
        request.url.path,
        _safe_query(request),
        response.status_code,
        duration_ms,
        getattr(request.state, "subject_id", "-"),
    )
    return response


register_exception_handlers(app)

app.include_router(auth_router)
app.include_router(subscription_router)
app.include_router(media_router)
app.include_router(admin_router)
app.include_router(legacy_router)


@app.get("/health", tags=["System"])
def health():
    return {
        "status": "OK",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "uptime": round(time.monotonic() - START_TIME, 3),
    }


@app.get("/", tags=["System"])
def read_root():
    return {
        "message": config.APP_NAME,
        "version": config.APP_VERSION,
        "documentation": "/api-docs",
        "endpoints": {
            "auth": "/api/auth",
            "subscription": "/api/subscription",
            "media": "/api/media",
            "admin": "/api/admin",
        },
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=config.PORT)
