"""
Main FastAPI application for the Brain Battle backend.
Handles CORS, rate limiting, request logging middleware, lifespan events,
and router registration.
"""
import logging
import os
import time
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.config import settings
from app.database import close_db, init_db
from app.routers import (
    achievements,
    clans,
    documents,
    generation,
    health,
    notes,
    results,
    rooms,
    sessions,
    stats,
    users,
)
from app.services.llm_service import get_llm_service
from app.services.rate_limiter import (
    get_rate_limit_config,
    get_rate_limit_identifier,
    rate_limiter,
)
from app.utils.helpers import utcnow

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

API_VERSION = "1.0.0"


# ---------------------------------------------------------------------------
# Startup / shutdown helpers
# ---------------------------------------------------------------------------

async def _check_database() -> bool:
    """Initialise DB tables, seed achievements and verify the connection."""
    try:
        await init_db()
        logger.info("✓ Database connection OK")
        return True
    except Exception as exc:
        logger.error("✗ Database connection failed: %s", exc)
        raise


async def _check_llm() -> bool:
    """
    Verify the LLM endpoint answers with the configured key.
    Never raises; quiz and notes generation return 502 until it is up.
    """
    llm = get_llm_service()
    if not llm.is_configured:
        logger.warning("⚠ LLM_API_KEY is not set; generation endpoints will fail")
        return False
    healthy = await llm.check_health()
    if healthy:
        logger.info("✓ LLM reachable at %s (model %s)", llm.base_url, llm.model)
    else:
        logger.warning("⚠ LLM endpoint %s is not responding", llm.base_url)
    return healthy


# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown event handler."""
    logger.info("=" * 60)
    logger.info("  Starting Brain Battle backend …")
    logger.info("=" * 60)

    # 1 — Database (required; raises on failure)
    await _check_database()

    # 2 — LLM (optional; logs warnings but continues)
    await _check_llm()

    # 3 — Upload directory
    os.makedirs(settings.UPLOAD_DIR, exist_ok=True)
    logger.info("✓ Upload directory: %s", os.path.abspath(settings.UPLOAD_DIR))

    logger.info("=" * 60)
    logger.info("  Brain Battle backend ready on http://%s:%d", settings.HOST, settings.PORT)
    logger.info("  Swagger UI : http://%s:%d/docs", settings.HOST, settings.PORT)
    logger.info("  Health     : http://%s:%d/api/health", settings.HOST, settings.PORT)
    logger.info("=" * 60)

    yield  # ← server is running

    logger.info("Shutting down Brain Battle backend …")
    await close_db()
    logger.info("✓ Shutdown complete.")


# ---------------------------------------------------------------------------
# Application
# ---------------------------------------------------------------------------

app = FastAPI(
    title="Brain Battle API",
    description=(
        "**Brain Battle** — multiplayer quiz and study platform.\n\n"
        "Upload study material, generate notes and quizzes with an LLM, "
        "battle friends in rooms, join clans, and earn XP, ranks, streaks "
        "and achievements.\n\n"
        "Key endpoints:\n"
        "- `POST /api/rooms` — create a battle room\n"
        "- `POST /api/sessions/{id}/answers` — submit an answer\n"
        "- `POST /api/results/multiplayer` — finish a battle and award XP\n"
        "- `POST /api/generate/quiz` — generate quiz questions\n"
        "- `POST /api/notes` — generate study notes\n"
        "- `GET  /api/stats/leaderboard` — global leaderboard\n"
    ),
    version=API_VERSION,
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
)


# ---------------------------------------------------------------------------
# CORS
# ---------------------------------------------------------------------------

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.get_allowed_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ---------------------------------------------------------------------------
# Rate limiting middleware
# ---------------------------------------------------------------------------

@app.middleware("http")
async def rate_limit(request: Request, call_next):
    """
    Fixed-window rate limit on ``/api/*`` (health excluded). Every limited
    response carries ``X-RateLimit-*`` headers; denials also get
    ``Retry-After``.
    """
    path = request.url.path
    if (
        not settings.RATE_LIMIT_ENABLED
        or not path.startswith("/api/")
        or path.startswith("/api/health")
    ):
        return await call_next(request)

    config = get_rate_limit_config(path, interval=settings.RATE_LIMIT_INTERVAL_SECONDS)
    identifier = get_rate_limit_identifier(request)
    result = rate_limiter.check(f"{identifier}:{config.limit}", config.limit, config.interval)

    if not result.success:
        retry_after = max(1, int(result.reset - time.time()))
        logger.warning("Rate limit exceeded for %s on %s", identifier, path)
        return JSONResponse(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            content={
                "detail": "Too many requests. Please try again later.",
                "retry_after": retry_after,
            },
            headers={**result.headers(), "Retry-After": str(retry_after)},
        )

    response = await call_next(request)
    for key, value in result.headers().items():
        response.headers[key] = value
    return response


# ---------------------------------------------------------------------------
# Request / response logging middleware
# ---------------------------------------------------------------------------

@app.middleware("http")
async def log_requests(request: Request, call_next):
    """
    Log every request with method, path, status code, and elapsed time.
    Attaches an ``X-Process-Time`` header (milliseconds) to every response.
    """
    t0 = time.monotonic()
    response = await call_next(request)
    elapsed_ms = round((time.monotonic() - t0) * 1000, 2)

    # Skip noisy health-check polling from the frontend
    if request.url.path not in ("/api/health", "/api/health/", "/"):
        logger.info(
            "%s %s → %d  (%.2f ms)",
            request.method,
            request.url.path,
            response.status_code,
            elapsed_ms,
        )

    response.headers["X-Process-Time"] = f"{elapsed_ms}ms"
    return response


# ---------------------------------------------------------------------------
# Global exception handler
# ---------------------------------------------------------------------------

@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Return a structured JSON error for any unhandled exception."""
    logger.error(
        "Unhandled exception on %s %s: %s",
        request.method,
        request.url.path,
        exc,
        exc_info=True,
    )
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "detail": "Internal server error",
            "error": str(exc),
            "path": str(request.url.path),
            "timestamp": utcnow().isoformat(),
        },
    )


# ---------------------------------------------------------------------------
# Routers
# ---------------------------------------------------------------------------

app.include_router(health.router,       prefix="/api/health",       tags=["Health"])
app.include_router(users.router,        prefix="/api/users",        tags=["Users"])
app.include_router(rooms.router,        prefix="/api/rooms",        tags=["Rooms"])
app.include_router(sessions.router,     prefix="/api/sessions",     tags=["Sessions"])
app.include_router(results.router,      prefix="/api/results",      tags=["Results"])
app.include_router(stats.router,        prefix="/api/stats",        tags=["Stats"])
app.include_router(achievements.router, prefix="/api/achievements", tags=["Achievements"])
app.include_router(clans.router,        prefix="/api/clans",        tags=["Clans"])
app.include_router(documents.router,    prefix="/api/documents",    tags=["Documents"])
app.include_router(generation.router,   prefix="/api/generate",     tags=["Generation"])
app.include_router(notes.router,        prefix="/api/notes",        tags=["Notes"])


# ---------------------------------------------------------------------------
# Root
# ---------------------------------------------------------------------------

@app.get("/", tags=["Root"], include_in_schema=False)
async def root():
    """API root — returns basic service info."""
    return {
        "name": "Brain Battle API",
        "version": API_VERSION,
        "description": "Multiplayer Quiz and Study Platform Backend",
        "docs": "/docs",
        "health": "/api/health",
        "endpoints": {
            "users": "/api/users",
            "rooms": "/api/rooms",
            "sessions": "/api/sessions",
            "results": "/api/results",
            "stats": "/api/stats",
            "achievements": "/api/achievements",
            "clans": "/api/clans",
            "documents": "/api/documents",
            "generate": "/api/generate",
            "notes": "/api/notes",
        },
    }


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "app.main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=True,
        log_level="info",
    )
