"""
Fantasy League — FastAPI Application Entry Point.

Group-based fantasy league companion:
  - Groups joined through short shareable codes
  - Append-only round score ledger
  - Point-in-time group rankings with a champion bonus
  - One-shot league-winner vote with a lockable window
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from account_routes import auth_router, profile_router, teams_router, votes_router
from config import settings
from database import create_indexes, create_tables, engine
from errors import AppError, app_error_handler, db_error_handler, validation_error_handler
from limiter import limiter
from routes import router as groups_router

# ── Logging ──────────────────────────────────────────────────────

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s │ %(levelname)-7s │ %(name)s │ %(message)s",
)
logger = logging.getLogger(__name__)


# ── App Lifecycle ────────────────────────────────────────────────

@asynccontextmanager
async def lifespan(application: FastAPI):
    """Startup / shutdown lifecycle handler."""
    # Startup
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        logger.info("✓ Database connected successfully")
    except SQLAlchemyError as e:
        logger.error("✗ Database connection failed: %s", e)

    create_tables()
    create_indexes()

    yield  # ← app is running

    # Shutdown
    engine.dispose()
    logger.info("Database connections closed")


# ── FastAPI App ──────────────────────────────────────────────────

app = FastAPI(
    title=settings.APP_NAME,
    description="Group fantasy league: join codes, round scores, rankings and league-winner votes",
    version=settings.APP_VERSION,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origin_list,
    allow_origin_regex=r"^http://(localhost|127\.0\.0\.1)(:\d+)?$",
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Error handlers
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
app.add_exception_handler(AppError, app_error_handler)
app.add_exception_handler(SQLAlchemyError, db_error_handler)
app.add_exception_handler(RequestValidationError, validation_error_handler)

# Register routes
app.include_router(auth_router)
app.include_router(groups_router)
app.include_router(profile_router)
app.include_router(votes_router)
app.include_router(teams_router)


# ── Health Check ─────────────────────────────────────────────────

@app.get("/health", tags=["Health"])
def health_check():
    """Liveness probe with a database round-trip."""
    try:
        with engine.connect() as conn:
            db_ok = conn.execute(text("SELECT 1")).scalar() == 1
    except SQLAlchemyError as e:
        logger.warning("Health check database ping failed: %s", e)
        db_ok = False
    return {"status": "ok" if db_ok else "degraded", "service": "fantasy-league", "db": db_ok}


if __name__ == "__main__":
    import uvicorn
    # Run the app with auto-reload enabled
    uvicorn.run("app:app", host="127.0.0.1", port=8000, reload=True)
