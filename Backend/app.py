"""
Who's That Pokémon? — FastAPI Application Entry Point.

Provides the game backend with:
  - Guess-the-Pokémon rounds backed by a local PokéAPI cache
  - Server-side scoring, streaks and achievements
  - Daily / weekly / monthly leaderboards with a short Redis cache
  - Password, guest and Google logins with JWT bearer tokens
"""

import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

import config
from auth_routes import router as auth_router
from database import engine, init_db
from errors import register_exception_handlers
from game_routes import router as game_router
from limiter import limiter
from pokemon_routes import router as pokemon_router

# ── Logging ──────────────────────────────────────────────────────

logging.basicConfig(
    level=config.LOG_LEVEL,
    format="%(asctime)s │ %(levelname)-7s │ %(name)s │ %(message)s",
)
logger = logging.getLogger(__name__)


# ── App Lifecycle ────────────────────────────────────────────────

@asynccontextmanager
async def lifespan(application: FastAPI):
    """Startup / shutdown lifecycle handler."""
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        logger.info("✓ Database connected successfully")
    except SQLAlchemyError as e:
        logger.error("✗ Database connection failed: %s", e)

    init_db()

    yield

    engine.dispose()
    logger.info("Database connections closed")


# ── New Relic (Monitoring) ───────────────────────────────────────

if config.NEW_RELIC_CONFIG_FILE:
    try:
        import newrelic.agent
        newrelic.agent.initialize(config.NEW_RELIC_CONFIG_FILE)
        logger.info("✓ New Relic agent initialized")
    except Exception:
        logger.warning("⚠ New Relic agent skipped (check %s and the newrelic dependency)",
                       config.NEW_RELIC_CONFIG_FILE)

# ── FastAPI App ──────────────────────────────────────────────────

app = FastAPI(
    title="Who's That Pokémon? API",
    description="Game sessions, scoring, leaderboards and authentication for the guessing game",
    version=config.APP_VERSION,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.state.limiter = limiter
register_exception_handlers(app)
app.include_router(auth_router)
app.include_router(pokemon_router)
app.include_router(game_router)


# ── Health Check ─────────────────────────────────────────────────

@app.get("/health", tags=["Health"])
def health_check():
    """Simple liveness probe."""
    return {
        "status": "ok",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "version": config.APP_VERSION,
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("app:app", host="127.0.0.1", port=8000, reload=True)
