"""
Engine, session factory and schema bootstrap.
"""

import logging

from sqlalchemy import DateTime, bindparam, create_engine, event, text
from sqlalchemy.orm import sessionmaker

import config
from models import Base

logger = logging.getLogger(__name__)


def _engine_options(url: str) -> dict:
    if url.startswith("sqlite"):
        return {"connect_args": {"check_same_thread": False}}
    return {
        "pool_size": config.DB_POOL_SIZE,
        "max_overflow": config.DB_MAX_OVERFLOW,
        "pool_pre_ping": True,
    }


def enable_sqlite_savepoints(sqlite_engine):
    """Let SQLAlchemy emit BEGIN itself so SAVEPOINT works under pysqlite."""

    @event.listens_for(sqlite_engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(sqlite_engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN")

    return sqlite_engine


engine = create_engine(config.DATABASE_URL, **_engine_options(config.DATABASE_URL))
if engine.dialect.name == "sqlite":
    enable_sqlite_savepoints(engine)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def get_db():
    """Yield a session for the duration of one request."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def with_timestamps(stmt, *names):
    """Bind the named parameters of a text() statement as DateTime columns."""
    return stmt.bindparams(*(bindparam(name, type_=DateTime()) for name in names))


# ── Bootstrap ────────────────────────────────────────────────────

_INDEXES = [
    "CREATE INDEX IF NOT EXISTS idx_gs_user_completed ON game_sessions (user_id, completed_at)",
    "CREATE INDEX IF NOT EXISTS idx_gs_completed_at   ON game_sessions (completed_at)",
    "CREATE INDEX IF NOT EXISTS idx_lb_period_score   ON leaderboards  (period, period_start, score)",
    "CREATE INDEX IF NOT EXISTS idx_pc_flags          ON pokemon_cache (is_legendary, is_mythical)",
]


def init_db(bind=None):
    """Create tables, indexes and the achievement catalog (idempotent)."""
    from achievements import seed_catalog

    bind = bind or engine
    Base.metadata.create_all(bind=bind)
    logger.info("✓ Database tables ensured")

    with bind.connect() as conn:
        for stmt in _INDEXES:
            conn.execute(text(stmt))
        seed_catalog(conn)
        conn.commit()
    logger.info("✓ Database indexes and achievement catalog ensured")
