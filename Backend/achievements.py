"""
Achievement catalog and unlock rules.
"""

import logging

from sqlalchemy import text
from sqlalchemy.orm import Session

from database import with_timestamps
from models import utcnow

logger = logging.getLogger(__name__)

HIGH_SCORE_THRESHOLD = 500
SPEED_DEMON_SECONDS = 5

ACHIEVEMENTS = [
    {"id": "first-correct", "name": "First Steps", "description": "Make your first correct guess!",
     "icon": "🎯", "category": "progress", "rarity": "common"},
    {"id": "streak-5", "name": "Getting Hot", "description": "Get a streak of 5 or more!",
     "icon": "🔥", "category": "streak", "rarity": "uncommon"},
    {"id": "streak-10", "name": "On Fire", "description": "Get a streak of 10 or more!",
     "icon": "🔥🔥", "category": "streak", "rarity": "rare"},
    {"id": "speed-demon", "name": "Speed Demon", "description": "Guess correctly in under 5 seconds!",
     "icon": "⚡", "category": "speed", "rarity": "uncommon"},
    {"id": "high-score", "name": "High Scorer", "description": "Score 500+ points in a single game!",
     "icon": "⭐", "category": "score", "rarity": "rare"},
]

_BY_ID = {a["id"]: a for a in ACHIEVEMENTS}

# Each rule sees one outcome: correct, streak, time_taken, game_score (None until the game ends).
RULES = {
    "first-correct": lambda o: o["correct"],
    "streak-5": lambda o: o["correct"] and o["streak"] >= 5,
    "streak-10": lambda o: o["correct"] and o["streak"] >= 10,
    "speed-demon": lambda o: o["correct"] and o.get("time_taken") is not None
    and o["time_taken"] < SPEED_DEMON_SECONDS,
    "high-score": lambda o: o.get("game_score") is not None and o["game_score"] >= HIGH_SCORE_THRESHOLD,
}


def seed_catalog(conn):
    for achievement in ACHIEVEMENTS:
        conn.execute(
            text(
                """
                INSERT INTO achievements (id, name, description, icon, category, rarity, is_active)
                VALUES (:id, :name, :description, :icon, :category, :rarity, :active)
                ON CONFLICT (id) DO NOTHING
                """
            ),
            {**achievement, "active": True},
        )


_UNLOCK_SQL = with_timestamps(
    text(
        """
        INSERT INTO user_achievements (user_id, achievement_id, progress, is_unlocked, unlocked_at)
        VALUES (:uid, :aid, 100, :unlocked, :now)
        ON CONFLICT (user_id, achievement_id) DO NOTHING
        """
    ),
    "now",
)


def evaluate(db: Session, user_id: str, outcome: dict) -> list:
    """
    Unlock every achievement whose rule matches ``outcome``.

    Returns only the achievements this call newly unlocked. Caller commits.
    """
    unlocked = []
    now = utcnow()
    for achievement_id, rule in RULES.items():
        if not rule(outcome):
            continue
        result = db.execute(_UNLOCK_SQL, {"uid": user_id, "aid": achievement_id, "unlocked": True, "now": now})
        if result.rowcount == 1:
            a = _BY_ID[achievement_id]
            unlocked.append({k: a[k] for k in ("id", "name", "description", "icon")})
            logger.info("Achievement %s unlocked for user %s", achievement_id, user_id)
    return unlocked


def list_for_user(db: Session, user_id: str) -> list:
    rows = db.execute(
        text(
            """
            SELECT a.id, a.name, a.description, a.icon, a.category, a.rarity,
                   COALESCE(ua.progress, 0) AS progress,
                   COALESCE(ua.is_unlocked, :locked) AS is_unlocked,
                   ua.unlocked_at
            FROM achievements a
            LEFT JOIN user_achievements ua ON a.id = ua.achievement_id AND ua.user_id = :uid
            WHERE a.is_active = :active
            ORDER BY a.category, a.rarity, a.id
            """
        ),
        {"uid": user_id, "locked": False, "active": True},
    ).mappings().fetchall()
    return [dict(r) for r in rows]
