"""
Period leaderboards.

Running totals live in ``leaderboards`` (one row per user, period and window),
incremented once per finished game. Public standings are aggregated from
completed game sessions inside the window.
"""

import calendar
import logging
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy import text
from sqlalchemy.orm import Session

from database import with_timestamps
from errors import BadRequestError
from models import new_id, utcnow

logger = logging.getLogger(__name__)

PERIODS = ("daily", "weekly", "monthly")
ALL_TIME = "all_time"

_ALL_TIME_WINDOW = (datetime(1970, 1, 1), datetime(2099, 12, 31, 23, 59, 59))


def period_window(period: str, now: Optional[datetime] = None) -> tuple:
    """(start, end) of the window containing ``now``.

    ``end`` is the last whole second of the window and is only displayed;
    range filters use the half-open interval up to ``window_limit``.
    """
    now = now or utcnow()
    day = now.replace(hour=0, minute=0, second=0, microsecond=0)
    last_second = timedelta(days=1) - timedelta(seconds=1)

    if period == "daily":
        return day, day + last_second
    if period == "weekly":
        monday = day - timedelta(days=day.weekday())
        return monday, monday + timedelta(days=6) + last_second
    if period == "monthly":
        first = day.replace(day=1)
        days_in_month = calendar.monthrange(first.year, first.month)[1]
        return first, first.replace(day=days_in_month) + last_second
    if period == ALL_TIME:
        return _ALL_TIME_WINDOW
    raise BadRequestError(f"Unknown leaderboard period: {period}")


def window_limit(end: datetime) -> datetime:
    """First instant after a window ending at ``end``."""
    return end + timedelta(seconds=1)


_UPSERT_SQL = with_timestamps(
    text(
        """
        INSERT INTO leaderboards
            (id, user_id, period, score, correct_guesses, total_games, period_start, period_end)
        VALUES (:id, :uid, :period, :score, :correct, :total, :start, :end)
        ON CONFLICT (user_id, period, period_start)
        DO UPDATE SET
            score = leaderboards.score + excluded.score,
            correct_guesses = leaderboards.correct_guesses + excluded.correct_guesses,
            total_games = leaderboards.total_games + excluded.total_games
        """
    ),
    "start",
    "end",
)


def update_leaderboard(db: Session, user_id: str, score: int, correct_guesses: int,
                       total_guesses: int, now: Optional[datetime] = None):
    """Add one game's totals to the user's daily, weekly and monthly rows. Caller commits."""
    now = now or utcnow()
    for period in PERIODS:
        start, end = period_window(period, now)
        db.execute(
            _UPSERT_SQL,
            {
                "id": new_id(),
                "uid": user_id,
                "period": period,
                "score": score,
                "correct": correct_guesses,
                "total": total_guesses,
                "start": start,
                "end": end,
            },
        )
    logger.info("Leaderboard updated for user %s (+%d)", user_id, score)


def get_leaderboard(db: Session, period: str = "daily", page: int = 1, limit: int = 20,
                    game_mode: Optional[str] = None, difficulty: Optional[str] = None,
                    now: Optional[datetime] = None) -> list:
    """Users ranked by total score over completed rounds in the period window."""
    start, end = period_window(period, now)
    offset = (page - 1) * limit

    params = {"start": start, "until": window_limit(end), "done": True, "limit": limit, "offset": offset}
    filters = ""
    if game_mode:
        filters += " AND gs.game_mode = :game_mode"
        params["game_mode"] = game_mode
    if difficulty:
        filters += " AND gs.difficulty = :difficulty"
        params["difficulty"] = difficulty

    rows = db.execute(
        with_timestamps(
            text(
                f"""
                SELECT
                    u.id AS user_id, u.username, u.is_guest, u.avatar_url,
                    COALESCE(SUM(gs.score), 0) AS total_score,
                    COALESCE(MAX(gs.streak), 0) AS best_streak,
                    COUNT(gs.id) AS total_games,
                    SUM(CASE WHEN gs.correct_guess THEN 1 ELSE 0 END) AS correct_guesses,
                    AVG(gs.time_taken) AS average_time
                FROM users u
                JOIN game_sessions gs ON u.id = gs.user_id
                WHERE gs.is_completed = :done
                  AND gs.completed_at >= :start
                  AND gs.completed_at < :until
                  {filters}
                GROUP BY u.id, u.username, u.is_guest, u.avatar_url
                ORDER BY total_score DESC, u.username
                LIMIT :limit OFFSET :offset
                """
            ),
            "start",
            "until",
        ),
        params,
    ).mappings().fetchall()

    leaderboard = []
    for index, row in enumerate(rows):
        entry = dict(row)
        entry["rank"] = offset + index + 1
        entry["average_time"] = round(float(entry["average_time"] or 0), 2)
        leaderboard.append(entry)
    return leaderboard


def get_user_rank(db: Session, user_id: str, period: str = "daily",
                  now: Optional[datetime] = None) -> Optional[int]:
    """1 + number of users with a higher running total in the same window."""
    start, _ = period_window(period, now)
    row = db.execute(
        with_timestamps(
            text(
                """
                SELECT
                    (SELECT COUNT(*) + 1 FROM leaderboards other
                     WHERE other.period = l.period
                       AND other.period_start = l.period_start
                       AND other.score > l.score) AS computed_rank
                FROM leaderboards l
                WHERE l.user_id = :uid AND l.period = :period AND l.period_start = :start
                """
            ),
            "start",
        ),
        {"uid": user_id, "period": period, "start": start},
    ).fetchone()
    return row[0] if row else None


def get_entry(db: Session, user_id: str, period: str = "daily", now: Optional[datetime] = None):
    start, _ = period_window(period, now)
    row = db.execute(
        with_timestamps(
            text(
                """
                SELECT score, correct_guesses, total_games, period_start, period_end
                FROM leaderboards
                WHERE user_id = :uid AND period = :period AND period_start = :start
                """
            ),
            "start",
        ),
        {"uid": user_id, "period": period, "start": start},
    ).mappings().fetchone()
    return dict(row) if row else None
