"""
Game sessions.

A session is one round: a Pokémon, its answer choices and at most one recorded
guess. Rounds played back-to-back share a ``game_id``; ending the game totals
those rounds server-side and feeds the leaderboards.
"""

import json
import logging
from typing import Optional

from sqlalchemy import text
from sqlalchemy.orm import Session

import achievements
import config
import leaderboard_service
import pokemon_service
from database import with_timestamps
from errors import BadRequestError, NotFoundError
from models import GameSession, User, new_id, utcnow
from scoring import calculate_score, default_time_limit, names_match

logger = logging.getLogger(__name__)

SESSION_NOT_FOUND = "Game session not found"


def _require_user(db: Session, user_id: str) -> User:
    user = db.get(User, user_id)
    if user is None:
        raise NotFoundError("User not found")
    return user


# ── Start ────────────────────────────────────────────────────────

def start_session(db: Session, user_id: str, game_mode: str = "classic", difficulty: str = "medium",
                  generation: Optional[int] = None, time_limit: Optional[int] = None,
                  game_id: Optional[str] = None) -> dict:
    _require_user(db, user_id)
    time_limit = time_limit or default_time_limit(game_mode)

    round_data = pokemon_service.get_random(db, difficulty, generation)
    pokemon = round_data["pokemon"]

    session_id = new_id()
    db.add(GameSession(
        id=session_id,
        game_id=game_id or session_id,
        user_id=user_id,
        pokemon_id=pokemon["id"],
        difficulty=difficulty,
        game_mode=game_mode,
        generation=generation,
        time_limit=time_limit,
        hints=json.dumps(round_data["hints"]),
        hints_used=0,
        is_completed=False,
        started_at=utcnow(),
    ))
    db.commit()
    logger.info("Session %s started for user %s (%s/%s)", session_id, user_id, game_mode, difficulty)

    return {
        "session_id": session_id,
        "game_id": game_id or session_id,
        "pokemon": pokemon,
        "choices": round_data["choices"],
        "correct_answer": round_data["correct_answer"],
        "hints": round_data["hints"],
        "time_limit": time_limit,
        "config": {"difficulty": difficulty, "game_mode": game_mode, "generation": generation},
    }


def _open_session(db: Session, user_id: str, session_id: str):
    row = db.execute(
        text(
            """
            SELECT gs.id, gs.game_id, gs.difficulty, gs.hints, gs.hints_used, pc.name AS pokemon_name
            FROM game_sessions gs
            JOIN pokemon_cache pc ON gs.pokemon_id = pc.id
            WHERE gs.id = :sid AND gs.user_id = :uid AND gs.is_completed = :open
            """
        ),
        {"sid": session_id, "uid": user_id, "open": False},
    ).mappings().fetchone()
    if row is None:
        raise NotFoundError(SESSION_NOT_FOUND)
    return row


# ── Guess ────────────────────────────────────────────────────────

_BUMP_STREAK_SQL = with_timestamps(
    text(
        """
        UPDATE users
        SET current_streak = CASE WHEN :correct THEN current_streak + 1 ELSE 0 END,
            best_streak = CASE WHEN :correct AND current_streak + 1 > best_streak
                               THEN current_streak + 1 ELSE best_streak END,
            last_active_at = :now
        WHERE id = :uid
        """
    ),
    "now",
)

_RECORD_GUESS_SQL = with_timestamps(
    text(
        """
        UPDATE game_sessions
        SET selected_answer = :guess, correct_guess = :correct, time_taken = :time_taken,
            score = :score, streak = :streak, completed_at = :now, is_completed = :done
        WHERE id = :sid AND user_id = :uid AND is_completed = :open
        """
    ),
    "now",
)


def submit_guess(db: Session, user_id: str, session_id: str, guess: str, time_taken: float) -> dict:
    """
    Record the single guess for an open round.

    The outcome write only succeeds while the round is still open, so two racing
    submissions cannot both be recorded; the loser sees "session not found".
    """
    session = _open_session(db, user_id, session_id)
    correct = names_match(guess, session["pokemon_name"])
    now = utcnow()

    db.execute(_BUMP_STREAK_SQL, {"correct": correct, "uid": user_id, "now": now})
    streak = db.execute(text("SELECT current_streak FROM users WHERE id = :uid"), {"uid": user_id}).scalar() or 0
    previous_streak = streak - 1 if correct else 0

    score = calculate_score(correct, time_taken, session["difficulty"],
                            streak=previous_streak, hints_used=session["hints_used"])

    result = db.execute(_RECORD_GUESS_SQL, {
        "guess": guess.strip(),
        "correct": correct,
        "time_taken": time_taken,
        "score": score,
        "streak": streak,
        "now": now,
        "done": True,
        "sid": session_id,
        "uid": user_id,
        "open": False,
    })
    if result.rowcount != 1:
        db.rollback()
        raise NotFoundError(SESSION_NOT_FOUND)

    unlocked = achievements.evaluate(db, user_id, {
        "correct": correct, "streak": streak, "time_taken": time_taken, "game_score": None,
    })
    db.commit()

    return {
        "correct": correct,
        "correct_answer": session["pokemon_name"],
        "score": score,
        "streak": streak,
        "achievements": unlocked,
        "is_game_over": True,
    }


# ── Hints ────────────────────────────────────────────────────────

def request_hint(db: Session, user_id: str, session_id: str) -> dict:
    """Reveal the next hint of an open round at the flat hint cost."""
    session = _open_session(db, user_id, session_id)
    hints = json.loads(session["hints"] or "[]")
    used = session["hints_used"]
    if used >= len(hints):
        raise BadRequestError("No more hints available")

    result = db.execute(
        text(
            """
            UPDATE game_sessions SET hints_used = hints_used + 1
            WHERE id = :sid AND user_id = :uid AND is_completed = :open AND hints_used = :used
            """
        ),
        {"sid": session_id, "uid": user_id, "open": False, "used": used},
    )
    if result.rowcount != 1:
        db.rollback()
        raise NotFoundError(SESSION_NOT_FOUND)
    db.commit()

    hint = dict(hints[used], cost=config.HINT_COST)
    return {"hint": hint, "hints_used": used + 1, "hints_remaining": len(hints) - used - 1}


# ── Next round ───────────────────────────────────────────────────

def next_round(db: Session, user_id: str, session_id: str) -> dict:
    """Start a fresh round in the same game once the current one has been answered."""
    previous = db.get(GameSession, session_id)
    if previous is None or previous.user_id != user_id or previous.ended_at is not None:
        raise NotFoundError(SESSION_NOT_FOUND)
    if not previous.is_completed:
        raise BadRequestError("Current round has not been answered yet")

    return start_session(
        db, user_id,
        game_mode=previous.game_mode,
        difficulty=previous.difficulty,
        generation=previous.generation,
        time_limit=previous.time_limit,
        game_id=previous.game_id,
    )


# ── End ──────────────────────────────────────────────────────────

def end_session(db: Session, user_id: str, session_id: str, reported: Optional[dict] = None) -> dict:
    """
    Finish the game ``session_id`` belongs to and credit the leaderboards.

    Totals are recomputed from the stored rounds; client-reported figures are
    only compared and logged. A game can be ended once.
    """
    session = db.get(GameSession, session_id)
    if session is None or session.user_id != user_id:
        raise NotFoundError(SESSION_NOT_FOUND)
    game_id = session.game_id
    now = utcnow()

    claimed = db.execute(
        with_timestamps(
            text(
                """
                UPDATE game_sessions SET ended_at = :now
                WHERE game_id = :gid AND user_id = :uid AND ended_at IS NULL
                """
            ),
            "now",
        ),
        {"now": now, "gid": game_id, "uid": user_id},
    )
    if claimed.rowcount == 0:
        db.rollback()
        raise NotFoundError(SESSION_NOT_FOUND)

    # Unanswered rounds count as misses.
    db.execute(
        with_timestamps(
            text(
                """
                UPDATE game_sessions
                SET is_completed = :done, correct_guess = :miss, score = 0, completed_at = :now
                WHERE game_id = :gid AND user_id = :uid AND is_completed = :open
                """
            ),
            "now",
        ),
        {"done": True, "miss": False, "now": now, "gid": game_id, "uid": user_id, "open": False},
    )

    totals = db.execute(
        text(
            """
            SELECT COALESCE(SUM(score), 0) AS final_score,
                   COALESCE(SUM(time_taken), 0) AS total_time,
                   COALESCE(SUM(CASE WHEN correct_guess THEN 1 ELSE 0 END), 0) AS correct_guesses,
                   COUNT(*) AS total_guesses,
                   COALESCE(MAX(streak), 0) AS best_streak
            FROM game_sessions
            WHERE game_id = :gid AND user_id = :uid
            """
        ),
        {"gid": game_id, "uid": user_id},
    ).mappings().fetchone()

    final_score = int(totals["final_score"])
    correct_guesses = int(totals["correct_guesses"])
    total_guesses = int(totals["total_guesses"])
    total_time = round(float(totals["total_time"]), 2)

    if reported:
        _compare_reported(game_id, reported, final_score, correct_guesses, total_guesses)

    leaderboard_service.update_leaderboard(db, user_id, final_score, correct_guesses, total_guesses, now)

    user = db.get(User, user_id)
    new_records = []
    if final_score > (user.best_game_score or 0):
        user.best_game_score = final_score
        new_records.append("best_score")
    if totals["best_streak"] > _best_streak_elsewhere(db, user_id, game_id):
        new_records.append("best_streak")

    unlocked = achievements.evaluate(db, user_id, {
        "correct": correct_guesses > 0,
        "streak": user.current_streak,
        "time_taken": None,
        "game_score": final_score,
    })
    db.commit()

    rank = leaderboard_service.get_user_rank(db, user_id, "daily", now)
    logger.info("Game %s ended for user %s: %d pts, %d/%d correct",
                game_id, user_id, final_score, correct_guesses, total_guesses)

    return {
        "game_id": game_id,
        "final_score": final_score,
        "total_time": total_time,
        "correct_guesses": correct_guesses,
        "total_guesses": total_guesses,
        "rank": rank,
        "achievements": unlocked,
        "new_records": new_records,
    }


def _best_streak_elsewhere(db: Session, user_id: str, game_id: str) -> int:
    return db.execute(
        text("SELECT COALESCE(MAX(streak), 0) FROM game_sessions WHERE user_id = :uid AND game_id != :gid"),
        {"uid": user_id, "gid": game_id},
    ).scalar() or 0


def _compare_reported(game_id: str, reported: dict, final_score: int, correct: int, total: int):
    expected = {"final_score": final_score, "correct_guesses": correct, "total_guesses": total}
    mismatched = {
        key: (reported[key], value)
        for key, value in expected.items()
        if reported.get(key) is not None and reported[key] != value
    }
    if mismatched:
        logger.warning("Game %s: client totals differ from server totals %s", game_id, mismatched)


# ── Reads ────────────────────────────────────────────────────────

def get_history(db: Session, user_id: str, page: int = 1, limit: int = 20) -> list:
    offset = (page - 1) * limit
    rows = db.execute(
        text(
            """
            SELECT gs.id, gs.game_id, gs.pokemon_id, pc.name AS pokemon_name, pc.sprite_url,
                   gs.difficulty, gs.game_mode, gs.selected_answer, gs.correct_guess,
                   gs.time_taken, gs.score, gs.streak, gs.hints_used, gs.completed_at
            FROM game_sessions gs
            JOIN pokemon_cache pc ON gs.pokemon_id = pc.id
            WHERE gs.user_id = :uid AND gs.is_completed = :done
            ORDER BY gs.completed_at DESC
            LIMIT :limit OFFSET :offset
            """
        ),
        {"uid": user_id, "done": True, "limit": limit, "offset": offset},
    ).mappings().fetchall()
    return [dict(r) for r in rows]


def get_stats(db: Session, user_id: str) -> dict:
    user = _require_user(db, user_id)
    row = db.execute(
        text(
            """
            SELECT COUNT(*) AS total_games,
                   COALESCE(SUM(CASE WHEN correct_guess THEN 1 ELSE 0 END), 0) AS correct_guesses,
                   COALESCE(SUM(score), 0) AS total_score,
                   AVG(time_taken) AS average_time
            FROM game_sessions
            WHERE user_id = :uid AND is_completed = :done
            """
        ),
        {"uid": user_id, "done": True},
    ).mappings().fetchone()

    total_games = int(row["total_games"] or 0)
    correct = int(row["correct_guesses"] or 0)
    accuracy = round(correct / total_games * 100, 2) if total_games else 0.0
    return {
        "total_games": total_games,
        "correct_guesses": correct,
        "total_score": int(row["total_score"] or 0),
        "best_streak": user.best_streak,
        "average_time": round(float(row["average_time"] or 0), 2),
        "accuracy": accuracy,
    }


def get_achievements(db: Session, user_id: str) -> list:
    return achievements.list_for_user(db, user_id)
