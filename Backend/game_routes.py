"""
Game routes: rounds, hints, results and the leaderboard.

Leaderboard reads are cached in Redis for a few seconds; ending a game drops
every cached page.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.orm import Session

import config
import game_service
import leaderboard_service
from cache import cache_get, cache_invalidate_prefix, cache_set
from database import get_db
from limiter import limiter
from models import User
from schemas import (
    AchievementStatus,
    ApiResponse,
    Difficulty,
    EndGameData,
    EndGameRequest,
    GameMode,
    GuessData,
    GuessRequest,
    HintData,
    HistoryItem,
    LeaderboardRow,
    Period,
    SessionRef,
    StartGameData,
    StartGameRequest,
    Stats,
    ok,
)
from security import get_current_user

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/game", tags=["Game"])

LEADERBOARD_CACHE_PREFIX = "leaderboard:"


# ── Rounds ───────────────────────────────────────────────────────

@router.post("/start", response_model=ApiResponse[StartGameData])
@limiter.limit(config.RATE_LIMIT)
def start_game(request: Request, payload: StartGameRequest,
               user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    data = game_service.start_session(
        db, user.id,
        game_mode=payload.game_mode,
        difficulty=payload.difficulty,
        generation=payload.generation,
        time_limit=payload.time_limit,
    )
    return ok(data, "Game started")


@router.post("/guess", response_model=ApiResponse[GuessData])
@limiter.limit(config.RATE_LIMIT)
def submit_guess(request: Request, payload: GuessRequest,
                 user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    data = game_service.submit_guess(db, user.id, payload.session_id, payload.guess, payload.time_taken)
    return ok(data, "Correct!" if data["correct"] else "Wrong answer")


@router.post("/hint", response_model=ApiResponse[HintData])
@limiter.limit(config.RATE_LIMIT)
def request_hint(request: Request, payload: SessionRef,
                 user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    return ok(game_service.request_hint(db, user.id, payload.session_id))


@router.post("/next", response_model=ApiResponse[StartGameData])
@limiter.limit(config.RATE_LIMIT)
def next_round(request: Request, payload: SessionRef,
               user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    return ok(game_service.next_round(db, user.id, payload.session_id), "Next round")


@router.post("/end", response_model=ApiResponse[EndGameData])
@limiter.limit(config.RATE_LIMIT)
def end_game(request: Request, payload: EndGameRequest,
             user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    reported = payload.model_dump(exclude={"session_id"}, exclude_none=True)
    data = game_service.end_session(db, user.id, payload.session_id, reported)
    cache_invalidate_prefix(LEADERBOARD_CACHE_PREFIX)
    return ok(data, "Game ended")


# ── Player views ─────────────────────────────────────────────────

@router.get("/history", response_model=ApiResponse[list[HistoryItem]])
def history(page: int = Query(1, ge=1), limit: int = Query(20, ge=1, le=100),
            user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    return ok(game_service.get_history(db, user.id, page, limit))


@router.get("/stats", response_model=ApiResponse[Stats])
def stats(user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    return ok(game_service.get_stats(db, user.id))


@router.get("/achievements", response_model=ApiResponse[list[AchievementStatus]])
def achievements(user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    return ok(game_service.get_achievements(db, user.id))


# ── Leaderboard ──────────────────────────────────────────────────

@router.get("/leaderboard", response_model=ApiResponse[list[LeaderboardRow]])
def leaderboard(period: Period = "daily",
                page: int = Query(1, ge=1),
                limit: int = Query(20, ge=1, le=100),
                game_mode: Optional[GameMode] = Query(None, alias="gameMode"),
                difficulty: Optional[Difficulty] = None,
                db: Session = Depends(get_db)):
    cache_key = f"{LEADERBOARD_CACHE_PREFIX}{period}:{page}:{limit}:{game_mode or '-'}:{difficulty or '-'}"
    cached = cache_get(cache_key)
    if cached is not None:
        return ok(cached)

    rows = leaderboard_service.get_leaderboard(db, period, page, limit, game_mode, difficulty)
    cache_set(cache_key, rows)
    return ok(rows)
