"""
Scoring rules. Pure functions, no database access.

The additive penalty model (``score_guess``) is canonical. ``legacy_score`` is
the older multiplicative model, still selectable with SCORING_MODEL=legacy.
"""

import math

import config

GAME_MODE_TIME_LIMITS = {"classic": 30, "speed": 15, "streak": 45, "daily": 30}
DEFAULT_TIME_LIMIT = 30

BASE_SCORE = 100
TIME_PENALTY_PER_SECOND = 2
DIFFICULTY_BONUS = {"easy": 0, "medium": 10, "hard": 20, "expert": 30}
STREAK_BONUS_PER_GUESS = 5
STREAK_BONUS_CAP = 25
MIN_SCORE = 5

LEGACY_TIME_WINDOW = 30
LEGACY_TIME_BONUS_PER_SECOND = 2
DIFFICULTY_MULTIPLIERS = {"easy": 1.0, "medium": 1.5, "hard": 2.0, "expert": 3.0}


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def names_match(guess: str, name: str) -> bool:
    """Case-insensitive, whitespace-trimmed comparison."""
    return guess.strip().casefold() == name.strip().casefold()


def default_time_limit(game_mode: str) -> int:
    return GAME_MODE_TIME_LIMITS.get(game_mode, DEFAULT_TIME_LIMIT)


def score_guess(correct: bool, time_taken: float, difficulty: str,
                streak: int = 0, hints_used: int = 0) -> int:
    """
    Points for one guess.

    ``streak`` is the streak *before* this guess. A correct guess never scores
    below MIN_SCORE; a wrong guess scores 0.
    """
    if not correct:
        return 0

    score = BASE_SCORE
    score -= _round_half_up(max(0.0, time_taken) * TIME_PENALTY_PER_SECOND)
    score -= hints_used * config.HINT_COST
    score += DIFFICULTY_BONUS.get(difficulty, 0)
    score += min(streak * STREAK_BONUS_PER_GUESS, STREAK_BONUS_CAP)
    return max(MIN_SCORE, score)


def legacy_score(correct: bool, time_taken: float, difficulty: str) -> int:
    """Deprecated: (100 + time bonus) scaled by the difficulty multiplier."""
    if not correct:
        return 0
    time_bonus = max(0.0, LEGACY_TIME_WINDOW - time_taken) * LEGACY_TIME_BONUS_PER_SECOND
    return _round_half_up((BASE_SCORE + time_bonus) * DIFFICULTY_MULTIPLIERS.get(difficulty, 1.0))


def calculate_score(correct: bool, time_taken: float, difficulty: str,
                    streak: int = 0, hints_used: int = 0, model: str = None) -> int:
    if (model or config.SCORING_MODEL) == "legacy":
        return legacy_score(correct, time_taken, difficulty)
    return score_guess(correct, time_taken, difficulty, streak, hints_used)
