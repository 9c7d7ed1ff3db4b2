"""
Pydantic schemas for request validation and response serialization.

Everything on the wire is camelCase; services work with snake_case dicts and
the models accept either.
"""

from datetime import datetime, timezone
from typing import Generic, Literal, Optional, TypeVar

from pydantic import BaseModel, ConfigDict, EmailStr, Field
from pydantic.alias_generators import to_camel

T = TypeVar("T")

Difficulty = Literal["easy", "medium", "hard", "expert"]
GameMode = Literal["classic", "speed", "streak", "daily"]
Period = Literal["daily", "weekly", "monthly", "all_time"]


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


def _now():
    return datetime.now(timezone.utc)


class ApiResponse(CamelModel, Generic[T]):
    """Success envelope shared by every endpoint."""

    success: bool = True
    data: Optional[T] = None
    message: Optional[str] = None
    timestamp: datetime = Field(default_factory=_now)


def ok(data=None, message: Optional[str] = None) -> dict:
    return {"success": True, "data": data, "message": message, "timestamp": _now()}


# ── Request Schemas ──────────────────────────────────────────────

class LoginRequest(CamelModel):
    email: str = Field(..., min_length=3)
    password: str = Field(..., min_length=1)


class RegisterRequest(CamelModel):
    username: str = Field(..., min_length=3, max_length=50)
    email: EmailStr
    password: str = Field(..., min_length=6)


class GuestRequest(CamelModel):
    username: Optional[str] = Field(default=None, max_length=50)


class RefreshRequest(CamelModel):
    refresh_token: str


class GoogleCallbackRequest(CamelModel):
    code: str = Field(..., min_length=1)
    state: Optional[str] = None


class ProfileUpdate(CamelModel):
    username: Optional[str] = Field(default=None, min_length=3, max_length=50)
    email: Optional[EmailStr] = None
    avatar_url: Optional[str] = Field(default=None, max_length=500)


class StartGameRequest(CamelModel):
    game_mode: GameMode = "classic"
    difficulty: Difficulty = "medium"
    generation: Optional[int] = Field(default=None, ge=1, le=9)
    time_limit: Optional[int] = Field(default=None, gt=0, le=600)


class GuessRequest(CamelModel):
    session_id: str
    guess: str = Field(..., max_length=100)
    time_taken: float = Field(..., ge=0)


class SessionRef(CamelModel):
    session_id: str


class EndGameRequest(CamelModel):
    """Client-side totals are optional and only cross-checked against the server's."""

    session_id: str
    final_score: Optional[int] = Field(default=None, ge=0)
    total_time: Optional[float] = Field(default=None, ge=0)
    correct_guesses: Optional[int] = Field(default=None, ge=0)
    total_guesses: Optional[int] = Field(default=None, ge=0)


# ── Response Schemas ─────────────────────────────────────────────

class TypeTag(CamelModel):
    name: str
    color: str


class PokemonOut(CamelModel):
    id: int
    name: str
    sprite_url: str = ""
    types: list[TypeTag] = []
    stats: dict[str, int] = {}
    abilities: list[str] = []
    height: Optional[float] = None
    weight: Optional[float] = None
    base_experience: Optional[int] = None
    is_legendary: bool = False
    is_mythical: bool = False
    generation: Optional[int] = None
    description: Optional[str] = None
    evolves_to: Optional[str] = None


class Pagination(CamelModel):
    page: int
    limit: int
    total: int
    total_pages: int


class PokemonList(CamelModel):
    pokemon: list[PokemonOut]
    pagination: Pagination


class Hint(CamelModel):
    type: str
    content: str
    cost: int


class RandomPokemon(CamelModel):
    pokemon: PokemonOut
    choices: list[str]
    correct_answer: str
    hints: list[Hint]


class GameConfig(CamelModel):
    difficulty: Difficulty
    game_mode: GameMode
    generation: Optional[int] = None


class StartGameData(RandomPokemon):
    session_id: str
    game_id: str
    time_limit: int
    config: GameConfig


class AchievementOut(CamelModel):
    id: str
    name: str
    description: str
    icon: Optional[str] = None


class GuessData(CamelModel):
    correct: bool
    correct_answer: str
    score: int
    streak: int
    achievements: list[AchievementOut] = []
    is_game_over: bool = True


class HintData(CamelModel):
    hint: Hint
    hints_used: int
    hints_remaining: int


class EndGameData(CamelModel):
    game_id: str
    final_score: int
    total_time: float
    correct_guesses: int
    total_guesses: int
    rank: Optional[int] = None
    achievements: list[AchievementOut] = []
    new_records: list[str] = []


class HistoryItem(CamelModel):
    id: str
    game_id: Optional[str] = None
    pokemon_id: int
    pokemon_name: str
    sprite_url: Optional[str] = None
    difficulty: str
    game_mode: str
    selected_answer: Optional[str] = None
    correct_guess: Optional[bool] = None
    time_taken: Optional[float] = None
    score: int = 0
    streak: int = 0
    hints_used: int = 0
    completed_at: Optional[datetime] = None


class Stats(CamelModel):
    total_games: int
    correct_guesses: int
    total_score: int
    best_streak: int
    average_time: float
    accuracy: float


class AchievementStatus(AchievementOut):
    category: Optional[str] = None
    rarity: Optional[str] = None
    progress: int = 0
    is_unlocked: bool = False
    unlocked_at: Optional[datetime] = None


class LeaderboardRow(CamelModel):
    rank: int
    user_id: str
    username: str
    is_guest: bool = False
    avatar_url: Optional[str] = None
    total_score: int
    best_streak: int = 0
    total_games: int
    correct_guesses: int = 0
    average_time: float = 0.0


class UserOut(CamelModel):
    id: str
    username: str
    email: Optional[str] = None
    is_guest: bool
    is_verified: bool = False
    avatar_url: Optional[str] = None
    poke_energy: int = 0
    energy_reset_at: Optional[datetime] = None
    current_streak: int = 0
    best_streak: int = 0
    created_at: Optional[datetime] = None
    last_active_at: Optional[datetime] = None


class TokenData(CamelModel):
    user: UserOut
    token: str
    refresh_token: str
    expires_in: int


class GoogleAuthUrl(CamelModel):
    auth_url: str
