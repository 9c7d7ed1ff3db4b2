"""
SQLAlchemy ORM models for the Who's That Pokémon? game.
Tables: users, pokemon_cache, game_sessions, leaderboards, achievements, user_achievements
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    Boolean, Column, DateTime, Float, ForeignKey, Integer, String, Text, UniqueConstraint
)
from sqlalchemy.orm import relationship, declarative_base

Base = declarative_base()


def utcnow() -> datetime:
    """Naive UTC timestamp; every column stores UTC without tzinfo."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def new_id() -> str:
    return str(uuid.uuid4())


class User(Base):
    """A registered, guest or Google-linked player."""

    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=new_id)
    username = Column(String(100), nullable=False, index=True)
    email = Column(String(255), unique=True, nullable=True)
    password_hash = Column(String(255), nullable=True)
    is_guest = Column(Boolean, nullable=False, default=False)
    google_id = Column(String(255), unique=True, nullable=True)
    avatar_url = Column(String(500), nullable=True)
    is_verified = Column(Boolean, nullable=False, default=False)
    email_verification_token = Column(String(36), nullable=True)

    poke_energy = Column(Integer, nullable=False, default=0)
    energy_reset_at = Column(DateTime, nullable=True)

    current_streak = Column(Integer, nullable=False, default=0)
    best_streak = Column(Integer, nullable=False, default=0)
    best_game_score = Column(Integer, nullable=False, default=0)

    created_at = Column(DateTime, nullable=False, default=utcnow)
    last_active_at = Column(DateTime, nullable=True, default=utcnow)

    # Relationships
    game_sessions = relationship("GameSession", back_populates="user", cascade="all, delete-orphan")
    leaderboard_entries = relationship("Leaderboard", back_populates="user", cascade="all, delete-orphan")

    def __repr__(self):
        return f"<User(id={self.id}, username='{self.username}', guest={self.is_guest})>"


class PokemonCache(Base):
    """Locally cached copy of a PokéAPI record. JSON attributes are stored as text."""

    __tablename__ = "pokemon_cache"

    id = Column(Integer, primary_key=True, autoincrement=False)
    name = Column(String(100), unique=True, nullable=False)
    sprite_url = Column(String(500), nullable=False, default="")
    types = Column(Text, nullable=False, default="[]")
    stats = Column(Text, nullable=False, default="{}")
    abilities = Column(Text, nullable=False, default="[]")
    height = Column(Float, nullable=False, default=0)
    weight = Column(Float, nullable=False, default=0)
    base_experience = Column(Integer, nullable=False, default=0)
    is_legendary = Column(Boolean, nullable=False, default=False)
    is_mythical = Column(Boolean, nullable=False, default=False)
    generation = Column(Integer, nullable=False, index=True)
    description = Column(Text, nullable=True)
    evolves_to = Column(String(100), nullable=True)
    cached_at = Column(DateTime, nullable=False, default=utcnow)
    expires_at = Column(DateTime, nullable=False, default=utcnow)

    def __repr__(self):
        return f"<PokemonCache(id={self.id}, name='{self.name}')>"


class GameSession(Base):
    """One guessing round. Rounds played back-to-back share a game_id."""

    __tablename__ = "game_sessions"

    id = Column(String(36), primary_key=True, default=new_id)
    game_id = Column(String(36), nullable=False, index=True)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    pokemon_id = Column(Integer, ForeignKey("pokemon_cache.id"), nullable=False)
    difficulty = Column(String(20), nullable=False)
    game_mode = Column(String(20), nullable=False)
    generation = Column(Integer, nullable=True)
    time_limit = Column(Integer, nullable=False, default=30)
    hints = Column(Text, nullable=False, default="[]")
    hints_used = Column(Integer, nullable=False, default=0)

    selected_answer = Column(String(100), nullable=True)
    correct_guess = Column(Boolean, nullable=True)
    time_taken = Column(Float, nullable=True)
    score = Column(Integer, nullable=False, default=0)
    streak = Column(Integer, nullable=False, default=0)
    is_completed = Column(Boolean, nullable=False, default=False)

    started_at = Column(DateTime, nullable=False, default=utcnow)
    completed_at = Column(DateTime, nullable=True)
    ended_at = Column(DateTime, nullable=True)

    # Relationships
    user = relationship("User", back_populates="game_sessions")
    pokemon = relationship("PokemonCache")

    def __repr__(self):
        return f"<GameSession(id={self.id}, user_id={self.user_id}, score={self.score})>"


class Leaderboard(Base):
    """Running totals for one user in one period window."""

    __tablename__ = "leaderboards"
    __table_args__ = (
        UniqueConstraint("user_id", "period", "period_start", name="uq_leaderboard_window"),
    )

    id = Column(String(36), primary_key=True, default=new_id)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    period = Column(String(10), nullable=False)
    score = Column(Integer, nullable=False, default=0)
    correct_guesses = Column(Integer, nullable=False, default=0)
    total_games = Column(Integer, nullable=False, default=0)
    period_start = Column(DateTime, nullable=False)
    period_end = Column(DateTime, nullable=False)

    # Relationships
    user = relationship("User", back_populates="leaderboard_entries")

    def __repr__(self):
        return f"<Leaderboard(user_id={self.user_id}, period='{self.period}', score={self.score})>"


class Achievement(Base):
    """Static achievement catalog, seeded at startup."""

    __tablename__ = "achievements"

    id = Column(String(50), primary_key=True)
    name = Column(String(100), nullable=False)
    description = Column(String(255), nullable=False)
    icon = Column(String(20), nullable=False, default="")
    category = Column(String(30), nullable=False)
    rarity = Column(String(20), nullable=False)
    is_active = Column(Boolean, nullable=False, default=True)


class UserAchievement(Base):
    """Per-user unlock progress."""

    __tablename__ = "user_achievements"

    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), primary_key=True)
    achievement_id = Column(String(50), ForeignKey("achievements.id"), primary_key=True)
    progress = Column(Integer, nullable=False, default=0)
    is_unlocked = Column(Boolean, nullable=False, default=False)
    unlocked_at = Column(DateTime, nullable=True)
