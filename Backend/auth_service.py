"""
Identity resolution: password, guest and Google logins, profile updates,
and the once-per-day energy refill applied whenever tokens are issued.
"""

import logging
from datetime import datetime
from typing import Optional

from sqlalchemy import func, or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

import config
from errors import AuthError, BadRequestError, ConflictError, NotFoundError
from models import User, new_id, utcnow
from security import REFRESH, decode_token, hash_password, issue_token_pair, verify_password

logger = logging.getLogger(__name__)

PROFILE_FIELDS = ("username", "email", "avatar_url")


def serialize_user(user: User) -> dict:
    return {
        "id": user.id,
        "username": user.username,
        "email": user.email,
        "is_guest": bool(user.is_guest),
        "is_verified": bool(user.is_verified),
        "avatar_url": user.avatar_url,
        "poke_energy": user.poke_energy,
        "energy_reset_at": user.energy_reset_at,
        "current_streak": user.current_streak,
        "best_streak": user.best_streak,
        "created_at": user.created_at,
        "last_active_at": user.last_active_at,
    }


def refresh_daily_energy(user: User, now: Optional[datetime] = None) -> bool:
    """Refill energy once per calendar day. Returns True if a refill happened."""
    now = now or utcnow()
    if user.energy_reset_at is not None and user.energy_reset_at.date() == now.date():
        return False
    user.poke_energy = config.DAILY_ENERGY
    user.energy_reset_at = now
    return True


def _token_response(db: Session, user: User) -> dict:
    refresh_daily_energy(user)
    user.last_active_at = utcnow()
    db.commit()
    db.refresh(user)
    return {"user": serialize_user(user), **issue_token_pair(user.id)}


def login(db: Session, email: str, password: str) -> dict:
    user = (
        db.query(User)
        .filter(func.lower(User.email) == email.strip().lower(), User.is_guest.is_(False))
        .first()
    )
    if user is None or not verify_password(password, user.password_hash):
        raise AuthError("Invalid credentials")
    return _token_response(db, user)


def register(db: Session, username: str, email: str, password: str) -> dict:
    username, email = username.strip(), email.strip().lower()
    existing = (
        db.query(User.id)
        .filter(or_(func.lower(User.email) == email, User.username == username))
        .first()
    )
    if existing:
        raise ConflictError("User already exists")

    user = User(
        id=new_id(),
        username=username,
        email=email,
        password_hash=hash_password(password),
        is_guest=False,
        is_verified=False,
        email_verification_token=new_id(),
    )
    db.add(user)
    try:
        db.flush()
    except IntegrityError:
        db.rollback()
        logger.info("Duplicate registration rejected at insert for %s", email)
        raise ConflictError("User already exists")
    logger.info("Registered user %s (%s)", user.id, username)
    return _token_response(db, user)


def guest_login(db: Session, username: Optional[str] = None) -> dict:
    user_id = new_id()
    user = User(
        id=user_id,
        username=(username or "").strip() or f"trainer_{user_id[:6]}",
        is_guest=True,
        is_verified=True,
    )
    db.add(user)
    db.flush()
    logger.info("Guest user %s created", user_id)
    return _token_response(db, user)


def refresh(db: Session, refresh_token: str) -> dict:
    user_id = decode_token(refresh_token, REFRESH) if refresh_token else None
    user = db.get(User, user_id) if user_id else None
    if user is None:
        raise AuthError("Token refresh failed")
    return _token_response(db, user)


def login_with_google_profile(db: Session, profile: dict) -> dict:
    """
    Resolve a Google profile (keys: sub, email, name, picture) to a local user.

    Lookup order is the linked Google subject, then a matching email (which gets
    linked), then a brand-new account. Name and avatar only change when Google
    supplies a value. Runs in a single transaction.
    """
    google_id = profile.get("sub")
    if not google_id:
        raise BadRequestError("Missing Google subject (sub)")
    email = (profile.get("email") or "").strip().lower() or None
    name = profile.get("name") or None
    avatar = profile.get("picture") or None

    try:
        user = db.query(User).filter(User.google_id == google_id).first()
        if user is None and email:
            user = db.query(User).filter(func.lower(User.email) == email).first()
            if user is not None:
                user.google_id = google_id
                user.is_guest = False
                user.is_verified = True
                logger.info("Linked Google account to existing user %s", user.id)

        if user is None:
            user_id = new_id()
            user = User(
                id=user_id,
                google_id=google_id,
                username=name or (email.split("@")[0] if email else f"trainer_{user_id[:6]}"),
                email=email,
                is_guest=False,
                is_verified=True,
                avatar_url=avatar,
            )
            db.add(user)
            logger.info("Created user %s from Google login", user_id)
        else:
            if name is not None:
                user.username = name
            if avatar is not None:
                user.avatar_url = avatar

        db.flush()
        return _token_response(db, user)
    except Exception:
        db.rollback()
        raise


def get_user(db: Session, user_id: str) -> dict:
    user = db.get(User, user_id)
    if user is None:
        raise NotFoundError("User not found")
    if refresh_daily_energy(user):
        db.commit()
        db.refresh(user)
    return serialize_user(user)


def update_profile(db: Session, user_id: str, data: dict) -> dict:
    updates = {k: v for k, v in data.items() if k in PROFILE_FIELDS and v is not None}
    if not updates:
        raise BadRequestError("No valid fields to update")

    user = db.get(User, user_id)
    if user is None:
        raise NotFoundError("User not found")

    if "email" in updates:
        updates["email"] = updates["email"].strip().lower()
        taken = db.query(User.id).filter(func.lower(User.email) == updates["email"], User.id != user_id).first()
        if taken:
            raise ConflictError("Email already in use")
    if "username" in updates:
        updates["username"] = updates["username"].strip()
        taken = db.query(User.id).filter(
            User.username == updates["username"], User.id != user_id, User.is_guest.is_(False)
        ).first()
        if taken:
            raise ConflictError("Username already in use")

    for field, value in updates.items():
        setattr(user, field, value)
    db.commit()
    db.refresh(user)
    return serialize_user(user)
