"""
Password hashing, JWT access/refresh tokens and the bearer-token dependency.
"""

import hashlib
import hmac
import logging
import secrets
import time
from typing import Optional

import jwt
from fastapi import Depends, Header
from sqlalchemy.orm import Session

import config
from database import get_db
from errors import AuthError, UNAUTHORIZED_MESSAGE
from models import User

logger = logging.getLogger(__name__)

ALGORITHM = "HS256"
ACCESS = "access"
REFRESH = "refresh"

PBKDF2_ITERATIONS = 260_000


# ── Passwords ────────────────────────────────────────────────────

def hash_password(password: str, salt: Optional[str] = None) -> str:
    salt = salt or secrets.token_hex(16)
    digest = hashlib.pbkdf2_hmac("sha256", password.encode("utf-8"), salt.encode("utf-8"), PBKDF2_ITERATIONS)
    return f"pbkdf2_sha256${PBKDF2_ITERATIONS}${salt}${digest.hex()}"


def verify_password(password: str, password_hash: Optional[str]) -> bool:
    if not password_hash:
        return False
    try:
        algorithm, iterations, salt, expected = password_hash.split("$")
    except ValueError:
        return False
    if algorithm != "pbkdf2_sha256":
        return False
    digest = hashlib.pbkdf2_hmac("sha256", password.encode("utf-8"), salt.encode("utf-8"), int(iterations))
    return hmac.compare_digest(digest.hex(), expected)


# ── Tokens ───────────────────────────────────────────────────────

def create_token(user_id: str, token_type: str, expires_in: Optional[int] = None) -> str:
    if expires_in is None:
        expires_in = config.JWT_EXPIRATION if token_type == ACCESS else config.JWT_REFRESH_EXPIRATION
    now = int(time.time())
    payload = {"sub": user_id, "type": token_type, "iat": now, "exp": now + expires_in}
    return jwt.encode(payload, config.JWT_SECRET, algorithm=ALGORITHM)


def decode_token(token: str, expected_type: str) -> Optional[str]:
    """User id carried by a valid token of ``expected_type``; None otherwise."""
    try:
        payload = jwt.decode(token, config.JWT_SECRET, algorithms=[ALGORITHM])
    except jwt.InvalidTokenError as exc:
        logger.debug("Rejected %s token: %s", expected_type, exc)
        return None
    if payload.get("type") != expected_type:
        return None
    return payload.get("sub")


def issue_token_pair(user_id: str) -> dict:
    return {
        "token": create_token(user_id, ACCESS),
        "refresh_token": create_token(user_id, REFRESH),
        "expires_in": config.JWT_EXPIRATION,
    }


# ── Dependency ───────────────────────────────────────────────────

def _bearer_token(authorization: Optional[str]) -> Optional[str]:
    if not authorization:
        return None
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


def get_current_user(authorization: Optional[str] = Header(None), db: Session = Depends(get_db)) -> User:
    """Resolve the bearer access token to a user, or fail with a uniform 401."""
    token = _bearer_token(authorization)
    user_id = decode_token(token, ACCESS) if token else None
    user = db.get(User, user_id) if user_id else None
    if user is None:
        raise AuthError("Unauthorized", detail=UNAUTHORIZED_MESSAGE)
    return user
