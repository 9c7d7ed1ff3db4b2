"""
Authentication routes.

Endpoints:
  POST  /api/auth/login            — Email + password login
  POST  /api/auth/register         — Create an account
  POST  /api/auth/guest            — Play without an account
  POST  /api/auth/refresh          — Trade a refresh token for a new pair
  POST  /api/auth/logout           — Stateless; the client drops its tokens
  GET   /api/auth/google/url       — Google consent URL
  POST  /api/auth/google/callback  — Finish the Google code flow
  GET   /api/auth/me               — Current user
  PATCH /api/auth/profile          — Update username / email / avatar
"""

import logging
import secrets
from typing import Optional

from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

import auth_service
import config
from database import get_db
from google_oauth import GoogleOAuthClient
from limiter import limiter
from models import User
from schemas import (
    ApiResponse,
    GoogleAuthUrl,
    GoogleCallbackRequest,
    GuestRequest,
    LoginRequest,
    ProfileUpdate,
    RefreshRequest,
    RegisterRequest,
    TokenData,
    UserOut,
    ok,
)
from security import get_current_user

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/auth", tags=["Auth"])


def get_google_client() -> GoogleOAuthClient:
    return GoogleOAuthClient()


# ── Password / guest ─────────────────────────────────────────────

@router.post("/login", response_model=ApiResponse[TokenData])
@limiter.limit(config.RATE_LIMIT)
def login(request: Request, payload: LoginRequest, db: Session = Depends(get_db)):
    return ok(auth_service.login(db, payload.email, payload.password), "Login successful")


@router.post("/register", response_model=ApiResponse[TokenData], status_code=201)
@limiter.limit(config.RATE_LIMIT)
def register(request: Request, payload: RegisterRequest, db: Session = Depends(get_db)):
    data = auth_service.register(db, payload.username, payload.email, payload.password)
    return ok(data, "Registration successful")


@router.post("/guest", response_model=ApiResponse[TokenData])
@limiter.limit(config.RATE_LIMIT)
def guest(request: Request, payload: Optional[GuestRequest] = None, db: Session = Depends(get_db)):
    username = payload.username if payload else None
    return ok(auth_service.guest_login(db, username), "Guest session created")


@router.post("/refresh", response_model=ApiResponse[TokenData])
@limiter.limit(config.RATE_LIMIT)
def refresh(request: Request, payload: RefreshRequest, db: Session = Depends(get_db)):
    return ok(auth_service.refresh(db, payload.refresh_token), "Token refreshed")


@router.post("/logout", response_model=ApiResponse[dict])
def logout():
    return ok(message="Logged out")


# ── Google ───────────────────────────────────────────────────────

@router.get("/google/url", response_model=ApiResponse[GoogleAuthUrl])
def google_url(state: Optional[str] = None, google: GoogleOAuthClient = Depends(get_google_client)):
    url = google.get_auth_url(state or secrets.token_urlsafe(16))
    return ok({"auth_url": url})


@router.post("/google/callback", response_model=ApiResponse[TokenData])
@limiter.limit(config.RATE_LIMIT)
def google_callback(request: Request, payload: GoogleCallbackRequest, db: Session = Depends(get_db),
                    google: GoogleOAuthClient = Depends(get_google_client)):
    tokens = google.exchange_code(payload.code)
    profile = google.get_user_info(tokens["access_token"])
    return ok(auth_service.login_with_google_profile(db, profile), "Google login successful")


# ── Current user ─────────────────────────────────────────────────

@router.get("/me", response_model=ApiResponse[UserOut])
def me(user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    return ok(auth_service.get_user(db, user.id))


@router.patch("/profile", response_model=ApiResponse[UserOut])
def update_profile(payload: ProfileUpdate, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    data = auth_service.update_profile(db, user.id, payload.model_dump(exclude_unset=True))
    return ok(data, "Profile updated")
