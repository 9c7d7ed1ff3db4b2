"""
Google OAuth 2.0 authorization-code flow: auth URL, code exchange and userinfo.
"""

import logging
from typing import Optional
from urllib.parse import urlencode

import requests

import config
from errors import ApiError, OAuthError

logger = logging.getLogger(__name__)

AUTH_URL = "https://accounts.google.com/o/oauth2/v2/auth"
TOKEN_URL = "https://oauth2.googleapis.com/token"
USERINFO_URL = "https://openidconnect.googleapis.com/v1/userinfo"


class GoogleOAuthClient:
    def __init__(self, client_id: Optional[str] = None, client_secret: Optional[str] = None,
                 redirect_uri: Optional[str] = None, timeout: Optional[float] = None):
        self.client_id = client_id if client_id is not None else config.GOOGLE_CLIENT_ID
        self.client_secret = client_secret if client_secret is not None else config.GOOGLE_CLIENT_SECRET
        self.redirect_uri = redirect_uri if redirect_uri is not None else config.GOOGLE_REDIRECT_URI
        self.timeout = timeout or config.HTTP_TIMEOUT

    def _require_config(self):
        if not (self.client_id and self.client_secret and self.redirect_uri):
            raise ApiError("Google OAuth not configured", 500)

    def get_auth_url(self, state: Optional[str] = None) -> str:
        self._require_config()
        params = {
            "client_id": self.client_id,
            "redirect_uri": self.redirect_uri,
            "response_type": "code",
            "scope": "openid email profile",
            "access_type": "offline",
            "prompt": "consent",
        }
        if state:
            params["state"] = state
        return f"{AUTH_URL}?{urlencode(params)}"

    def exchange_code(self, code: str) -> dict:
        """Trade an authorization code for tokens (server-to-server, uses the client secret)."""
        self._require_config()
        try:
            resp = requests.post(
                TOKEN_URL,
                data={
                    "code": code,
                    "client_id": self.client_id,
                    "client_secret": self.client_secret,
                    "redirect_uri": self.redirect_uri,
                    "grant_type": "authorization_code",
                },
                headers={"Accept": "application/json"},
                timeout=self.timeout,
            )
        except requests.RequestException as exc:
            raise OAuthError(f"Google token request failed: {exc}") from exc

        data = _json_or_empty(resp)
        if resp.status_code >= 400:
            error = data.get("error", "unknown")
            if error == "invalid_grant":
                raise OAuthError(
                    "Authorization code has already been used or has expired. Please try logging in again."
                )
            description = data.get("error_description")
            raise OAuthError(f"Google token response error: {error}" + (f" - {description}" if description else ""))
        if not data.get("access_token"):
            raise OAuthError("Failed to exchange authorization code for tokens")
        return data

    def get_user_info(self, access_token: str) -> dict:
        try:
            resp = requests.get(
                USERINFO_URL,
                headers={"Authorization": f"Bearer {access_token}", "Accept": "application/json"},
                timeout=self.timeout,
            )
        except requests.RequestException as exc:
            raise OAuthError(f"Failed to fetch Google user info: {exc}") from exc

        data = _json_or_empty(resp)
        if resp.status_code >= 400:
            raise OAuthError(f"Google userinfo error: {data.get('error', 'unknown')}")
        return data


def _json_or_empty(resp) -> dict:
    try:
        data = resp.json()
    except ValueError:
        logger.warning("Google returned a non-JSON body (status %s)", resp.status_code)
        return {}
    return data if isinstance(data, dict) else {}
