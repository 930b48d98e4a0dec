"""Admin authentication: ``x-admin-key`` header or the login cookie."""

import hashlib
import hmac
import secrets
from typing import Optional

from fastapi import Depends, Header, HTTPException, Request, status

from tryon.api.deps import get_settings
from tryon.config import Settings

ADMIN_COOKIE = "admin_auth"
ADMIN_COOKIE_MAX_AGE = 60 * 60 * 24 * 7  # 7 days


def admin_session_token(settings: Settings) -> str:
    """Cookie value issued on successful login; changes when the password does."""
    return hmac.new(
        settings.admin_password.encode("utf-8"), b"tryon-admin-session", hashlib.sha256
    ).hexdigest()


def check_admin_password(settings: Settings, password: str) -> bool:
    if not settings.admin_password:
        return False
    return secrets.compare_digest(password.encode("utf-8"), settings.admin_password.encode("utf-8"))


def is_admin(request: Request, settings: Settings, admin_key: Optional[str]) -> bool:
    if settings.admin_key and admin_key:
        if secrets.compare_digest(admin_key.encode("utf-8"), settings.admin_key.encode("utf-8")):
            return True
    cookie = request.cookies.get(ADMIN_COOKIE)
    if settings.admin_password and cookie:
        return secrets.compare_digest(cookie.encode("utf-8"), admin_session_token(settings).encode("utf-8"))
    return False


def require_admin(
    request: Request,
    x_admin_key: Optional[str] = Header(None),
    settings: Settings = Depends(get_settings),
) -> None:
    if not is_admin(request, settings, x_admin_key):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unauthorized. Provide x-admin-key header",
        )
