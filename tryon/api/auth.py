"""Admin cookie login."""

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from tryon.api.deps import get_settings
from tryon.api.schemas import LoginPayload
from tryon.auth.admin import (
    ADMIN_COOKIE,
    ADMIN_COOKIE_MAX_AGE,
    admin_session_token,
    check_admin_password,
)
from tryon.config import Settings

router = APIRouter()


@router.post("/auth/login")
async def login(body: LoginPayload, settings: Settings = Depends(get_settings)):
    if not check_admin_password(settings, body.password):
        return JSONResponse({"success": False, "error": "Incorrect password"}, status_code=401)
    response = JSONResponse({"success": True})
    response.set_cookie(
        ADMIN_COOKIE,
        admin_session_token(settings),
        max_age=ADMIN_COOKIE_MAX_AGE,
        httponly=True,
        secure=settings.cookie_secure,
        samesite="lax",
        path="/",
    )
    return response


@router.delete("/auth/login")
async def logout():
    response = JSONResponse({"success": True})
    response.delete_cookie(ADMIN_COOKIE, path="/")
    return response
