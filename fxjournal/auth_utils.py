# fxjournal/auth_utils.py
from typing import Optional

from fastapi import Request, HTTPException, status

from .auth import verify_token

COOKIE_NAME = "access_token"


class LoginRequired(Exception):
    """Raised by HTML routes; the app turns it into a redirect to /login"""


def get_current_user_from_cookie(request: Request) -> Optional[str]:
    """Username from the access-token cookie, or None"""
    access_token = request.cookies.get(COOKIE_NAME)
    if not access_token:
        return None

    payload = verify_token(access_token, "access")
    if not payload:
        return None

    return payload.get("sub")


async def require_api_user(request: Request) -> str:
    """Current user for JSON endpoints (401 when not logged in)"""
    user = get_current_user_from_cookie(request)
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return user


async def require_page_user(request: Request) -> str:
    """Current user for HTML pages (redirects to the login page)"""
    user = get_current_user_from_cookie(request)
    if user is None:
        raise LoginRequired()
    return user
