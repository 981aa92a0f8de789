from typing import Optional

from fastapi import Request, Response

from constants import AUTH_COOKIE_NAME, COOKIE_SECURE
from lifecycle import RoomLifecycle


def get_lifecycle(request: Request) -> RoomLifecycle:
    return request.app.state.lifecycle


def get_auth_token(request: Request) -> Optional[str]:
    return request.cookies.get(AUTH_COOKIE_NAME)


def set_auth_cookie(response: Response, token: str) -> None:
    response.set_cookie(
        AUTH_COOKIE_NAME,
        token,
        path="/",
        httponly=True,
        secure=COOKIE_SECURE,
        samesite="strict",
    )
