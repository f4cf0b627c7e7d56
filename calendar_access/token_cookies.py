"""
Redeemed access tokens are remembered in a signed, http-only cookie, so a link opened once keeps
working on that browser without sending the token again.
"""

import json

from django.conf import settings
from django.http import HttpRequest, HttpResponse


TOKEN_COOKIE_SALT = "calendar_access.redeemed_tokens"


def get_cookie_tokens(request: HttpRequest) -> list[str]:
    value = request.get_signed_cookie(
        settings.CALENDAR_ACCESS_TOKEN_COOKIE_NAME,
        default=None,
        salt=TOKEN_COOKIE_SALT,
        max_age=settings.CALENDAR_ACCESS_TOKEN_COOKIE_MAX_AGE,
    )
    if not value:
        return []
    try:
        tokens = json.loads(value)
    except ValueError:
        return []
    if not isinstance(tokens, list):
        return []
    return [token for token in tokens if isinstance(token, str) and token]


def remember_token(request: HttpRequest, response: HttpResponse, secret: str) -> None:
    """
    Add `secret` to the cookie, most recent first. The oldest tokens fall off past the limit.
    """
    tokens = [secret, *(token for token in get_cookie_tokens(request) if token != secret)]
    response.set_signed_cookie(
        settings.CALENDAR_ACCESS_TOKEN_COOKIE_NAME,
        json.dumps(tokens[: settings.CALENDAR_ACCESS_TOKEN_COOKIE_LIMIT]),
        salt=TOKEN_COOKIE_SALT,
        max_age=settings.CALENDAR_ACCESS_TOKEN_COOKIE_MAX_AGE,
        httponly=True,
        secure=settings.SESSION_COOKIE_SECURE,
        samesite="Lax",
    )
