from datetime import timedelta

from starlette.responses import Response

from app.api.deps import REFRESH_COOKIE, SESSION_COOKIE
from app.core.config import settings
from app.schemas.auth import TokenPair
from app.services.csrf import CSRF_COOKIE_NAME


def _cookie_options(httponly: bool) -> dict:
    options = {
        "httponly": httponly,
        "secure": not settings.is_development,
        "samesite": "lax",
        "path": "/",
    }
    if settings.is_production and settings.cookie_domain:
        options["domain"] = settings.cookie_domain
    return options


def _seconds(delta: timedelta) -> int:
    return int(delta.total_seconds())


def set_refresh_cookie(response: Response, token: str) -> None:
    response.set_cookie(
        REFRESH_COOKIE,
        token,
        max_age=_seconds(timedelta(days=settings.refresh_token_expire_days)),
        **_cookie_options(httponly=True),
    )


def set_auth_cookies(response: Response, pair: TokenPair) -> None:
    set_refresh_cookie(response, pair.refresh_token)
    if pair.session_token:
        response.set_cookie(
            SESSION_COOKIE,
            pair.session_token,
            max_age=_seconds(timedelta(days=settings.session_token_expire_days)),
            **_cookie_options(httponly=True),
        )


def set_csrf_cookie(response: Response, token: str) -> None:
    response.set_cookie(
        CSRF_COOKIE_NAME,
        token,
        max_age=settings.csrf_max_age_seconds,
        **_cookie_options(httponly=False),
    )


def clear_auth_cookies(response: Response) -> None:
    for name in (REFRESH_COOKIE, SESSION_COOKIE, CSRF_COOKIE_NAME):
        response.set_cookie(name, "", max_age=0, **_cookie_options(httponly=True))


def no_store(response: Response) -> None:
    response.headers["Cache-Control"] = "no-store"
    response.headers["Pragma"] = "no-cache"
