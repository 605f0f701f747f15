"""Request authentication, role checks, CSRF and attempt limiting.

``authenticate``/``require_admin``/``require_access_token`` return an
``AuthResult`` and never raise; the FastAPI dependencies below turn failed
results into ``AuthenticationError`` (401) or ``AuthorizationError`` (403).
"""
from dataclasses import dataclass
from datetime import datetime, timezone
import math

from fastapi import Request, status

from app.core.errors import AuthenticationError, AuthorizationError, RateLimitError
from app.core.logging import user_id_ctx
from app.db.session import get_db
from app.models import UserRole
from app.schemas.auth import TokenPayload, TokenType
from app.services import csrf, rate_limit, tokens
from app.services.audit import audit_log

REFRESH_COOKIE = "refresh_token"
SESSION_COOKIE = "session_token"

NO_TOKEN = "No authentication token provided"
INVALID_TOKEN = "Invalid authentication token"
REVOKED_TOKEN = "Token has been revoked"
ADMIN_REQUIRED = "Admin access required"
ACCESS_TOKEN_REQUIRED = "Access token required"


@dataclass
class AuthResult:
    success: bool
    user: TokenPayload | None = None
    error: str | None = None
    status_code: int = status.HTTP_200_OK

    @classmethod
    def ok(cls, user: TokenPayload) -> "AuthResult":
        return cls(success=True, user=user)

    @classmethod
    def fail(
        cls, error: str, status_code: int = status.HTTP_401_UNAUTHORIZED
    ) -> "AuthResult":
        return cls(success=False, error=error, status_code=status_code)


def extract_token(request: Request) -> str | None:
    # Cookies first; the bearer header is kept for older clients.
    token = request.cookies.get(REFRESH_COOKIE) or request.cookies.get(SESSION_COOKIE)
    if not token:
        token = tokens.extract_token_from_header(request.headers.get("authorization"))
    return token


def authenticate(request: Request) -> AuthResult:
    token = extract_token(request)
    if not token:
        return AuthResult.fail(NO_TOKEN)
    payload = tokens.verify_token(token)
    if payload is None:
        return AuthResult.fail(INVALID_TOKEN)
    if payload.jti and tokens.is_token_revoked(payload.jti):
        return AuthResult.fail(REVOKED_TOKEN)
    return AuthResult.ok(payload)


def require_admin(request: Request) -> AuthResult:
    result = authenticate(request)
    if not result.success:
        return result
    if result.user.role != UserRole.admin:
        return AuthResult.fail(ADMIN_REQUIRED, status.HTTP_403_FORBIDDEN)
    return result


def require_access_token(request: Request) -> AuthResult:
    result = authenticate(request)
    if not result.success:
        return result
    if not tokens.validate_token_type(result.user, TokenType.access):
        return AuthResult.fail(ACCESS_TOKEN_REQUIRED)
    return result


def _unwrap(result: AuthResult) -> TokenPayload:
    if result.success:
        user_id_ctx.set(result.user.sub)
        return result.user
    if result.status_code == status.HTTP_403_FORBIDDEN:
        raise AuthorizationError(result.error)
    raise AuthenticationError(result.error)


def get_current_user(request: Request) -> TokenPayload:
    return _unwrap(authenticate(request))


def get_current_admin(request: Request) -> TokenPayload:
    return _unwrap(require_admin(request))


def get_optional_user(request: Request) -> TokenPayload | None:
    result = authenticate(request)
    return result.user if result.success else None


def rate_limit_error(ip: str) -> RateLimitError:
    limiter = rate_limit.auth_limiter
    config = limiter.config
    current = limiter.status(ip)
    now_ms = limiter.clock()
    reset_ms = current.reset_time or now_ms + config.lockout_ms
    retry_after = max(0, math.ceil((reset_ms - now_ms) / 1000))
    return RateLimitError(
        details={
            "retryAfter": retry_after,
            "remainingAttempts": current.remaining,
            "resetTime": datetime.fromtimestamp(reset_ms / 1000, timezone.utc).isoformat(),
            "maxAttempts": config.max_attempts,
        },
        headers={
            "Retry-After": str(retry_after),
            "X-RateLimit-Limit": str(config.max_attempts),
            "X-RateLimit-Remaining": str(current.remaining),
            "X-RateLimit-Reset": str(reset_ms // 1000),
        },
    )


def enforce_rate_limit(request: Request) -> str:
    """Count this request against the caller's IP; returns the IP."""
    ip = rate_limit.get_client_ip(request)
    if not rate_limit.auth_limiter.check(ip):
        audit_log("rate_limited", None, ip, path=request.url.path)
        raise rate_limit_error(ip)
    return ip


def _csrf_tokens(request: Request) -> tuple[str | None, str | None]:
    return (
        request.cookies.get(csrf.CSRF_COOKIE_NAME),
        request.headers.get(csrf.CSRF_HEADER_NAME),
    )


def enforce_csrf(request: Request) -> None:
    cookie_token, header_token = _csrf_tokens(request)
    if not csrf.validate_csrf_protection(request.method, cookie_token, header_token):
        raise AuthorizationError("Invalid CSRF token")


def optional_csrf(request: Request) -> None:
    """Validate CSRF only when the client holds a CSRF cookie."""
    cookie_token, _ = _csrf_tokens(request)
    if cookie_token:
        enforce_csrf(request)


def csrf_for_cookie_auth(request: Request) -> None:
    """Cookie-authenticated state changes must carry a CSRF token."""
    if request.cookies.get(REFRESH_COOKIE) or request.cookies.get(SESSION_COOKIE):
        enforce_csrf(request)
