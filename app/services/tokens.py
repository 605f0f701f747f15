"""Signed, typed JWTs (access / refresh / session) and their revocation.

Verification collapses every failure (bad signature, expiry, wrong issuer or
audience, malformed claims) into ``None``; callers treat that as
unauthenticated. Token type and revocation are separate checks callers must
make after a successful ``verify_token``.
"""
import logging
import secrets
from datetime import datetime, timedelta, timezone

import jwt
from pydantic import ValidationError as PydanticValidationError

from app.core.config import settings
from app.schemas.auth import TokenClaims, TokenPair, TokenPayload, TokenType
from app.services import token_store

logger = logging.getLogger(__name__)

TOKEN_LIFETIMES: dict[TokenType, timedelta] = {
    TokenType.access: timedelta(minutes=settings.access_token_expire_minutes),
    TokenType.refresh: timedelta(days=settings.refresh_token_expire_days),
    TokenType.session: timedelta(days=settings.session_token_expire_days),
}
LONGEST_LIFETIME = max(TOKEN_LIFETIMES.values())

# Outside production a missing secret yields a per-process random key, so
# tokens do not survive a restart.
_SIGNING_KEY = settings.jwt_secret or secrets.token_hex(64)


def generate_jti() -> str:
    return secrets.token_hex(16)


def create_token(
    claims: TokenClaims,
    token_type: TokenType,
    expires_delta: timedelta | None = None,
) -> str:
    now = datetime.now(timezone.utc)
    lifetime = TOKEN_LIFETIMES[token_type] if expires_delta is None else expires_delta
    payload = {
        "sub": claims.sub,
        "email": claims.email,
        "role": claims.role.value,
        "name": claims.name,
        "type": token_type.value,
        "jti": generate_jti(),
        "iat": int(now.timestamp()),
        "exp": int((now + lifetime).timestamp()),
        "iss": settings.jwt_issuer,
        "aud": settings.jwt_audience,
    }
    return jwt.encode(payload, _SIGNING_KEY, algorithm=settings.jwt_alg)


def create_access_token(claims: TokenClaims) -> str:
    return create_token(claims, TokenType.access)


def create_refresh_token(claims: TokenClaims) -> str:
    return create_token(claims, TokenType.refresh)


def create_session_token(claims: TokenClaims) -> str:
    return create_token(claims, TokenType.session)


def create_token_pair(claims: TokenClaims, include_session: bool = False) -> TokenPair:
    return TokenPair(
        access_token=create_access_token(claims),
        refresh_token=create_refresh_token(claims),
        session_token=create_session_token(claims) if include_session else None,
    )


def verify_token(token: str | None) -> TokenPayload | None:
    if not token:
        return None
    try:
        data = jwt.decode(
            token,
            _SIGNING_KEY,
            algorithms=[settings.jwt_alg],
            issuer=settings.jwt_issuer,
            audience=settings.jwt_audience,
            options={"require": ["exp", "iat", "sub", "jti"]},
        )
        return TokenPayload.model_validate(data)
    except (jwt.PyJWTError, PydanticValidationError) as exc:
        logger.debug("token verification failed: %s", exc.__class__.__name__)
        return None


def validate_token_type(payload: TokenPayload, expected: TokenType | str) -> bool:
    return payload.type == expected


def extract_token_from_header(auth_header: str | None) -> str | None:
    if not auth_header or not auth_header.startswith("Bearer "):
        return None
    return auth_header[len("Bearer "):] or None


def _now() -> int:
    return int(datetime.now(timezone.utc).timestamp())


def is_token_expired(payload: TokenPayload, buffer_seconds: int = 30) -> bool:
    return payload.exp < _now() + buffer_seconds


def get_token_lifetime(payload: TokenPayload) -> int:
    return max(0, payload.exp - _now())


def revoke_token(jti: str | None, expires_at: int | None = None) -> None:
    """Revoke ``jti`` until the token it belongs to would have expired."""
    if not jti:
        return
    if expires_at is None:
        ttl_seconds = int(LONGEST_LIFETIME.total_seconds())
    else:
        ttl_seconds = expires_at - _now()
        if ttl_seconds <= 0:
            return
    token_store.store.revoke(jti, ttl_seconds)


def revoke_payload(payload: TokenPayload) -> None:
    revoke_token(payload.jti, payload.exp)


def is_token_revoked(jti: str | None) -> bool:
    if not jti:
        return False
    return token_store.store.is_revoked(jti)
