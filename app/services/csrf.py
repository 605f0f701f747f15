"""Stateless double-submit CSRF tokens.

A token is ``<nonce>-<timestamp ms>-<hmac>``; validity is recomputed from the
parts and the configured secret, nothing is stored server side.
"""
import hashlib
import hmac
import logging
import secrets
import time

from app.core.config import settings
from app.services.password import secure_compare

logger = logging.getLogger(__name__)

CSRF_COOKIE_NAME = "csrf-token"
CSRF_HEADER_NAME = "X-CSRF-Token"
CSRF_NONCE_BYTES = 32
DEFAULT_MAX_AGE_MS = settings.csrf_max_age_seconds * 1000
STATE_CHANGING_METHODS = frozenset({"POST", "PUT", "PATCH", "DELETE"})


def _now_ms() -> int:
    return int(time.time() * 1000)


def _sign(nonce: str, timestamp: str) -> str:
    return hmac.new(
        settings.csrf_secret.encode("utf-8"),
        f"{nonce}-{timestamp}".encode("utf-8"),
        hashlib.sha256,
    ).hexdigest()


def generate_csrf_token(now_ms: int | None = None) -> str:
    nonce = secrets.token_hex(CSRF_NONCE_BYTES)
    timestamp = str(_now_ms() if now_ms is None else now_ms)
    return f"{nonce}-{timestamp}-{_sign(nonce, timestamp)}"


def validate_csrf_token(
    token: str | None,
    max_age_ms: int = DEFAULT_MAX_AGE_MS,
    now_ms: int | None = None,
) -> bool:
    if not token:
        return False
    parts = token.split("-")
    if len(parts) != 3:
        return False
    nonce, timestamp, signature = parts
    if not (timestamp.isascii() and timestamp.isdigit()):
        return False
    now = _now_ms() if now_ms is None else now_ms
    if now - int(timestamp) >= max_age_ms:
        logger.debug("csrf token expired")
        return False
    expected = _sign(nonce, timestamp)
    if len(signature) != len(expected):
        return False
    return secure_compare(signature, expected)


def validate_csrf_protection(
    method: str, cookie_token: str | None, header_token: str | None
) -> bool:
    if method.upper() not in STATE_CHANGING_METHODS:
        return True
    if not header_token or not cookie_token:
        return False
    return secure_compare(header_token, cookie_token) and validate_csrf_token(
        header_token
    )
