import uuid

import pytest
from starlette.requests import Request

from app.api import deps
from app.core.errors import AuthenticationError, AuthorizationError
from app.models import UserRole
from app.schemas.auth import TokenClaims
from app.services import tokens


def _claims(role=UserRole.admin):
    return TokenClaims(sub=str(uuid.uuid4()), email="ops@features.dev", role=role, name="ops")


def _request(bearer=None, cookies=None):
    headers = []
    if bearer:
        headers.append((b"authorization", f"Bearer {bearer}".encode()))
    if cookies:
        jar = "; ".join(f"{k}={v}" for k, v in cookies.items())
        headers.append((b"cookie", jar.encode()))
    return Request(
        {
            "type": "http",
            "method": "GET",
            "path": "/",
            "headers": headers,
            "query_string": b"",
            "client": ("127.0.0.1", 1234),
        }
    )


def test_missing_token():
    result = deps.authenticate(_request())
    assert not result.success
    assert result.error == "No authentication token provided"
    assert result.status_code == 401


def test_invalid_token():
    result = deps.authenticate(_request(bearer="nope"))
    assert result.error == "Invalid authentication token"


def test_valid_bearer_token():
    claims = _claims()
    result = deps.authenticate(_request(bearer=tokens.create_access_token(claims)))
    assert result.success
    assert result.user.sub == claims.sub


def test_cookie_takes_precedence_over_header():
    claims = _claims()
    refresh = tokens.create_refresh_token(claims)
    result = deps.authenticate(_request(bearer="garbage", cookies={"refresh_token": refresh}))
    assert result.success
    assert result.user.type == "refresh"

    session = tokens.create_session_token(claims)
    result = deps.authenticate(_request(cookies={"session_token": session}))
    assert result.user.type == "session"


def test_revoked_token_is_unauthenticated():
    token = tokens.create_access_token(_claims())
    payload = tokens.verify_token(token)
    tokens.revoke_payload(payload)
    assert tokens.verify_token(token) is not None
    result = deps.authenticate(_request(bearer=token))
    assert not result.success
    assert result.error == "Token has been revoked"


def test_require_admin_distinguishes_401_and_403():
    unauthenticated = deps.require_admin(_request())
    assert unauthenticated.status_code == 401

    user_token = tokens.create_access_token(_claims(UserRole.user))
    forbidden = deps.require_admin(_request(bearer=user_token))
    assert not forbidden.success
    assert forbidden.error == "Admin access required"
    assert forbidden.status_code == 403

    admin_token = tokens.create_access_token(_claims())
    assert deps.require_admin(_request(bearer=admin_token)).success


def test_require_access_token_rejects_long_lived_tokens():
    claims = _claims()
    refresh = deps.require_access_token(_request(bearer=tokens.create_refresh_token(claims)))
    assert not refresh.success
    assert refresh.error == "Access token required"
    assert refresh.status_code == 401
    assert deps.require_access_token(_request(bearer=tokens.create_access_token(claims))).success


def test_dependencies_raise_taxonomy_errors():
    with pytest.raises(AuthenticationError):
        deps.get_current_user(_request())
    user_token = tokens.create_access_token(_claims(UserRole.user))
    assert deps.get_current_user(_request(bearer=user_token)).role == UserRole.user
    with pytest.raises(AuthorizationError):
        deps.get_current_admin(_request(bearer=user_token))
    assert deps.get_optional_user(_request()) is None
