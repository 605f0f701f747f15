import uuid
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, Request, Response
from sqlalchemy.orm import Session

from app.api import cookies, deps
from app.api.responses import BAD_REQUEST, FORBIDDEN, RATE_LIMITED, UNAUTHORIZED
from app.core.errors import AuthenticationError
from app.models import User
from app.schemas.auth import (
    CsrfResponse,
    LoginRequest,
    LoginResponse,
    MessageResponse,
    RefreshRequest,
)
from app.schemas.user import AdminOut
from app.services import auth as auth_service, csrf, rate_limit, tokens
from app.services.audit import audit_log

router = APIRouter(prefix="/auth", tags=["auth"])


@router.post(
    "/login",
    response_model=LoginResponse,
    response_model_exclude_none=True,
    responses=BAD_REQUEST | UNAUTHORIZED | FORBIDDEN | RATE_LIMITED,
)
def login(
    payload: LoginRequest,
    response: Response,
    ip: str = Depends(deps.enforce_rate_limit),
    _: None = Depends(deps.optional_csrf),
    db: Session = Depends(deps.get_db),
):
    try:
        admin = auth_service.authenticate_admin(db, payload.email, payload.password)
    except AuthenticationError:
        audit_log("login_failed", None, ip, email=payload.email)
        raise
    pair = auth_service.issue_tokens(admin, remember_me=payload.remember_me)
    rate_limit.auth_limiter.reset(ip)
    cookies.set_auth_cookies(response, pair)
    cookies.no_store(response)
    audit_log("login_success", str(admin.id), ip, remember_me=payload.remember_me)
    return LoginResponse(admin=AdminOut.model_validate(admin), tokens=pair)


@router.post(
    "/refresh",
    response_model=LoginResponse,
    response_model_exclude_none=True,
    responses=UNAUTHORIZED | RATE_LIMITED,
)
def refresh(
    request: Request,
    response: Response,
    payload: RefreshRequest | None = None,
    ip: str = Depends(deps.enforce_rate_limit),
    db: Session = Depends(deps.get_db),
):
    token = request.cookies.get(deps.REFRESH_COOKIE)
    if not token and payload is not None:
        token = payload.refresh_token
    admin, pair = auth_service.refresh_tokens(db, token)
    cookies.set_refresh_cookie(response, pair.refresh_token)
    cookies.no_store(response)
    audit_log("refresh", str(admin.id), ip)
    return LoginResponse(admin=AdminOut.model_validate(admin), tokens=pair)


@router.post("/logout", response_model=MessageResponse)
def logout(request: Request, response: Response):
    presented = [
        request.cookies.get(deps.REFRESH_COOKIE),
        request.cookies.get(deps.SESSION_COOKIE),
        tokens.extract_token_from_header(request.headers.get("authorization")),
    ]
    revoked = auth_service.revoke_presented(presented)
    cookies.clear_auth_cookies(response)
    cookies.no_store(response)
    audit_log(
        "logout",
        revoked[0].sub if revoked else None,
        rate_limit.get_client_ip(request),
        revoked=len(revoked),
    )
    return MessageResponse(message="Successfully logged out")


@router.get("/csrf", response_model=CsrfResponse)
def issue_csrf_token(response: Response):
    token = csrf.generate_csrf_token()
    cookies.set_csrf_cookie(response, token)
    cookies.no_store(response)
    return CsrfResponse(
        csrf_token=token, timestamp=datetime.now(timezone.utc).isoformat()
    )


@router.get("/me")
def me(request: Request, db: Session = Depends(deps.get_db)):
    user = deps.get_optional_user(request)
    if user is None:
        return {"user": None}
    try:
        record = db.get(User, uuid.UUID(user.sub))
    except ValueError:
        record = None
    if record is None:
        return {"user": None}
    return {"user": AdminOut.model_validate(record).model_dump(mode="json")}
