from uuid import UUID

from fastapi import APIRouter, Depends, Request, Response, status
from sqlalchemy.orm import Session

from app.api import cookies, deps
from app.api.responses import (
    BAD_REQUEST,
    FORBIDDEN,
    NOT_FOUND,
    RATE_LIMITED,
    UNAUTHORIZED,
)
from app.models.user import count_admins, list_admins
from app.schemas.auth import MessageResponse, PasswordChangeRequest, TokenPayload
from app.schemas.user import AdminCreate, AdminDemoteResponse, AdminDemoted, AdminOut
from app.services import auth as auth_service, rate_limit
from app.services.audit import audit_log

router = APIRouter(prefix="/admins", tags=["admins"])


@router.get("", responses=UNAUTHORIZED | FORBIDDEN)
def get_admins(request: Request, db: Session = Depends(deps.get_db)):
    # An empty list is public so the first admin can be bootstrapped.
    if count_admins(db) == 0:
        return {"admins": []}
    deps.get_current_admin(request)
    return {
        "admins": [
            AdminOut.model_validate(a).model_dump(mode="json") for a in list_admins(db)
        ]
    }


@router.post(
    "",
    status_code=status.HTTP_201_CREATED,
    responses=BAD_REQUEST | UNAUTHORIZED | FORBIDDEN,
)
def create_admin(
    payload: AdminCreate,
    request: Request,
    db: Session = Depends(deps.get_db),
):
    actor: TokenPayload | None = None
    if count_admins(db) > 0:
        actor = deps.get_current_admin(request)
        deps.csrf_for_cookie_auth(request)
    admin = auth_service.upsert_admin(db, payload)
    audit_log(
        "admin_create",
        actor.sub if actor else None,
        rate_limit.get_client_ip(request),
        admin_id=str(admin.id),
        email=admin.email,
        bootstrap=actor is None,
    )
    return {"admin": AdminOut.model_validate(admin).model_dump(mode="json")}


@router.post(
    "/change-password",
    response_model=MessageResponse,
    responses=BAD_REQUEST | UNAUTHORIZED | RATE_LIMITED,
)
def change_password(
    payload: PasswordChangeRequest,
    response: Response,
    ip: str = Depends(deps.enforce_rate_limit),
    _: None = Depends(deps.optional_csrf),
    db: Session = Depends(deps.get_db),
):
    admin = auth_service.change_password(
        db, payload.email, payload.current_password, payload.new_password
    )
    cookies.no_store(response)
    audit_log("change_password", str(admin.id), ip)
    return MessageResponse(message="Password changed successfully")


@router.patch(
    "/{admin_id}",
    response_model=AdminDemoteResponse,
    responses=BAD_REQUEST | UNAUTHORIZED | FORBIDDEN | NOT_FOUND,
)
def demote_admin(
    admin_id: UUID,
    request: Request,
    actor: TokenPayload = Depends(deps.get_current_admin),
    _: None = Depends(deps.csrf_for_cookie_auth),
    db: Session = Depends(deps.get_db),
):
    user = auth_service.demote_admin(db, admin_id)
    audit_log(
        "admin_demote",
        actor.sub,
        rate_limit.get_client_ip(request),
        admin_id=str(user.id),
    )
    return AdminDemoteResponse(
        message=f"Admin {user.name} has been successfully demoted to user",
        updated_user=AdminDemoted.model_validate(user),
    )
