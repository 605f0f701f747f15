import logging
import uuid

from sqlalchemy.orm import Session

from app.core.errors import AuthenticationError, NotFoundError, ValidationError
from app.models import User, UserRole
from app.models.user import count_admins, get_admin_by_email, get_admin_by_id
from app.schemas.auth import TokenClaims, TokenPair, TokenPayload, TokenType
from app.schemas.user import AdminCreate
from app.services import password as passwords
from app.services import tokens

logger = logging.getLogger(__name__)

INVALID_CREDENTIALS = "Invalid credentials"


def claims_for(user: User) -> TokenClaims:
    return TokenClaims(
        sub=str(user.id), email=user.email, role=user.role, name=user.name
    )


def authenticate_admin(db: Session, email: str, password: str) -> User:
    admin = get_admin_by_email(db, email)
    # verify_password runs a dummy comparison when there is no stored hash
    stored_hash = admin.password_hash if admin else None
    if not passwords.verify_password(password, stored_hash) or admin is None:
        raise AuthenticationError(INVALID_CREDENTIALS)
    return admin


def issue_tokens(user: User, remember_me: bool = False) -> TokenPair:
    return tokens.create_token_pair(claims_for(user), include_session=remember_me)


def _admin_for_subject(db: Session, subject: str) -> User | None:
    try:
        user_id = uuid.UUID(subject)
    except ValueError:
        return None
    return get_admin_by_id(db, user_id)


def refresh_tokens(db: Session, refresh_token: str | None) -> tuple[User, TokenPair]:
    if not refresh_token:
        raise AuthenticationError("Refresh token required")
    payload = tokens.verify_token(refresh_token)
    if payload is None:
        raise AuthenticationError("Invalid refresh token")
    if not tokens.validate_token_type(payload, TokenType.refresh):
        raise AuthenticationError("Invalid token type")
    if tokens.is_token_revoked(payload.jti):
        raise AuthenticationError("Token has been revoked")
    admin = _admin_for_subject(db, payload.sub)
    if admin is None:
        raise AuthenticationError("User not found or not authorized")
    pair = tokens.create_token_pair(claims_for(admin))
    tokens.revoke_payload(payload)
    return admin, pair


def revoke_presented(raw_tokens: list[str | None]) -> list[TokenPayload]:
    """Revoke every verifiable token among ``raw_tokens``; others are ignored."""
    revoked = []
    for raw in raw_tokens:
        payload = tokens.verify_token(raw)
        if payload is not None:
            tokens.revoke_payload(payload)
            revoked.append(payload)
    return revoked


def change_password(
    db: Session, email: str, current_password: str, new_password: str
) -> User:
    admin = get_admin_by_email(db, email)
    if admin is None:
        passwords.verify_password(current_password, None)
        raise AuthenticationError(INVALID_CREDENTIALS)
    if not passwords.verify_password(current_password, admin.password_hash):
        raise AuthenticationError(INVALID_CREDENTIALS)

    validation = passwords.validate_password(new_password)
    if not validation.is_valid:
        raise ValidationError(
            f"Password validation failed: {', '.join(validation.errors)}",
            details={"errors": validation.errors},
        )
    if passwords.verify_password(new_password, admin.password_hash):
        raise ValidationError("New password must be different from current password")

    admin.password_hash = passwords.hash_password(new_password)
    db.add(admin)
    db.commit()
    db.refresh(admin)
    return admin


def upsert_admin(db: Session, payload: AdminCreate) -> User:
    """Create an admin, or promote an existing user with the same email."""
    password_hash = passwords.hash_password(payload.password)
    email = payload.email.lower()
    user = db.query(User).filter(User.email == email).first()
    if user is None:
        user = User(email=email, name=payload.name.lower())
    else:
        user.name = payload.name.lower()
    if payload.image_url is not None:
        user.image_url = payload.image_url
    user.role = UserRole.admin
    user.password_hash = password_hash
    db.add(user)
    db.commit()
    db.refresh(user)
    logger.info("admin upserted", extra={"event": {"admin_id": str(user.id)}})
    return user


def demote_admin(db: Session, admin_id: uuid.UUID) -> User:
    admin = get_admin_by_id(db, admin_id)
    if admin is None:
        raise NotFoundError("Admin not found")
    if count_admins(db) <= 1:
        raise ValidationError("Cannot remove the last remaining admin")
    admin.role = UserRole.user
    db.add(admin)
    db.commit()
    db.refresh(admin)
    return admin
