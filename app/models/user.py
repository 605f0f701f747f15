import enum
from datetime import datetime, timezone
import uuid

from sqlalchemy import CheckConstraint, Column, DateTime, Enum, String, func, select
from sqlalchemy.orm import Session, validates

from app.db.session import Base
from app.db.types import GUID


class UserRole(str, enum.Enum):
    user = "user"
    admin = "admin"


class User(Base):
    __tablename__ = "users"
    __table_args__ = (
        CheckConstraint(
            "role <> 'admin' OR password_hash IS NOT NULL",
            name="admin_has_password",
        ),
    )

    id = Column(GUID(), primary_key=True, default=uuid.uuid4)
    email = Column(String(320), unique=True, nullable=False, index=True)
    name = Column(String(100), nullable=False)
    image_url = Column(String(1024), nullable=True)
    role = Column(Enum(UserRole), nullable=False, default=UserRole.user, index=True)
    password_hash = Column(String(255), nullable=True)
    created_at = Column(DateTime, default=lambda: datetime.now(timezone.utc), nullable=False)
    updated_at = Column(
        DateTime,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        nullable=False,
    )

    @validates("email")
    def normalize_email(self, _key: str, value: str) -> str:
        return value.strip().lower()


def get_admin_by_email(db: Session, email: str) -> User | None:
    return db.execute(
        select(User).where(
            User.email == email.strip().lower(), User.role == UserRole.admin
        )
    ).scalar_one_or_none()


def get_admin_by_id(db: Session, user_id) -> User | None:
    return db.execute(
        select(User).where(User.id == user_id, User.role == UserRole.admin)
    ).scalar_one_or_none()


def list_admins(db: Session) -> list[User]:
    return list(
        db.execute(
            select(User)
            .where(User.role == UserRole.admin)
            .order_by(User.created_at.desc())
        ).scalars()
    )


def count_admins(db: Session) -> int:
    return db.execute(
        select(func.count()).select_from(User).where(User.role == UserRole.admin)
    ).scalar_one()
