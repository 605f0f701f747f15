from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator

from app.models.user import UserRole
from app.services.security import sanitize_text


class AdminOut(BaseModel):
    id: UUID
    name: str
    email: str
    image_url: str | None = None
    role: UserRole
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class AdminCreate(BaseModel):
    email: EmailStr
    name: str = Field(min_length=1, max_length=100)
    password: str = Field(min_length=1, max_length=1024)
    image_url: str | None = Field(default=None, max_length=1024)

    @field_validator("name")
    @classmethod
    def clean_name(cls, value: str) -> str:
        cleaned = sanitize_text(value).strip()
        if not cleaned:
            raise ValueError("name must not be blank")
        return cleaned


class AdminDemoted(BaseModel):
    id: UUID
    name: str
    email: str
    role: UserRole

    model_config = ConfigDict(from_attributes=True)


class AdminDemoteResponse(BaseModel):
    message: str
    updated_user: AdminDemoted
