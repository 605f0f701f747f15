import enum

from pydantic import BaseModel, ConfigDict, EmailStr, Field

from app.models.user import UserRole
from app.schemas.user import AdminOut


class TokenType(str, enum.Enum):
    access = "access"
    refresh = "refresh"
    session = "session"


class TokenClaims(BaseModel):
    sub: str
    email: str
    role: UserRole
    name: str = ""


class TokenPayload(TokenClaims):
    type: TokenType
    iat: int
    exp: int
    jti: str
    iss: str | None = None
    aud: str | list[str] | None = None


class TokenPair(BaseModel):
    access_token: str = Field(alias="accessToken")
    refresh_token: str = Field(alias="refreshToken")
    session_token: str | None = Field(default=None, alias="sessionToken")

    model_config = ConfigDict(populate_by_name=True)


class LoginRequest(BaseModel):
    email: EmailStr
    password: str = Field(min_length=1, max_length=1024)
    remember_me: bool = Field(default=False, alias="rememberMe")

    model_config = ConfigDict(populate_by_name=True)


class LoginResponse(BaseModel):
    admin: AdminOut
    tokens: TokenPair


class RefreshRequest(BaseModel):
    refresh_token: str | None = Field(default=None, alias="refreshToken")

    model_config = ConfigDict(populate_by_name=True)


class CsrfResponse(BaseModel):
    csrf_token: str = Field(alias="csrfToken")
    timestamp: str

    model_config = ConfigDict(populate_by_name=True)


class MessageResponse(BaseModel):
    success: bool = True
    message: str


class PasswordChangeRequest(BaseModel):
    email: EmailStr
    current_password: str = Field(min_length=1, alias="currentPassword")
    new_password: str = Field(min_length=1, alias="newPassword")

    model_config = ConfigDict(populate_by_name=True)
