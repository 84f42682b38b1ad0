from datetime import date, datetime
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator, model_validator

from ..core.validators import validate_registration_password

REGISTRATION_PASSWORD_MESSAGE = (
    "Password must be at least 8 characters and include letters, numbers "
    "and one of @$!%*#?&"
)

def _check_registration_password(value: str) -> str:
    if not validate_registration_password(value):
        raise ValueError(REGISTRATION_PASSWORD_MESSAGE)
    return value

class UserRegister(BaseModel):
    full_name: str = Field(..., min_length=1, max_length=200)
    email: EmailStr
    password: str
    confirm_password: str
    birth_date: Optional[date] = None
    phone: Optional[str] = Field(None, max_length=20)

    @field_validator("password")
    @classmethod
    def password_policy(cls, value: str) -> str:
        return _check_registration_password(value)

    @model_validator(mode="after")
    def passwords_match(self):
        if self.password != self.confirm_password:
            raise ValueError("Passwords do not match")
        return self

class UserLogin(BaseModel):
    email: EmailStr
    password: str

class UserResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    email: str
    is_active: bool
    user_metadata: Dict[str, Any] = {}
    last_login: Optional[datetime] = None
    created_at: Optional[datetime] = None

class TokenResponse(BaseModel):
    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    expires_in: int
    user: UserResponse
    destination: Optional[str] = None

class RefreshTokenRequest(BaseModel):
    refresh_token: str

class PasswordReset(BaseModel):
    email: EmailStr

class PasswordResetConfirm(BaseModel):
    token: str
    new_password: str

    @field_validator("new_password")
    @classmethod
    def password_policy(cls, value: str) -> str:
        return _check_registration_password(value)

class ChangePassword(BaseModel):
    current_password: str
    new_password: str

    @field_validator("new_password")
    @classmethod
    def password_policy(cls, value: str) -> str:
        return _check_registration_password(value)

class SessionInfo(BaseModel):
    user_id: str
    email: Optional[str] = None
    expires_at: Optional[int] = None

class SessionResponse(BaseModel):
    session: Optional[SessionInfo] = None

class DestinationResponse(BaseModel):
    role: str
    destination: str
