from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from ..core.validators import password_problems, validate_ip_address, validate_username
from ..models.audit import OutboxStatus
from ..models.roles import AdminRole

def _check_strong_password(value: str) -> str:
    problems = password_problems(value)
    if problems:
        raise ValueError("; ".join(problems))
    return value

class AdminUserItem(BaseModel):
    id: str
    full_name: str
    email: Optional[str] = None
    username: Optional[str] = None
    phone: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    role: str = "user"
    is_active: bool
    created_at: Optional[datetime] = None
    last_login: Optional[datetime] = None

class UserEdit(BaseModel):
    full_name: str = Field(..., min_length=1, max_length=200)
    phone: Optional[str] = Field(None, max_length=20)
    city: Optional[str] = Field(None, max_length=100)
    state: Optional[str] = Field(None, max_length=100)
    is_active: bool = True
    role: str = "user"

    @field_validator("role")
    @classmethod
    def known_role(cls, value: str) -> str:
        allowed = {"user"} | {role.value for role in AdminRole}
        if value not in allowed:
            raise ValueError(f"Role must be one of {sorted(allowed)}")
        return value

class UserStatusUpdate(BaseModel):
    is_active: bool

class RoleUpdate(BaseModel):
    role: AdminRole

class AdminPasswordReset(BaseModel):
    new_password: str

    @field_validator("new_password")
    @classmethod
    def password_policy(cls, value: str) -> str:
        return _check_strong_password(value)

class AdminCreate(BaseModel):
    username: str
    password: str
    role: AdminRole = AdminRole.ADMIN

    @field_validator("username")
    @classmethod
    def username_format(cls, value: str) -> str:
        if not validate_username(value):
            raise ValueError("Invalid username format")
        return value

    @field_validator("password")
    @classmethod
    def password_policy(cls, value: str) -> str:
        return _check_strong_password(value)

class SecuritySettingsResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    two_factor_enabled: bool
    session_timeout: int
    allowed_ips: List[str] = []

class SecuritySettingsUpdate(BaseModel):
    two_factor_enabled: Optional[bool] = None
    session_timeout: Optional[int] = Field(None, ge=5, le=1440)

class AllowedIP(BaseModel):
    ip: str

    @field_validator("ip")
    @classmethod
    def ip_format(cls, value: str) -> str:
        if not validate_ip_address(value):
            raise ValueError("Invalid IP address format")
        return value

class AuditLogResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    action: str
    details: Optional[str] = None
    performed_by: Optional[str] = None
    created_at: Optional[datetime] = None

class OutboxTaskResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    kind: str
    payload: Dict[str, Any]
    status: OutboxStatus
    attempts: int
    last_error: Optional[str] = None
    created_at: Optional[datetime] = None
    processed_at: Optional[datetime] = None

class DispatchResult(BaseModel):
    delivered: int
    failed: int
    retried: int
