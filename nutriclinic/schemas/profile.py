from datetime import date, datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from ..core.validators import validate_profile_username

class SocialLink(BaseModel):
    platform: str = Field(..., max_length=50)
    url: str = Field(..., max_length=500)

class ProfileResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    full_name: str
    username: Optional[str] = None
    email: Optional[str] = None
    bio: Optional[str] = None
    birth_date: Optional[date] = None
    gender: Optional[str] = None
    phone: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    avatar_url: Optional[str] = None
    cover_image_url: Optional[str] = None
    social_links: List[SocialLink] = []
    interests: List[str] = []
    theme: Optional[str] = None
    notifications: Dict[str, bool] = {}
    is_active: bool
    is_profile_completed: bool
    nutritionist_id: Optional[str] = None
    created_at: Optional[datetime] = None

class ProfileUpdate(BaseModel):
    """Settings form; omitted fields are left untouched."""

    full_name: Optional[str] = Field(None, min_length=1, max_length=200)
    username: Optional[str] = None
    bio: Optional[str] = Field(None, max_length=1000)
    city: Optional[str] = Field(None, max_length=100)
    state: Optional[str] = Field(None, max_length=100)
    birth_date: Optional[date] = None
    gender: Optional[str] = Field(None, max_length=20)
    phone: Optional[str] = Field(None, max_length=20)

    @field_validator("full_name")
    @classmethod
    def full_name_required(cls, value: Optional[str]) -> str:
        # Omitting the field keeps the current name; null would blank it
        if value is None:
            raise ValueError("Full name cannot be empty")
        return value

    @field_validator("username")
    @classmethod
    def username_format(cls, value: Optional[str]) -> Optional[str]:
        if value is not None and not validate_profile_username(value):
            raise ValueError("Username must be 3-30 letters, digits, dots or underscores")
        return value

class ProfileCustomize(BaseModel):
    full_name: str = Field(..., min_length=1, max_length=200)
    username: str
    bio: Optional[str] = Field(None, max_length=1000)
    social_links: List[SocialLink] = []
    interests: List[str] = []
    avatar_url: Optional[str] = None

    @field_validator("username")
    @classmethod
    def username_format(cls, value: str) -> str:
        if not validate_profile_username(value):
            raise ValueError("Username must be 3-30 letters, digits, dots or underscores")
        return value

class UploadResponse(BaseModel):
    name: str
    path: str
    size: int
    type: Optional[str] = None
    public_url: str
