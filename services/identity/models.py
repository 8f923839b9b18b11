# services/identity/models.py
from datetime import datetime
from typing import Literal, Optional
from uuid import UUID

from pydantic import BaseModel, EmailStr, Field, field_validator

MAX_PREFERENCES = 20

ProfileStatus = Literal["active", "pending_deletion"]


# Auth models
class SignInRequest(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=1)


class SignUpRequest(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=6, max_length=72)


class AuthUser(BaseModel):
    id: UUID
    email: str
    created_at: Optional[datetime] = None


class Session(BaseModel):
    access_token: str
    token_type: str = "bearer"
    expires_in: int


class AuthResponse(BaseModel):
    user: AuthUser
    session: Session


class MessageResponse(BaseModel):
    message: str


# Profile models
class Profile(BaseModel):
    user_id: UUID
    preferences: list[str] = []
    status: ProfileStatus = "active"
    status_changed_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class PreferencesUpdateRequest(BaseModel):
    preferences: list[str]

    @field_validator("preferences")
    @classmethod
    def validate_preferences(cls, v):
        unique = []
        for tag in v:
            tag = tag.strip()
            if tag and tag not in unique:
                unique.append(tag)
        if len(unique) > MAX_PREFERENCES:
            raise ValueError(f"Maximum {MAX_PREFERENCES} unique preferences allowed")
        return unique


class PreferencesUpdateResponse(BaseModel):
    user_id: UUID
    preferences: list[str]
    status: ProfileStatus
    updated_at: datetime


class ProfileDeletionResponse(BaseModel):
    message: str = "Profile scheduled for deletion"
    status: ProfileStatus
    deletion_scheduled_at: datetime


# API key models
class ApiKeyUpdateRequest(BaseModel):
    api_key: str = Field(..., min_length=20)
    provider: Literal["openai"] = "openai"

    @field_validator("api_key")
    @classmethod
    def validate_api_key(cls, v):
        v = v.strip()
        if not v.startswith("sk-"):
            raise ValueError("API key must start with 'sk-'")
        return v


class ApiKeyStatus(BaseModel):
    has_key: bool
    provider: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class GenerationAllowance(BaseModel):
    limit: int
    current_usage: int
    remaining_usage: int
    reset_time: Optional[datetime] = None
    has_personal_key: bool = False
