"""Pydantic schemas for API request/response validation."""
from datetime import datetime
from typing import Optional
from enum import Enum

from pydantic import BaseModel, Field, ConfigDict


class GrantTypeEnum(str, Enum):
    """Token endpoint grant types."""
    AUTHORIZATION_CODE = "authorization_code"
    CLIENT_CREDENTIALS = "client_credentials"


# ===== Auth Schemas =====

class TokenRequest(BaseModel):
    grant_type: GrantTypeEnum
    code: Optional[str] = None
    state: Optional[str] = None


class UserInfo(BaseModel):
    id: int
    email: str
    name: str
    is_root: bool
    can_invite: bool

    model_config = ConfigDict(from_attributes=True)


class AccessTokenResponse(BaseModel):
    access_token: str
    token_type: str = "Bearer"
    expires_in: Optional[int] = None
    user: UserInfo


class PendingTokenResponse(BaseModel):
    token: str
    auth_url: str


class PendingStatusResponse(BaseModel):
    status: str
    access_token: Optional[str] = None
    user_email: Optional[str] = None


# ===== User Schemas =====

class UserCreate(BaseModel):
    email: str = Field(..., min_length=3, max_length=320)
    name: str = Field(..., min_length=1, max_length=255)
    external_id: str = Field(..., min_length=1, max_length=255)
    invite_code: Optional[str] = None


class UserUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    can_invite: Optional[bool] = None


class UserResponse(BaseModel):
    id: int
    external_id: str
    email: str
    name: str
    is_root: bool
    can_invite: bool
    invited_by: Optional[int] = None
    registered_at: datetime
    last_login: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


# ===== Invite Schemas =====

class InviteCreate(BaseModel):
    expires_in_hours: Optional[int] = Field(None, ge=1, le=24 * 365)


class InviteResponse(BaseModel):
    id: int
    code: str
    created_by: int
    created_at: datetime
    expires_at: Optional[datetime] = None
    used_by: Optional[int] = None
    used_at: Optional[datetime] = None
    is_active: bool

    model_config = ConfigDict(from_attributes=True)


# ===== Misc =====

class SuccessResponse(BaseModel):
    success: bool = True
    message: str


class ContentResponse(BaseModel):
    message: str
    user: str
    timestamp: datetime


class SystemStatusResponse(BaseModel):
    status: str
    version: str
    users_registered: int
    root_user_exists: bool
    timestamp: datetime
