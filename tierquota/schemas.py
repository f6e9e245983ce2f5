# tierquota/schemas.py
import datetime as dt
from typing import Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field

from tierquota.windows import Period


# Engine results
class TierInfo(BaseModel):
    tier: str
    is_premium: bool


class AccessDecision(BaseModel):
    allowed: bool
    reason: Optional[str] = None


class WindowCounts(BaseModel):
    hourly: int = 0
    daily: int = 0
    monthly: int = 0


class QuotaCheck(BaseModel):
    allowed: bool
    reason: Optional[str] = None
    usage: WindowCounts = Field(default_factory=WindowCounts)
    limits: WindowCounts = Field(default_factory=WindowCounts)
    # Set only when a window limit caused the denial
    period: Optional[Period] = None
    used: Optional[int] = None
    limit: Optional[int] = None
    resets_at: Optional[dt.datetime] = None


# Auth schemas
class SignupRequest(BaseModel):
    email: EmailStr
    password: str = Field(min_length=8)


class SignupResponse(BaseModel):
    user_id: str
    tier: str


class LoginRequest(BaseModel):
    email: EmailStr
    password: str


class LoginResponse(BaseModel):
    token: str
    expires_in: int


# Generation schemas
class GenerateRequest(BaseModel):
    prompt: str = Field(min_length=1, max_length=4000)
    model: str = "fal-ai/fast-sdxl"
    aspect_ratio: str = "1:1"
    num_images: int = Field(default=1, ge=1, le=4)
    image_url: Optional[str] = None


class GenerateResponse(BaseModel):
    images: list[str]
    quota: QuotaCheck


class QuotaDenied(BaseModel):
    error: str
    reason: Optional[str]
    usage: WindowCounts
    limits: WindowCounts
    period: Optional[Period] = None
    used: Optional[int] = None
    limit: Optional[int] = None
    resets_at: Optional[dt.datetime] = None
    resets_in: Optional[str] = None


class QuotaStatusResponse(BaseModel):
    tier: Optional[TierInfo]
    models: dict[str, QuotaCheck]


# Admin schemas
class TierCreate(BaseModel):
    name: str = Field(min_length=1, max_length=64)
    display_name: str
    description: Optional[str] = None
    is_active: bool = True


class TierUpdate(BaseModel):
    display_name: Optional[str] = None
    description: Optional[str] = None
    is_active: Optional[bool] = None


class TierOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    display_name: str
    description: Optional[str] = None
    is_active: bool


class ModelCreate(BaseModel):
    model_config = ConfigDict(protected_namespaces=())

    model_id: str = Field(min_length=1, max_length=200)
    display_name: str
    description: Optional[str] = None
    provider: str = "fal-ai"
    is_active: bool = True


class ModelUpdate(BaseModel):
    display_name: Optional[str] = None
    description: Optional[str] = None
    is_active: Optional[bool] = None


class ModelOut(BaseModel):
    model_config = ConfigDict(from_attributes=True, protected_namespaces=())

    id: str
    model_id: str
    display_name: str
    description: Optional[str] = None
    provider: str
    is_active: bool


class AccessUpdate(BaseModel):
    model_config = ConfigDict(protected_namespaces=())

    tier: str
    model_id: str
    is_enabled: bool


class AccessOut(BaseModel):
    model_config = ConfigDict(protected_namespaces=())

    tier: str
    model_id: str
    is_enabled: bool


class QuotaUpdate(BaseModel):
    model_config = ConfigDict(protected_namespaces=())

    tier: str
    model_id: str
    hourly_limit: int = Field(ge=0)
    daily_limit: int = Field(ge=0)
    monthly_limit: int = Field(ge=0)


class QuotaOut(BaseModel):
    model_config = ConfigDict(protected_namespaces=())

    tier: str
    model_id: str
    hourly_limit: int
    daily_limit: int
    monthly_limit: int


class UserTierUpdate(BaseModel):
    tier: str


class UserTierResponse(BaseModel):
    user_id: str
    tier: str
    is_premium: bool


class UsageRow(BaseModel):
    model_config = ConfigDict(protected_namespaces=())

    user_id: str
    email: Optional[str] = None
    model_id: str
    date: dt.date
    hour: int
    images_generated: int


# Health schemas
class HealthResponse(BaseModel):
    status: str
    version: str
