# tierquota/models.py
import uuid
from datetime import datetime
from sqlalchemy import (
    Boolean, CheckConstraint, Column, Date, DateTime, ForeignKey, Index, Integer, String, Text,
    UniqueConstraint,
)
from tierquota.database import Base


def _uuid() -> str:
    return str(uuid.uuid4())


class User(Base):
    __tablename__ = "users"

    id = Column(String, primary_key=True, default=_uuid)
    email = Column(String, unique=True, nullable=False)
    password_hash = Column(String, nullable=False)
    # Stored as free text; validated against user_tiers on every read
    user_tier = Column(String, nullable=True, default="free")
    is_premium = Column(Boolean, nullable=False, default=False)
    is_admin = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class UserTier(Base):
    __tablename__ = "user_tiers"

    id = Column(String, primary_key=True, default=_uuid)
    name = Column(String, unique=True, nullable=False)
    display_name = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class ImageModel(Base):
    __tablename__ = "image_models"

    id = Column(String, primary_key=True, default=_uuid)
    model_id = Column(String, unique=True, nullable=False)
    display_name = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    provider = Column(String, nullable=False, default="fal-ai")
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class TierModelAccess(Base):
    __tablename__ = "tier_model_access"

    id = Column(String, primary_key=True, default=_uuid)
    tier_id = Column(String, ForeignKey("user_tiers.id"), nullable=False)
    model_id = Column(String, ForeignKey("image_models.id"), nullable=False)
    is_enabled = Column(Boolean, nullable=False, default=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        UniqueConstraint("tier_id", "model_id", name="uq_tier_model_access"),
    )


class QuotaLimit(Base):
    __tablename__ = "quota_limits"

    id = Column(String, primary_key=True, default=_uuid)
    tier_id = Column(String, ForeignKey("user_tiers.id"), nullable=False)
    model_id = Column(String, ForeignKey("image_models.id"), nullable=False)
    hourly_limit = Column(Integer, nullable=False, default=0)
    daily_limit = Column(Integer, nullable=False, default=0)
    monthly_limit = Column(Integer, nullable=False, default=0)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        UniqueConstraint("tier_id", "model_id", name="uq_quota_limits"),
        CheckConstraint(
            "hourly_limit >= 0 AND daily_limit >= 0 AND monthly_limit >= 0",
            name="ck_quota_limits_non_negative",
        ),
    )


class UsageCounter(Base):
    __tablename__ = "usage_tracking"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String, ForeignKey("users.id"), nullable=False)
    model_id = Column(String, ForeignKey("image_models.id"), nullable=False)
    date = Column(Date, nullable=False)
    hour = Column(Integer, nullable=False)
    images_generated = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime, default=datetime.utcnow)

    __table_args__ = (
        UniqueConstraint("user_id", "model_id", "date", "hour", name="uq_usage_bucket"),
        CheckConstraint("hour >= 0 AND hour <= 23", name="ck_usage_hour"),
        Index("idx_usage_user_model_date", "user_id", "model_id", "date"),
    )
