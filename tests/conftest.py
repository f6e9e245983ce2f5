# tests/conftest.py
# Set environment variables BEFORE any imports that read them
import os
os.environ["DATABASE_URL"] = "sqlite:///./test_tierquota.db"
os.environ["JWT_SECRET"] = "test-jwt-secret-for-testing-only"
os.environ["QUOTA_TIMEZONE"] = "UTC"
os.environ["POLICY_CACHE_ENABLED"] = "false"
os.environ["STRICT_QUOTA_ENFORCEMENT"] = "false"
os.environ["ADMIN_EMAILS"] = "owner@example.com"

import uuid
from datetime import datetime, timezone

import pytest

from tierquota.auth import create_jwt, hash_password
from tierquota.database import Base, SessionLocal, engine
from tierquota.models import ImageModel, QuotaLimit, TierModelAccess, UsageCounter, User, UserTier

# Mid-month, mid-day, so hour, day and month windows are all distinct
FIXED_NOW = datetime(2026, 3, 15, 14, 30, tzinfo=timezone.utc)

FREE_MODEL = "fal-ai/fast-sdxl"
PREMIUM_MODEL = "fal-ai/flux-pro/v1.1-ultra"


@pytest.fixture(scope="session", autouse=True)
def cleanup_database_file():
    yield
    engine.dispose()
    if os.path.exists("./test_tierquota.db"):
        os.remove("./test_tierquota.db")


@pytest.fixture(autouse=True)
def setup_database():
    """Create tables before each test and drop after."""
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def db_session():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture
def clock():
    return lambda: FIXED_NOW


@pytest.fixture
def catalog(db_session):
    """Free and premium tiers, two models, and a fully configured matrix.

    free:    fast-sdxl enabled (1/3/90), flux-pro disabled (0/0/0)
    premium: both enabled (10/100/3000 and 5/50/1500)
    """
    free = UserTier(name="free", display_name="Free")
    premium = UserTier(name="premium", display_name="Premium")
    sdxl = ImageModel(model_id=FREE_MODEL, display_name="Fast SDXL")
    ultra = ImageModel(model_id=PREMIUM_MODEL, display_name="FLUX Pro Ultra")
    db_session.add_all([free, premium, sdxl, ultra])
    db_session.flush()

    db_session.add_all([
        TierModelAccess(tier_id=free.id, model_id=sdxl.id, is_enabled=True),
        TierModelAccess(tier_id=free.id, model_id=ultra.id, is_enabled=False),
        TierModelAccess(tier_id=premium.id, model_id=sdxl.id, is_enabled=True),
        TierModelAccess(tier_id=premium.id, model_id=ultra.id, is_enabled=True),
        QuotaLimit(tier_id=free.id, model_id=sdxl.id, hourly_limit=1, daily_limit=3, monthly_limit=90),
        QuotaLimit(tier_id=free.id, model_id=ultra.id, hourly_limit=0, daily_limit=0, monthly_limit=0),
        QuotaLimit(tier_id=premium.id, model_id=sdxl.id, hourly_limit=10, daily_limit=100, monthly_limit=3000),
        QuotaLimit(tier_id=premium.id, model_id=ultra.id, hourly_limit=5, daily_limit=50, monthly_limit=1500),
    ])
    db_session.commit()
    return {"free": free, "premium": premium, "sdxl": sdxl, "ultra": ultra}


@pytest.fixture
def make_user(db_session):
    def _make_user(tier="free", is_premium=False, is_admin=False, email=None, password="testpass123"):
        user = User(
            id=str(uuid.uuid4()),
            email=email or f"{uuid.uuid4().hex[:8]}@example.com",
            password_hash=hash_password(password),
            user_tier=tier,
            is_premium=is_premium,
            is_admin=is_admin,
        )
        db_session.add(user)
        db_session.commit()
        db_session.refresh(user)
        return user
    return _make_user


@pytest.fixture
def add_usage(db_session):
    """Insert a raw usage counter row."""
    def _add_usage(user_id, model_pk, day, hour, images):
        db_session.add(UsageCounter(user_id=user_id, model_id=model_pk, date=day, hour=hour,
                                    images_generated=images))
        db_session.commit()
    return _add_usage


@pytest.fixture
def auth_header():
    def _auth_header(user_id: str) -> dict:
        return {"Authorization": f"Bearer {create_jwt(user_id)}"}
    return _auth_header
