"""Tier, model, access matrix and quota policy storage.

Reads go through the optional policy cache; every write invalidates it.
Writes are last-writer-wins upserts with no versioning.
"""
import logging
from typing import NamedTuple, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from tierquota import policy_cache
from tierquota.config import settings
from tierquota.errors import ConflictError, InvalidConfigError, NotFoundError
from tierquota.models import ImageModel, QuotaLimit, TierModelAccess, User, UserTier
from tierquota.provider import validate_model_id

logger = logging.getLogger(__name__)


class TierRecord(NamedTuple):
    id: str
    name: str
    is_active: bool


class ModelRecord(NamedTuple):
    id: str
    model_id: str
    is_active: bool


class Limits(NamedTuple):
    hourly: int
    daily: int
    monthly: int

    def as_dict(self) -> dict:
        return {"hourly": self.hourly, "daily": self.daily, "monthly": self.monthly}


class Profile(NamedTuple):
    user_tier: Optional[str]
    is_premium: bool


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------

def get_profile(db: Session, user_id: str) -> Optional[Profile]:
    row = db.execute(
        select(User.user_tier, User.is_premium).where(User.id == user_id)
    ).first()
    if row is None:
        return None
    return Profile(user_tier=row.user_tier, is_premium=bool(row.is_premium))


def get_tier(db: Session, name: str) -> Optional[TierRecord]:
    def load():
        tier = db.execute(select(UserTier).where(UserTier.name == name)).scalar_one_or_none()
        if tier is None:
            return None
        return TierRecord(tier.id, tier.name, tier.is_active)._asdict()

    data = policy_cache.cached("tier", (name,), load)
    return TierRecord(**data) if data else None


def get_model(db: Session, model_id: str) -> Optional[ModelRecord]:
    def load():
        model = db.execute(
            select(ImageModel).where(ImageModel.model_id == model_id)
        ).scalar_one_or_none()
        if model is None:
            return None
        return ModelRecord(model.id, model.model_id, model.is_active)._asdict()

    data = policy_cache.cached("model", (model_id,), load)
    return ModelRecord(**data) if data else None


def get_access_rule(db: Session, tier: TierRecord, model: ModelRecord) -> Optional[bool]:
    """Return the rule's ``is_enabled`` flag, or None when no rule exists."""
    def load():
        return db.execute(
            select(TierModelAccess.is_enabled).where(
                TierModelAccess.tier_id == tier.id,
                TierModelAccess.model_id == model.id,
            )
        ).scalar_one_or_none()

    return policy_cache.cached("access", (tier.id, model.id), load)


def get_quota_policy(db: Session, tier: TierRecord, model: ModelRecord) -> Optional[Limits]:
    def load():
        row = db.execute(
            select(QuotaLimit.hourly_limit, QuotaLimit.daily_limit, QuotaLimit.monthly_limit).where(
                QuotaLimit.tier_id == tier.id,
                QuotaLimit.model_id == model.id,
            )
        ).first()
        if row is None:
            return None
        return [row.hourly_limit, row.daily_limit, row.monthly_limit]

    data = policy_cache.cached("quota", (tier.id, model.id), load)
    return Limits(*data) if data is not None else None


def enabled_model_ids(db: Session, tier: TierRecord) -> list[str]:
    """External ids of active models with an enabled access rule for *tier*."""
    def load():
        rows = db.execute(
            select(ImageModel.model_id)
            .join(TierModelAccess, TierModelAccess.model_id == ImageModel.id)
            .where(
                TierModelAccess.tier_id == tier.id,
                TierModelAccess.is_enabled.is_(True),
                ImageModel.is_active.is_(True),
            )
            .order_by(ImageModel.model_id)
        ).scalars().all()
        return list(rows)

    return policy_cache.cached("enabled", (tier.id,), load)


def list_tiers(db: Session) -> list[UserTier]:
    return list(db.execute(select(UserTier).order_by(UserTier.name)).scalars())


def list_models(db: Session) -> list[ImageModel]:
    return list(db.execute(select(ImageModel).order_by(ImageModel.display_name)).scalars())


def list_access_rules(db: Session) -> list[tuple[TierModelAccess, str, str]]:
    rows = db.execute(
        select(TierModelAccess, UserTier.name, ImageModel.model_id)
        .join(UserTier, UserTier.id == TierModelAccess.tier_id)
        .join(ImageModel, ImageModel.id == TierModelAccess.model_id)
        .order_by(UserTier.name, ImageModel.model_id)
    ).all()
    return [tuple(r) for r in rows]


def list_quota_policies(db: Session) -> list[tuple[QuotaLimit, str, str]]:
    rows = db.execute(
        select(QuotaLimit, UserTier.name, ImageModel.model_id)
        .join(UserTier, UserTier.id == QuotaLimit.tier_id)
        .join(ImageModel, ImageModel.id == QuotaLimit.model_id)
        .order_by(UserTier.name, ImageModel.model_id)
    ).all()
    return [tuple(r) for r in rows]


# ---------------------------------------------------------------------------
# Administrative writes
# ---------------------------------------------------------------------------

def _require_tier(db: Session, name: str) -> UserTier:
    tier = db.execute(select(UserTier).where(UserTier.name == name)).scalar_one_or_none()
    if tier is None:
        raise NotFoundError(f"Tier not found: {name}")
    return tier


def _require_model(db: Session, model_id: str) -> ImageModel:
    model = db.execute(
        select(ImageModel).where(ImageModel.model_id == model_id)
    ).scalar_one_or_none()
    if model is None:
        raise NotFoundError(f"Model not found: {model_id}")
    return model


def create_tier(
    db: Session,
    name: str,
    display_name: str,
    description: Optional[str] = None,
    is_active: bool = True,
) -> UserTier:
    name = name.strip()
    if not name:
        raise InvalidConfigError("Tier name must not be empty")
    if db.execute(select(UserTier.id).where(UserTier.name == name)).first():
        raise ConflictError(f"Tier already exists: {name}")

    tier = UserTier(name=name, display_name=display_name, description=description, is_active=is_active)
    db.add(tier)
    db.commit()
    db.refresh(tier)
    policy_cache.invalidate()
    logger.info(f"Created tier {name}")
    return tier


def update_tier(
    db: Session,
    name: str,
    display_name: Optional[str] = None,
    description: Optional[str] = None,
    is_active: Optional[bool] = None,
) -> UserTier:
    tier = _require_tier(db, name)
    if display_name is not None:
        tier.display_name = display_name
    if description is not None:
        tier.description = description
    if is_active is not None:
        tier.is_active = is_active
    db.commit()
    db.refresh(tier)
    policy_cache.invalidate()
    return tier


def delete_tier(db: Session, name: str) -> None:
    """Delete an unreferenced tier.

    Raises ConflictError while any user, access rule or quota policy still
    refers to it.
    """
    tier = _require_tier(db, name)

    if db.execute(select(User.id).where(User.user_tier == name).limit(1)).first():
        raise ConflictError(f"Tier {name} is assigned to users")
    if db.execute(select(TierModelAccess.id).where(TierModelAccess.tier_id == tier.id).limit(1)).first():
        raise ConflictError(f"Tier {name} has access rules")
    if db.execute(select(QuotaLimit.id).where(QuotaLimit.tier_id == tier.id).limit(1)).first():
        raise ConflictError(f"Tier {name} has quota limits")

    db.delete(tier)
    db.commit()
    policy_cache.invalidate()
    logger.info(f"Deleted tier {name}")


def create_model(
    db: Session,
    model_id: str,
    display_name: str,
    description: Optional[str] = None,
    provider: str = "fal-ai",
    is_active: bool = True,
) -> ImageModel:
    model_id = model_id.strip()
    if not model_id:
        raise InvalidConfigError("Model id must not be empty")
    try:
        validate_model_id(model_id)
    except ValueError as e:
        raise InvalidConfigError(str(e)) from e
    if db.execute(select(ImageModel.id).where(ImageModel.model_id == model_id)).first():
        raise ConflictError(f"Model already exists: {model_id}")

    model = ImageModel(
        model_id=model_id,
        display_name=display_name,
        description=description,
        provider=provider,
        is_active=is_active,
    )
    db.add(model)
    db.commit()
    db.refresh(model)
    policy_cache.invalidate()
    logger.info(f"Created model {model_id}")
    return model


def update_model(
    db: Session,
    model_id: str,
    display_name: Optional[str] = None,
    description: Optional[str] = None,
    is_active: Optional[bool] = None,
) -> ImageModel:
    model = _require_model(db, model_id)
    if display_name is not None:
        model.display_name = display_name
    if description is not None:
        model.description = description
    if is_active is not None:
        model.is_active = is_active
    db.commit()
    db.refresh(model)
    policy_cache.invalidate()
    return model


def set_access(db: Session, tier_name: str, model_id: str, is_enabled: bool) -> TierModelAccess:
    """Create or replace the access rule for (tier, model)."""
    tier = _require_tier(db, tier_name)
    model = _require_model(db, model_id)

    rule = db.execute(
        select(TierModelAccess).where(
            TierModelAccess.tier_id == tier.id,
            TierModelAccess.model_id == model.id,
        )
    ).scalar_one_or_none()
    if rule is None:
        rule = TierModelAccess(tier_id=tier.id, model_id=model.id)
        db.add(rule)
    rule.is_enabled = is_enabled
    db.commit()
    db.refresh(rule)
    policy_cache.invalidate()
    logger.info(f"Access {tier_name}/{model_id} set to {'enabled' if is_enabled else 'disabled'}")
    return rule


def set_quota(
    db: Session,
    tier_name: str,
    model_id: str,
    hourly_limit: int,
    daily_limit: int,
    monthly_limit: int,
) -> QuotaLimit:
    """Create or replace the quota policy for (tier, model)."""
    for label, value in (("hourly_limit", hourly_limit), ("daily_limit", daily_limit),
                         ("monthly_limit", monthly_limit)):
        if not isinstance(value, int) or isinstance(value, bool) or value < 0:
            raise InvalidConfigError(f"{label} must be a non-negative integer")

    tier = _require_tier(db, tier_name)
    model = _require_model(db, model_id)

    policy = db.execute(
        select(QuotaLimit).where(
            QuotaLimit.tier_id == tier.id,
            QuotaLimit.model_id == model.id,
        )
    ).scalar_one_or_none()
    if policy is None:
        policy = QuotaLimit(tier_id=tier.id, model_id=model.id)
        db.add(policy)
    policy.hourly_limit = hourly_limit
    policy.daily_limit = daily_limit
    policy.monthly_limit = monthly_limit
    db.commit()
    db.refresh(policy)
    policy_cache.invalidate()
    logger.info(
        f"Quota {tier_name}/{model_id} set to "
        f"hourly={hourly_limit} daily={daily_limit} monthly={monthly_limit}"
    )
    return policy


def set_user_tier(db: Session, user_id: str, tier_name: str) -> User:
    """Move a user to *tier_name*; premium flag follows the configured premium tiers."""
    _require_tier(db, tier_name)
    user = db.get(User, user_id)
    if user is None:
        raise NotFoundError(f"User not found: {user_id}")

    user.user_tier = tier_name
    user.is_premium = tier_name in settings.premium_tier_names
    db.commit()
    db.refresh(user)
    logger.info(f"User {user_id} moved to tier {tier_name}")
    return user
