# tierquota/seed.py
"""Default tiers, models, access matrix and quota limits.

Seeding only fills gaps: existing tiers, models, access rules and quota rows
are never overwritten, so it is safe to run against a configured database.
"""
import logging

from sqlalchemy import select
from sqlalchemy.orm import Session

from tierquota import policy_cache
from tierquota.models import ImageModel, QuotaLimit, TierModelAccess, UserTier

logger = logging.getLogger(__name__)

DEFAULT_TIERS = [
    {"name": "free", "display_name": "Free", "description": "Basic models with daily limits"},
    {"name": "premium", "display_name": "Premium", "description": "All models with higher limits"},
    {"name": "admin", "display_name": "Admin", "description": "Unrestricted internal use"},
]

DEFAULT_MODELS = [
    {"model_id": "fal-ai/fast-sdxl", "display_name": "Fast SDXL",
     "description": "Fast Stable Diffusion XL model"},
    {"model_id": "fal-ai/flux/schnell", "display_name": "Flux Schnell",
     "description": "Fast Flux model for quick generation"},
    {"model_id": "fal-ai/flux/dev", "display_name": "Flux Dev",
     "description": "High-quality Flux development model"},
    {"model_id": "fal-ai/ideogram/v2", "display_name": "Ideogram v2",
     "description": "Advanced text-to-image model"},
    {"model_id": "fal-ai/flux-pro/v1.1-ultra", "display_name": "FLUX Pro Ultra",
     "description": "Highest quality Flux model"},
    {"model_id": "fal-ai/flux-pro/kontext", "display_name": "FLUX Kontext Pro",
     "description": "Reference-image editing with FLUX Kontext"},
    {"model_id": "fal-ai/bytedance/seededit/v3/edit-image", "display_name": "SeedEdit V3",
     "description": "AI-powered image editing with ByteDance SeedEdit"},
]

_PREMIUM_MARKERS = ("pro", "ultra", "edit", "kontext", "seededit")
_FREE_MODELS = ("fast-sdxl", "flux/schnell", "ideogram/v2")


def is_premium_model(model_id: str) -> bool:
    return any(marker in model_id for marker in _PREMIUM_MARKERS)


def default_access(tier_name: str, model_id: str) -> bool:
    if tier_name in ("admin", "premium"):
        return True
    if tier_name == "free":
        return any(name in model_id for name in _FREE_MODELS)
    return False


def default_limits(tier_name: str, model_id: str) -> tuple[int, int, int]:
    """(hourly, daily, monthly) for a tier/model pair."""
    premium_model = is_premium_model(model_id)
    if tier_name == "free":
        return (0, 0, 0) if premium_model else (1, 3, 90)
    if tier_name == "premium":
        return (5, 50, 1500) if premium_model else (10, 100, 3000)
    if tier_name == "admin":
        return (100, 1000, 30000)
    return (1, 3, 90)


def seed_defaults(db: Session) -> dict:
    """Insert any missing default rows. Returns counts of what was created."""
    created = {"tiers": 0, "models": 0, "access": 0, "quotas": 0}

    existing_tiers = set(db.execute(select(UserTier.name)).scalars())
    for defaults in DEFAULT_TIERS:
        if defaults["name"] not in existing_tiers:
            db.add(UserTier(is_active=True, **defaults))
            created["tiers"] += 1

    existing_models = set(db.execute(select(ImageModel.model_id)).scalars())
    for defaults in DEFAULT_MODELS:
        if defaults["model_id"] not in existing_models:
            db.add(ImageModel(provider="fal-ai", is_active=True, **defaults))
            created["models"] += 1
    db.flush()

    tiers = list(db.execute(select(UserTier)).scalars())
    models = list(db.execute(select(ImageModel)).scalars())
    access_pairs = {tuple(r) for r in db.execute(select(TierModelAccess.tier_id, TierModelAccess.model_id))}
    quota_pairs = {tuple(r) for r in db.execute(select(QuotaLimit.tier_id, QuotaLimit.model_id))}

    for tier in tiers:
        for model in models:
            if (tier.id, model.id) not in access_pairs:
                db.add(TierModelAccess(
                    tier_id=tier.id,
                    model_id=model.id,
                    is_enabled=default_access(tier.name, model.model_id),
                ))
                created["access"] += 1
            if (tier.id, model.id) not in quota_pairs:
                hourly, daily, monthly = default_limits(tier.name, model.model_id)
                db.add(QuotaLimit(
                    tier_id=tier.id,
                    model_id=model.id,
                    hourly_limit=hourly,
                    daily_limit=daily,
                    monthly_limit=monthly,
                ))
                created["quotas"] += 1

    db.commit()
    policy_cache.invalidate()
    logger.info(f"Seeded defaults: {created}")
    return created
