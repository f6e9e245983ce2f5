"""Administrative JSON API for tiers, models, the access matrix and quotas."""
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from tierquota import ledger, registry
from tierquota.auth import require_admin
from tierquota.database import get_db
from tierquota.models import User
from tierquota.quota import QuotaManager
from tierquota.schemas import (
    AccessOut, AccessUpdate,
    ModelCreate, ModelOut, ModelUpdate,
    QuotaOut, QuotaStatusResponse, QuotaUpdate,
    TierCreate, TierOut, TierUpdate,
    UsageRow, UserTierResponse, UserTierUpdate,
)

router = APIRouter(prefix="/admin/api", tags=["admin"], dependencies=[Depends(require_admin)])


# Tiers
@router.get("/tiers", response_model=list[TierOut])
def list_tiers(db: Session = Depends(get_db)):
    return registry.list_tiers(db)


@router.post("/tiers", response_model=TierOut, status_code=201)
def create_tier(request: TierCreate, db: Session = Depends(get_db)):
    return registry.create_tier(db, request.name, request.display_name, request.description, request.is_active)


@router.patch("/tiers/{name}", response_model=TierOut)
def update_tier(name: str, request: TierUpdate, db: Session = Depends(get_db)):
    return registry.update_tier(db, name, request.display_name, request.description, request.is_active)


@router.delete("/tiers/{name}")
def delete_tier(name: str, db: Session = Depends(get_db)):
    registry.delete_tier(db, name)
    return {"status": "ok"}


# Models
@router.get("/models", response_model=list[ModelOut])
def list_models(db: Session = Depends(get_db)):
    return registry.list_models(db)


@router.post("/models", response_model=ModelOut, status_code=201)
def create_model(request: ModelCreate, db: Session = Depends(get_db)):
    return registry.create_model(
        db, request.model_id, request.display_name, request.description, request.provider, request.is_active
    )


@router.patch("/models/{model_id:path}", response_model=ModelOut)
def update_model(model_id: str, request: ModelUpdate, db: Session = Depends(get_db)):
    return registry.update_model(db, model_id, request.display_name, request.description, request.is_active)


# Access matrix
@router.get("/access", response_model=list[AccessOut])
def list_access(db: Session = Depends(get_db)):
    return [
        AccessOut(tier=tier, model_id=model_id, is_enabled=rule.is_enabled)
        for rule, tier, model_id in registry.list_access_rules(db)
    ]


@router.put("/access", response_model=AccessOut)
def update_access(request: AccessUpdate, db: Session = Depends(get_db)):
    rule = registry.set_access(db, request.tier, request.model_id, request.is_enabled)
    return AccessOut(tier=request.tier, model_id=request.model_id, is_enabled=rule.is_enabled)


# Quota policies
@router.get("/quotas", response_model=list[QuotaOut])
def list_quotas(db: Session = Depends(get_db)):
    return [
        QuotaOut(
            tier=tier,
            model_id=model_id,
            hourly_limit=policy.hourly_limit,
            daily_limit=policy.daily_limit,
            monthly_limit=policy.monthly_limit,
        )
        for policy, tier, model_id in registry.list_quota_policies(db)
    ]


@router.put("/quotas", response_model=QuotaOut)
def update_quota(request: QuotaUpdate, db: Session = Depends(get_db)):
    policy = registry.set_quota(
        db, request.tier, request.model_id, request.hourly_limit, request.daily_limit, request.monthly_limit
    )
    return QuotaOut(
        tier=request.tier,
        model_id=request.model_id,
        hourly_limit=policy.hourly_limit,
        daily_limit=policy.daily_limit,
        monthly_limit=policy.monthly_limit,
    )


# Users
@router.put("/users/{user_id}/tier", response_model=UserTierResponse)
def change_user_tier(user_id: str, request: UserTierUpdate, db: Session = Depends(get_db)):
    user: User = registry.set_user_tier(db, user_id, request.tier)
    return UserTierResponse(user_id=user.id, tier=user.user_tier, is_premium=user.is_premium)


@router.get("/users/{user_id}/quota", response_model=QuotaStatusResponse)
def user_quota(user_id: str, db: Session = Depends(get_db)):
    manager = QuotaManager(db)
    return QuotaStatusResponse(
        tier=manager.resolve_user_tier(user_id),
        models=manager.status_for_all_accessible_models(user_id),
    )


# Analytics (raw counters, read-only)
@router.get("/usage", response_model=list[UsageRow])
def usage(
    user_id: Optional[str] = None,
    since: Optional[date] = None,
    limit: int = Query(default=1000, ge=1, le=10000),
    db: Session = Depends(get_db),
):
    rows = ledger.usage_rows(db, user_id=user_id, since=since, limit=limit)
    return [UsageRow(**row._asdict()) for row in rows]
