# tierquota/routes/quota.py
from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.orm import Session

from tierquota.auth import get_current_user
from tierquota.database import get_db
from tierquota.models import User
from tierquota.quota import QuotaManager
from tierquota.schemas import AccessDecision, QuotaCheck, QuotaStatusResponse

router = APIRouter(prefix="/v1/quota", tags=["quota"])


class ModelQuotaResponse(BaseModel):
    access: AccessDecision
    quota: QuotaCheck


@router.get("", response_model=QuotaStatusResponse)
def quota_status(user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    """Quota status for every model available to the caller."""
    manager = QuotaManager(db)
    return QuotaStatusResponse(
        tier=manager.resolve_user_tier(user.id),
        models=manager.status_for_all_accessible_models(user.id),
    )


@router.get("/{model_id:path}", response_model=ModelQuotaResponse)
def model_quota(model_id: str, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    manager = QuotaManager(db)
    return ModelQuotaResponse(
        access=manager.check_access(user.id, model_id),
        quota=manager.check_quota(user.id, model_id),
    )
