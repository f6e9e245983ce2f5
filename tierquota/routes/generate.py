# tierquota/routes/generate.py
import logging

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from tierquota.auth import get_current_user
from tierquota.config import settings
from tierquota.database import get_db
from tierquota.errors import ProviderError
from tierquota.models import User
from tierquota.provider import build_input, generate_images
from tierquota.quota import QuotaManager
from tierquota.schemas import GenerateRequest, GenerateResponse, QuotaCheck, QuotaDenied
from tierquota.windows import format_until, local_now

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1", tags=["generate"])


def quota_denied_response(quota: QuotaCheck) -> JSONResponse:
    """429 body carrying enough to render a reset countdown."""
    body = QuotaDenied(
        error=f"Generation limit reached: {quota.reason}",
        reason=quota.reason,
        usage=quota.usage,
        limits=quota.limits,
        period=quota.period,
        used=quota.used,
        limit=quota.limit,
        resets_at=quota.resets_at,
        resets_in=format_until(quota.resets_at, local_now()) if quota.resets_at else None,
    )
    return JSONResponse(status_code=429, content=body.model_dump(mode="json"))


@router.post("/generate", response_model=GenerateResponse)
async def generate(
    request: GenerateRequest,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Generate images after access and quota checks."""
    manager = QuotaManager(db)

    access = manager.check_access(user.id, request.model)
    if not access.allowed:
        raise HTTPException(
            status_code=403,
            detail=f"You don't have access to this model: {access.reason}. "
                   "Please upgrade your plan or contact support.",
        )

    try:
        body = build_input(
            request.model, request.prompt, request.aspect_ratio, request.num_images, request.image_url
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    reservation = None
    if settings.strict_quota_enforcement:
        quota, reservation = manager.reserve_usage(user.id, request.model, request.num_images)
    else:
        quota = manager.check_quota(user.id, request.model)
    if not quota.allowed:
        return quota_denied_response(quota)

    try:
        urls = await generate_images(request.model, body)
    except ProviderError as e:
        if reservation is not None:
            manager.release_usage(reservation)
        raise HTTPException(status_code=502, detail=str(e))
    except Exception:
        # No images were produced, so nothing reserved may stay charged
        if reservation is not None:
            manager.release_usage(reservation)
        raise

    if reservation is None:
        recorded = manager.record_usage(user.id, request.model, len(urls))
    elif len(urls) < reservation.count:
        recorded = manager.release_usage(reservation, reservation.count - len(urls))
    elif len(urls) > reservation.count:
        recorded = manager.record_usage(user.id, request.model, len(urls) - reservation.count)
    else:
        recorded = True

    if not recorded:
        # The user already has their images; the ledger is now behind
        logger.error(f"Usage for {user.id}/{request.model} ({len(urls)} images) was not recorded")

    return GenerateResponse(images=urls, quota=quota)
