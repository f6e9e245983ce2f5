"""Tier access and quota enforcement.

A request handler calls, in order::

    check_access(user_id, model_id)   -> 403 when denied
    check_quota(user_id, model_id)    -> 429 when denied
    <external generation call>
    record_usage(user_id, model_id, n)

Every decision is recomputed from storage; the manager keeps no state of its
own between calls. Unknown users, unknown models, missing configuration and
storage errors all deny.

``check_quota`` and ``record_usage`` are separate calls with the generation
in between, so concurrent requests may overshoot a limit by the number of
requests in flight. ``reserve_usage``/``release_usage`` close that gap for
deployments that need strict enforcement.
"""

from __future__ import annotations

import logging
from typing import NamedTuple, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from tierquota import ledger, metrics, registry
from tierquota.config import settings
from tierquota.registry import Limits, ModelRecord, TierRecord
from tierquota.schemas import AccessDecision, QuotaCheck, TierInfo, WindowCounts
from tierquota.windows import Bucket, Clock, Period, current_bucket, first_violation, local_now, resets_at

logger = logging.getLogger(__name__)

UNKNOWN_USER = "Unknown user"
UNKNOWN_TIER = "Unknown tier"
UNKNOWN_MODEL = "Unknown model"
NO_QUOTA = "No quota configured"
ACCESS_ERROR = "Error checking access"
QUOTA_ERROR = "Error checking quota"

_EXCEEDED = {
    Period.HOURLY: "Hourly limit exceeded",
    Period.DAILY: "Daily limit exceeded",
    Period.MONTHLY: "Monthly limit exceeded",
}


class Reservation(NamedTuple):
    """Capacity taken by ``reserve_usage``; pass back to ``release_usage``."""

    user_id: str
    model_id: str
    model_pk: str
    bucket: Bucket
    count: int


class _Resolved(NamedTuple):
    info: TierInfo
    tier: Optional[TierRecord]


def _denied(reason: str, usage: Optional[dict] = None, limits: Optional[Limits] = None) -> QuotaCheck:
    return QuotaCheck(
        allowed=False,
        reason=reason,
        usage=WindowCounts(**(usage or {})),
        limits=WindowCounts(**(limits.as_dict() if limits else {})),
    )


class QuotaManager:
    """Access and quota decisions for one database session.

    Parameters
    ----------
    db:
        SQLAlchemy session used for every read and write.
    clock:
        Returns the current instant; injectable for tests.
    """

    def __init__(self, db: Session, clock: Clock = local_now) -> None:
        self._db = db
        self._clock = clock

    # ------------------------------------------------------------------
    # Tier resolution
    # ------------------------------------------------------------------

    def _resolve(self, user_id: str) -> Optional[_Resolved]:
        """Profile lookup plus registry validation. Storage errors propagate."""
        profile = registry.get_profile(self._db, user_id)
        if profile is None:
            return None

        tier = registry.get_tier(self._db, profile.user_tier) if profile.user_tier else None
        if tier is not None and tier.is_active:
            return _Resolved(TierInfo(tier=tier.name, is_premium=profile.is_premium), tier)

        # Never carry an unrecognised tier forward: drop to the lowest privilege
        logger.warning(
            f"User {user_id} has invalid tier {profile.user_tier!r}, "
            f"falling back to {settings.default_tier!r}"
        )
        fallback = registry.get_tier(self._db, settings.default_tier)
        if fallback is not None and not fallback.is_active:
            fallback = None
        return _Resolved(TierInfo(tier=settings.default_tier, is_premium=False), fallback)

    def resolve_user_tier(self, user_id: str) -> Optional[TierInfo]:
        """Return the user's effective tier, or None if it cannot be established."""
        try:
            resolved = self._resolve(user_id)
        except SQLAlchemyError as e:
            logger.error(f"Error fetching user tier for {user_id}: {e}")
            metrics.STORAGE_FAILURES.labels(operation="resolve_user_tier").inc()
            self._db.rollback()
            return None
        return resolved.info if resolved else None

    def _active_model(self, model_id: str) -> Optional[ModelRecord]:
        model = registry.get_model(self._db, model_id)
        if model is None or not model.is_active:
            return None
        return model

    # ------------------------------------------------------------------
    # Access
    # ------------------------------------------------------------------

    def check_access(self, user_id: str, model_id: str) -> AccessDecision:
        """Deny-by-default lookup in the access matrix."""
        try:
            decision = self._check_access(user_id, model_id)
        except SQLAlchemyError as e:
            logger.error(f"Error checking model access for {user_id}/{model_id}: {e}")
            metrics.STORAGE_FAILURES.labels(operation="check_access").inc()
            self._db.rollback()
            decision = AccessDecision(allowed=False, reason=ACCESS_ERROR)

        metrics.ACCESS_DECISIONS.labels(outcome="allowed" if decision.allowed else "denied").inc()
        return decision

    def _check_access(self, user_id: str, model_id: str) -> AccessDecision:
        resolved = self._resolve(user_id)
        if resolved is None:
            return AccessDecision(allowed=False, reason=UNKNOWN_USER)
        if resolved.tier is None:
            return AccessDecision(allowed=False, reason=UNKNOWN_TIER)

        model = self._active_model(model_id)
        if model is None:
            return AccessDecision(allowed=False, reason=UNKNOWN_MODEL)

        tier_name = resolved.tier.name
        enabled = registry.get_access_rule(self._db, resolved.tier, model)
        if enabled is None:
            return AccessDecision(
                allowed=False,
                reason=f"No access configured for model {model_id} on the {tier_name} tier",
            )
        if not enabled:
            return AccessDecision(
                allowed=False,
                reason=f"Model {model_id} is not available on the {tier_name} tier",
            )
        return AccessDecision(allowed=True)

    # ------------------------------------------------------------------
    # Quota
    # ------------------------------------------------------------------

    def _policy(self, user_id: str, model_id: str) -> QuotaCheck | tuple[ModelRecord, Optional[Limits]]:
        """Resolve tier, model and limits, or the denial explaining why not."""
        resolved = self._resolve(user_id)
        if resolved is None:
            return _denied(UNKNOWN_USER)
        if resolved.tier is None:
            return _denied(UNKNOWN_TIER)

        model = self._active_model(model_id)
        if model is None:
            return _denied(UNKNOWN_MODEL)

        limits = registry.get_quota_policy(self._db, resolved.tier, model)
        if limits is None:
            logger.warning(f"No quota configured for {resolved.tier.name}/{model_id}")
            return model, None
        return model, limits

    def _window_denial(self, period: Period, usage: dict, limits: Limits, now) -> QuotaCheck:
        limit_values = limits.as_dict()
        return QuotaCheck(
            allowed=False,
            reason=_EXCEEDED[period],
            usage=WindowCounts(**usage),
            limits=WindowCounts(**limit_values),
            period=period,
            used=usage[period.value],
            limit=limit_values[period.value],
            resets_at=resets_at(period, now),
        )

    def check_quota(self, user_id: str, model_id: str) -> QuotaCheck:
        """Evaluate hourly, daily then monthly usage against the tier's limits.

        The narrowest exhausted window is reported. Usage and limits are
        always included so callers can render remaining capacity.
        """
        now = self._clock()
        bucket = current_bucket(now)
        try:
            policy = self._policy(user_id, model_id)
            if isinstance(policy, QuotaCheck):
                result = policy
            else:
                model, limits = policy
                usage = ledger.window_usage(self._db, user_id, model.id, bucket)
                if limits is None:
                    result = _denied(NO_QUOTA, usage)
                else:
                    period = first_violation(usage, limits.as_dict())
                    if period is None:
                        result = QuotaCheck(
                            allowed=True,
                            usage=WindowCounts(**usage),
                            limits=WindowCounts(**limits.as_dict()),
                        )
                    else:
                        logger.warning(
                            f"Quota exceeded: user={user_id} model={model_id} "
                            f"{period.value}={usage[period.value]}/{limits.as_dict()[period.value]}"
                        )
                        result = self._window_denial(period, usage, limits, now)
        except SQLAlchemyError as e:
            logger.error(f"Error checking quota for {user_id}/{model_id}: {e}")
            metrics.STORAGE_FAILURES.labels(operation="check_quota").inc()
            self._db.rollback()
            result = _denied(QUOTA_ERROR)

        metrics.QUOTA_DECISIONS.labels(
            outcome="allowed" if result.allowed else "denied",
            period=result.period.value if result.period else "none",
        ).inc()
        return result

    # ------------------------------------------------------------------
    # Usage recording
    # ------------------------------------------------------------------

    def record_usage(self, user_id: str, model_id: str, count: int = 1) -> bool:
        """Add *count* images to the current hour's counter.

        Returns False, without raising, when the model is unknown or the
        write fails. A False here means usage went uncounted.
        """
        if not isinstance(count, int) or isinstance(count, bool) or count <= 0:
            raise ValueError(f"count must be a positive integer, got {count!r}")

        bucket = current_bucket(self._clock())
        try:
            model = registry.get_model(self._db, model_id)
            if model is None:
                logger.error(f"Model not found for usage tracking: {model_id}")
                metrics.USAGE_WRITE_FAILURES.labels(model="unknown").inc()
                return False
            ledger.increment(self._db, user_id, model.id, bucket, count)
        except SQLAlchemyError as e:
            self._db.rollback()
            logger.error(f"Error tracking usage for {user_id}/{model_id} (+{count}): {e}")
            metrics.USAGE_WRITE_FAILURES.labels(model=model_id).inc()
            return False

        metrics.IMAGES_RECORDED.labels(model=model_id).inc(count)
        return True

    # ------------------------------------------------------------------
    # Strict enforcement
    # ------------------------------------------------------------------

    def reserve_usage(self, user_id: str, model_id: str, count: int = 1) -> tuple[QuotaCheck, Optional[Reservation]]:
        """Check quota and take *count* units in one atomic step.

        On success the usage is already recorded; call ``release_usage`` if
        the generation fails or produces fewer images than reserved.
        """
        if not isinstance(count, int) or isinstance(count, bool) or count <= 0:
            raise ValueError(f"count must be a positive integer, got {count!r}")

        now = self._clock()
        bucket = current_bucket(now)
        try:
            policy = self._policy(user_id, model_id)
            if isinstance(policy, QuotaCheck):
                return policy, None
            model, limits = policy
            if limits is None:
                return _denied(NO_QUOTA), None

            period, usage = ledger.reserve(self._db, user_id, model.id, bucket, count, limits.as_dict())
        except SQLAlchemyError as e:
            logger.error(f"Error reserving quota for {user_id}/{model_id}: {e}")
            metrics.STORAGE_FAILURES.labels(operation="reserve_usage").inc()
            self._db.rollback()
            return _denied(QUOTA_ERROR), None

        if period is not None:
            logger.warning(
                f"Reservation refused: user={user_id} model={model_id} "
                f"{period.value}={usage[period.value]}+{count}/{limits.as_dict()[period.value]}"
            )
            metrics.QUOTA_DECISIONS.labels(outcome="denied", period=period.value).inc()
            return self._window_denial(period, usage, limits, now), None

        metrics.QUOTA_DECISIONS.labels(outcome="allowed", period="none").inc()
        metrics.IMAGES_RECORDED.labels(model=model_id).inc(count)
        check = QuotaCheck(
            allowed=True,
            usage=WindowCounts(**usage),
            limits=WindowCounts(**limits.as_dict()),
        )
        return check, Reservation(user_id, model_id, model.id, bucket, count)

    def release_usage(self, reservation: Reservation, count: Optional[int] = None) -> bool:
        """Return unused reserved capacity. *count* defaults to the whole reservation."""
        amount = reservation.count if count is None else min(count, reservation.count)
        if amount <= 0:
            return True
        try:
            ledger.release(self._db, reservation.user_id, reservation.model_pk, reservation.bucket, amount)
        except SQLAlchemyError as e:
            self._db.rollback()
            logger.error(
                f"Error releasing {amount} reserved images for "
                f"{reservation.user_id}/{reservation.model_id}: {e}"
            )
            return False
        return True

    # ------------------------------------------------------------------
    # Aggregate status
    # ------------------------------------------------------------------

    def status_for_all_accessible_models(self, user_id: str) -> dict[str, QuotaCheck]:
        """Quota status for every model the user's tier can access.

        Unknown users and tiers without access rules yield an empty dict.
        """
        try:
            resolved = self._resolve(user_id)
            if resolved is None or resolved.tier is None:
                return {}
            model_ids = registry.enabled_model_ids(self._db, resolved.tier)
        except SQLAlchemyError as e:
            logger.error(f"Error getting quota status for {user_id}: {e}")
            metrics.STORAGE_FAILURES.labels(operation="status").inc()
            self._db.rollback()
            return {}

        return {model_id: self.check_quota(user_id, model_id) for model_id in model_ids}
