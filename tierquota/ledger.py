# tierquota/ledger.py
"""Per-hour usage counters and the window sums derived from them.

Counters are keyed by (user, model, date, hour) and only ever grow through
``increment``. Window totals are recomputed from the rows on every read, so
the daily total is always the sum of its hours and the monthly total the sum
of its days.
"""
import hashlib
import logging
from datetime import date, datetime
from typing import Optional

from sqlalchemy import and_, case, func, select, text, update
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.orm import Session

from tierquota.errors import InvalidConfigError
from tierquota.models import ImageModel, User, UsageCounter
from tierquota.windows import PERIODS, Bucket, Period, month_start

logger = logging.getLogger(__name__)

BUCKET_COLUMNS = ["user_id", "model_id", "date", "hour"]


def _dialect(db: Session) -> str:
    return db.get_bind().dialect.name


def _insert_for(db: Session):
    name = _dialect(db)
    if name == "postgresql":
        return postgresql.insert
    if name == "sqlite":
        return sqlite.insert
    raise InvalidConfigError(f"Unsupported database dialect for usage tracking: {name}")


def _upsert_increment(db: Session, user_id: str, model_pk: str, bucket: Bucket, count: int) -> None:
    insert = _insert_for(db)
    stmt = insert(UsageCounter).values(
        user_id=user_id,
        model_id=model_pk,
        date=bucket.date,
        hour=bucket.hour,
        images_generated=count,
        created_at=datetime.utcnow(),
    )
    stmt = stmt.on_conflict_do_update(
        index_elements=BUCKET_COLUMNS,
        set_={"images_generated": UsageCounter.images_generated + stmt.excluded.images_generated},
    )
    db.execute(stmt)


def increment(db: Session, user_id: str, model_pk: str, bucket: Bucket, count: int) -> None:
    """Add *count* to the bucket in a single INSERT ... ON CONFLICT DO UPDATE.

    Safe under concurrent calls for the same bucket; no read-modify-write
    happens on the client side.
    """
    if count <= 0:
        raise ValueError(f"count must be positive, got {count}")
    _upsert_increment(db, user_id, model_pk, bucket, count)
    db.commit()


def window_usage(db: Session, user_id: str, model_pk: str, bucket: Bucket) -> dict:
    """Hourly, daily and monthly totals for the windows containing *bucket*.

    Computed in one statement so all three come from the same snapshot.
    """
    images = UsageCounter.images_generated
    is_today = UsageCounter.date == bucket.date
    is_this_hour = and_(is_today, UsageCounter.hour == bucket.hour)

    row = db.execute(
        select(
            func.coalesce(func.sum(case((is_this_hour, images), else_=0)), 0).label("hourly"),
            func.coalesce(func.sum(case((is_today, images), else_=0)), 0).label("daily"),
            func.coalesce(func.sum(images), 0).label("monthly"),
        ).where(
            UsageCounter.user_id == user_id,
            UsageCounter.model_id == model_pk,
            UsageCounter.date >= month_start(bucket.date),
            UsageCounter.date <= bucket.date,
        )
    ).one()
    return {"hourly": int(row.hourly), "daily": int(row.daily), "monthly": int(row.monthly)}


def hourly_breakdown(db: Session, user_id: str, model_pk: str, day: date) -> dict[int, int]:
    rows = db.execute(
        select(UsageCounter.hour, UsageCounter.images_generated).where(
            UsageCounter.user_id == user_id,
            UsageCounter.model_id == model_pk,
            UsageCounter.date == day,
        )
    ).all()
    return {r.hour: r.images_generated for r in rows}


def daily_breakdown(db: Session, user_id: str, model_pk: str, day: date) -> dict[date, int]:
    """Per-day totals from the first of *day*'s month through *day*."""
    rows = db.execute(
        select(UsageCounter.date, func.sum(UsageCounter.images_generated).label("total"))
        .where(
            UsageCounter.user_id == user_id,
            UsageCounter.model_id == model_pk,
            UsageCounter.date >= month_start(day),
            UsageCounter.date <= day,
        )
        .group_by(UsageCounter.date)
    ).all()
    return {r.date: int(r.total) for r in rows}


def usage_rows(
    db: Session,
    user_id: Optional[str] = None,
    since: Optional[date] = None,
    limit: int = 1000,
) -> list:
    """Raw counters for analytics, newest first. Not used for enforcement."""
    stmt = (
        select(
            UsageCounter.user_id,
            User.email,
            ImageModel.model_id,
            UsageCounter.date,
            UsageCounter.hour,
            UsageCounter.images_generated,
        )
        .join(ImageModel, ImageModel.id == UsageCounter.model_id)
        .outerjoin(User, User.id == UsageCounter.user_id)
        .order_by(UsageCounter.date.desc(), UsageCounter.hour.desc())
        .limit(limit)
    )
    if user_id is not None:
        stmt = stmt.where(UsageCounter.user_id == user_id)
    if since is not None:
        stmt = stmt.where(UsageCounter.date >= since)
    return db.execute(stmt).all()


# ---------------------------------------------------------------------------
# Strict enforcement: reserve before generation, release on failure
# ---------------------------------------------------------------------------

def _advisory_lock_id(user_id: str, model_pk: str) -> int:
    digest = hashlib.sha256(f"usage:{user_id}:{model_pk}".encode()).digest()
    return int.from_bytes(digest[:8], "big", signed=True)


def _lock_user_model(db: Session, user_id: str, model_pk: str) -> None:
    """Serialise reservations for one (user, model) on PostgreSQL.

    SQLite needs nothing here: the upsert that follows takes the database
    write lock, which is held until commit or rollback.
    """
    if _dialect(db) == "postgresql":
        db.execute(
            text("SELECT pg_advisory_xact_lock(:id)"),
            {"id": _advisory_lock_id(user_id, model_pk)},
        )


def reserve(
    db: Session,
    user_id: str,
    model_pk: str,
    bucket: Bucket,
    count: int,
    limits: dict,
) -> tuple[Optional[Period], dict]:
    """Atomically take *count* units of capacity if every window allows it.

    Increments first and inspects the totals inside the same transaction,
    rolling back when any window would go over its limit. Returns
    ``(violated_period, usage)`` where *usage* excludes this reservation;
    ``violated_period`` is None when the reservation was committed.
    """
    if count <= 0:
        raise ValueError(f"count must be positive, got {count}")

    try:
        _lock_user_model(db, user_id, model_pk)
        _upsert_increment(db, user_id, model_pk, bucket, count)
        after = window_usage(db, user_id, model_pk, bucket)
    except Exception:
        db.rollback()
        raise

    before = {k: v - count for k, v in after.items()}
    for period in PERIODS:
        if after[period.value] > limits[period.value]:
            db.rollback()
            return period, before

    db.commit()
    return None, before


def release(db: Session, user_id: str, model_pk: str, bucket: Bucket, count: int) -> None:
    """Give back capacity taken by ``reserve``. Never drops a counter below zero."""
    if count <= 0:
        return
    images = UsageCounter.images_generated
    db.execute(
        update(UsageCounter)
        .where(
            UsageCounter.user_id == user_id,
            UsageCounter.model_id == model_pk,
            UsageCounter.date == bucket.date,
            UsageCounter.hour == bucket.hour,
        )
        .values(images_generated=case((images > count, images - count), else_=0))
    )
    db.commit()
