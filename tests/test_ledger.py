# tests/test_ledger.py
"""Tests for the usage ledger: atomic increments and window sums."""
from concurrent.futures import ThreadPoolExecutor
from datetime import date

import pytest
from sqlalchemy import select

from tierquota import ledger
from tierquota.database import SessionLocal
from tierquota.errors import InvalidConfigError
from tierquota.models import UsageCounter
from tierquota.windows import Bucket, Period

TODAY = date(2026, 3, 15)
BUCKET = Bucket(TODAY, 14)
LIMITS = {"hourly": 5, "daily": 10, "monthly": 20}


def counter_value(db, user_id, model_pk, bucket=BUCKET):
    db.expire_all()
    return db.execute(
        select(UsageCounter.images_generated).where(
            UsageCounter.user_id == user_id,
            UsageCounter.model_id == model_pk,
            UsageCounter.date == bucket.date,
            UsageCounter.hour == bucket.hour,
        )
    ).scalar_one_or_none()


class TestIncrement:
    def test_creates_bucket_lazily(self, db_session, catalog, make_user):
        user = make_user()
        assert counter_value(db_session, user.id, catalog["sdxl"].id) is None

        ledger.increment(db_session, user.id, catalog["sdxl"].id, BUCKET, 2)

        assert counter_value(db_session, user.id, catalog["sdxl"].id) == 2

    def test_adds_to_existing_bucket(self, db_session, catalog, make_user):
        user = make_user()
        for count in (1, 2, 3):
            ledger.increment(db_session, user.id, catalog["sdxl"].id, BUCKET, count)

        assert counter_value(db_session, user.id, catalog["sdxl"].id) == 6
        rows = db_session.execute(select(UsageCounter)).scalars().all()
        assert len(rows) == 1

    def test_rejects_non_positive_count(self, db_session, catalog, make_user):
        user = make_user()
        with pytest.raises(ValueError):
            ledger.increment(db_session, user.id, catalog["sdxl"].id, BUCKET, 0)

    def test_concurrent_increments_are_not_lost(self, db_session, catalog, make_user):
        """Parallel writers on one bucket sum exactly."""
        user = make_user()
        model_pk = catalog["sdxl"].id

        def worker(count):
            db = SessionLocal()
            try:
                for _ in range(5):
                    ledger.increment(db, user.id, model_pk, BUCKET, count)
            finally:
                db.close()

        counts = [1, 2, 3, 1, 2, 3, 1, 2]
        with ThreadPoolExecutor(max_workers=len(counts)) as pool:
            list(pool.map(worker, counts))

        assert counter_value(db_session, user.id, model_pk) == sum(counts) * 5


class TestWindowUsage:
    def test_sums_each_window(self, db_session, catalog, make_user, add_usage):
        user = make_user()
        model_pk = catalog["sdxl"].id
        add_usage(user.id, model_pk, TODAY, 14, 2)
        add_usage(user.id, model_pk, TODAY, 9, 3)
        add_usage(user.id, model_pk, date(2026, 3, 2), 10, 4)
        # Previous month and another model never count
        add_usage(user.id, model_pk, date(2026, 2, 28), 14, 50)
        add_usage(user.id, catalog["ultra"].id, TODAY, 14, 7)

        usage = ledger.window_usage(db_session, user.id, model_pk, BUCKET)

        assert usage == {"hourly": 2, "daily": 5, "monthly": 9}

    def test_empty_ledger(self, db_session, catalog, make_user):
        user = make_user()
        usage = ledger.window_usage(db_session, user.id, catalog["sdxl"].id, BUCKET)
        assert usage == {"hourly": 0, "daily": 0, "monthly": 0}

    def test_daily_equals_sum_of_hours(self, db_session, catalog, make_user, add_usage):
        user = make_user()
        model_pk = catalog["sdxl"].id
        for hour, images in [(0, 1), (5, 2), (14, 3), (23, 4)]:
            add_usage(user.id, model_pk, TODAY, hour, images)

        hours = ledger.hourly_breakdown(db_session, user.id, model_pk, TODAY)
        usage = ledger.window_usage(db_session, user.id, model_pk, BUCKET)

        assert usage["daily"] == sum(hours.values()) == 10
        assert usage["hourly"] == hours[14]

    def test_monthly_equals_sum_of_days(self, db_session, catalog, make_user, add_usage):
        user = make_user()
        model_pk = catalog["sdxl"].id
        for day, hour, images in [(1, 0, 2), (1, 23, 1), (7, 12, 5), (15, 3, 4), (15, 14, 1)]:
            add_usage(user.id, model_pk, date(2026, 3, day), hour, images)

        days = ledger.daily_breakdown(db_session, user.id, model_pk, TODAY)
        usage = ledger.window_usage(db_session, user.id, model_pk, BUCKET)

        assert usage["monthly"] == sum(days.values()) == 13
        assert days[TODAY] == usage["daily"] == 5


class TestReserve:
    def test_reserve_within_limits_commits(self, db_session, catalog, make_user):
        user = make_user()
        model_pk = catalog["sdxl"].id

        period, before = ledger.reserve(db_session, user.id, model_pk, BUCKET, 3, LIMITS)

        assert period is None
        assert before == {"hourly": 0, "daily": 0, "monthly": 0}
        assert counter_value(db_session, user.id, model_pk) == 3

    def test_reserve_may_fill_a_window_exactly(self, db_session, catalog, make_user, add_usage):
        user = make_user()
        model_pk = catalog["sdxl"].id
        add_usage(user.id, model_pk, TODAY, 14, 4)

        period, _ = ledger.reserve(db_session, user.id, model_pk, BUCKET, 1, LIMITS)

        assert period is None
        assert counter_value(db_session, user.id, model_pk) == 5

    def test_reserve_over_limit_rolls_back(self, db_session, catalog, make_user, add_usage):
        user = make_user()
        model_pk = catalog["sdxl"].id
        add_usage(user.id, model_pk, TODAY, 14, 4)

        period, before = ledger.reserve(db_session, user.id, model_pk, BUCKET, 2, LIMITS)

        assert period is Period.HOURLY
        assert before["hourly"] == 4
        assert counter_value(db_session, user.id, model_pk) == 4

    def test_reserve_reports_daily_violation(self, db_session, catalog, make_user, add_usage):
        user = make_user()
        model_pk = catalog["sdxl"].id
        add_usage(user.id, model_pk, TODAY, 3, 10)

        period, _ = ledger.reserve(db_session, user.id, model_pk, BUCKET, 1, LIMITS)

        assert period is Period.DAILY
        assert counter_value(db_session, user.id, model_pk) is None

    def test_concurrent_reservations_never_exceed_limit(self, db_session, catalog, make_user):
        user = make_user()
        model_pk = catalog["sdxl"].id

        def worker(_):
            db = SessionLocal()
            try:
                period, _ = ledger.reserve(db, user.id, model_pk, BUCKET, 1, LIMITS)
                return period is None
            finally:
                db.close()

        with ThreadPoolExecutor(max_workers=10) as pool:
            granted = list(pool.map(worker, range(10)))

        assert sum(granted) == LIMITS["hourly"]
        assert counter_value(db_session, user.id, model_pk) == LIMITS["hourly"]

    def test_release_decrements_without_going_negative(self, db_session, catalog, make_user):
        user = make_user()
        model_pk = catalog["sdxl"].id
        ledger.reserve(db_session, user.id, model_pk, BUCKET, 3, LIMITS)

        ledger.release(db_session, user.id, model_pk, BUCKET, 2)
        assert counter_value(db_session, user.id, model_pk) == 1

        ledger.release(db_session, user.id, model_pk, BUCKET, 5)
        assert counter_value(db_session, user.id, model_pk) == 0


def test_usage_rows_newest_first(db_session, catalog, make_user, add_usage):
    user = make_user(email="rows@example.com")
    add_usage(user.id, catalog["sdxl"].id, date(2026, 3, 1), 8, 1)
    add_usage(user.id, catalog["sdxl"].id, TODAY, 14, 2)

    rows = ledger.usage_rows(db_session, user_id=user.id)

    assert [(r.date, r.hour) for r in rows] == [(TODAY, 14), (date(2026, 3, 1), 8)]
    assert rows[0].email == "rows@example.com"
    assert rows[0].model_id == "fal-ai/fast-sdxl"


def test_unsupported_dialect_is_a_configuration_error(mocker):
    db = mocker.MagicMock()
    db.get_bind.return_value.dialect.name = "mysql"

    with pytest.raises(InvalidConfigError, match="mysql"):
        ledger.increment(db, "u", "m", BUCKET, 1)

    db.execute.assert_not_called()
