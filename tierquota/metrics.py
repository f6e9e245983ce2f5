# tierquota/metrics.py
from prometheus_client import Counter

ACCESS_DECISIONS = Counter(
    "tierquota_access_decisions_total",
    "Model access decisions",
    ["outcome"],
)

QUOTA_DECISIONS = Counter(
    "tierquota_quota_decisions_total",
    "Quota check decisions",
    ["outcome", "period"],
)

IMAGES_RECORDED = Counter(
    "tierquota_images_recorded_total",
    "Generated images written to the usage ledger",
    ["model"],
)

USAGE_WRITE_FAILURES = Counter(
    "tierquota_usage_write_failures_total",
    "Usage ledger writes that could not be persisted",
    ["model"],
)

STORAGE_FAILURES = Counter(
    "tierquota_storage_failures_total",
    "Storage errors on read paths that caused a fail-closed decision",
    ["operation"],
)
