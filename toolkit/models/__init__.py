from toolkit.models.entities import (
    Assessment,
    CatalogEntry,
    RenewalDecision,
    SyncRun,
    TimestampMixin,
    as_utc,
    utcnow,
)

__all__ = [
    "Assessment",
    "CatalogEntry",
    "RenewalDecision",
    "SyncRun",
    "TimestampMixin",
    "as_utc",
    "utcnow",
]
