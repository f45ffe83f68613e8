"""Domain models for the tracking engine."""

from tracking_engine.models.interaction import (
    TOKEN_FIELDS,
    HealthStatus,
    InteractionRecord,
    QueueStatus,
    ResponseUpdate,
    UsageStats,
    UserInteractionRow,
)
from tracking_engine.models.privacy import PrivacySettings, RetentionInfo

__all__ = [
    "HealthStatus",
    "InteractionRecord",
    "PrivacySettings",
    "QueueStatus",
    "ResponseUpdate",
    "RetentionInfo",
    "TOKEN_FIELDS",
    "UsageStats",
    "UserInteractionRow",
]
