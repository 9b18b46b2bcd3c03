# telemetry/__init__.py
"""Audit trail, batched analytics and user feedback."""

from .batch_analytics import AnalyticsEvent, BatchAnalyticsProcessor
from .crisis_audit_log import CrisisAuditLogger, CrisisEvent
from .feedback_collector import FEEDBACK_OPTIONS, FeedbackCollector

__all__ = [
    "AnalyticsEvent",
    "BatchAnalyticsProcessor",
    "CrisisAuditLogger",
    "CrisisEvent",
    "FEEDBACK_OPTIONS",
    "FeedbackCollector",
]
