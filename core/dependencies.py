# core/dependencies.py
"""Long-lived service objects for the crisis pipeline, built once per process.

Entry points construct one DependencyContainer, call initialize() and pass it
to the orchestrator. Tests build their own container (or call reset()) so no
state leaks between cases.
"""

from typing import Any, Callable, Dict, Iterable, Optional

from classification.graceful_degradation import GracefulDegradation, build_default_strategies
from classification.hybrid_classifier import HybridClassifier
from classification.llm_classifier import LLMClassifier
from core.collaborators import (
    InMemoryModerationService,
    LoggingNotificationService,
    ModerationService,
    NotificationService,
)
from core.storage import InMemoryStore, KeyValueStore
from escalation.crisis_escalation import CrisisEscalationManager
from escalation.human_handoff import HumanHandoffManager
from resources.default_resources import Resource, load_default_resources
from resources.resource_matcher import SmartResourceMatcher
from telemetry.batch_analytics import BatchAnalyticsProcessor
from telemetry.crisis_audit_log import CrisisAuditLogger
from telemetry.feedback_collector import FeedbackCollector
from utils.logging_utils import get_logger

logger = get_logger("dependencies")

NOT_INITIALIZED = "Dependencies not initialized. Call initialize() first."


class DependencyContainer:
    """Holds every shared service. One instance per process, passed explicitly."""

    def __init__(self):
        self._initialized = False

    @property
    def initialized(self) -> bool:
        return self._initialized

    def initialize(self,
                   model_manager: Optional[Any] = None,
                   notifier: Optional[NotificationService] = None,
                   moderation: Optional[ModerationService] = None,
                   store_factory: Callable[[str], KeyValueStore] = InMemoryStore,
                   resources: Optional[Iterable[Resource]] = None,
                   emergency_log_path: Optional[str] = None,
                   analytics_options: Optional[Dict[str, Any]] = None,
                   strategy_timeouts_ms: Optional[Dict[str, int]] = None,
                   total_budget_ms: Optional[int] = None):
        """Build all services once. Later calls are no-ops until reset().

        `model_manager` is any async `(system_prompt, user_prompt, max_tokens)`
        callable. When omitted a ModelManager is built from config; without an
        API key it stays offline and the chain falls through to local strategies.
        """
        if self._initialized:
            return

        if model_manager is None:
            from models.model_manager import ModelManager
            model_manager = ModelManager()
        self.model_manager = model_manager
        model_client = model_manager if getattr(model_manager, "is_available", True) else None

        self.notifier = notifier or LoggingNotificationService()
        self.moderation = moderation or InMemoryModerationService()

        self.llm_classifier = LLMClassifier(model_client)
        self.hybrid_classifier = HybridClassifier(self.llm_classifier)
        degradation_kwargs = {}
        if total_budget_ms is not None:
            degradation_kwargs["total_budget_ms"] = total_budget_ms
        self.degradation = GracefulDegradation(
            strategies=build_default_strategies(self.llm_classifier, self.hybrid_classifier, strategy_timeouts_ms),
            **degradation_kwargs,
        )

        self.resource_matcher = SmartResourceMatcher()
        self.resource_matcher.index_resources(resources if resources is not None else load_default_resources())

        self.escalation_manager = CrisisEscalationManager(
            store=store_factory("active_crises"), notifier=self.notifier, moderation=self.moderation,
        )
        self.escalation_manager.initialize()
        self.handoff_manager = HumanHandoffManager(
            notifier=self.notifier, store=store_factory("active_handoffs"), queue_store_factory=store_factory,
        )
        self.handoff_manager.initialize()

        self.audit_logger = CrisisAuditLogger(store=store_factory("crisis_events"),
                                              emergency_log_path=emergency_log_path)
        self.analytics = BatchAnalyticsProcessor(**(analytics_options or {}))
        self.feedback_collector = FeedbackCollector()
        self.session_store = store_factory("sessions")

        self._initialized = True
        logger.info(
            f"[Dependencies] Initialized (model {'online' if model_client is not None else 'offline'}, "
            f"{len(self.resource_matcher.resources)} resources)"
        )

    async def reset(self) -> None:
        """Clear per-user state in every service; configuration and indexes stay."""
        self._require()
        await self.escalation_manager.reset()
        await self.handoff_manager.reset()
        await self.audit_logger.reset()
        await self.session_store.clear()
        self.analytics.reset()
        self.feedback_collector.reset()
        self.degradation.reset_stats()

    async def shutdown(self) -> None:
        if not self._initialized:
            return
        await self.analytics.shutdown()
        close = getattr(self.model_manager, "aclose", None)
        if close is not None:
            await close()
        logger.info("[Dependencies] Shut down")

    def _require(self) -> None:
        if not self._initialized:
            raise RuntimeError(NOT_INITIALIZED)

    def get_model_manager(self):
        self._require()
        return self.model_manager

    def get_degradation(self) -> GracefulDegradation:
        self._require()
        return self.degradation

    def get_hybrid_classifier(self) -> HybridClassifier:
        self._require()
        return self.hybrid_classifier

    def get_resource_matcher(self) -> SmartResourceMatcher:
        self._require()
        return self.resource_matcher

    def get_escalation_manager(self) -> CrisisEscalationManager:
        self._require()
        return self.escalation_manager

    def get_handoff_manager(self) -> HumanHandoffManager:
        self._require()
        return self.handoff_manager

    def get_audit_logger(self) -> CrisisAuditLogger:
        self._require()
        return self.audit_logger

    def get_analytics(self) -> BatchAnalyticsProcessor:
        self._require()
        return self.analytics

    def get_feedback_collector(self) -> FeedbackCollector:
        self._require()
        return self.feedback_collector

    def get_session_store(self) -> KeyValueStore:
        self._require()
        return self.session_store

    def get_notifier(self) -> NotificationService:
        self._require()
        return self.notifier

    def get_moderation(self) -> ModerationService:
        self._require()
        return self.moderation
