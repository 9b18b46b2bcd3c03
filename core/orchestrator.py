"""
# core/orchestrator.py

Module Contract
- Purpose: Single inbound entry point for chat messages. Runs the pipeline in a fixed order: normalize → regex crisis gate → clear-case rules → degradation chain → escalation (crisis only) → resources → audit/analytics → response.
- Inputs:
  - process_message(user_id, session_id, message, cultural_context=None)
  - record_feedback(message_id, user_id, session_id, feedback_type, details=None)
  - request_human_handoff(user_id, session_id, reason), resolve_crisis(user_id, resolution)
- Outputs:
  - Response dict: {message_id, response, classification, session, recommended_resources, feedback_options, metadata{timestamp, processing_time, method, resources_matched}} plus `crisis{...}` on the crisis path and `error{message, code}` on failure.
- Ordering:
  - Crisis detection strictly precedes every other classifier; regex layers precede any model call. Clear cases never reach the model.
- Sessions:
  - Keyed "{user_id}_{session_id}" in the session store; history capped at SESSION_HISTORY_LIMIT entries, the last SESSION_CONTEXT_MESSAGES go to the model as context.
- Error handling:
  - process_message never raises. On failure the user gets the generic retry message, unless crisis wording was seen, in which case the severe crisis message is returned.
"""
import time
import uuid
from datetime import datetime
from typing import Any, Dict, Optional

from classification.clear_case import classify_obvious
from classification.types import Classification, Method
from config.app_config import RESOURCE_DEFAULT_LIMIT, SESSION_CONTEXT_MESSAGES, SESSION_HISTORY_LIMIT
from core.dependencies import DependencyContainer
from core.response_templates import GENERIC_ERROR_RESPONSE, generate_response
from escalation.crisis_escalation import Severity, detect_crisis_severity, generate_crisis_response
from telemetry.crisis_audit_log import details_from_classification
from telemetry.feedback_collector import get_feedback_options
from utils.crisis_detector import CrisisDetection, contains_crisis_keyword, detect_crisis
from utils.logging_utils import get_logger, log_and_time, preview_text
from utils.slang_normalizer import normalize

ERROR_CODE = "PROCESSING_ERROR"


def _now_ms() -> int:
    return int(time.time() * 1000)


class MentalHealthOrchestrator:
    def __init__(self, container: DependencyContainer,
                 history_limit: int = SESSION_HISTORY_LIMIT,
                 context_messages: int = SESSION_CONTEXT_MESSAGES,
                 resource_limit: int = RESOURCE_DEFAULT_LIMIT):
        self.container = container
        self.history_limit = history_limit
        self.context_messages = context_messages
        self.resource_limit = resource_limit
        self.logger = get_logger("orchestrator")

        # Fail fast if the container was never initialized
        self.sessions = container.get_session_store()
        self.degradation = container.get_degradation()
        self.escalation = container.get_escalation_manager()
        self.handoff = container.get_handoff_manager()
        self.resources = container.get_resource_matcher()
        self.audit = container.get_audit_logger()
        self.analytics = container.get_analytics()
        self.feedback = container.get_feedback_collector()

    # ----- sessions -----

    @staticmethod
    def session_key(user_id: str, session_id: str) -> str:
        return f"{user_id}_{session_id}"

    async def get_session(self, user_id: str, session_id: str) -> Dict[str, Any]:
        key = self.session_key(user_id, session_id)
        session = await self.sessions.get(key)
        if session is None:
            session = {
                "user_id": user_id,
                "session_id": session_id,
                "history": [],
                "classifications": [],
                "started_at": datetime.now().isoformat(),
                "message_count": 0,
            }
            await self.sessions.set(key, session)
        return session

    async def _append_exchange(self, session: Dict[str, Any], message: str, response: str,
                               classification: Classification) -> None:
        now = datetime.now().isoformat()
        session["history"].append({"role": "user", "content": message, "timestamp": now})
        session["history"].append({"role": "assistant", "content": response, "timestamp": now,
                                   "classification": classification.to_dict()})
        session["classifications"].append(classification.to_dict())
        if len(session["history"]) > self.history_limit:
            session["history"] = session["history"][-self.history_limit:]
        if len(session["classifications"]) > self.history_limit:
            session["classifications"] = session["classifications"][-self.history_limit:]
        await self.sessions.set(self.session_key(session["user_id"], session["session_id"]), session)

    async def get_session_count(self) -> int:
        return await self.sessions.size()

    async def clear_sessions(self) -> None:
        await self.sessions.clear()

    # ----- main entry point -----

    @staticmethod
    def new_message_id(user_id: str) -> str:
        return f"msg_{user_id}_{_now_ms()}_{uuid.uuid4().hex[:9]}"

    @log_and_time("Process message")
    async def process_message(self, user_id: str, session_id: str, message: str,
                              cultural_context: Optional[str] = None) -> Dict[str, Any]:
        start = time.perf_counter()
        text = message or ""
        crisis_seen = False
        try:
            session = await self.get_session(user_id, session_id)
            session["message_count"] += 1

            normalized = normalize(text)
            detection = detect_crisis(normalized)
            if not detection.is_crisis:
                detection = detect_crisis(text)
            crisis_seen = detection.is_crisis or contains_crisis_keyword(normalized)

            if detection.is_crisis:
                self.logger.warning(f"[Orchestrator] Crisis pattern '{detection.matched_pattern}' matched")
                classification = Classification.crisis(
                    Method.ESCALATION_PROTOCOL, confidence=1.0, subcategory=detection.subcategory,
                    emotional_intensity=10,
                    reasoning=f"Crisis pattern: {detection.matched_pattern}",
                )
                return await self._crisis_response(session, text, normalized, classification, detection,
                                                   start, cultural_context)

            classification = classify_obvious(normalized, original_text=text)
            if classification is not None:
                self.logger.info(
                    f"[Orchestrator] Clear case: {classification.category.value}/{classification.subcategory}"
                )
            else:
                context = {
                    "history": session["history"][-self.context_messages:],
                    "original_text": text,
                    "user_id": user_id,
                    "session_id": session_id,
                }
                classification = await self.degradation.classify_with_fallback(normalized, context)

            if classification.is_crisis:
                crisis_seen = True
                return await self._crisis_response(session, text, normalized, classification, None,
                                                   start, cultural_context)

            return await self._standard_response(session, text, classification, start, cultural_context)

        except Exception as e:
            self.logger.error(f"[Orchestrator] Error processing message: {type(e).__name__}: {e}", exc_info=True)
            if crisis_seen or contains_crisis_keyword(text):
                return self._crisis_error_response(user_id, session_id, e, start)
            return {
                "response": GENERIC_ERROR_RESPONSE,
                "error": {"message": str(e), "code": ERROR_CODE},
                "session": {"user_id": user_id, "session_id": session_id},
                "metadata": {
                    "timestamp": datetime.now().isoformat(),
                    "processing_time": self._elapsed_ms(start),
                    "error": True,
                },
            }

    async def _standard_response(self, session: Dict[str, Any], message: str, classification: Classification,
                                 start: float, cultural_context: Optional[str]) -> Dict[str, Any]:
        user_id, session_id = session["user_id"], session["session_id"]
        response = generate_response(classification, message)
        await self._append_exchange(session, message, response, classification)

        matches = self.resources.fast_resource_match(classification, self.resource_limit, cultural_context)
        processing_time = self._elapsed_ms(start)
        self.analytics.queue_classification(user_id, session_id, {
            **classification.to_dict(),
            "response_time": processing_time,
        })

        self.logger.debug(f"[Orchestrator] {preview_text(message)!r} → {classification.category.value}")
        return {
            "message_id": self.new_message_id(user_id),
            "response": response,
            "classification": classification.to_dict(),
            "session": self._session_view(session),
            "recommended_resources": [m.to_dict() for m in matches],
            "feedback_options": get_feedback_options(),
            "metadata": {
                "timestamp": datetime.now().isoformat(),
                "processing_time": processing_time,
                "method": classification.method.value,
                "resources_matched": len(matches),
            },
        }

    async def _crisis_response(self, session: Dict[str, Any], message: str, normalized: str,
                               classification: Classification, detection: Optional[CrisisDetection],
                               start: float, cultural_context: Optional[str]) -> Dict[str, Any]:
        user_id, session_id = session["user_id"], session["session_id"]
        message_id = self.new_message_id(user_id)

        match = detect_crisis_severity(normalized, classification)
        crisis_message = generate_crisis_response(match.severity)
        response = crisis_message["response"]

        # Alerting failures are isolated inside the manager; the message above is already built
        escalation = await self.escalation.execute_crisis_response(
            user_id, session_id, message, match, content_ref={"id": message_id, "type": "chat_message"},
        )

        event_id = await self.audit.log_crisis_event(
            user_id, session_id,
            details_from_classification(classification, detection.matched_text if detection else None),
        )

        handoff_ticket = None
        if match.severity is Severity.SEVERE:
            handoff = await self.handoff.initiate_human_handoff(user_id, session_id, "CRISIS", {
                "conversation": {
                    "messages": session["history"] + [{"role": "user", "content": message,
                                                       "timestamp": datetime.now().isoformat()}],
                    "classifications": session["classifications"] + [classification.to_dict()],
                },
            })
            if handoff.get("success"):
                handoff_ticket = handoff["ticket"].ticket_id

        await self._append_exchange(session, message, response, classification)
        matches = self.resources.fast_resource_match(classification, self.resource_limit, cultural_context)
        processing_time = self._elapsed_ms(start)

        executed = [a["action"] for a in escalation.actions if a["executed"]]
        self.analytics.queue_crisis(user_id, session_id, {
            "severity": 10,
            "level": escalation.level,
            "priority": escalation.priority,
            "indicator": match.matched_indicator,
            "pattern": detection.matched_pattern if detection else None,
            "actions_executed": executed,
            "human_alert_sent": escalation.human_alert_sent,
            "audit_event_id": event_id,
        })
        self.analytics.queue_classification(user_id, session_id, {
            **classification.to_dict(),
            "response_time": processing_time,
            "crisis_level": escalation.level,
        })

        return {
            "message_id": message_id,
            "response": response,
            "classification": classification.to_dict(),
            "session": self._session_view(session),
            "recommended_resources": [m.to_dict() for m in matches],
            "feedback_options": get_feedback_options(),
            "crisis": {
                "level": escalation.level,
                "severity": match.severity.value,
                "display_mode": crisis_message["display_mode"],
                "disable_normal_chat": crisis_message["disable_normal_chat"],
                "human_alert_sent": escalation.human_alert_sent,
                "resources": crisis_message["resources"],
                "urgency": crisis_message["urgency"],
                "handoff_ticket": handoff_ticket,
                "audit_event_id": event_id,
            },
            "metadata": {
                "timestamp": datetime.now().isoformat(),
                "processing_time": processing_time,
                "method": classification.method.value,
                "resources_matched": len(matches),
                "crisis_actions_executed": len(executed),
            },
        }

    def _crisis_error_response(self, user_id: str, session_id: str, error: Exception, start: float) -> Dict[str, Any]:
        crisis_message = generate_crisis_response(Severity.SEVERE)
        classification = Classification.crisis(Method.ESCALATION_PROTOCOL, reasoning="Crisis wording during failure")
        return {
            "message_id": self.new_message_id(user_id),
            "response": crisis_message["response"],
            "classification": classification.to_dict(),
            "session": {"user_id": user_id, "session_id": session_id},
            "recommended_resources": [],
            "feedback_options": get_feedback_options(),
            "crisis": {
                "level": "SEVERE",
                "severity": Severity.SEVERE.value,
                "display_mode": crisis_message["display_mode"],
                "disable_normal_chat": crisis_message["disable_normal_chat"],
                "human_alert_sent": False,
                "resources": crisis_message["resources"],
                "urgency": crisis_message["urgency"],
            },
            "error": {"message": str(error), "code": ERROR_CODE},
            "metadata": {
                "timestamp": datetime.now().isoformat(),
                "processing_time": self._elapsed_ms(start),
                "method": Method.ESCALATION_PROTOCOL.value,
                "resources_matched": 0,
                "error": True,
            },
        }

    @staticmethod
    def _elapsed_ms(start: float) -> int:
        return int((time.perf_counter() - start) * 1000)

    @staticmethod
    def _session_view(session: Dict[str, Any]) -> Dict[str, Any]:
        return {
            "user_id": session["user_id"],
            "session_id": session["session_id"],
            "message_count": session["message_count"],
            "conversation_length": len(session["history"]) // 2,
        }

    # ----- passthroughs -----

    def record_feedback(self, message_id: str, user_id: str, session_id: str, feedback_type: str,
                        details: Optional[Dict[str, Any]] = None):
        record = self.feedback.record_feedback(message_id, user_id, session_id, feedback_type, details)
        self.analytics.queue_feedback(user_id, session_id, {"message_id": message_id, "feedback_type": feedback_type})
        return record

    def record_resource_click(self, user_id: str, session_id: str, resource_id: str) -> None:
        self.analytics.queue_resource_click(user_id, session_id, {"resource_id": resource_id})

    async def request_human_handoff(self, user_id: str, session_id: str, reason: str) -> Dict[str, Any]:
        session = await self.get_session(user_id, session_id)
        return await self.handoff.initiate_human_handoff(user_id, session_id, reason, {
            "conversation": {"messages": list(session["history"]),
                             "classifications": list(session["classifications"])},
        })

    async def resolve_crisis(self, user_id: str, resolution: str) -> bool:
        return await self.escalation.resolve_crisis(user_id, resolution)

    async def get_stats(self) -> Dict[str, Any]:
        return {
            "sessions": await self.get_session_count(),
            "escalation": await self.escalation.get_escalation_stats(),
            "handoff": await self.handoff.get_handoff_stats(),
            "resources": self.resources.get_stats(),
            "classification": self.degradation.get_strategy_stats(),
            "analytics": self.analytics.get_stats(),
            "feedback": self.feedback.get_feedback_stats(),
            "audit": await self.audit.get_crisis_stats(),
        }
