"""
# telemetry/crisis_audit_log.py

Module Contract
- Purpose: Compliance audit trail for every crisis event. log_crisis_event must never raise: if the store fails the event goes to an append-only JSONL emergency file, and if that fails too it is written to the CRITICAL log.
- Inputs:
  - log_crisis_event(user_id, session_id, details) with details
    {type, severity (1..5), confidence, detection_method, trigger_phrase?}
- Outputs:
  - event id string (always)
  - CrisisEvent records in a KeyValueStore; JSONL lines with source=emergency_fallback
- Privacy:
  - user ids are sha256-hashed; trigger phrases are redacted (capitalised words → [NAME], digit runs → [NUMBER]) while crisis wording survives in any case for aggregate analysis. Raw user messages are never stored.
- Secondary operations (may raise; not on the crisis path):
  - update_outcome, schedule_follow_up, get_crisis_stats, get_crisis_events, get_unresolved_crises, export_crisis_logs
"""
import hashlib
import json
import re
import threading
import uuid
from dataclasses import asdict, dataclass, field
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import numpy as np

from classification.types import Classification
from config.app_config import AUDIT_EMERGENCY_LOG_PATH, AUDIT_RETENTION_YEARS
from core.storage import InMemoryStore, KeyValueStore
from utils.crisis_detector import CRISIS_KEYWORDS, CRISIS_PATTERNS
from utils.logging_utils import get_logger, log_async_operation

logger = get_logger("crisis_audit")

DEFAULT_EMERGENCY_LOG = "emergency_crisis_log.jsonl"

CRISIS_TYPES = ("suicide", "self_harm", "despair", "violence", "abuse", "other")
OUTCOMES = ("resolved", "ongoing", "escalated", "unknown")

_NAME_RE = re.compile(r"\b[A-Z][a-z]+\b")
_NUMBER_RE = re.compile(r"\b\d+\b")
_KEYWORD_RE = re.compile("|".join(re.escape(k) for k in CRISIS_KEYWORDS), re.IGNORECASE)


def hash_user_id(user_id: str) -> str:
    return hashlib.sha256(str(user_id).encode("utf-8")).hexdigest()


def _crisis_spans(phrase: str) -> List[Tuple[int, int]]:
    spans = [m.span() for _, pattern in CRISIS_PATTERNS for m in pattern.finditer(phrase)]
    return spans + [m.span() for m in _KEYWORD_RE.finditer(phrase)]


def redact_trigger_phrase(phrase: Optional[str]) -> Optional[str]:
    if not phrase:
        return None
    keep = _crisis_spans(phrase)

    def _name(match):
        start, end = match.span()
        if any(start < k_end and k_start < end for k_start, k_end in keep):
            return match.group(0)
        return "[NAME]"

    redacted = _NAME_RE.sub(_name, phrase)
    return _NUMBER_RE.sub("[NUMBER]", redacted)


def determine_actions(severity: int) -> List[str]:
    actions = ["crisis_response_sent", "hotline_numbers_provided", "logged_in_crisis_database"]
    if severity >= 3:
        actions.append("flagged_for_review")
    if severity >= 4:
        actions += ["human_notification_sent", "emergency_contact_prepared"]
    if severity >= 5:
        actions += ["immediate_escalation", "emergency_services_recommended"]
    return actions


def determine_resources(crisis_type: str) -> List[str]:
    resources = ["988_suicide_crisis_lifeline", "crisis_text_line_741741", "911_emergency_services"]
    if crisis_type in ("abuse", "violence"):
        resources += ["domestic_violence_hotline", "rainn_sexual_assault_hotline"]
    if crisis_type in ("suicide", "self_harm"):
        resources += ["nami_helpline", "samhsa_helpline"]
    return resources


def determine_escalation_level(severity: int, confidence: float) -> str:
    if severity >= 5 or (severity >= 4 and confidence >= 0.9):
        return "emergency_services"
    if severity >= 4 or (severity >= 3 and confidence >= 0.9):
        return "human_review"
    if severity >= 3:
        return "flagged"
    return "none"


_SUBCATEGORY_SEVERITY = {"suicide": 5, "immediate_danger": 5, "self_harm": 4, "despair": 3}


def details_from_classification(classification: Classification,
                                trigger_phrase: Optional[str] = None) -> Dict[str, Any]:
    """Audit details for a CRISIS classification. Unknown subcategories log as severity 3 / other."""
    sub = classification.subcategory or ""
    return {
        "type": sub if sub in CRISIS_TYPES else "other",
        "severity": _SUBCATEGORY_SEVERITY.get(sub, 3),
        "confidence": classification.confidence,
        "detection_method": classification.method.value,
        "trigger_phrase": trigger_phrase or classification.ambiguous_phrase,
    }


@dataclass
class CrisisEvent:
    id: str
    timestamp: datetime
    user_id_hash: str
    session_id: str
    crisis_type: str
    severity: int
    confidence: float
    detection_method: str
    actions_taken: List[str]
    resources_provided: List[str]
    human_notified: bool
    escalation_level: str
    retention_until: datetime
    trigger_phrase: Optional[str] = None
    outcome: str = "ongoing"
    outcome_updated_at: Optional[datetime] = None
    follow_up_scheduled: Optional[datetime] = None
    notes: Optional[str] = None
    history: List[Dict[str, Any]] = field(default_factory=list)

    @property
    def needs_review(self) -> bool:
        return self.escalation_level != "none"

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        for key in ("timestamp", "retention_until", "outcome_updated_at", "follow_up_scheduled"):
            if data[key] is not None:
                data[key] = data[key].isoformat()
        return data


class CrisisAuditLogger:
    def __init__(self,
                 store: Optional[KeyValueStore] = None,
                 emergency_log_path: Optional[str] = None,
                 retention_years: int = AUDIT_RETENTION_YEARS):
        self.store = store or InMemoryStore("crisis_events")
        self.emergency_log_path = Path(emergency_log_path or AUDIT_EMERGENCY_LOG_PATH or DEFAULT_EMERGENCY_LOG)
        self.retention_years = retention_years
        self.retention = timedelta(days=365 * retention_years)
        self.lock = threading.Lock()
        self.emergency_writes = 0

    async def reset(self) -> None:
        await self.store.clear()
        self.emergency_writes = 0

    async def log_crisis_event(self, user_id: str, session_id: str, details: Dict[str, Any]) -> str:
        """Record a crisis event and return its id. Never raises."""
        event_id = f"crisis_{int(datetime.now().timestamp() * 1000)}_{uuid.uuid4().hex[:9]}"
        try:
            event = self._build_event(event_id, user_id, session_id, details)
            await self.store.set(event_id, event)
            logger.warning(
                f"[CrisisAudit] Event {event_id}: type={event.crisis_type} severity={event.severity} "
                f"escalation={event.escalation_level}"
            )
            if event.human_notified:
                logger.critical(f"[CrisisAudit] Human review required for {event_id} (severity {event.severity})")
            return event_id
        except Exception as e:
            logger.error(f"[CrisisAudit] Primary store failed for {event_id}: {type(e).__name__}: {e}")

        try:
            self._emergency_log(event_id, user_id, session_id, details)
        except Exception as e:
            logger.critical(
                f"[CrisisAudit] EMERGENCY LOG FAILED for {event_id} ({type(e).__name__}: {e}); "
                f"session={session_id} severity={details.get('severity') if isinstance(details, dict) else None}"
            )
        return event_id

    def _build_event(self, event_id: str, user_id: str, session_id: str, details: Dict[str, Any]) -> CrisisEvent:
        severity = int(details["severity"])
        confidence = float(details.get("confidence", 0.0))
        crisis_type = details.get("type") or "other"
        now = datetime.now()
        return CrisisEvent(
            id=event_id,
            timestamp=now,
            user_id_hash=hash_user_id(user_id),
            session_id=session_id,
            crisis_type=crisis_type,
            severity=severity,
            confidence=confidence,
            detection_method=details.get("detection_method") or "unknown",
            trigger_phrase=redact_trigger_phrase(details.get("trigger_phrase")),
            actions_taken=determine_actions(severity),
            resources_provided=determine_resources(crisis_type),
            human_notified=severity >= 4,
            escalation_level=determine_escalation_level(severity, confidence),
            retention_until=now + self.retention,
        )

    def _emergency_log(self, event_id: str, user_id: str, session_id: str, details: Any) -> None:
        safe_details = dict(details) if isinstance(details, dict) else {"raw": repr(details)}
        safe_details.pop("user_message", None)
        if "trigger_phrase" in safe_details:
            safe_details["trigger_phrase"] = redact_trigger_phrase(safe_details["trigger_phrase"])
        entry = {
            "id": event_id,
            "timestamp": datetime.now().isoformat(),
            "user_id_hash": hash_user_id(user_id),
            "session_id": session_id,
            "details": safe_details,
            "source": "emergency_fallback",
        }
        line = json.dumps(entry, ensure_ascii=False, default=str)
        with self.lock:
            self.emergency_log_path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.emergency_log_path, "a", encoding="utf-8") as f:
                f.write(line + "\n")
        self.emergency_writes += 1
        logger.critical(f"[CrisisAudit] Event {event_id} written to emergency log {self.emergency_log_path}")

    # ----- secondary operations -----

    async def _require(self, event_id: str) -> CrisisEvent:
        event = await self.store.get(event_id)
        if event is None:
            raise KeyError(f"Unknown crisis event: {event_id}")
        return event

    @log_async_operation
    async def update_outcome(self, event_id: str, outcome: str, notes: Optional[str] = None) -> CrisisEvent:
        if outcome not in OUTCOMES:
            raise ValueError(f"Invalid outcome '{outcome}'; expected one of {OUTCOMES}")
        event = await self._require(event_id)
        event.history.append({"outcome": event.outcome, "changed_at": datetime.now().isoformat()})
        event.outcome = outcome
        event.outcome_updated_at = datetime.now()
        if notes is not None:
            event.notes = notes
        await self.store.set(event_id, event)
        logger.info(f"[CrisisAudit] {event_id} outcome → {outcome}")
        return event

    @log_async_operation
    async def schedule_follow_up(self, event_id: str, when: datetime) -> CrisisEvent:
        event = await self._require(event_id)
        event.follow_up_scheduled = when
        await self.store.set(event_id, event)
        logger.info(f"[CrisisAudit] Follow-up for {event_id} at {when.isoformat()}")
        return event

    async def get_crisis_events(self, filters: Optional[Dict[str, Any]] = None) -> List[CrisisEvent]:
        """Events newest first. Filters: severity (minimum), type, outcome, needs_review."""
        filters = filters or {}
        events = await self.store.values()
        if "severity" in filters:
            events = [e for e in events if e.severity >= filters["severity"]]
        if "type" in filters:
            events = [e for e in events if e.crisis_type == filters["type"]]
        if "outcome" in filters:
            events = [e for e in events if e.outcome == filters["outcome"]]
        if filters.get("needs_review"):
            events = [e for e in events if e.needs_review]
        return sorted(events, key=lambda e: e.timestamp, reverse=True)

    async def get_unresolved_crises(self) -> List[CrisisEvent]:
        return await self.get_crisis_events({"outcome": "ongoing", "needs_review": True})

    async def get_crisis_stats(self, days: int = 30) -> Dict[str, Any]:
        cutoff = datetime.now() - timedelta(days=days)
        events = [e for e in await self.store.values() if e.timestamp >= cutoff]
        by_type: Dict[str, int] = {}
        by_severity: Dict[int, int] = {}
        for e in events:
            by_type[e.crisis_type] = by_type.get(e.crisis_type, 0) + 1
            by_severity[e.severity] = by_severity.get(e.severity, 0) + 1

        def rate(flags: List[bool]) -> float:
            return round(float(np.mean(flags)), 3) if flags else 0.0

        return {
            "total_crisis": len(events),
            "by_type": by_type,
            "by_severity": by_severity,
            "average_confidence": rate([e.confidence for e in events]),
            "human_notification_rate": rate([e.human_notified for e in events]),
            "escalation_rate": rate([e.escalation_level in ("human_review", "emergency_services") for e in events]),
            "resolution_rate": rate([e.outcome == "resolved" for e in events]),
            "emergency_writes": self.emergency_writes,
        }

    @log_async_operation
    async def export_crisis_logs(self, start: datetime, end: datetime) -> Dict[str, Any]:
        events = [e for e in await self.get_crisis_events() if start <= e.timestamp <= end]
        events.sort(key=lambda e: e.timestamp)
        return {
            "total_events": len(events),
            "events": [e.to_dict() for e in events],
            "export_date": datetime.now().isoformat(),
            "retention_compliance": all(e.retention_until - e.timestamp >= self.retention for e in events),
        }
