"""
# escalation/crisis_escalation.py

Module Contract
- Purpose: Severity state machine for detected crises. Maps a message (and optionally its classification) to a severity tier, runs that tier's fixed action list, tracks one active crisis per user until it is explicitly resolved, and produces the user-facing crisis message.
- Inputs:
  - detect_crisis_severity(message, classification=None) → SeverityMatch | None (pure)
  - execute_crisis_response(user_id, session_id, message, severity, content_ref=None) → CrisisResponse
  - generate_crisis_response(severity) → dict (pure)
  - resolve_crisis(user_id, resolution) → bool
- Outputs:
  - ActiveCrisis records in a KeyValueStore keyed by user_id
  - Moderator alerts (immediate or queued), escalation log entries
- Key behaviors:
  - Indicator lists are checked severe → moderate → elevated; severe wins on overlap. A CRISIS classification maps to severe.
  - Actions run in declared order. Each action is isolated: a failure is logged and recorded, and the remaining actions still run.
  - Active crises never expire; only resolve_crisis closes them. Concurrent detections for one user are upserts (last write wins).
- Dependencies:
  - NotificationService (emergency / moderation channels), ModerationService (flag the triggering content item when one is given)
- Error handling:
  - Nothing here blocks the crisis message: generate_crisis_response is pure and never touches I/O.
"""
import asyncio
import uuid
from collections import deque
from dataclasses import asdict, dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Deque, Dict, List, Optional, Tuple, Union

from classification.types import Category, Classification
from config.app_config import ESCALATION_HISTORY_LIMIT
from core.collaborators import LoggingNotificationService, ModerationService, NotificationService
from core.storage import InMemoryStore, KeyValueStore
from utils.logging_utils import get_logger, preview_text
from utils.text_utils import truncate

logger = get_logger("crisis_escalation")

ALERT_MESSAGE_LIMIT = 200
CHECK_IN_DELAY = timedelta(hours=24)


class Severity(str, Enum):
    SEVERE = "severe"
    MODERATE = "moderate"
    ELEVATED = "elevated"


# ===== Resource bundles =====
# Exact hotline strings are part of the contract with the UI.

LIFELINE_988 = {
    "name": "988 Suicide & Crisis Lifeline",
    "phone": "988",
    "text": 'Text "HELLO" to 741741',
    "url": "https://988lifeline.org",
    "available": "24/7",
}
CRISIS_TEXT_LINE = {
    "name": "Crisis Text Line",
    "phone": None,
    "text": 'Text "STEVE" to 741741',
    "url": "https://www.crisistextline.org",
    "available": "24/7",
}
EMERGENCY_SERVICES = {
    "name": "Emergency Services",
    "phone": "911",
    "text": None,
    "url": None,
    "available": "24/7",
}
SAMHSA_HELPLINE = {
    "name": "SAMHSA National Helpline",
    "phone": "1-800-662-4357",
    "text": None,
    "url": "https://www.samhsa.gov/find-help/national-helpline",
    "available": "24/7",
}
THERAPY_FOR_BLACK_GIRLS = {
    "name": "Therapy for Black Girls",
    "phone": None,
    "text": None,
    "url": "https://therapyforblackgirls.com",
    "available": "Directory",
}
BLACK_MENTAL_HEALTH_ALLIANCE = {
    "name": "Black Mental Health Alliance",
    "phone": "(410) 338-2642",
    "text": None,
    "url": "https://blackmentalhealth.com",
    "available": "Business hours",
}
NAMI_HELPLINE = {
    "name": "NAMI HelpLine",
    "phone": "1-800-950-6264",
    "text": 'Text "HelpLine" to 62640',
    "url": "https://www.nami.org/help",
    "available": "Weekdays",
}


@dataclass(frozen=True)
class SeverityProfile:
    severity: Severity
    level: str
    priority: int
    indicators: Tuple[str, ...]
    actions: Tuple[str, ...]
    resources: Dict[str, Dict[str, Any]]
    response_time: str
    requires_human_intervention: bool
    auto_escalate: bool


SEVERITY_PROFILES: Dict[Severity, SeverityProfile] = {
    Severity.SEVERE: SeverityProfile(
        severity=Severity.SEVERE,
        level="SEVERE",
        priority=1,
        indicators=(
            "suicide", "suicidal", "kill myself", "end my life", "want to die",
            "better off dead", "no reason to live", "end it all", "imminent harm",
            "immediate danger", "right now", "have a plan", "have the pills", "have the gun",
        ),
        actions=(
            "DISPLAY_CRISIS_BANNER", "PROVIDE_988_IMMEDIATELY", "ALERT_HUMAN_MODERATOR",
            "LOG_HIGH_PRIORITY", "DISABLE_NORMAL_CHAT", "TRACK_USER_SESSION",
        ),
        resources={"primary": LIFELINE_988, "secondary": CRISIS_TEXT_LINE, "emergency": EMERGENCY_SERVICES},
        response_time="IMMEDIATE",
        requires_human_intervention=True,
        auto_escalate=True,
    ),
    Severity.MODERATE: SeverityProfile(
        severity=Severity.MODERATE,
        level="MODERATE",
        priority=2,
        indicators=(
            "self harm", "self-harm", "cut myself", "hurt myself", "severe distress",
            "cant take it", "can't take it", "overwhelming", "unbearable", "desperate",
            "thoughts of death", "thinking about death", "hopeless", "worthless", "no point",
        ),
        actions=(
            "PROVIDE_CRISIS_RESOURCES", "ALERT_MODERATOR_QUEUE", "INCREASE_MONITORING",
            "LOG_MEDIUM_PRIORITY", "OFFER_IMMEDIATE_SUPPORT",
        ),
        resources={"primary": LIFELINE_988, "secondary": SAMHSA_HELPLINE},
        response_time="< 5 minutes",
        requires_human_intervention=True,
        auto_escalate=False,
    ),
    Severity.ELEVATED: SeverityProfile(
        severity=Severity.ELEVATED,
        level="ELEVATED",
        priority=3,
        indicators=(
            "escalating distress", "getting worse", "spiraling", "repeated mental health",
            "keep coming back", "not getting better", "struggling badly", "need help",
            "desperate for help", "losing control",
        ),
        actions=(
            "SUGGEST_PROFESSIONAL_HELP", "PROVIDE_THERAPIST_DIRECTORY", "LOG_FOR_REVIEW",
            "RECOMMEND_RESOURCES", "CHECK_IN_LATER",
        ),
        resources={"primary": THERAPY_FOR_BLACK_GIRLS, "secondary": BLACK_MENTAL_HEALTH_ALLIANCE},
        response_time="< 1 hour",
        requires_human_intervention=False,
        auto_escalate=False,
    ),
}

# Severe first: the first tier with a matching indicator wins
SEVERITY_ORDER = (Severity.SEVERE, Severity.MODERATE, Severity.ELEVATED)


# ===== Records =====

@dataclass(frozen=True)
class SeverityMatch:
    severity: Severity
    matched_indicator: str

    @property
    def profile(self) -> SeverityProfile:
        return SEVERITY_PROFILES[self.severity]


@dataclass
class ActiveCrisis:
    user_id: str
    session_id: str
    severity: Severity
    matched_indicator: str
    timestamp: datetime
    status: str = "active"
    resolution: Optional[str] = None
    resolved_at: Optional[datetime] = None
    first_detected_at: Optional[datetime] = None
    detections: int = 1
    tracked: bool = False

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["severity"] = self.severity.value
        for key in ("timestamp", "resolved_at", "first_detected_at"):
            if data[key] is not None:
                data[key] = data[key].isoformat()
        return data


@dataclass
class CrisisResponse:
    crisis_detected: bool
    severity: Severity
    level: str
    priority: int
    response_time: str
    actions: List[Dict[str, Any]]
    resources: Dict[str, Dict[str, Any]]
    display_mode: str = "NORMAL"
    human_alert_sent: bool = False
    disable_normal_chat: bool = False

    @property
    def failed_actions(self) -> List[str]:
        return [a["action"] for a in self.actions if not a["executed"]]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "crisis_detected": self.crisis_detected,
            "severity": self.severity.value,
            "level": self.level,
            "priority": self.priority,
            "response_time": self.response_time,
            "actions": list(self.actions),
            "resources": self.resources,
            "display_mode": self.display_mode,
            "human_alert_sent": self.human_alert_sent,
            "disable_normal_chat": self.disable_normal_chat,
        }


# ===== Pure functions =====

def detect_crisis_severity(message: str,
                           classification: Optional[Classification] = None) -> Optional[SeverityMatch]:
    """Severity tier for `message`, or None. Pure: same input, same answer."""
    lowered = (message or "").lower().replace("’", "'")
    for severity in SEVERITY_ORDER:
        for indicator in SEVERITY_PROFILES[severity].indicators:
            if indicator in lowered:
                return SeverityMatch(severity, indicator)
    if classification is not None and classification.category is Category.CRISIS:
        return SeverityMatch(Severity.SEVERE, "classification_detected")
    return None


_RESPONSE_TEXT = {
    Severity.SEVERE: (
        "I'm really glad you told me, and I'm taking what you said seriously. "
        "You deserve support from a real person right now.\n\n"
        "- Call or text 988 (Suicide & Crisis Lifeline), any time, free and confidential\n"
        "- Text HELLO to 741741 to reach a crisis counselor by text\n"
        "- If you are in immediate danger, call 911 or go to the nearest emergency room\n\n"
        "A member of our support team has been alerted. I'm still here while you reach out."
    ),
    Severity.MODERATE: (
        "It sounds like you're carrying a lot right now, and you don't have to handle it alone.\n\n"
        "- Call or text 988 to talk with someone trained to help, any hour\n"
        "- SAMHSA's helpline is also free and confidential: 1-800-662-4357\n\n"
        "Would it help to talk about what's making things feel this heavy? "
        "Someone from our team will also check in with you soon."
    ),
    Severity.ELEVATED: (
        "Thank you for being honest about how things are going. When struggles keep building, "
        "a professional can make a real difference.\n\n"
        "- Therapy for Black Girls and the Black Mental Health Alliance can connect you with culturally aware care\n"
        "- The NAMI HelpLine (1-800-950-6264) can point you to support near you\n\n"
        "If things ever feel unsafe, call or text 988 any time."
    ),
}

_DISPLAY = {
    Severity.SEVERE: ("CRISIS_BANNER", "IMMEDIATE", True, True),
    Severity.MODERATE: ("URGENT_RESOURCES", "HIGH", False, False),
    Severity.ELEVATED: ("PROFESSIONAL_HELP", "MEDIUM", False, False),
}


def generate_crisis_response(severity: Union[Severity, str]) -> Dict[str, Any]:
    """User-facing crisis message for a tier. Pure; never fails for a valid tier.

    When `disable_normal_chat` is True the chat surface must block free-form
    messaging until the crisis is resolved or handed off.
    """
    severity = Severity(severity)
    display_mode, urgency, disable_chat, banner = _DISPLAY[severity]
    resources = dict(SEVERITY_PROFILES[severity].resources)
    if severity is Severity.ELEVATED:
        resources["helpline"] = NAMI_HELPLINE
    return {
        "response": _RESPONSE_TEXT[severity],
        "display_mode": display_mode,
        "resources": resources,
        "urgency": urgency,
        "disable_normal_chat": disable_chat,
        "show_emergency_banner": banner,
        "severity": severity.value,
    }


# ===== Manager =====

@dataclass
class _ActionContext:
    user_id: str
    session_id: str
    message: str
    match: SeverityMatch
    content_ref: Optional[Dict[str, str]] = None
    display_mode: str = "NORMAL"
    human_alert_sent: bool = False
    disable_normal_chat: bool = False
    notes: List[str] = field(default_factory=list)


class CrisisEscalationManager:
    """Long-lived service object; one per process, injected where needed."""

    def __init__(self,
                 store: Optional[KeyValueStore] = None,
                 notifier: Optional[NotificationService] = None,
                 moderation: Optional[ModerationService] = None,
                 history_limit: int = ESCALATION_HISTORY_LIMIT):
        self.store = store or InMemoryStore("active_crises")
        self.notifier = notifier or LoggingNotificationService()
        self.moderation = moderation
        self._lock = asyncio.Lock()
        self._initialized = False
        # Recent history only; the counters below cover the process lifetime
        self.escalation_log: Deque[Dict[str, Any]] = deque(maxlen=history_limit)
        self.moderator_alerts: Deque[Dict[str, Any]] = deque(maxlen=history_limit)
        self.resolved_crises: Deque[Dict[str, Any]] = deque(maxlen=history_limit)
        self.review_queue: Deque[Dict[str, Any]] = deque(maxlen=history_limit)
        self.monitored_users: Dict[str, str] = {}
        self.check_ins: Deque[Dict[str, Any]] = deque(maxlen=history_limit)
        self.severity_counts = {s.value: 0 for s in Severity}
        self.resolved_count = 0
        self._handlers = {
            "DISPLAY_CRISIS_BANNER": self._display_crisis_banner,
            "PROVIDE_988_IMMEDIATELY": self._provide_resources,
            "PROVIDE_CRISIS_RESOURCES": self._provide_resources,
            "ALERT_HUMAN_MODERATOR": self._alert_human_moderator,
            "ALERT_MODERATOR_QUEUE": self._alert_moderator_queue,
            "LOG_HIGH_PRIORITY": self._log_priority,
            "LOG_MEDIUM_PRIORITY": self._log_priority,
            "LOG_FOR_REVIEW": self._log_for_review,
            "DISABLE_NORMAL_CHAT": self._disable_normal_chat,
            "TRACK_USER_SESSION": self._track_user_session,
            "INCREASE_MONITORING": self._increase_monitoring,
            "OFFER_IMMEDIATE_SUPPORT": self._note_only,
            "SUGGEST_PROFESSIONAL_HELP": self._note_only,
            "PROVIDE_THERAPIST_DIRECTORY": self._note_only,
            "RECOMMEND_RESOURCES": self._note_only,
            "CHECK_IN_LATER": self._check_in_later,
        }

    def initialize(self) -> None:
        if self._initialized:
            return
        unknown = {a for p in SEVERITY_PROFILES.values() for a in p.actions} - set(self._handlers)
        if unknown:
            raise RuntimeError(f"Crisis actions without handlers: {sorted(unknown)}")
        self._initialized = True
        logger.info("[CrisisEscalation] Initialized")

    async def reset(self) -> None:
        """Drop all state. Intended for tests and controlled restarts."""
        async with self._lock:
            await self.store.clear()
        self.escalation_log.clear()
        self.moderator_alerts.clear()
        self.resolved_crises.clear()
        self.review_queue.clear()
        self.monitored_users.clear()
        self.check_ins.clear()
        self.severity_counts = {s.value: 0 for s in Severity}
        self.resolved_count = 0

    # detection is exposed on the manager for callers that only hold the service
    detect_crisis_severity = staticmethod(detect_crisis_severity)
    generate_crisis_response = staticmethod(generate_crisis_response)

    async def execute_crisis_response(self,
                                      user_id: str,
                                      session_id: str,
                                      message: str,
                                      severity: Union[SeverityMatch, Severity, str],
                                      content_ref: Optional[Dict[str, str]] = None) -> CrisisResponse:
        match = severity if isinstance(severity, SeverityMatch) else SeverityMatch(Severity(severity), "manual")
        profile = match.profile
        now = datetime.now()

        try:
            await self._upsert_active_crisis(user_id, session_id, match, now)
        except Exception as e:
            # Store outage must not stop the alerting actions below
            logger.error(f"[CrisisEscalation] Could not record active crisis: {type(e).__name__}: {e}")

        self.escalation_log.append({
            "user_id": user_id,
            "session_id": session_id,
            "severity": match.severity.value,
            "matched_indicator": match.matched_indicator,
            "timestamp": now.isoformat(),
        })
        self.severity_counts[match.severity.value] += 1
        logger.warning(
            f"[CrisisEscalation] {profile.level} crisis (indicator='{match.matched_indicator}', "
            f"priority={profile.priority}, response={profile.response_time})"
        )

        ctx = _ActionContext(user_id, session_id, message, match, content_ref)
        results = []
        for action in profile.actions:
            entry = {"action": action, "executed": False, "timestamp": datetime.now().isoformat()}
            try:
                await self._handlers[action](action, ctx)
                entry["executed"] = True
            except Exception as e:
                entry["error"] = f"{type(e).__name__}: {e}"
                logger.error(f"[CrisisEscalation] Action {action} failed: {type(e).__name__}: {e}")
            results.append(entry)

        return CrisisResponse(
            crisis_detected=True,
            severity=match.severity,
            level=profile.level,
            priority=profile.priority,
            response_time=profile.response_time,
            actions=results,
            resources=profile.resources,
            display_mode=ctx.display_mode,
            human_alert_sent=ctx.human_alert_sent,
            disable_normal_chat=ctx.disable_normal_chat,
        )

    async def _upsert_active_crisis(self, user_id: str, session_id: str, match: SeverityMatch, now: datetime):
        async with self._lock:
            existing = await self.store.get(user_id)
            record = ActiveCrisis(
                user_id=user_id,
                session_id=session_id,
                severity=match.severity,
                matched_indicator=match.matched_indicator,
                timestamp=now,
                first_detected_at=existing.first_detected_at if existing else now,
                detections=(existing.detections + 1) if existing else 1,
                tracked=existing.tracked if existing else False,
            )
            await self.store.set(user_id, record)

    # ----- action handlers -----

    async def _display_crisis_banner(self, action: str, ctx: _ActionContext):
        ctx.display_mode = "CRISIS_BANNER"

    async def _provide_resources(self, action: str, ctx: _ActionContext):
        ctx.notes.append(action)

    async def _disable_normal_chat(self, action: str, ctx: _ActionContext):
        ctx.disable_normal_chat = True

    async def _note_only(self, action: str, ctx: _ActionContext):
        ctx.notes.append(action)
        logger.debug(f"[CrisisEscalation] {action} noted")

    async def _alert_human_moderator(self, action: str, ctx: _ActionContext):
        alert = self._queue_alert(ctx, urgency="immediate")
        ctx.human_alert_sent = True
        await self._flag_content(ctx)
        await self._notify("emergency", {
            "type": "crisis_alert",
            "alert_id": alert["alert_id"],
            "user_id": ctx.user_id,
            "session_id": ctx.session_id,
            "severity": ctx.match.severity.value,
            "summary": f"{SEVERITY_PROFILES[ctx.match.severity].level} crisis needs immediate human review",
        })

    async def _alert_moderator_queue(self, action: str, ctx: _ActionContext):
        alert = self._queue_alert(ctx, urgency="queue")
        ctx.human_alert_sent = True
        await self._flag_content(ctx)
        await self._notify("moderation", {
            "type": "crisis_alert",
            "alert_id": alert["alert_id"],
            "user_id": ctx.user_id,
            "severity": ctx.match.severity.value,
            "summary": f"{SEVERITY_PROFILES[ctx.match.severity].level} crisis queued for review",
        })

    async def _log_priority(self, action: str, ctx: _ActionContext):
        line = (f"[CrisisEscalation] {action}: severity={ctx.match.severity.value} "
                f"indicator='{ctx.match.matched_indicator}' session={ctx.session_id}")
        if action == "LOG_HIGH_PRIORITY":
            logger.critical(line)
        else:
            logger.warning(line)

    async def _log_for_review(self, action: str, ctx: _ActionContext):
        self.review_queue.append({
            "user_id": ctx.user_id,
            "session_id": ctx.session_id,
            "severity": ctx.match.severity.value,
            "indicator": ctx.match.matched_indicator,
            "timestamp": datetime.now().isoformat(),
        })
        logger.info(f"[CrisisEscalation] Logged for review: {ctx.match.matched_indicator}")

    async def _track_user_session(self, action: str, ctx: _ActionContext):
        async with self._lock:
            record = await self.store.get(ctx.user_id)
            if record is not None:
                record.tracked = True
                await self.store.set(ctx.user_id, record)
        self.monitored_users[ctx.user_id] = ctx.match.severity.value

    async def _increase_monitoring(self, action: str, ctx: _ActionContext):
        self.monitored_users[ctx.user_id] = ctx.match.severity.value

    async def _check_in_later(self, action: str, ctx: _ActionContext):
        self.check_ins.append({
            "user_id": ctx.user_id,
            "session_id": ctx.session_id,
            "due_at": (datetime.now() + CHECK_IN_DELAY).isoformat(),
        })

    def _queue_alert(self, ctx: _ActionContext, urgency: str) -> Dict[str, Any]:
        alert = {
            "alert_id": f"alert_{uuid.uuid4().hex[:12]}",
            "user_id": ctx.user_id,
            "session_id": ctx.session_id,
            "severity": ctx.match.severity.value,
            "matched_indicator": ctx.match.matched_indicator,
            "message": truncate(ctx.message, ALERT_MESSAGE_LIMIT),
            "urgency": urgency,
            "status": "pending",
            "timestamp": datetime.now().isoformat(),
        }
        self.moderator_alerts.append(alert)
        logger.warning(f"[CrisisEscalation] Moderator alert {alert['alert_id']} ({urgency}): "
                       f"{preview_text(ctx.message)!r}")
        return alert

    async def _notify(self, channel: str, payload: Dict[str, Any]) -> bool:
        try:
            result = await self.notifier.notify(channel, payload)
        except Exception as e:
            logger.error(f"[CrisisEscalation] {channel} notification failed: {type(e).__name__}: {e}")
            return False
        if not result.get("success"):
            logger.error(f"[CrisisEscalation] {channel} notification was not delivered")
            return False
        return True

    async def _flag_content(self, ctx: _ActionContext):
        if self.moderation is None or not ctx.content_ref:
            return
        await self.moderation.flag_content(ctx.content_ref["id"], ctx.content_ref.get("type", "message"))

    # ----- lifecycle & queries -----

    async def resolve_crisis(self, user_id: str, resolution: str) -> bool:
        async with self._lock:
            record = await self.store.get(user_id)
            if record is None or record.status != "active":
                return False
            record.status = "resolved"
            record.resolution = resolution
            record.resolved_at = datetime.now()
            self.resolved_crises.append(record.to_dict())
            self.resolved_count += 1
            await self.store.delete(user_id)
        self.monitored_users.pop(user_id, None)
        logger.info(f"[CrisisEscalation] Crisis resolved ({resolution})")
        return True

    async def get_active_crisis(self, user_id: str) -> Optional[ActiveCrisis]:
        return await self.store.get(user_id)

    def get_moderator_alerts(self, status: Optional[str] = None) -> List[Dict[str, Any]]:
        if status is None:
            return list(self.moderator_alerts)
        return [a for a in self.moderator_alerts if a["status"] == status]

    def update_alert_status(self, alert_id: str, status: str) -> bool:
        for alert in self.moderator_alerts:
            if alert["alert_id"] == alert_id:
                alert["status"] = status
                alert["updated_at"] = datetime.now().isoformat()
                return True
        return False

    async def get_escalation_stats(self) -> Dict[str, Any]:
        return {
            "active_crises": await self.store.size(),
            "total_escalations": sum(self.severity_counts.values()),
            "resolved_crises": self.resolved_count,
            "pending_alerts": len(self.get_moderator_alerts("pending")),
            "severity_breakdown": dict(self.severity_counts),
        }
