"""
# escalation/human_handoff.py

Module Contract
- Purpose: Move a user from automated support to a human counselor. Creates a prioritized ticket with a reviewer-facing conversation summary, notifies the right team, and tracks the ticket through PENDING → ASSIGNED → COMPLETED.
- Inputs:
  - initiate_human_handoff(user_id, session_id, reason, context) where context may carry
    {"conversation": {"messages": [{role, content, timestamp}], "classifications": [...]}, "emotional_trend": [int]}
  - assign_handoff(ticket_id, counselor_id, counselor_name), complete_handoff(ticket_id, outcome)
- Outputs:
  - {success, ticket, message, estimated_wait, crisis_resources, display_mode}
- Key behaviors:
  - URGENT reasons (or reason CRISIS) always notify the emergency channel, exactly once per ticket.
  - HIGH → moderation channel, everything else → support channel.
  - Three ordered stores (pending / assigned / completed) keep FIFO order for dashboards.
- Error handling:
  - Notifier failures are logged, never raised. Any other failure returns success=False with crisis resources attached so the user is never left without hotline numbers.
"""
import uuid
from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, Iterable, List, Optional

import numpy as np

from config.app_config import HANDOFF_RECENT_MESSAGES
from core.collaborators import LoggingNotificationService, NotificationService
from core.storage import InMemoryStore, KeyValueStore
from escalation.crisis_escalation import CRISIS_TEXT_LINE, EMERGENCY_SERVICES, LIFELINE_988
from utils.logging_utils import get_logger, log_and_time
from utils.text_utils import truncate

logger = get_logger("human_handoff")

URGENT, HIGH, MEDIUM = "URGENT", "HIGH", "MEDIUM"

URGENT_REASONS = frozenset({"CRISIS", "SEVERE_DISTRESS", "IMMEDIATE_DANGER", "SELF_HARM"})
HIGH_REASONS = frozenset({"MODERATE_CRISIS", "REPEATED_ISSUES", "ESCALATING", "AI_LIMITATION"})

ESTIMATED_WAITS = {URGENT: "< 5 minutes", HIGH: "< 15 minutes", MEDIUM: "< 30 minutes"}

NO_HISTORY = "No conversation history available."
RECENT_CONTEXT_MESSAGES = 3
RECENT_CONTEXT_CHARS = 200

KEY_ISSUE_TERMS = {
    "work": ("job", "work", "career", "employed", "unemployment", "laid off", "fired"),
    "relationship": ("girlfriend", "boyfriend", "wife", "husband", "partner", "relationship", "divorce"),
    "family": ("family", "parents", "father", "mother", "kids", "children"),
    "mental_health": ("depressed", "anxiety", "stressed", "hopeless", "overwhelmed"),
    "financial": ("money", "bills", "debt", "financial", "rent", "mortgage"),
    "identity": ("black", "race", "racism", "discrimination", "microaggression"),
}


def determine_priority(reason: str) -> str:
    reason = (reason or "").upper()
    if reason in URGENT_REASONS:
        return URGENT
    if reason in HIGH_REASONS:
        return HIGH
    return MEDIUM


def estimated_wait(priority: str) -> str:
    return ESTIMATED_WAITS.get(priority, "< 1 hour")


def get_crisis_resources() -> Dict[str, Dict[str, Any]]:
    return {"primary": dict(LIFELINE_988), "secondary": dict(CRISIS_TEXT_LINE), "emergency": dict(EMERGENCY_SERVICES)}


# ===== Summary helpers =====

def _category_of(classification: Any) -> Optional[str]:
    if isinstance(classification, dict):
        category = classification.get("category")
    else:
        category = getattr(classification, "category", None)
    return getattr(category, "value", category)


def _intensity_of(classification: Any) -> Optional[int]:
    if isinstance(classification, dict):
        return classification.get("emotional_intensity")
    return getattr(classification, "emotional_intensity", None)


def _as_datetime(value: Any) -> Optional[datetime]:
    if isinstance(value, datetime):
        return value
    if isinstance(value, str):
        try:
            return datetime.fromisoformat(value)
        except ValueError:
            return None
    return None


def top_categories(classifications: Iterable[Any], limit: int = 3) -> List[str]:
    counts: Dict[str, int] = {}
    for c in classifications or []:
        category = _category_of(c)
        if category:
            counts[category] = counts.get(category, 0) + 1
    # dict order breaks ties by first appearance
    return [k for k, _ in sorted(counts.items(), key=lambda kv: kv[1], reverse=True)[:limit]]


def extract_key_issues(texts: Iterable[str]) -> List[str]:
    combined = " ".join(texts).lower()
    return [issue for issue, terms in KEY_ISSUE_TERMS.items() if any(t in combined for t in terms)]


def average_sentiment(values: Iterable[float]) -> Optional[float]:
    values = [v for v in values if v is not None]
    if not values:
        return None
    return round(float(np.mean(values)), 1)


def conversation_duration(messages: List[Dict[str, Any]]) -> Optional[int]:
    """Minutes between first and last message, or None with fewer than two timestamps."""
    if len(messages) < 2:
        return None
    first = _as_datetime(messages[0].get("timestamp"))
    last = _as_datetime(messages[-1].get("timestamp"))
    if first is None or last is None:
        return None
    return round((last - first).total_seconds() / 60)


def generate_conversation_summary(history: Optional[List[Dict[str, Any]]],
                                  classifications: Optional[List[Any]] = None,
                                  emotional_trend: Optional[List[float]] = None):
    """
    Reviewer-facing digest of a conversation.

    Raw text appears only in `recent_context`: the last three user messages,
    each truncated. Sentiment comes from `emotional_trend` when given,
    otherwise from classification intensities.
    """
    if not history:
        return NO_HISTORY

    classifications = classifications or []
    user_texts = [m.get("content", "") for m in history if m.get("role") == "user"]
    if emotional_trend is None:
        emotional_trend = [_intensity_of(c) for c in classifications]
    duration = conversation_duration(history)

    return {
        "total_messages": len(history),
        "user_messages": len(user_texts),
        "topics": ", ".join(top_categories(classifications)),
        "avg_sentiment": average_sentiment(emotional_trend),
        "key_issues": ", ".join(extract_key_issues(user_texts)),
        "duration": f"{duration} minutes" if duration is not None else "N/A",
        "recent_context": " | ".join(
            truncate(t, RECENT_CONTEXT_CHARS) for t in user_texts[-RECENT_CONTEXT_MESSAGES:]
        ),
    }


_HANDOFF_MESSAGES = {
    URGENT: (
        "I want you to have a real person with you right now, so I'm connecting you with a crisis "
        "counselor immediately. Expected wait: {wait}. They will be able to see our conversation.\n\n"
        "While you wait:\n"
        "- Call or text 988 (Suicide & Crisis Lifeline)\n"
        "- Text HELLO to 741741 (Crisis Text Line)\n"
        "- Call 911 if you are in immediate danger\n\n"
        "I'm staying right here with you. How are you doing at this moment?"
    ),
    HIGH: (
        "I'm bringing in a human counselor who can give you more personal support. "
        "Expected wait: {wait}. They'll have our conversation so you won't need to repeat yourself.\n\n"
        "Is there anything you'd like me to pass along to them?"
    ),
    MEDIUM: (
        "I think talking with a human counselor could really help here. "
        "Someone will reach out within {wait}, and they'll have the context from our chat.\n\n"
        "In the meantime I'm still here. What's on your mind?"
    ),
}


def generate_handoff_message(priority: str, wait: str) -> str:
    return _HANDOFF_MESSAGES.get(priority, _HANDOFF_MESSAGES[MEDIUM]).format(wait=wait)


# ===== Tickets =====

@dataclass
class HandoffTicket:
    ticket_id: str
    user_id: str
    session_id: str
    reason: str
    priority: str
    conversation_summary: Any
    last_messages: List[Dict[str, Any]]
    created_at: datetime
    estimated_wait: str
    status: str = "PENDING"
    top_categories: List[str] = field(default_factory=list)
    avg_sentiment: Optional[float] = None
    assigned_to: Optional[str] = None
    assigned_to_name: Optional[str] = None
    assigned_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    outcome: Optional[str] = None
    duration_minutes: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        for key in ("created_at", "assigned_at", "completed_at"):
            if data[key] is not None:
                data[key] = data[key].isoformat()
        return data


class HumanHandoffManager:
    def __init__(self,
                 notifier: Optional[NotificationService] = None,
                 store: Optional[KeyValueStore] = None,
                 queue_store_factory: Callable[[str], KeyValueStore] = InMemoryStore,
                 recent_messages: int = HANDOFF_RECENT_MESSAGES):
        self.notifier = notifier or LoggingNotificationService()
        # user_id -> ticket_id of the user's open handoff
        self.active = store or InMemoryStore("active_handoffs")
        self.pending = queue_store_factory("handoff_pending")
        self.assigned = queue_store_factory("handoff_assigned")
        self.completed = queue_store_factory("handoff_completed")
        self.recent_messages = recent_messages
        self._initialized = False

    def initialize(self) -> None:
        self._initialized = True
        logger.info("[Handoff] Initialized")

    async def reset(self) -> None:
        for store in (self.active, self.pending, self.assigned, self.completed):
            await store.clear()

    determine_priority = staticmethod(determine_priority)
    estimated_wait = staticmethod(estimated_wait)
    generate_conversation_summary = staticmethod(generate_conversation_summary)

    @log_and_time("Initiate human handoff")
    async def initiate_human_handoff(self, user_id: str, session_id: str, reason: str,
                                     context: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        try:
            return await self._initiate(user_id, session_id, reason, context or {})
        except Exception as e:
            logger.error(f"[Handoff] Failed to open ticket: {type(e).__name__}: {e}")
            return {
                "success": False,
                "error": str(e),
                "message": generate_handoff_message(URGENT, ESTIMATED_WAITS[URGENT]),
                "crisis_resources": get_crisis_resources(),
            }

    async def _initiate(self, user_id: str, session_id: str, reason: str,
                        context: Dict[str, Any]) -> Dict[str, Any]:
        priority = determine_priority(reason)
        wait = estimated_wait(priority)
        conversation = context.get("conversation") or {}
        messages = list(conversation.get("messages") or [])
        classifications = list(conversation.get("classifications") or [])
        trend = context.get("emotional_trend")

        ticket = HandoffTicket(
            ticket_id=f"handoff_{int(datetime.now().timestamp() * 1000)}_{uuid.uuid4().hex[:9]}",
            user_id=user_id,
            session_id=session_id,
            reason=reason,
            priority=priority,
            conversation_summary=generate_conversation_summary(messages, classifications, trend),
            last_messages=messages[-self.recent_messages:],
            created_at=datetime.now(),
            estimated_wait=wait,
            top_categories=top_categories(classifications),
            avg_sentiment=average_sentiment(trend or []),
        )
        await self.pending.set(ticket.ticket_id, ticket)
        await self.active.set(user_id, ticket.ticket_id)
        logger.warning(f"[Handoff] Ticket {ticket.ticket_id} opened: reason={reason} priority={priority} wait={wait}")

        urgent = priority == URGENT or (reason or "").upper() == "CRISIS"
        if urgent:
            channel = "emergency"
        elif priority == HIGH:
            channel = "moderation"
        else:
            channel = "support"
        await self._notify(channel, ticket)

        return {
            "success": True,
            "ticket": ticket,
            "message": generate_handoff_message(priority, wait),
            "estimated_wait": wait,
            "crisis_resources": get_crisis_resources() if urgent else None,
            "display_mode": "HANDOFF_URGENT" if priority == URGENT else "HANDOFF_NORMAL",
        }

    async def _notify(self, channel: str, ticket: HandoffTicket) -> bool:
        payload = {
            "type": "handoff",
            "ticket_id": ticket.ticket_id,
            "priority": ticket.priority,
            "reason": ticket.reason,
            "summary": f"{ticket.priority} handoff ({ticket.reason}), wait {ticket.estimated_wait}",
        }
        try:
            result = await self.notifier.notify(channel, payload)
        except Exception as e:
            logger.error(f"[Handoff] {channel} notification failed: {type(e).__name__}: {e}")
            return False
        if not result.get("success"):
            logger.error(f"[Handoff] {channel} notification not delivered for {ticket.ticket_id}")
            return False
        return True

    async def assign_handoff(self, ticket_id: str, counselor_id: str, counselor_name: str) -> Dict[str, Any]:
        ticket = await self.pending.get(ticket_id)
        if ticket is None:
            return {"success": False, "error": "Ticket not found"}
        ticket.status = "ASSIGNED"
        ticket.assigned_to = counselor_id
        ticket.assigned_to_name = counselor_name
        ticket.assigned_at = datetime.now()
        await self.pending.delete(ticket_id)
        await self.assigned.set(ticket_id, ticket)
        logger.info(f"[Handoff] {ticket_id} assigned to {counselor_name}")
        return {"success": True, "ticket": ticket}

    async def complete_handoff(self, ticket_id: str, outcome: str) -> Dict[str, Any]:
        ticket = await self.assigned.get(ticket_id)
        if ticket is None:
            return {"success": False, "error": "Ticket not found"}
        ticket.status = "COMPLETED"
        ticket.completed_at = datetime.now()
        ticket.outcome = outcome
        ticket.duration_minutes = round((ticket.completed_at - ticket.created_at).total_seconds() / 60)
        await self.assigned.delete(ticket_id)
        await self.completed.set(ticket_id, ticket)
        if await self.active.get(ticket.user_id) == ticket_id:
            await self.active.delete(ticket.user_id)
        logger.info(f"[Handoff] {ticket_id} completed ({ticket.duration_minutes} minutes)")
        return {"success": True, "ticket": ticket}

    async def get_pending_tickets(self, priority: Optional[str] = None) -> List[HandoffTicket]:
        tickets = await self.pending.values()
        if priority:
            return [t for t in tickets if t.priority == priority]
        return tickets

    async def get_handoff_stats(self) -> Dict[str, Any]:
        pending = await self.pending.values()
        assigned = await self.assigned.values()
        completed = await self.completed.values()

        response_minutes = [
            (t.assigned_at - t.created_at).total_seconds() / 60 for t in completed if t.assigned_at
        ]
        open_tickets = pending + assigned
        return {
            "active": await self.active.size(),
            "pending": len(pending),
            "assigned": len(assigned),
            "completed": len(completed),
            "avg_response_minutes": round(float(np.mean(response_minutes)), 1) if response_minutes else None,
            "priority_breakdown": {p: sum(1 for t in open_tickets if t.priority == p) for p in (URGENT, HIGH, MEDIUM)},
        }
