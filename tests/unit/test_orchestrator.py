"""
Unit tests for core/orchestrator.py

Tests:
- Pipeline order: crisis gate, clear cases, degradation chain
- Crisis path: severity, alerts, handoff, audit, analytics
- Session bookkeeping
- Failure responses never raise
- Passthroughs (feedback, handoff, stats)
"""

import json

import pytest
import pytest_asyncio

from core.collaborators import LoggingNotificationService
from core.dependencies import DependencyContainer
from core.orchestrator import ERROR_CODE, MentalHealthOrchestrator
from core.response_templates import EMPLOYMENT_JOB_LOSS, GENERIC_ERROR_RESPONSE
from core.storage import InMemoryStore


class FakeModel:
    """Model client that answers every prompt with one canned classification."""

    def __init__(self, payload=None, available=True):
        self.payload = payload or {
            "category": "RELATIONSHIP",
            "subcategory": "family",
            "confidence": 0.8,
            "reasoning": "Talks about a sibling",
            "emotional_intensity": 5,
        }
        self.is_available = available
        self.prompts = []
        self.closed = False

    async def __call__(self, system_prompt, user_prompt, max_tokens):
        self.prompts.append(user_prompt)
        return {"text": json.dumps(self.payload)}

    async def aclose(self):
        self.closed = True


class FailingSessionStore(InMemoryStore):
    async def get(self, key):
        raise RuntimeError("session store offline")


def _build(tmp_path, model=None, store_factory=InMemoryStore, **kwargs):
    container = DependencyContainer()
    notifier = LoggingNotificationService()
    container.initialize(
        model_manager=model or FakeModel(),
        notifier=notifier,
        store_factory=store_factory,
        emergency_log_path=str(tmp_path / "emergency.jsonl"),
    )
    return container, MentalHealthOrchestrator(container, **kwargs)


@pytest_asyncio.fixture
async def pipeline(tmp_path):
    model = FakeModel()
    container, orchestrator = _build(tmp_path, model)
    yield container, orchestrator, model
    await container.shutdown()


# =============================================================================
# Construction
# =============================================================================

def test_requires_initialized_container():
    """An uninitialized container fails at construction"""
    with pytest.raises(RuntimeError):
        MentalHealthOrchestrator(DependencyContainer())


def test_session_key_and_message_id():
    assert MentalHealthOrchestrator.session_key("u1", "s1") == "u1_s1"
    message_id = MentalHealthOrchestrator.new_message_id("u1")
    assert message_id.startswith("msg_u1_")
    assert message_id != MentalHealthOrchestrator.new_message_id("u1")


# =============================================================================
# Crisis path
# =============================================================================

@pytest.mark.asyncio
async def test_explicit_crisis_skips_model(pipeline):
    """Regex crisis wording escalates without any model call"""
    container, orchestrator, model = pipeline

    result = await orchestrator.process_message("u1", "s1", "I want to kill myself")

    assert model.prompts == []
    assert result["classification"]["category"] == "CRISIS"
    assert result["classification"]["confidence"] >= 0.9
    assert result["classification"]["method"] == "escalation_protocol"
    assert "988" in result["response"]

    crisis = result["crisis"]
    assert crisis["severity"] == "severe"
    assert crisis["disable_normal_chat"] is True
    assert crisis["display_mode"] == "CRISIS_BANNER"
    assert crisis["human_alert_sent"] is True
    assert crisis["handoff_ticket"] is not None
    assert crisis["audit_event_id"].startswith("crisis_")


@pytest.mark.asyncio
async def test_crisis_side_effects(pipeline):
    """A severe crisis alerts moderators, opens an urgent handoff, and is audited"""
    container, orchestrator, _ = pipeline

    result = await orchestrator.process_message("u1", "s1", "I want to kill myself")

    channels = [n["channel"] for n in container.get_notifier().sent]
    assert "emergency" in channels
    assert container.get_moderation().flagged == [{"id": result["message_id"], "type": "chat_message"}]
    assert await container.get_escalation_manager().get_active_crisis("u1") is not None

    pending = await container.get_handoff_manager().get_pending_tickets()
    assert pending[0].ticket_id == result["crisis"]["handoff_ticket"]
    assert pending[0].priority == "URGENT"

    events = await container.get_audit_logger().get_crisis_events()
    assert [e.id for e in events] == [result["crisis"]["audit_event_id"]]


@pytest.mark.asyncio
async def test_self_harm_crisis_audited_as_self_harm(pipeline):
    """The matched pattern group sets the crisis subcategory and audit type"""
    container, orchestrator, _ = pipeline

    result = await orchestrator.process_message("u1", "s1", "I keep cutting myself")

    assert result["classification"]["subcategory"] == "self_harm"
    events = await container.get_audit_logger().get_crisis_events()
    assert events[0].crisis_type == "self_harm"
    assert events[0].severity == 4


@pytest.mark.asyncio
async def test_crisis_analytics_events(pipeline):
    """Crisis path queues a crisis event at severity 10 plus the classification"""
    container, orchestrator, _ = pipeline

    await orchestrator.process_message("u1", "s1", "I want to kill myself")

    queued = {e.type: e for e in container.get_analytics().queue}
    assert queued["crisis"].data["severity"] == 10
    assert queued["crisis"].data["level"] == "SEVERE"
    assert queued["classification"].data["crisis_level"] == "SEVERE"


@pytest.mark.asyncio
async def test_slang_crisis_detected_after_normalization(pipeline):
    """Crisis wording hidden behind slang still escalates"""
    _, orchestrator, model = pipeline

    result = await orchestrator.process_message("u1", "s1", "lowkey thinking about ending it all")

    assert model.prompts == []
    assert result["classification"]["category"] == "CRISIS"
    assert result["crisis"]["severity"] == "severe"
    assert result["crisis"]["disable_normal_chat"] is True


@pytest.mark.asyncio
async def test_model_crisis_classification_escalates(tmp_path):
    """A CRISIS answer from the model takes the crisis path"""
    model = FakeModel({"category": "CRISIS", "confidence": 0.95, "reasoning": "Implicit risk",
                       "emotional_intensity": 9})
    container, orchestrator = _build(tmp_path, model)

    result = await orchestrator.process_message("u1", "s1", "everything feels heavy and I see no way forward")

    assert len(model.prompts) == 1
    assert result["classification"]["category"] == "CRISIS"
    assert result["classification"]["strategy_used"] == "claude_full"
    assert result["crisis"]["severity"] == "severe"
    await container.shutdown()


# =============================================================================
# Standard path
# =============================================================================

@pytest.mark.asyncio
async def test_clear_case_never_calls_model(pipeline):
    """Explicit job loss is answered by the clear-case rules"""
    _, orchestrator, model = pipeline

    result = await orchestrator.process_message("u1", "s1", "I got laid off today")

    assert model.prompts == []
    assert result["classification"]["category"] == "EMPLOYMENT"
    assert result["classification"]["subcategory"] == "job_loss"
    assert result["classification"]["method"] == "regex"
    assert result["response"] == EMPLOYMENT_JOB_LOSS
    assert "crisis" not in result
    assert result["recommended_resources"][0]["id"] == "employment_dol"


@pytest.mark.asyncio
async def test_ambiguous_message_uses_model(pipeline):
    """Messages no rule is sure about go through the degradation chain"""
    _, orchestrator, model = pipeline

    result = await orchestrator.process_message("u1", "s1", "things have been weird with my sister lately")

    assert len(model.prompts) == 1
    assert result["classification"]["category"] == "RELATIONSHIP"
    assert result["classification"]["strategy_used"] == "claude_full"
    assert result["classification"]["fallback_level"] == 0
    assert result["metadata"]["method"] == "claude_full"
    assert len(result["feedback_options"]) == 4


@pytest.mark.asyncio
async def test_history_sent_as_context(pipeline):
    """Earlier turns are passed to the model with the next message"""
    _, orchestrator, model = pipeline

    await orchestrator.process_message("u1", "s1", "things have been weird with my sister lately")
    await orchestrator.process_message("u1", "s1", "she stopped answering my calls")

    assert "weird with my sister" in model.prompts[1]


@pytest.mark.asyncio
async def test_offline_model_falls_back(tmp_path):
    """Without a model the chain still returns a classification"""
    model = FakeModel(available=False)
    container, orchestrator = _build(tmp_path, model)

    result = await orchestrator.process_message("u1", "s1", "not sure how to feel about stuff")

    assert model.prompts == []
    assert result["classification"]["category"]
    assert result["classification"]["fallback_level"] >= 2
    assert "error" not in result
    await container.shutdown()


# =============================================================================
# Sessions
# =============================================================================

@pytest.mark.asyncio
async def test_session_counts(pipeline):
    _, orchestrator, _ = pipeline

    await orchestrator.process_message("u1", "s1", "hey")
    result = await orchestrator.process_message("u1", "s1", "I got laid off today")

    assert result["session"]["message_count"] == 2
    assert result["session"]["conversation_length"] == 2
    assert await orchestrator.get_session_count() == 1

    await orchestrator.process_message("u2", "s1", "hey")
    assert await orchestrator.get_session_count() == 2

    await orchestrator.clear_sessions()
    assert await orchestrator.get_session_count() == 0


@pytest.mark.asyncio
async def test_history_capped(tmp_path):
    """History keeps only the newest entries"""
    container, orchestrator = _build(tmp_path, history_limit=4)

    for _ in range(3):
        await orchestrator.process_message("u1", "s1", "I got laid off today")

    session = await orchestrator.get_session("u1", "s1")
    assert len(session["history"]) == 4
    assert len(session["classifications"]) == 3
    assert session["message_count"] == 3
    await container.shutdown()


# =============================================================================
# Failures
# =============================================================================

def _failing_sessions(name):
    return FailingSessionStore(name) if name == "sessions" else InMemoryStore(name)


@pytest.mark.asyncio
async def test_failure_returns_generic_error(tmp_path):
    """Internal failures become a retry message, never an exception"""
    container, orchestrator = _build(tmp_path, store_factory=_failing_sessions)

    result = await orchestrator.process_message("u1", "s1", "hey there")

    assert result["response"] == GENERIC_ERROR_RESPONSE
    assert result["error"]["code"] == ERROR_CODE
    assert result["metadata"]["error"] is True
    await container.shutdown()


@pytest.mark.asyncio
async def test_failure_with_crisis_wording_returns_crisis_message(tmp_path):
    """Crisis wording still gets hotline numbers when the pipeline fails"""
    container, orchestrator = _build(tmp_path, store_factory=_failing_sessions)

    result = await orchestrator.process_message("u1", "s1", "I want to kill myself")

    assert "988" in result["response"]
    assert result["classification"]["category"] == "CRISIS"
    assert result["crisis"]["disable_normal_chat"] is True
    assert result["error"]["code"] == ERROR_CODE
    await container.shutdown()


# =============================================================================
# Passthroughs
# =============================================================================

@pytest.mark.asyncio
async def test_record_feedback_queues_analytics(pipeline):
    container, orchestrator, _ = pipeline

    result = await orchestrator.process_message("u1", "s1", "I got laid off today")
    orchestrator.record_feedback(result["message_id"], "u1", "s1", "helpful")

    assert container.get_feedback_collector().get_feedback_stats()["helpful"] == 1
    assert any(e.type == "feedback" for e in container.get_analytics().queue)


@pytest.mark.asyncio
async def test_record_resource_click(pipeline):
    container, orchestrator, _ = pipeline

    orchestrator.record_resource_click("u1", "s1", "crisis_988")

    event = container.get_analytics().queue[-1]
    assert event.type == "resource_click"
    assert event.data == {"resource_id": "crisis_988"}


@pytest.mark.asyncio
async def test_request_human_handoff(pipeline):
    """User-requested handoffs carry the session history"""
    container, orchestrator, _ = pipeline

    await orchestrator.process_message("u1", "s1", "I got laid off today")
    result = await orchestrator.request_human_handoff("u1", "s1", "REPEATED_ISSUES")

    assert result["success"] is True
    assert result["ticket"].priority == "HIGH"
    assert result["estimated_wait"] == "< 15 minutes"
    assert container.get_notifier().sent[-1]["channel"] == "moderation"


@pytest.mark.asyncio
async def test_resolve_crisis(pipeline):
    container, orchestrator, _ = pipeline

    await orchestrator.process_message("u1", "s1", "I want to kill myself")

    assert await orchestrator.resolve_crisis("u1", "Connected with counselor") is True
    assert await orchestrator.resolve_crisis("u1", "again") is False


@pytest.mark.asyncio
async def test_get_stats(pipeline):
    _, orchestrator, _ = pipeline

    await orchestrator.process_message("u1", "s1", "I got laid off today")
    stats = await orchestrator.get_stats()

    assert set(stats) == {"sessions", "escalation", "handoff", "resources", "classification",
                          "analytics", "feedback", "audit"}
    assert stats["sessions"] == 1
