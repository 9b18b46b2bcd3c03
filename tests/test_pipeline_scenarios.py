"""
End-to-end scenarios for the message pipeline.

Each test drives the real services wired by DependencyContainer, with the
model client replaced by a fake that fails, hangs, or counts its calls.
"""

import asyncio
import time

import pytest
import pytest_asyncio

from classification.graceful_degradation import ClassificationStrategy, GracefulDegradation
from classification.types import Category, Classification, Method
from core.collaborators import LoggingNotificationService
from core.dependencies import DependencyContainer
from core.orchestrator import MentalHealthOrchestrator
from escalation.crisis_escalation import Severity, detect_crisis_severity, generate_crisis_response
from escalation.human_handoff import HumanHandoffManager, determine_priority, estimated_wait
from resources.default_resources import load_default_resources
from resources.resource_matcher import SmartResourceMatcher
from telemetry.batch_analytics import BatchAnalyticsProcessor
from utils.text_utils import extract_keywords


class RaisingModel:
    is_available = True

    def __init__(self):
        self.calls = 0

    async def __call__(self, system_prompt, user_prompt, max_tokens):
        self.calls += 1
        raise ConnectionError("model endpoint unreachable")

    async def aclose(self):
        pass


class HangingModel(RaisingModel):
    async def __call__(self, system_prompt, user_prompt, max_tokens):
        self.calls += 1
        await asyncio.sleep(30)


async def _pipeline(tmp_path, model, **init):
    container = DependencyContainer()
    container.initialize(
        model_manager=model,
        notifier=LoggingNotificationService(),
        emergency_log_path=str(tmp_path / "emergency.jsonl"),
        **init,
    )
    return container, MentalHealthOrchestrator(container)


@pytest_asyncio.fixture
async def offline_pipeline(tmp_path):
    model = RaisingModel()
    container, orchestrator = await _pipeline(tmp_path, model)
    yield orchestrator, model
    await container.shutdown()


SEVERE_MESSAGES = [
    "I want to kill myself",
    "I've been thinking about suicide",
    "honestly I feel suicidal tonight",
    "I want to end my life",
    "I just want to die",
    "everyone would be better off dead without me around",
    "there is no reason to live anymore",
    "I'm going to end it all",
]


# =============================================================================
# Crisis messages survive model failure
# =============================================================================

@pytest.mark.asyncio
@pytest.mark.parametrize("message", SEVERE_MESSAGES)
async def test_severe_message_with_model_down(offline_pipeline, message):
    """Severe wording gets the crisis reply even when the model throws"""
    orchestrator, _ = offline_pipeline

    result = await orchestrator.process_message("u1", "s1", message)

    assert result["classification"]["category"] == "CRISIS"
    assert result["classification"]["confidence"] >= 0.9
    assert "988" in result["response"]
    assert result["crisis"]["severity"] == "severe"


@pytest.mark.asyncio
async def test_severe_message_with_model_hanging(tmp_path):
    """A hanging model never delays the crisis reply"""
    model = HangingModel()
    container, orchestrator = await _pipeline(tmp_path, model)

    result = await asyncio.wait_for(orchestrator.process_message("u1", "s1", "I want to kill myself"), timeout=2)

    assert result["classification"]["category"] == "CRISIS"
    assert "988" in result["response"]
    assert model.calls == 0
    await container.shutdown()


# =============================================================================
# Degradation chain bounds
# =============================================================================

async def _sleeps(message, context):
    await asyncio.sleep(5)


async def _raises(message, context):
    raise RuntimeError("strategy exploded")


async def _garbage(message, context):
    return {"category": "GENERAL"}


async def _none(message, context):
    return None


@pytest.mark.asyncio
@pytest.mark.parametrize("message", [
    "",
    "hey",
    "I want to kill myself",
    "my app keeps crashing",
    "😶" * 500,
    "lost my job " * 200,
])
async def test_fallback_resolves_within_timeouts(message):
    """Every input resolves within the summed timeouts and never raises"""
    strategies = [
        ClassificationStrategy("slow", _sleeps, 80, 1),
        ClassificationStrategy("broken", _raises, 60, 2),
        ClassificationStrategy("garbage", _garbage, 40, 3),
        ClassificationStrategy("empty", _none, 20, 4),
    ]
    degradation = GracefulDegradation(strategies=strategies, total_budget_ms=10_000)

    start = time.perf_counter()
    result = await degradation.classify_with_fallback(message)
    elapsed_ms = (time.perf_counter() - start) * 1000

    assert isinstance(result, Classification)
    assert result.strategy_used == "absolute_fallback"
    assert elapsed_ms <= sum(s.timeout_ms for s in strategies) + 50


@pytest.mark.asyncio
async def test_default_chain_with_hanging_model_stays_in_budget(tmp_path):
    """The real chain with a hanging model finishes within its budget"""
    model = HangingModel()
    container, _ = await _pipeline(
        tmp_path, model,
        strategy_timeouts_ms={"claude_full": 100, "claude_simple": 80, "hybrid": 60, "rule_based": 40},
    )
    degradation = container.get_degradation()

    start = time.perf_counter()
    result = await degradation.classify_with_fallback("not sure what is going on with me")
    elapsed_ms = (time.perf_counter() - start) * 1000

    assert isinstance(result, Classification)
    assert elapsed_ms <= degradation.max_total_ms + 50
    await container.shutdown()


# =============================================================================
# Severity, resources
# =============================================================================

@pytest.mark.parametrize("message", [
    "I want to kill myself",
    "everything is unbearable",
    "I keep spiraling",
    "just a normal day",
])
def test_severity_detection_idempotent(message):
    crisis = Classification.crisis(Method.REGEX)
    for classification in (None, crisis):
        first = detect_crisis_severity(message, classification)
        second = detect_crisis_severity(message, classification)
        assert first == second


def test_severe_response_disables_chat():
    assert generate_crisis_response(Severity.SEVERE)["disable_normal_chat"] is True


@pytest.mark.parametrize("category,subcategory", [
    (Category.MENTAL_HEALTH, "depression"),
    (Category.EMPLOYMENT, "job_loss"),
    (Category.GENERAL, None),
])
def test_crisis_scores_monotonic_in_intensity(category, subcategory):
    """Raising intensity from 5 to 9 never lowers a crisis resource's score"""
    resources = load_default_resources()
    matcher = SmartResourceMatcher(resources)

    def scores(intensity):
        classification = Classification(category=category, subcategory=subcategory, confidence=0.8,
                                         emotional_intensity=intensity, method=Method.HYBRID)
        return {m.resource.id: m.relevance_score
                for m in matcher.fast_resource_match(classification, limit=len(resources))
                if m.resource.category == "crisis"}

    low, high = scores(5), scores(9)
    assert high
    for resource_id, score in low.items():
        assert high[resource_id] >= score


def test_search_finds_resource_by_title_word():
    """Every resource is found by each indexable word of its own title"""
    resources = load_default_resources()
    matcher = SmartResourceMatcher()
    matcher.index_resources(resources)

    for resource in resources:
        for word in extract_keywords(resource.title):
            found = [m.resource.id for m in matcher.search_resources(word, limit=len(resources))]
            assert resource.id in found, (resource.id, word)


# =============================================================================
# Analytics flush timing
# =============================================================================

class TimedHandler:
    def __init__(self):
        self.flushed_at = []
        self.sizes = []

    async def __call__(self, events):
        self.flushed_at.append(time.perf_counter())
        self.sizes.append(len(events))


@pytest.mark.asyncio
async def test_full_batch_flushes_without_waiting():
    handler = TimedHandler()
    analytics = BatchAnalyticsProcessor(max_batch_size=3, max_wait_time_ms=10_000,
                                        handlers={"classification": handler})

    start = time.perf_counter()
    for i in range(3):
        analytics.queue_classification("u1", "s1", {"n": i})
    for _ in range(20):
        await asyncio.sleep(0)

    assert handler.sizes == [3]
    assert handler.flushed_at[0] - start < 1.0
    await analytics.shutdown()


@pytest.mark.asyncio
async def test_partial_batch_flushes_after_wait_time():
    handler = TimedHandler()
    analytics = BatchAnalyticsProcessor(max_batch_size=10, max_wait_time_ms=100,
                                        handlers={"classification": handler})

    start = time.perf_counter()
    analytics.queue_classification("u1", "s1", {"n": 1})
    analytics.queue_classification("u1", "s1", {"n": 2})

    await asyncio.sleep(0.05)
    assert handler.sizes == []

    await asyncio.sleep(0.25)
    assert handler.sizes == [2]
    waited = handler.flushed_at[0] - start
    assert 0.1 <= waited <= 0.25
    await analytics.shutdown()


# =============================================================================
# Conversation scenarios
# =============================================================================

@pytest.mark.asyncio
async def test_laid_off_never_calls_model(offline_pipeline):
    orchestrator, model = offline_pipeline

    result = await orchestrator.process_message("u1", "s1", "I've been laid off and can't pay rent")

    assert model.calls == 0
    assert result["classification"]["category"] == "EMPLOYMENT"
    assert result["classification"]["subcategory"] == "job_loss"
    assert result["classification"]["confidence"] == 0.95


@pytest.mark.asyncio
async def test_slang_crisis_message(offline_pipeline):
    orchestrator, model = offline_pipeline

    result = await orchestrator.process_message("u1", "s1", "lowkey thinking about ending it all")

    assert model.calls == 0
    assert result["classification"]["category"] == "CRISIS"
    assert result["crisis"]["severity"] == "severe"
    assert result["crisis"]["disable_normal_chat"] is True


@pytest.mark.asyncio
async def test_crisis_handoff_notifies_emergency_once():
    notifier = LoggingNotificationService()
    manager = HumanHandoffManager(notifier=notifier)
    manager.initialize()

    assert determine_priority("CRISIS") == "URGENT"
    assert estimated_wait("URGENT") == "< 5 minutes"

    result = await manager.initiate_human_handoff("u1", "s1", "CRISIS", {})

    assert result["success"] is True
    assert result["estimated_wait"] == "< 5 minutes"
    assert [n["channel"] for n in notifier.sent] == ["emergency"]
