"""
# classification/graceful_degradation.py

Module Contract
- Purpose: Ordered strategy-list interpreter that always produces a classification. Each strategy is raced against its own timeout; failures and timeouts fall through to the next one; when all fail, a pure keyword fallback answers.
- Inputs:
  - classify_with_fallback(message, context) → Classification
  - strategies: List[ClassificationStrategy(name, fn, timeout_ms, priority)]
- Outputs:
  - Classification annotated with strategy_used and fallback_level (index of the strategy; len(strategies) for the absolute fallback)
- Key behaviors:
  - Timeouts must decrease monotonically down the chain (validated on construction and on add_strategy)
  - A total budget caps worst-case latency; a strategy never gets more time than what is left, and an exhausted budget jumps straight to the absolute fallback
  - Timed-out strategies are cancelled by asyncio.wait_for; late results are never observed
- Error handling:
  - classify_with_fallback never raises. Strategy exceptions are logged at WARNING and counted.
- Default chain: claude_full (3000ms) → claude_simple (2000ms) → hybrid (1500ms) → rule_based (100ms)
"""
import asyncio
import time
from collections import deque
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Deque, Dict, List, Optional

import numpy as np

from classification.hybrid_classifier import HybridClassifier
from classification.llm_classifier import LLMClassifier
from classification.rule_based import absolute_fallback, classify_rule_based
from classification.types import Category, Classification, ClassificationValidationError, Method
from config.app_config import DEGRADATION_TOTAL_BUDGET_MS, STRATEGY_TIMEOUTS_MS
from utils.logging_utils import get_logger

logger = get_logger("graceful_degradation")

StrategyFn = Callable[[str, Dict[str, Any]], Awaitable[Classification]]

_LATENCY_WINDOW = 200


@dataclass
class ClassificationStrategy:
    name: str
    fn: StrategyFn
    timeout_ms: int
    priority: int


def _validate_chain(strategies: List[ClassificationStrategy]) -> None:
    names = [s.name for s in strategies]
    if len(set(names)) != len(names):
        raise ValueError(f"Duplicate strategy names: {names}")
    for earlier, later in zip(strategies, strategies[1:]):
        if later.timeout_ms > earlier.timeout_ms:
            raise ValueError(
                f"Strategy timeouts must not increase down the chain: "
                f"{earlier.name}={earlier.timeout_ms}ms before {later.name}={later.timeout_ms}ms"
            )
    for s in strategies:
        if s.timeout_ms <= 0:
            raise ValueError(f"Strategy {s.name} needs a positive timeout")


def build_default_strategies(llm_classifier: Optional[LLMClassifier] = None,
                             hybrid_classifier: Optional[HybridClassifier] = None,
                             timeouts_ms: Optional[Dict[str, int]] = None) -> List[ClassificationStrategy]:
    """The standard four-step chain, wired to the given classifiers."""
    timeouts = dict(STRATEGY_TIMEOUTS_MS)
    timeouts.update(timeouts_ms or {})
    llm = llm_classifier or LLMClassifier()
    hybrid = hybrid_classifier or HybridClassifier(llm)

    async def claude_full(message: str, context: Dict[str, Any]) -> Classification:
        return await llm.classify(message, context.get("history"))

    async def claude_simple(message: str, context: Dict[str, Any]) -> Classification:
        return await llm.classify_simple(message)

    async def hybrid_strategy(message: str, context: Dict[str, Any]) -> Classification:
        return await hybrid.classify(message, context)

    async def rule_based(message: str, context: Dict[str, Any]) -> Classification:
        return classify_rule_based(message)

    return [
        ClassificationStrategy("claude_full", claude_full, timeouts["claude_full"], 1),
        ClassificationStrategy("claude_simple", claude_simple, timeouts["claude_simple"], 2),
        ClassificationStrategy("hybrid", hybrid_strategy, timeouts["hybrid"], 3),
        ClassificationStrategy("rule_based", rule_based, timeouts["rule_based"], 4),
    ]


class GracefulDegradation:
    """Runs classification strategies in priority order until one succeeds."""

    def __init__(self,
                 strategies: Optional[List[ClassificationStrategy]] = None,
                 llm_classifier: Optional[LLMClassifier] = None,
                 hybrid_classifier: Optional[HybridClassifier] = None,
                 total_budget_ms: int = DEGRADATION_TOTAL_BUDGET_MS):
        if strategies is None:
            strategies = build_default_strategies(llm_classifier, hybrid_classifier)
        self.strategies: List[ClassificationStrategy] = sorted(strategies, key=lambda s: s.priority)
        _validate_chain(self.strategies)
        self.total_budget_ms = total_budget_ms
        self._stats: Dict[str, Dict[str, int]] = {}
        self._latencies: Dict[str, Deque[float]] = {}
        self.reset_stats()

    # ----- chain management -----

    def add_strategy(self, strategy: ClassificationStrategy) -> None:
        candidate = sorted(self.strategies + [strategy], key=lambda s: s.priority)
        _validate_chain(candidate)
        self.strategies = candidate
        self._stats.setdefault(strategy.name, self._empty_stats())
        self._latencies.setdefault(strategy.name, deque(maxlen=_LATENCY_WINDOW))

    def remove_strategy(self, name: str) -> bool:
        before = len(self.strategies)
        self.strategies = [s for s in self.strategies if s.name != name]
        return len(self.strategies) < before

    @property
    def max_total_ms(self) -> int:
        """Upper bound on time spent in strategies for one message."""
        return min(sum(s.timeout_ms for s in self.strategies), self.total_budget_ms)

    # ----- classification -----

    async def classify_with_fallback(self, message: str, context: Optional[Dict[str, Any]] = None) -> Classification:
        context = context or {}
        self._totals["requests"] += 1
        loop = asyncio.get_running_loop()
        started = loop.time()
        budget_s = self.total_budget_ms / 1000.0

        for level, strategy in enumerate(self.strategies):
            remaining = budget_s - (loop.time() - started)
            if remaining <= 0:
                logger.warning(f"[Degradation] Budget of {self.total_budget_ms}ms exhausted before {strategy.name}")
                break
            timeout = min(strategy.timeout_ms / 1000.0, remaining)
            stats = self._stats.setdefault(strategy.name, self._empty_stats())
            stats["attempts"] += 1
            attempt_start = time.perf_counter()
            try:
                result = await asyncio.wait_for(strategy.fn(message, context), timeout=timeout)
                if not isinstance(result, Classification):
                    raise ClassificationValidationError(
                        f"{strategy.name} returned {type(result).__name__}, expected Classification"
                    )
            except asyncio.TimeoutError:
                stats["timeouts"] += 1
                logger.warning(f"[Degradation] Strategy {strategy.name} timed out after {timeout * 1000:.0f}ms")
                continue
            except Exception as e:
                stats["failures"] += 1
                logger.warning(f"[Degradation] Strategy {strategy.name} failed: {type(e).__name__}: {e}")
                continue

            stats["successes"] += 1
            self._latencies.setdefault(strategy.name, deque(maxlen=_LATENCY_WINDOW)).append(
                (time.perf_counter() - attempt_start) * 1000.0
            )
            if level > 0:
                logger.info(f"[Degradation] Classified by fallback strategy {strategy.name} (level {level})")
            return result.with_strategy(strategy.name, level)

        self._totals["absolute_fallbacks"] += 1
        logger.warning("[Degradation] All strategies failed; using absolute fallback")
        return self._absolute_fallback(message)

    def _absolute_fallback(self, message: str) -> Classification:
        level = len(self.strategies)
        try:
            return absolute_fallback(message, fallback_level=level)
        except Exception as e:
            # Last line of defence; absolute_fallback is pure keyword logic
            logger.error(f"[Degradation] Absolute fallback raised {type(e).__name__}: {e}")
            return Classification(
                category=Category.GENERAL, subcategory="general", confidence=0.5,
                emotional_intensity=3, method=Method.ABSOLUTE_FALLBACK,
                reasoning="Emergency fallback: default",
                strategy_used="absolute_fallback", fallback_level=level,
            )

    # ----- stats -----

    @staticmethod
    def _empty_stats() -> Dict[str, int]:
        return {"attempts": 0, "successes": 0, "failures": 0, "timeouts": 0}

    def reset_stats(self) -> None:
        self._stats = {s.name: self._empty_stats() for s in self.strategies}
        self._latencies = {s.name: deque(maxlen=_LATENCY_WINDOW) for s in self.strategies}
        self._totals = {"requests": 0, "absolute_fallbacks": 0}

    def get_strategy_stats(self) -> Dict[str, Any]:
        strategies = []
        for level, s in enumerate(self.strategies):
            stats = self._stats.get(s.name, self._empty_stats())
            latencies = self._latencies.get(s.name) or []
            attempts = stats["attempts"]
            strategies.append({
                "name": s.name,
                "priority": s.priority,
                "fallback_level": level,
                "timeout_ms": s.timeout_ms,
                **stats,
                "success_rate": round(stats["successes"] / attempts, 3) if attempts else None,
                "avg_latency_ms": round(float(np.mean(latencies)), 1) if len(latencies) else None,
            })
        return {
            "strategies": strategies,
            "total_requests": self._totals["requests"],
            "absolute_fallbacks": self._totals["absolute_fallbacks"],
            "total_budget_ms": self.total_budget_ms,
        }
