"""
# telemetry/batch_analytics.py

Module Contract
- Purpose: Buffer analytics events in memory and deliver them to per-type handlers in batches.
- Inputs:
  - queue_event(event) and the queue_* helpers (classification, crisis, engagement, feedback, resource_click)
- Outputs:
  - Handler calls with lists of AnalyticsEvent grouped by type; stats via get_stats()
- Flush rules:
  - Reaching max_batch_size schedules a flush task immediately.
  - Otherwise one call_later timer fires max_wait_time after the first unflushed event. A pending timer is never duplicated or pushed back.
  - flush() is guarded by a `processing` flag and takes at most max_batch_size events; leftovers are rescheduled.
  - If any handler fails, the whole batch goes to failed_batches (retry_failed_batches() re-delivers, up to retry_attempts).
  - Crisis events with data["severity"] >= crisis_severity_alert log a WARNING as soon as their batch is processed.
- Lifecycle:
  - shutdown() cancels the timer and flushes until the queue is empty.
"""
import asyncio
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Awaitable, Callable, Deque, Dict, List, Optional, Set

import numpy as np

from config.app_config import (
    ANALYTICS_CRISIS_SEVERITY_ALERT,
    ANALYTICS_MAX_BATCH_SIZE,
    ANALYTICS_MAX_WAIT_TIME_MS,
    ANALYTICS_RETRY_ATTEMPTS,
)
from utils.logging_utils import get_logger

logger = get_logger("batch_analytics")

EVENT_TYPES = ("classification", "crisis", "engagement", "feedback", "resource_click")

BatchHandler = Callable[[List["AnalyticsEvent"]], Awaitable[None]]


@dataclass
class AnalyticsEvent:
    type: str
    user_id: Optional[str] = None
    session_id: Optional[str] = None
    data: Dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=datetime.now)


@dataclass
class FailedBatch:
    events: List[AnalyticsEvent]
    error: str
    attempts: int = 1


class BatchAnalyticsProcessor:
    def __init__(self,
                 max_batch_size: int = ANALYTICS_MAX_BATCH_SIZE,
                 max_wait_time_ms: int = ANALYTICS_MAX_WAIT_TIME_MS,
                 handlers: Optional[Dict[str, BatchHandler]] = None,
                 retry_attempts: int = ANALYTICS_RETRY_ATTEMPTS,
                 crisis_severity_alert: int = ANALYTICS_CRISIS_SEVERITY_ALERT):
        if max_batch_size < 1:
            raise ValueError("max_batch_size must be >= 1")
        self.max_batch_size = max_batch_size
        self.max_wait_time_ms = max_wait_time_ms
        self.retry_attempts = retry_attempts
        self.crisis_severity_alert = crisis_severity_alert

        self.handlers: Dict[str, BatchHandler] = {t: self._default_handler for t in EVENT_TYPES}
        if handlers:
            self.handlers.update(handlers)

        self.queue: List[AnalyticsEvent] = []
        self.failed_batches: List[FailedBatch] = []
        self.processing = False
        self.processed_counts: Dict[str, int] = {}
        self._timer: Optional[asyncio.TimerHandle] = None
        self._tasks: Set[asyncio.Task] = set()
        self._batch_sizes: Deque[int] = deque(maxlen=500)
        self.stats = {
            "events_queued": 0,
            "batches_processed": 0,
            "events_processed": 0,
            "events_failed": 0,
            "last_processed_at": None,
        }

    # ----- queueing -----

    def queue_event(self, event: AnalyticsEvent) -> None:
        if not isinstance(event, AnalyticsEvent):
            event = AnalyticsEvent(**event)
        self.queue.append(event)
        self.stats["events_queued"] += 1

        if len(self.queue) >= self.max_batch_size:
            self._spawn_flush()
        else:
            self._schedule_flush()

    def queue_classification(self, user_id: str, session_id: str, data: Dict[str, Any]) -> None:
        self.queue_event(AnalyticsEvent("classification", user_id, session_id, data))

    def queue_crisis(self, user_id: str, session_id: str, data: Dict[str, Any]) -> None:
        self.queue_event(AnalyticsEvent("crisis", user_id, session_id, data))

    def queue_engagement(self, user_id: str, session_id: str, data: Dict[str, Any]) -> None:
        self.queue_event(AnalyticsEvent("engagement", user_id, session_id, data))

    def queue_feedback(self, user_id: str, session_id: str, data: Dict[str, Any]) -> None:
        self.queue_event(AnalyticsEvent("feedback", user_id, session_id, data))

    def queue_resource_click(self, user_id: str, session_id: str, data: Dict[str, Any]) -> None:
        self.queue_event(AnalyticsEvent("resource_click", user_id, session_id, data))

    # ----- scheduling -----

    def _running_loop(self) -> Optional[asyncio.AbstractEventLoop]:
        try:
            return asyncio.get_running_loop()
        except RuntimeError:
            # Sync callers: events wait for the next flush() or shutdown()
            return None

    def _schedule_flush(self) -> None:
        if self._timer is not None:
            return
        loop = self._running_loop()
        if loop is None:
            return
        self._timer = loop.call_later(self.max_wait_time_ms / 1000.0, self._on_timer)

    def _on_timer(self) -> None:
        self._timer = None
        self._spawn_flush()

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _spawn_flush(self) -> None:
        loop = self._running_loop()
        if loop is None:
            return
        task = loop.create_task(self.flush())
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    # ----- processing -----

    async def flush(self) -> None:
        self._cancel_timer()
        if self.processing or not self.queue:
            return

        self.processing = True
        batch = self.queue[:self.max_batch_size]
        del self.queue[:self.max_batch_size]
        try:
            await self._process_batch(batch)
            self.stats["batches_processed"] += 1
            self.stats["events_processed"] += len(batch)
            self.stats["last_processed_at"] = datetime.now().isoformat()
            self._batch_sizes.append(len(batch))
            logger.debug(f"[Analytics] Batch processed: {len(batch)} events")
        except Exception as e:
            self.failed_batches.append(FailedBatch(batch, f"{type(e).__name__}: {e}"))
            self.stats["events_failed"] += len(batch)
            logger.error(f"[Analytics] Batch of {len(batch)} failed: {type(e).__name__}: {e}")
        finally:
            self.processing = False
            if len(self.queue) >= self.max_batch_size:
                self._spawn_flush()
            elif self.queue:
                self._schedule_flush()

    async def _process_batch(self, batch: List[AnalyticsEvent]) -> None:
        grouped: Dict[str, List[AnalyticsEvent]] = {}
        for event in batch:
            grouped.setdefault(event.type, []).append(event)

        for event in grouped.get("crisis", []):
            severity = (event.data or {}).get("severity", 0)
            if severity >= self.crisis_severity_alert:
                logger.warning(f"[Analytics] HIGH SEVERITY CRISIS event (severity {severity}, session {event.session_id})")

        jobs = []
        for event_type, events in grouped.items():
            handler = self.handlers.get(event_type)
            if handler is None:
                logger.warning(f"[Analytics] No handler for event type '{event_type}'; {len(events)} dropped")
                continue
            jobs.append(handler(events))

        results = await asyncio.gather(*jobs, return_exceptions=True)
        errors = [r for r in results if isinstance(r, BaseException)]
        if errors:
            raise errors[0]

    async def _default_handler(self, events: List[AnalyticsEvent]) -> None:
        event_type = events[0].type
        self.processed_counts[event_type] = self.processed_counts.get(event_type, 0) + len(events)
        logger.debug(f"[Analytics] {len(events)} {event_type} events")

    async def retry_failed_batches(self) -> int:
        """Re-deliver failed batches once each. Returns how many succeeded."""
        recovered = 0
        remaining = []
        for failed in self.failed_batches:
            try:
                await self._process_batch(failed.events)
            except Exception as e:
                failed.attempts += 1
                failed.error = f"{type(e).__name__}: {e}"
                if failed.attempts < self.retry_attempts:
                    remaining.append(failed)
                else:
                    logger.error(f"[Analytics] Dropping batch of {len(failed.events)} after {failed.attempts} attempts")
                continue
            recovered += 1
            self.stats["events_processed"] += len(failed.events)
            self.stats["events_failed"] -= len(failed.events)
        self.failed_batches = remaining
        return recovered

    async def shutdown(self) -> None:
        logger.info(f"[Analytics] Flushing {len(self.queue)} queued events before shutdown")
        self._cancel_timer()
        while self.queue or self.processing:
            if self.processing:
                await asyncio.sleep(0.01)
                continue
            await self.flush()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
        self._cancel_timer()
        logger.info("[Analytics] Queue drained")

    def reset(self) -> None:
        self._cancel_timer()
        self.queue.clear()
        self.failed_batches.clear()
        self.processed_counts.clear()
        self._batch_sizes.clear()
        for key in self.stats:
            self.stats[key] = None if key == "last_processed_at" else 0

    def get_stats(self) -> Dict[str, Any]:
        return {
            **self.stats,
            "average_batch_size": round(float(np.mean(self._batch_sizes)), 2) if self._batch_sizes else 0.0,
            "queue_size": len(self.queue),
            "failed_batches": len(self.failed_batches),
            "processing": self.processing,
            "timer_pending": self._timer is not None,
        }
