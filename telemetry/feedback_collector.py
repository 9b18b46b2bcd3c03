# telemetry/feedback_collector.py
"""
User feedback on responses, kept for classification quality review.

Every response carries FEEDBACK_OPTIONS; the UI sends the chosen option back
through `record_feedback`. "wrong_category" feedback becomes a classification
error record (predicted vs. actual) that feeds the confusion matrix and the
model health report.
"""

import csv
import io
import json
from collections import OrderedDict
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

import numpy as np

from utils.logging_utils import get_logger, preview_text

logger = get_logger("feedback_collector")

FEEDBACK_OPTIONS = (
    {"id": "helpful", "label": "👍 Helpful", "emoji": "👍"},
    {"id": "not_helpful", "label": "👎 Not helpful", "emoji": "👎"},
    {"id": "wrong_category", "label": "🏷️ Wrong topic", "emoji": "🏷️"},
    {"id": "tone_off", "label": "🗣️ Tone was off", "emoji": "🗣️"},
)
FEEDBACK_TYPES = tuple(o["id"] for o in FEEDBACK_OPTIONS)

EXAMPLES_PER_CELL = 3
EXAMPLE_CHARS = 100


def get_feedback_options() -> List[Dict[str, str]]:
    return [dict(o) for o in FEEDBACK_OPTIONS]


@dataclass
class Feedback:
    message_id: str
    user_id: str
    session_id: str
    feedback_type: str
    details: Dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=datetime.now)


@dataclass
class ClassificationErrorRecord:
    message_id: str
    original_message: str
    predicted_category: str
    actual_category: str
    confidence: float
    method: str
    predicted_subcategory: Optional[str] = None
    actual_subcategory: Optional[str] = None
    timestamp: datetime = field(default_factory=datetime.now)


class FeedbackCollector:
    def __init__(self):
        self.reset()

    def reset(self) -> None:
        self.feedback: "OrderedDict[str, Feedback]" = OrderedDict()
        self.classification_errors: "OrderedDict[str, ClassificationErrorRecord]" = OrderedDict()
        self.tone_issues: List[Dict[str, Any]] = []
        self.counts = {t: 0 for t in FEEDBACK_TYPES}

    get_feedback_options = staticmethod(get_feedback_options)

    def record_feedback(self, message_id: str, user_id: str, session_id: str,
                        feedback_type: str, details: Optional[Dict[str, Any]] = None) -> Feedback:
        if feedback_type not in FEEDBACK_TYPES:
            raise ValueError(f"Unknown feedback type '{feedback_type}'; expected one of {FEEDBACK_TYPES}")
        details = dict(details or {})
        record = Feedback(message_id, user_id, session_id, feedback_type, details)
        # One feedback per message; a later click replaces the earlier one
        previous = self.feedback.pop(message_id, None)
        if previous is not None:
            self.counts[previous.feedback_type] -= 1
            self._retract(previous)
        self.feedback[message_id] = record
        self.counts[feedback_type] += 1
        logger.info(f"[Feedback] {feedback_type} for {message_id}")

        if feedback_type == "wrong_category":
            self._record_classification_error(message_id, details)
        elif feedback_type == "tone_off":
            self._record_tone_issue(message_id, details)
        return record

    def _retract(self, previous: Feedback) -> None:
        if previous.feedback_type == "wrong_category":
            self.classification_errors.pop(previous.message_id, None)
        elif previous.feedback_type == "tone_off":
            self.tone_issues = [i for i in self.tone_issues if i["message_id"] != previous.message_id]

    def _record_classification_error(self, message_id: str, details: Dict[str, Any]) -> ClassificationErrorRecord:
        error = ClassificationErrorRecord(
            message_id=message_id,
            original_message=details.get("message", ""),
            predicted_category=details.get("predicted", ""),
            actual_category=details.get("actual", ""),
            confidence=float(details.get("confidence", 0) or 0),
            method=details.get("method", "unknown"),
            predicted_subcategory=details.get("predicted_subcategory"),
            actual_subcategory=details.get("actual_subcategory"),
        )
        self.classification_errors[message_id] = error
        logger.warning(
            f"[Feedback] Misclassification: {error.predicted_category} ({error.confidence}) → "
            f"{error.actual_category} via {error.method}"
        )
        logger.debug(f"[Feedback] Misclassified text: {preview_text(error.original_message, 50)!r}")
        return error

    def _record_tone_issue(self, message_id: str, details: Dict[str, Any]) -> Dict[str, Any]:
        issue = {
            "message_id": message_id,
            "category": details.get("category", ""),
            "emotional_intensity": details.get("emotional_intensity", 0),
            "user_comment": details.get("user_comment", ""),
            "timestamp": datetime.now().isoformat(),
        }
        self.tone_issues.append(issue)
        logger.warning(f"[Feedback] Tone issue: category={issue['category']} intensity={issue['emotional_intensity']}")
        return issue

    # ----- reporting -----

    def get_feedback_by_message_id(self, message_id: str) -> Optional[Feedback]:
        return self.feedback.get(message_id)

    def get_feedback_stats(self) -> Dict[str, Any]:
        total = sum(self.counts.values())
        problems = self.counts["wrong_category"] + self.counts["tone_off"]
        return {
            **self.counts,
            "total": total,
            "helpful_rate": round(self.counts["helpful"] / total * 100, 1) if total else 0.0,
            "error_rate": round(problems / total * 100, 1) if total else 0.0,
            "classification_errors": len(self.classification_errors),
            "tone_issues": len(self.tone_issues),
        }

    def get_classification_errors(self, limit: int = 50) -> List[ClassificationErrorRecord]:
        errors = sorted(self.classification_errors.values(), key=lambda e: e.timestamp, reverse=True)
        return errors[:limit]

    def get_category_confusion_matrix(self) -> List[Dict[str, Any]]:
        cells: Dict[str, Dict[str, Any]] = {}
        for error in self.classification_errors.values():
            key = f"{error.predicted_category} → {error.actual_category}"
            cell = cells.setdefault(key, {
                "predicted": error.predicted_category,
                "actual": error.actual_category,
                "count": 0,
                "examples": [],
            })
            cell["count"] += 1
            if len(cell["examples"]) < EXAMPLES_PER_CELL:
                cell["examples"].append({
                    "message": error.original_message[:EXAMPLE_CHARS],
                    "confidence": error.confidence,
                })
        return sorted(cells.values(), key=lambda c: c["count"], reverse=True)

    def get_improvement_insights(self) -> List[Dict[str, Any]]:
        stats = self.get_feedback_stats()
        matrix = self.get_category_confusion_matrix()
        recent = self.get_classification_errors(10)
        insights = []

        if stats["total"] and stats["helpful_rate"] < 70:
            insights.append({
                "type": "warning",
                "title": "Low helpful rate",
                "description": f"Only {stats['helpful_rate']}% of responses marked as helpful",
                "action": "Review response templates and empathy",
            })
        if stats["error_rate"] > 20:
            insights.append({
                "type": "critical",
                "title": "High error rate",
                "description": f"{stats['error_rate']}% of responses have issues",
                "action": "Review classification accuracy and tone settings",
            })
        if matrix and matrix[0]["count"] >= 5:
            top = matrix[0]
            insights.append({
                "type": "improvement",
                "title": "Common classification error",
                "description": f"{top['predicted']} often confused with {top['actual']} ({top['count']} times)",
                "action": "Improve pattern detection for this category",
                "examples": top["examples"],
            })
        if recent:
            insights.append({
                "type": "info",
                "title": "Recent classification errors",
                "description": f"{len(recent)} errors need review",
                "action": "Review and update classification patterns",
                "errors": [
                    {"message": e.original_message[:EXAMPLE_CHARS], "predicted": e.predicted_category,
                     "actual": e.actual_category}
                    for e in recent[:5]
                ],
            })
        return insights

    def export_feedback_csv(self) -> str:
        buffer = io.StringIO()
        writer = csv.writer(buffer, lineterminator="\n")
        writer.writerow(["timestamp", "user_id", "session_id", "message_id", "feedback_type", "details"])
        for f in self.feedback.values():
            writer.writerow([f.timestamp.isoformat(), f.user_id, f.session_id, f.message_id,
                             f.feedback_type, json.dumps(f.details, ensure_ascii=False, default=str)])
        return buffer.getvalue()

    def evaluate_classification_accuracy(self, limit: int = 100) -> Dict[str, Any]:
        recent = sorted(self.feedback.values(), key=lambda f: f.timestamp, reverse=True)[:limit]
        if not recent:
            return {
                "accuracy": 0.0,
                "total_feedback": 0,
                **{t: 0 for t in FEEDBACK_TYPES},
                "error_patterns": [],
                "message": "No feedback data available",
            }

        counts = {t: 0 for t in FEEDBACK_TYPES}
        for f in recent:
            counts[f.feedback_type] += 1

        patterns: Dict[str, Dict[str, Any]] = {}
        for f in recent:
            if f.feedback_type != "wrong_category":
                continue
            predicted = f.details.get("predicted") or "UNKNOWN"
            actual = f.details.get("actual") or "UNKNOWN"
            key = f"{predicted} → {actual}"
            entry = patterns.setdefault(key, {"pattern": key, "predicted": predicted, "actual": actual,
                                              "confidences": []})
            entry["confidences"].append(float(f.details.get("confidence", 0) or 0))

        error_patterns = sorted(
            ({"pattern": p["pattern"], "predicted": p["predicted"], "actual": p["actual"],
              "count": len(p["confidences"]), "avg_confidence": round(float(np.mean(p["confidences"])), 2)}
             for p in patterns.values()),
            key=lambda p: p["count"], reverse=True,
        )
        accuracy = round(counts["helpful"] / len(recent) * 100, 1)
        logger.info(f"[Feedback] Accuracy over {len(recent)} responses: {accuracy}%")
        return {
            "accuracy": accuracy,
            "total_feedback": len(recent),
            **counts,
            "error_patterns": error_patterns,
            "timestamp": datetime.now().isoformat(),
        }

    def get_model_health_report(self) -> Dict[str, Any]:
        evaluation = self.evaluate_classification_accuracy(100)
        matrix = self.get_category_confusion_matrix()
        total = evaluation["total_feedback"]
        accuracy = evaluation["accuracy"]
        error_rate = (
            round((evaluation["wrong_category"] + evaluation["tone_off"]) / total * 100, 1) if total else 0.0
        )

        if accuracy < 70 or error_rate > 20:
            health = "critical"
        elif accuracy < 80 or error_rate > 10:
            health = "needs_improvement"
        elif accuracy < 90:
            health = "good"
        else:
            health = "excellent"

        return {
            "health": health,
            "accuracy": accuracy,
            "error_rate": error_rate,
            "total_feedback": total,
            "top_issues": matrix[:3],
            "insights": self.get_improvement_insights(),
            "recommendations": self._recommendations(accuracy, error_rate, evaluation, matrix),
            "timestamp": datetime.now().isoformat(),
        }

    @staticmethod
    def _recommendations(accuracy: float, error_rate: float, evaluation: Dict[str, Any],
                         matrix: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        recs = []
        if accuracy < 80:
            recs.append({"priority": "high", "category": "accuracy",
                         "title": "Improve classification accuracy",
                         "description": f"Accuracy is {accuracy}% (target 80%+)"})
        if error_rate > 10:
            recs.append({"priority": "high", "category": "errors",
                         "title": "Reduce error rate",
                         "description": f"Error rate is {error_rate}% (target <10%)"})
        if matrix and matrix[0]["count"] >= 5:
            top = matrix[0]
            recs.append({"priority": "medium", "category": "patterns",
                         "title": f"Fix {top['predicted']} → {top['actual']} confusion",
                         "description": f"Seen {top['count']} times"})
        if evaluation["total_feedback"] and evaluation["tone_off"] > evaluation["total_feedback"] * 0.05:
            recs.append({"priority": "medium", "category": "tone",
                         "title": "Improve response tone",
                         "description": f"{evaluation['tone_off']} tone issues reported"})
        return recs
