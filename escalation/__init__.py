# escalation/__init__.py
"""Crisis severity tiers, escalation actions and human handoff tickets."""

from .crisis_escalation import (
    CrisisEscalationManager,
    CrisisResponse,
    Severity,
    SeverityMatch,
    detect_crisis_severity,
    generate_crisis_response,
)
from .human_handoff import HumanHandoffManager, determine_priority, estimated_wait

__all__ = [
    "CrisisEscalationManager",
    "CrisisResponse",
    "HumanHandoffManager",
    "Severity",
    "SeverityMatch",
    "determine_priority",
    "detect_crisis_severity",
    "estimated_wait",
    "generate_crisis_response",
]
