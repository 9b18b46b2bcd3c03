# core/response_templates.py
"""
Conversational replies for non-crisis messages.

Replies are picked from the classification alone (category, subcategory,
intensity) plus a light keyword check on the message for mental-health
topics. Crisis wording lives with the escalation manager, not here.
"""

import re
from typing import Optional

from classification.types import Category, Classification

GENERIC_ERROR_RESPONSE = "I'm having trouble right now. Please try again in a moment."

_ANXIETY_RE = re.compile(r"\b(anxiety|anxious|panic\w*|worried|worry|stress\w*)\b", re.I)
_DEPRESSION_RE = re.compile(r"\b(depress\w*|sad|hopeless|empty|numb)\b", re.I)
_TRAUMA_RE = re.compile(r"\b(trauma\w*|ptsd|flashbacks?|triggered)\b", re.I)

JOB_LOSS_SUBCATEGORIES = frozenset({"job_loss", "laid_off", "unemployment", "feeling_like_burden"})

EMPLOYMENT_JOB_LOSS = (
    "I'm sorry you lost your job. That's a hard hit, and worrying about bills and the people "
    "who count on you makes it heavier.\n\n"
    "A job loss can shake how you see yourself, not just your finances. What you're feeling makes sense.\n\n"
    "How are you holding up?"
)
EMPLOYMENT_HIGH = "Work pressure can spill into everything else. What's weighing on you the most right now?"
EMPLOYMENT_DEFAULT = "Work can be a lot. What's been happening with your job?"

RELATIONSHIP_INFIDELITY = (
    "Finding out someone broke your trust like that really hurts, and it can knock the ground "
    "out from under you.\n\nHow are you dealing with it right now?"
)
RELATIONSHIP_BREAKUP = "Breakups can leave a big empty space. How are you taking care of yourself through it?"
RELATIONSHIP_DEFAULT = "Relationship stuff can feel lonely to carry. What's been going on?"

MENTAL_ANXIETY = (
    "Anxiety can make your mind race and refuse to slow down. That's real, and it's exhausting.\n\n"
    "Do you have a sense of what's been setting it off?"
)
MENTAL_DEPRESSION = (
    "Depression can make even small things feel heavy. Getting through the day takes real effort.\n\n"
    "You're not alone with this. What's been hardest lately?"
)
MENTAL_TRAUMA = (
    "Trauma can stay with you long after the event. What you're feeling is a natural reaction "
    "to something painful.\n\nHow have you been coping?"
)
MENTAL_HIGH = "That sounds really hard, and your feelings make sense. What's been weighing on you most?"
MENTAL_DEFAULT = "It sounds like you're going through something difficult. Want to tell me more?"

IDENTITY_DEFAULT = (
    "Carrying that on top of everything else is exhausting, and your experience is valid. "
    "What's been happening?"
)

TECH_DEFAULT = "Sorry about that! Can you tell me what went wrong? I'll do my best to help."
GREETING = "Hey, good to hear from you. How are you doing today?"
GENERAL_DEFAULT = "I'm here to listen. What's on your mind?"

HIGH_INTENSITY = 8


def _mental_health_reply(classification: Classification, message: str) -> str:
    sub = classification.subcategory
    if sub == "anxiety" or _ANXIETY_RE.search(message):
        return MENTAL_ANXIETY
    if sub == "depression" or _DEPRESSION_RE.search(message):
        return MENTAL_DEPRESSION
    if sub in ("trauma", "ptsd") or _TRAUMA_RE.search(message):
        return MENTAL_TRAUMA
    if classification.emotional_intensity >= HIGH_INTENSITY:
        return MENTAL_HIGH
    return MENTAL_DEFAULT


def generate_response(classification: Classification, message: Optional[str] = "") -> str:
    """Supportive reply for a non-crisis classification."""
    message = message or ""
    category = classification.category
    sub = classification.subcategory

    if category is Category.EMPLOYMENT:
        if sub in JOB_LOSS_SUBCATEGORIES:
            return EMPLOYMENT_JOB_LOSS
        return EMPLOYMENT_HIGH if classification.emotional_intensity >= 7 else EMPLOYMENT_DEFAULT
    if category is Category.RELATIONSHIP:
        if sub == "infidelity":
            return RELATIONSHIP_INFIDELITY
        if sub == "breakup":
            return RELATIONSHIP_BREAKUP
        return RELATIONSHIP_DEFAULT
    if category is Category.MENTAL_HEALTH:
        return _mental_health_reply(classification, message)
    if category is Category.IDENTITY:
        return IDENTITY_DEFAULT
    if category is Category.TECH_ISSUE:
        return TECH_DEFAULT
    if sub == "greeting":
        return GREETING
    return GENERAL_DEFAULT
