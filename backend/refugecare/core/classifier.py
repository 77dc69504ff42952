"""
RefugeCare Triage - Symptom Classifier

Maps free text to canonical symptom tags and an urgency tier.

Pipeline:
    text -> detect_symptoms -> classify (first matching rule wins,
    otherwise the highest tag baseline) -> red-flag escalation

Tables are plain data so every rule can be tested on its own. Rules are
ordered most severe first and the first match wins outright, so adding a
tag can land on a less urgent rule: {bleeding} alone is HIGH by baseline,
but {bleeding, headache} matches "mild-symptoms" and is LOW. Only red
flags are monotone; they lift the tier after the rule has been chosen.

Nothing in this module raises on bad input: empty or unknown text is
classified as LOW with no tags.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Dict, FrozenSet, Iterable, List, Optional, Pattern, Sequence, Tuple

from refugecare.core.types import (
    Classification,
    RiskLevel,
    Severity,
    UrgencyTier,
)

logger = logging.getLogger(__name__)


# =============================================================================
# Tables
# =============================================================================

@dataclass(frozen=True)
class SymptomPattern:
    tag: str
    pattern: Pattern[str]
    baseline: UrgencyTier


def _words(*alternatives: str) -> Pattern[str]:
    return re.compile(r"\b(?:" + "|".join(alternatives) + r")\b")


SYMPTOM_PATTERNS: Tuple[SymptomPattern, ...] = (
    SymptomPattern("pain", _words(r"pain\w*", r"hurts?", r"hurting", r"aches?", r"aching", r"sore", r"tender", r"throbbing", r"stabbing"), UrgencyTier.LOW),
    SymptomPattern("headache", _words(r"headaches?", r"head\s+pain", r"migraines?", r"head\s+hurts?"), UrgencyTier.LOW),
    SymptomPattern("fever", _words(r"fever\w*", r"temperature", r"burning\s+up", r"chills"), UrgencyTier.MEDIUM),
    SymptomPattern("cough", _words(r"cough\w*"), UrgencyTier.LOW),
    SymptomPattern("breathing", _words(r"breath\w*", r"wheez\w*", r"gasping", r"shortness", r"can'?t\s+breathe", r"chest\s+tight\w*"), UrgencyTier.HIGH),
    SymptomPattern("chest_pain", _words(r"chest\s+pain", r"heart\s+pain", r"chest\s+hurts?", r"chest\s+pressure"), UrgencyTier.HIGH),
    SymptomPattern("nausea", _words(r"nausea", r"nauseous", r"sick", r"queasy", r"vomit\w*", r"throw(?:ing)?\s+up"), UrgencyTier.LOW),
    SymptomPattern("abdominal_pain", _words(r"stomach\s+(?:pain|ache)", r"stomachache", r"belly\s+pain", r"abdominal\s+pain", r"abdomen\s+hurts?"), UrgencyTier.MEDIUM),
    SymptomPattern("dizziness", _words(r"dizzy", r"dizziness", r"lightheaded", r"faint\w*", r"spinning", r"vertigo"), UrgencyTier.MEDIUM),
    SymptomPattern("fatigue", _words(r"tired", r"exhausted", r"fatigue", r"weak", r"weakness", r"no\s+energy"), UrgencyTier.LOW),
    SymptomPattern("muscle_pain", _words(r"muscle\s+pain", r"body\s+aches?", r"joint\s+pain", r"sore\s+muscles"), UrgencyTier.LOW),
    SymptomPattern("bleeding", _words(r"bleed\w*", r"blood"), UrgencyTier.HIGH),
    SymptomPattern("unresponsive", _words(r"unconscious", r"unresponsive", r"passed\s+out", r"not\s+waking"), UrgencyTier.EMERGENCY),
    SymptomPattern("sleep", _words(r"sleep\w*", r"insomnia", r"nightmares?", r"restless"), UrgencyTier.LOW),
    SymptomPattern("anxiety", _words(r"anxiety", r"anxious", r"worr\w*", r"nervous", r"panic\w*", r"stress\w*", r"afraid"), UrgencyTier.LOW),
    SymptomPattern("mood", _words(r"sad", r"depressed", r"hopeless", r"angry", r"irritable", r"mood"), UrgencyTier.LOW),
)

_BASELINE: Dict[str, UrgencyTier] = {p.tag: p.baseline for p in SYMPTOM_PATTERNS}


@dataclass(frozen=True)
class TriageRule:
    id: str
    required: FrozenSet[str]
    tier: UrgencyTier
    advice: str
    actions: Tuple[str, ...]


TRIAGE_RULES: Tuple[TriageRule, ...] = (
    TriageRule(
        id="unresponsive",
        required=frozenset({"unresponsive"}),
        tier=UrgencyTier.EMERGENCY,
        advice="EMERGENCY: The person may have lost consciousness. Get emergency help now.",
        actions=(
            "Call emergency services immediately",
            "Check breathing and place in recovery position if breathing",
            "Do not give food or water",
            "Stay with the person until help arrives",
        ),
    ),
    TriageRule(
        id="emergency-breathing",
        required=frozenset({"breathing", "chest_pain"}),
        tier=UrgencyTier.EMERGENCY,
        advice="EMERGENCY: Seek immediate medical attention. This could indicate a heart attack or serious breathing problem.",
        actions=(
            "Call emergency services immediately",
            "Sit upright in a comfortable position",
            "Loosen tight clothing",
            "Stay calm and monitor breathing",
        ),
    ),
    TriageRule(
        id="bleeding-dizziness",
        required=frozenset({"bleeding", "dizziness"}),
        tier=UrgencyTier.EMERGENCY,
        advice="EMERGENCY: Bleeding with dizziness can mean serious blood loss.",
        actions=(
            "Call emergency services immediately",
            "Apply firm pressure to the wound",
            "Lie down and raise the legs if possible",
        ),
    ),
    TriageRule(
        id="high-fever-breathing",
        required=frozenset({"fever", "breathing", "cough"}),
        tier=UrgencyTier.HIGH,
        advice="High priority: This combination of symptoms requires medical evaluation within 4-6 hours.",
        actions=(
            "Contact healthcare provider or urgent care",
            "Monitor temperature regularly",
            "Stay hydrated",
            "Rest in upright position",
            "Isolate from others if possible",
        ),
    ),
    TriageRule(
        id="fever-headache",
        required=frozenset({"fever", "headache"}),
        tier=UrgencyTier.MEDIUM,
        advice="Monitor symptoms closely. Seek medical care if symptoms worsen or persist beyond 24-48 hours.",
        actions=(
            "Rest and stay hydrated",
            "Take fever-reducing medication as directed",
            "Monitor temperature every 4-6 hours",
            "Seek care if fever exceeds 39.4°C",
        ),
    ),
    TriageRule(
        id="abdominal-nausea",
        required=frozenset({"abdominal_pain", "nausea"}),
        tier=UrgencyTier.MEDIUM,
        advice="Abdominal symptoms require attention. Monitor for worsening and seek care if pain becomes severe.",
        actions=(
            "Avoid solid foods temporarily",
            "Stay hydrated with clear fluids",
            "Seek care if pain becomes severe",
            "Monitor for fever or blood in vomit/stool",
        ),
    ),
    TriageRule(
        id="mild-symptoms",
        required=frozenset({"headache"}),
        tier=UrgencyTier.LOW,
        advice="Common symptom that can often be managed at home. Monitor for changes.",
        actions=(
            "Rest in quiet, dark room",
            "Stay hydrated",
            "Consider over-the-counter pain relief",
            "Seek care if severe or persistent",
        ),
    ),
    TriageRule(
        id="muscle-fatigue",
        required=frozenset({"muscle_pain", "fatigue"}),
        tier=UrgencyTier.LOW,
        advice="These symptoms often resolve with rest and self-care. Monitor for other developing symptoms.",
        actions=(
            "Get adequate rest and sleep",
            "Stay hydrated",
            "Gentle stretching or light movement",
            "Contact doctor if symptoms persist beyond a week",
        ),
    ),
)

DEFAULT_ADVICE: Dict[UrgencyTier, Tuple[str, Tuple[str, ...]]] = {
    UrgencyTier.EMERGENCY: (
        "EMERGENCY: Seek immediate medical attention.",
        (
            "Call emergency services immediately",
            "Do not drive yourself to hospital",
            "Stay calm and follow emergency operator instructions",
        ),
    ),
    UrgencyTier.HIGH: (
        "High priority: Seek medical care within 4-6 hours.",
        (
            "Contact your healthcare provider",
            "Consider urgent care or emergency room",
            "Monitor symptoms closely",
            "Do not delay seeking care",
        ),
    ),
    UrgencyTier.MEDIUM: (
        "Monitor symptoms and seek medical care if they worsen or persist.",
        (
            "Rest and stay hydrated",
            "Monitor symptoms for 24-48 hours",
            "Contact healthcare provider if no improvement",
            "Seek immediate care if symptoms worsen",
        ),
    ),
    UrgencyTier.LOW: (
        "Common symptoms that can often be managed with self-care.",
        (
            "Rest and stay hydrated",
            "Monitor symptoms",
            "Contact doctor if symptoms persist or worsen",
        ),
    ),
}

# Phrases that force at least HIGH regardless of rule outcome
RED_FLAGS: Tuple[str, ...] = (
    "difficulty breathing",
    "can't breathe",
    "cannot breathe",
    "not breathing",
    "chest pain",
    "severe",
    "unconscious",
    "heavy bleeding",
    "coughing blood",
    "seizure",
    "blue lips",
    "suicidal",
)
RED_FLAG_MINIMUM = UrgencyTier.HIGH

_RED_FLAG_PATTERNS = tuple((flag, _words(re.escape(flag))) for flag in RED_FLAGS)

TRAUMA_KEYWORDS: Tuple[str, ...] = (
    "nightmare", "flashback", "scared", "afraid", "violence", "war",
    "escape", "flee", "fled", "attack", "bomb", "explosion", "shooting",
    "persecution", "torture", "threat", "danger", "unsafe",
)
_TRAUMA_PATTERN = _words(*(re.escape(k) + r"(?:s|es|ed|ing)?" for k in TRAUMA_KEYWORDS))

TIER_TO_SEVERITY: Dict[UrgencyTier, Severity] = {
    UrgencyTier.LOW: Severity.LOW,
    UrgencyTier.MEDIUM: Severity.MEDIUM,
    UrgencyTier.HIGH: Severity.HIGH,
    UrgencyTier.EMERGENCY: Severity.CRITICAL,
}

TIER_TO_RISK: Dict[UrgencyTier, RiskLevel] = {
    UrgencyTier.LOW: RiskLevel.LOW,
    UrgencyTier.MEDIUM: RiskLevel.MEDIUM,
    UrgencyTier.HIGH: RiskLevel.HIGH,
    UrgencyTier.EMERGENCY: RiskLevel.CRITICAL,
}

TRAUMA_NOTE = "Use trauma-informed communication; do not press for details of traumatic events"
REFUGEE_NOTE = "Check access to regular medications and health documentation"


@dataclass(frozen=True)
class ClassifierContext:
    """Advisory context. Never changes the tier on its own."""
    is_refugee: bool = True
    trauma_suspected: bool = False


# =============================================================================
# Operations
# =============================================================================

def _normalize(text: Optional[str]) -> str:
    if not isinstance(text, str):
        return ""
    return text.lower().replace("’", "'")


def detect_symptoms(text: Optional[str]) -> FrozenSet[str]:
    """Canonical tags whose pattern matches anywhere in the text."""
    lowered = _normalize(text)
    if not lowered:
        return frozenset()
    return frozenset(p.tag for p in SYMPTOM_PATTERNS if p.pattern.search(lowered))


def detect_red_flags(text: Optional[str]) -> List[str]:
    """Red-flag phrases present in the text, in table order."""
    lowered = _normalize(text)
    return [flag for flag, pattern in _RED_FLAG_PATTERNS if pattern.search(lowered)]


def screen_trauma(text: Optional[str]) -> bool:
    return bool(_TRAUMA_PATTERN.search(_normalize(text)))


def match_rule(tags: Iterable[str]) -> Optional[TriageRule]:
    """First rule whose required tags are all present."""
    detected = frozenset(tags)
    for rule in TRIAGE_RULES:
        if rule.required <= detected:
            return rule
    return None


def classify(tags: Iterable[str], context: Optional[ClassifierContext] = None) -> UrgencyTier:
    """
    Urgency tier for a tag set.

    The first matching rule decides; otherwise the highest baseline among the
    tags, LOW when there are none. Unknown tags carry no baseline.
    """
    detected = frozenset(tags)
    rule = match_rule(detected)
    if rule is not None:
        return rule.tier
    return UrgencyTier.highest(*(_BASELINE[t] for t in detected if t in _BASELINE))


def escalate(tier: UrgencyTier, red_flags: Sequence[str]) -> UrgencyTier:
    """Raise tier to the red-flag minimum when any red flag is present."""
    if red_flags:
        return UrgencyTier.highest(tier, RED_FLAG_MINIMUM)
    return tier


def assess(text: Optional[str], context: Optional[ClassifierContext] = None) -> Classification:
    """Full classifier pass: tags, rule, red flags, trauma screening and notes."""
    context = context or ClassifierContext()

    tags = detect_symptoms(text)
    rule = match_rule(tags)
    red_flags = tuple(detect_red_flags(text))
    trauma = context.trauma_suspected or screen_trauma(text)

    base_tier = classify(tags, context)
    tier = escalate(base_tier, red_flags)

    if rule is not None and tier == rule.tier:
        advice, actions = rule.advice, rule.actions
    else:
        advice, actions = DEFAULT_ADVICE[tier]

    notes = []
    if trauma:
        notes.append(TRAUMA_NOTE)
    if context.is_refugee:
        notes.append(REFUGEE_NOTE)

    if tier != base_tier:
        logger.debug("Red flags %s escalated %s -> %s", red_flags, base_tier.value, tier.value)

    return Classification(
        tags=tags,
        tier=tier,
        rule_id=rule.id if rule else None,
        red_flags=red_flags,
        trauma_suspected=trauma,
        advice=advice,
        recommended_actions=actions,
        notes=tuple(notes),
    )
