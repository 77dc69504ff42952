"""
RefugeCare Triage - Recommendation Generator

Derives the supply list, priority (1-5), response-time label and situational
considerations for an emergency. Deterministic: the same descriptor and
population profile always produce the same Recommendation, and no list
ever carries a duplicate entry.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Tuple

from refugecare.core.types import (
    EmergencyDescriptor,
    EmergencyType,
    PopulationProfile,
    Recommendation,
    Severity,
)


# =============================================================================
# Lookup Tables
# =============================================================================

BASE_SUPPLIES: Dict[EmergencyType, Tuple[str, ...]] = {
    EmergencyType.MEDICAL: ("basic medical supplies", "first aid kits"),
    EmergencyType.EPIDEMIC: ("PPE equipment", "rapid test kits", "isolation materials", "disinfectants"),
    EmergencyType.MALNUTRITION: ("therapeutic food", "vitamin supplements", "oral rehydration salts"),
    EmergencyType.TRAUMA: ("emergency surgical kits", "blood bags", "pain medication", "bandages"),
    EmergencyType.MENTAL_HEALTH: ("psychological first aid materials", "interpreters", "child-friendly spaces"),
    EmergencyType.GENERAL: ("basic medical supplies", "first aid kits"),
}

TYPE_CONSIDERATIONS: Dict[EmergencyType, Tuple[str, ...]] = {
    EmergencyType.MENTAL_HEALTH: ("trauma-informed care", "gender-sensitive services"),
}


@dataclass(frozen=True)
class SeverityProfile:
    priority: int
    estimated_response: str


SEVERITY_PROFILES: Dict[Severity, SeverityProfile] = {
    Severity.CRITICAL: SeverityProfile(5, "immediate (<15 min)"),
    Severity.HIGH: SeverityProfile(4, "1–2 hours"),
    Severity.MEDIUM: SeverityProfile(3, "2–4 hours"),
    Severity.LOW: SeverityProfile(3, "2–4 hours"),
}

# Matched by substring against the lower-cased group label, first hit wins
GROUP_CONSIDERATIONS: Tuple[Tuple[str, Tuple[str, ...]], ...] = (
    ("syrian", ("Arabic language support", "halal food requirements", "family-centered care")),
    ("rohingya", ("Rohingya language interpreter", "culturally appropriate healthcare")),
    ("afghan", ("Dari/Pashto interpreter", "gender-separated treatment areas")),
    ("somali", ("Somali language interpreter", "halal food requirements")),
    ("yemeni", ("Arabic language support", "halal food requirements")),
)

TRAUMA_CONSIDERATION = "trauma-informed care"

MASS_CASUALTY_THRESHOLD = 50
MASS_CASUALTY_SUPPLIES: Tuple[str, ...] = ("mass casualty supplies", "additional medical staff")

MAX_PRIORITY = 5


# =============================================================================
# Generator
# =============================================================================

def _dedupe(items: Iterable[str]) -> Tuple[str, ...]:
    return tuple(dict.fromkeys(items))


def group_considerations(group_label: Optional[str]) -> Tuple[str, ...]:
    normalized = (group_label or "").strip().lower()
    if not normalized:
        return ()
    for key, considerations in GROUP_CONSIDERATIONS:
        if key in normalized:
            return considerations
    return ()


def recommend(
    emergency: EmergencyDescriptor,
    population: Optional[PopulationProfile] = None,
) -> Recommendation:
    """
    Build the recommendation bundle for an emergency.

    Steps: base supplies by type, severity priority/response, population
    considerations (additive), mass-casualty adjustment, then de-duplication
    preserving first-seen order.
    """
    population = population or PopulationProfile()

    supplies: List[str] = list(BASE_SUPPLIES.get(emergency.type, BASE_SUPPLIES[EmergencyType.GENERAL]))
    considerations: List[str] = list(TYPE_CONSIDERATIONS.get(emergency.type, ()))

    profile = SEVERITY_PROFILES[emergency.severity]
    priority = profile.priority

    considerations.extend(group_considerations(population.group_label))
    if population.trauma_suspected:
        considerations.append(TRAUMA_CONSIDERATION)

    if emergency.affected_people > MASS_CASUALTY_THRESHOLD:
        supplies.extend(MASS_CASUALTY_SUPPLIES)
        priority = min(MAX_PRIORITY, priority + 1)

    return Recommendation(
        supplies=_dedupe(supplies),
        priority=priority,
        estimated_response=profile.estimated_response,
        considerations=_dedupe(considerations),
    )
