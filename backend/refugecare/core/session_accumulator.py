"""
RefugeCare Triage - Session Accumulator

Conversational triage: collects text/voice-transcript inputs over a session,
re-classifies the whole history on every input, keeps a running risk
assessment and emits follow-up questions.

Processing per input:
    1. Append the input (answers are appended as "Question <id>: <json>")
    2. Classify the concatenation of every input so far
    3. Optionally consult the advisory oracle, bounded by a timeout
    4. Map urgency to risk level; collect red flags and trauma as factors
    5. Pick up to three follow-up questions from the question table

The oracle contributes a narrative, advisory actions, red flags and
cultural advice (kept on the session and shown in the report next to the
deterministic fields) and, when it supplies a valid one, a confidence
value. Tier and risk level are always deterministic, and any oracle
failure falls back to the rule path with a warning.

Each input or answer works on a copy of the stored session and replaces
it in one put, so readers never see an input without its classification
and a cancelled call leaves the session as it was.
"""

from __future__ import annotations

import asyncio
import dataclasses
import json
import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple
from uuid import uuid4

from refugecare.core.classifier import (
    TIER_TO_RISK,
    TIER_TO_SEVERITY,
    ClassifierContext,
    assess,
)
from refugecare.core.exceptions import (
    OracleError,
    SessionIncompleteError,
    SessionNotFoundError,
    ValidationError,
)
from refugecare.core.logging import LogContext, get_logger
from refugecare.core.recommendations import recommend
from refugecare.core.repository import InMemoryRepository, KeyedLocks, Repository
from refugecare.core.types import (
    Classification,
    EmergencyDescriptor,
    EmergencyType,
    FollowUpQuestion,
    PopulationProfile,
    RiskAssessment,
    SessionUpdate,
    SummaryReport,
    TriageSession,
    UrgencyTier,
)
from refugecare.services.oracle import (
    AdvisoryContext,
    AdvisoryOracle,
    AdvisoryResponse,
    NoOpAdvisoryOracle,
    validate_advisory,
)

logger = logging.getLogger(__name__)
events = get_logger(__name__)

MAX_FOLLOW_UPS = 3
TRAUMA_FACTOR = "trauma history detected"


# =============================================================================
# Question Tables
# =============================================================================

QUESTIONS: Dict[str, FollowUpQuestion] = {
    q.id: q for q in (
        FollowUpQuestion(
            "emergency_transport",
            "Do you have a way to get to a hospital or emergency care right now?",
        ),
        FollowUpQuestion(
            "pain_scale",
            "On a scale of 1-10, how would you rate your pain right now?",
            kind="scale",
            options=tuple(str(n) for n in range(1, 11)),
        ),
        FollowUpQuestion(
            "pain_duration",
            "How long have you been experiencing this pain?",
            kind="choice",
            options=("Less than 1 hour", "1-6 hours", "6-24 hours", "1-7 days", "More than a week"),
        ),
        FollowUpQuestion(
            "medication_access",
            "Do you currently have access to any medications or medical supplies?",
        ),
        FollowUpQuestion(
            "trauma_symptoms",
            "Are you experiencing any nightmares, flashbacks, or feeling very anxious?",
        ),
        FollowUpQuestion(
            "severe_pain_location",
            "Can you describe exactly where the severe pain is located?",
            kind="text",
        ),
        FollowUpQuestion(
            "nearest_clinic",
            "Do you know the location of the nearest clinic or hospital?",
        ),
        FollowUpQuestion(
            "emergency_contact",
            "Is there someone near you who can call emergency services?",
        ),
    )
}


@dataclass(frozen=True)
class FollowUpRule:
    """Questions emitted when every condition holds."""
    question_ids: Tuple[str, ...]
    min_tier: Optional[UrgencyTier] = None
    required_tag: Optional[str] = None
    requires_trauma: bool = False

    def applies(self, classification: Classification) -> bool:
        if self.min_tier is not None and classification.tier.rank < self.min_tier.rank:
            return False
        if self.required_tag is not None and self.required_tag not in classification.tags:
            return False
        if self.requires_trauma and not classification.trauma_suspected:
            return False
        return True


FOLLOW_UP_RULES: Tuple[FollowUpRule, ...] = (
    FollowUpRule(("emergency_transport",), min_tier=UrgencyTier.HIGH),
    FollowUpRule(("pain_scale", "pain_duration"), required_tag="pain"),
    FollowUpRule(("medication_access",)),
    FollowUpRule(("trauma_symptoms",), requires_trauma=True),
)


def _at_least(threshold: float) -> Callable[[Any], bool]:
    def check(answer: Any) -> bool:
        if isinstance(answer, bool):
            return False
        try:
            return float(answer) >= threshold
        except (TypeError, ValueError):
            return False
    return check


def _is_no(answer: Any) -> bool:
    if isinstance(answer, str):
        return answer.strip().lower() in ("no", "false", "n")
    return answer is False


@dataclass(frozen=True)
class BranchRule:
    question_id: str
    predicate: Callable[[Any], bool]
    next_question_id: str


BRANCH_RULES: Tuple[BranchRule, ...] = (
    BranchRule("pain_scale", _at_least(7), "severe_pain_location"),
    BranchRule("medication_access", _is_no, "nearest_clinic"),
    BranchRule("emergency_transport", _is_no, "emergency_contact"),
)


# Context key -> accepted value type
CONTEXT_TYPES: Dict[str, type] = {
    "is_refugee": bool,
    "trauma_history": bool,
    "group_label": str,
    "emergency_type": str,
}


def validate_context(extra_context: Dict[str, Any]) -> Dict[str, Any]:
    """
    Check caller-supplied session context. Values are never coerced:
    "false" is not a boolean and an unknown emergency type is an error.

    Raises:
        ValidationError: Unknown key, wrong value type or unknown emergency type
    """
    for key, value in extra_context.items():
        expected = CONTEXT_TYPES.get(key)
        if expected is None:
            raise ValidationError(f"Unknown session context field: {key}", details={"field": key})
        if not isinstance(value, expected):
            raise ValidationError(
                f"Session context field {key} must be a {expected.__name__}",
                details={"field": key, "value": repr(value)},
            )

    emergency_type = extra_context.get("emergency_type")
    if emergency_type is not None:
        try:
            EmergencyType(emergency_type)
        except ValueError as e:
            raise ValidationError(
                f"Unknown emergency type: {emergency_type}",
                details={"emergency_type": emergency_type},
            ) from e
    return dict(extra_context)


def deterministic_confidence(classification: Classification) -> float:
    score = 0.5 + 0.1 * len(classification.tags)
    if classification.rule_id is not None:
        score += 0.15
    return round(min(0.95, score), 2)


def new_session_id() -> str:
    return f"session_{uuid4().hex[:12]}"


# =============================================================================
# Accumulator
# =============================================================================

class SessionAccumulator:
    """
    Owns triage sessions.

    Operations on one session run strictly in arrival order under that
    session's lock; different sessions proceed concurrently.

    Usage:
        accumulator = SessionAccumulator(oracle=create_oracle(settings))
        session = await accumulator.start_session()
        update = await accumulator.add_input(session.id, "I have a fever and headache")
        update = await accumulator.answer_follow_up(session.id, "medication_access", False)
        report = await accumulator.generate_summary_report(session.id)
    """

    def __init__(
        self,
        oracle: Optional[AdvisoryOracle] = None,
        oracle_timeout_seconds: float = 5.0,
        repository: Optional[Repository[TriageSession]] = None,
    ):
        self._oracle: AdvisoryOracle = oracle or NoOpAdvisoryOracle()
        self._oracle_timeout = oracle_timeout_seconds
        self._repo: Repository[TriageSession] = repository or InMemoryRepository("sessions")
        self._locks = KeyedLocks()

    @property
    def oracle(self) -> AdvisoryOracle:
        return self._oracle

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def start_session(self, previous_session_id: Optional[str] = None) -> TriageSession:
        """Create an empty session, ending the caller's previous one if given."""
        if previous_session_id:
            await self.end_session(previous_session_id)

        session = TriageSession(id=new_session_id())
        await self._repo.put(session.id, session)
        with LogContext(session_id=session.id):
            logger.info("Triage session started")
        return self._snapshot(session)

    async def get_session(self, session_id: str) -> Optional[TriageSession]:
        session = await self._repo.get(session_id)
        return self._snapshot(session) if session else None

    async def end_session(self, session_id: str) -> bool:
        async with self._locks.hold(session_id):
            removed = await self._repo.delete(session_id)
        if removed:
            with LogContext(session_id=session_id):
                logger.info("Triage session ended")
        return removed

    # =========================================================================
    # Inputs
    # =========================================================================

    async def add_input(
        self,
        session_id: str,
        text: str,
        extra_context: Optional[Dict[str, Any]] = None,
    ) -> SessionUpdate:
        """
        Add a voice transcript or typed message and re-classify the session.

        extra_context keys understood: is_refugee, trauma_history,
        group_label, emergency_type. They persist for the session.

        Raises:
            ValidationError: Empty text or invalid context
            SessionNotFoundError: Unknown session
        """
        if not text or not text.strip():
            raise ValidationError("Input text must not be empty")
        context_update = validate_context(extra_context or {})

        async with self._locks.hold(session_id):
            session = self._snapshot(await self._require(session_id))
            with LogContext(session_id=session_id):
                session.context.update(context_update)
                session.inputs.append(text.strip())

                await self._reclassify(session)
                questions = self._select_questions(session, [])
                session.pending_questions = questions
                await self._repo.put(session.id, session)

                logger.info(
                    "Session input %d: tier=%s risk=%s questions=%d",
                    len(session.inputs), session.classification.tier.value,
                    session.risk.level.value, len(questions),
                )
                return SessionUpdate(
                    classification=session.classification,
                    risk=session.risk,
                    follow_up_questions=tuple(questions),
                )

    async def answer_follow_up(self, session_id: str, question_id: str, answer: Any) -> SessionUpdate:
        """
        Record an answer and re-classify with it.

        Raises:
            ValidationError: Unknown question id
            SessionNotFoundError: Unknown session
        """
        if question_id not in QUESTIONS:
            raise ValidationError(f"Unknown follow-up question: {question_id}", details={"question_id": question_id})

        async with self._locks.hold(session_id):
            session = self._snapshot(await self._require(session_id))
            with LogContext(session_id=session_id):
                session.inputs.append(f"Question {question_id}: {json.dumps(answer, default=str)}")
                session.answered_question_ids.add(question_id)

                await self._reclassify(session)

                branching = [
                    QUESTIONS[rule.next_question_id]
                    for rule in BRANCH_RULES
                    if rule.question_id == question_id and rule.predicate(answer)
                ]
                questions = self._select_questions(session, branching + session.pending_questions)
                session.pending_questions = questions
                await self._repo.put(session.id, session)

                logger.info(
                    "Follow-up %s answered: tier=%s next=%s",
                    question_id, session.classification.tier.value, [q.id for q in questions],
                )
                return SessionUpdate(
                    classification=session.classification,
                    risk=session.risk,
                    follow_up_questions=tuple(questions),
                )

    # =========================================================================
    # Report
    # =========================================================================

    async def generate_summary_report(self, session_id: str) -> SummaryReport:
        """
        Read-only projection of the session for hand-off.

        Raises:
            SessionNotFoundError: Unknown session
            SessionIncompleteError: No input has been classified yet
        """
        session = await self._require(session_id)
        classification = session.classification
        if classification is None:
            raise SessionIncompleteError(
                "No completed analysis available", details={"session_id": session_id}
            )

        emergency = EmergencyDescriptor(
            type=EmergencyType(session.context.get("emergency_type", EmergencyType.MEDICAL.value)),
            severity=TIER_TO_SEVERITY[classification.tier],
            description=" ".join(session.inputs),
        )
        population = PopulationProfile(
            group_label=str(session.context.get("group_label", "")),
            trauma_suspected=classification.trauma_suspected,
        )

        return SummaryReport(
            session_id=session.id,
            symptoms=tuple(sorted(classification.tags)),
            urgency=classification.tier,
            risk=session.risk,
            advice=classification.advice,
            recommended_actions=classification.recommended_actions,
            notes=classification.notes,
            input_count=len(session.inputs),
            recommendation=recommend(emergency, population),
            advisory_narrative=session.advisory_narrative,
            advisory_actions=session.advisory_actions,
            advisory_red_flags=session.advisory_red_flags,
            advisory_cultural_advice=session.advisory_cultural_advice,
        )

    # =========================================================================
    # Internals
    # =========================================================================

    async def _require(self, session_id: str) -> TriageSession:
        session = await self._repo.get(session_id)
        if session is None:
            raise SessionNotFoundError(f"Session {session_id} not found", details={"session_id": session_id})
        return session

    @staticmethod
    def _snapshot(session: TriageSession) -> TriageSession:
        return dataclasses.replace(
            session,
            inputs=list(session.inputs),
            pending_questions=list(session.pending_questions),
            answered_question_ids=set(session.answered_question_ids),
            context=dict(session.context),
        )

    async def _reclassify(self, session: TriageSession) -> None:
        transcript = " ".join(session.inputs)
        context = ClassifierContext(
            is_refugee=session.context.get("is_refugee", True),
            trauma_suspected=session.context.get("trauma_history", False),
        )
        classification = assess(transcript, context)

        confidence = deterministic_confidence(classification)
        advisory = await self._consult_oracle(session, classification, transcript, context)
        if advisory is not None:
            session.advisory_narrative = advisory.narrative
            session.advisory_actions = advisory.immediate_actions
            session.advisory_red_flags = advisory.red_flags
            session.advisory_cultural_advice = advisory.culturally_sensitive_advice
            if advisory.confidence is not None:
                confidence = advisory.confidence

        factors = list(classification.red_flags)
        if classification.trauma_suspected:
            factors.append(TRAUMA_FACTOR)

        session.classification = classification
        session.risk = RiskAssessment(
            level=TIER_TO_RISK[classification.tier],
            factors=tuple(factors),
            confidence=confidence,
        )

    async def _consult_oracle(
        self,
        session: TriageSession,
        classification: Classification,
        transcript: str,
        context: ClassifierContext,
    ) -> Optional[AdvisoryResponse]:
        if isinstance(self._oracle, NoOpAdvisoryOracle):
            return None

        request = AdvisoryContext(
            session_id=session.id,
            symptoms=tuple(sorted(classification.tags)),
            transcript=transcript,
            urgency=classification.tier.value,
            red_flags=classification.red_flags,
            trauma_suspected=classification.trauma_suspected,
            is_refugee=context.is_refugee,
        )
        try:
            raw = await asyncio.wait_for(self._oracle.assess(request), timeout=self._oracle_timeout)
        except asyncio.TimeoutError:
            events.warning(
                "Advisory oracle timed out, using rule-based triage",
                data={"oracle": self._oracle.oracle_id, "timeout_s": self._oracle_timeout},
                event_type="oracle_degraded",
            )
            return None
        except OracleError as e:
            events.warning(
                "Advisory oracle failed, using rule-based triage",
                data={"oracle": self._oracle.oracle_id, "error": e.code},
                event_type="oracle_degraded",
            )
            return None
        except Exception:
            events.exception(
                "Advisory oracle raised unexpectedly, using rule-based triage",
                data={"oracle": self._oracle.oracle_id},
                event_type="oracle_degraded",
            )
            return None

        if raw is None:
            return None
        if isinstance(raw, AdvisoryResponse):
            raw = dataclasses.asdict(raw)
        return validate_advisory(raw)

    @staticmethod
    def _select_questions(
        session: TriageSession,
        carried: Iterable[FollowUpQuestion],
    ) -> List[FollowUpQuestion]:
        """Carried questions first, then table questions; answered ones never return."""
        candidates: List[FollowUpQuestion] = list(carried)
        for rule in FOLLOW_UP_RULES:
            if rule.applies(session.classification):
                candidates.extend(QUESTIONS[qid] for qid in rule.question_ids)

        selected: List[FollowUpQuestion] = []
        seen = set(session.answered_question_ids)
        for question in candidates:
            if question.id in seen:
                continue
            seen.add(question.id)
            selected.append(question)
            if len(selected) == MAX_FOLLOW_UPS:
                break
        return selected
