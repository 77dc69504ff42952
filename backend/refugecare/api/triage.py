"""
RefugeCare Triage - Conversational Triage Routes

Session endpoints for the voice/text triage UI: start a session, feed it
inputs and follow-up answers, and fetch the hand-off summary.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Response, status

from refugecare.core.engine import TriageEngine
from refugecare.core.exceptions import SessionNotFoundError
from refugecare.core.types import (
    Classification,
    FollowUpQuestion,
    RiskAssessment,
    SessionUpdate,
    SummaryReport,
    TriageSession,
)

from .routes import get_engine
from .schemas import (
    ClassificationSchema,
    FollowUpAnswerRequest,
    FollowUpQuestionSchema,
    RecommendationSchema,
    RiskAssessmentSchema,
    SessionInputRequest,
    SessionResponse,
    SessionStartRequest,
    SessionUpdateResponse,
    SummaryReportResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/triage", tags=["triage"])


# =============================================================================
# Converters
# =============================================================================

def classification_to_schema(classification: Classification) -> ClassificationSchema:
    return ClassificationSchema(**classification.to_dict())


def risk_to_schema(risk: RiskAssessment) -> RiskAssessmentSchema:
    return RiskAssessmentSchema(level=risk.level, factors=list(risk.factors), confidence=risk.confidence)


def question_to_schema(question: FollowUpQuestion) -> FollowUpQuestionSchema:
    return FollowUpQuestionSchema(
        id=question.id,
        text=question.text,
        kind=question.kind,
        options=list(question.options),
    )


def session_to_schema(session: TriageSession) -> SessionResponse:
    return SessionResponse(
        session_id=session.id,
        started_at=session.started_at,
        input_count=len(session.inputs),
        classification=classification_to_schema(session.classification) if session.classification else None,
        risk=risk_to_schema(session.risk),
        pending_questions=[question_to_schema(q) for q in session.pending_questions],
        advisory_narrative=session.advisory_narrative,
    )


def update_to_schema(session_id: str, update: SessionUpdate) -> SessionUpdateResponse:
    return SessionUpdateResponse(
        session_id=session_id,
        classification=classification_to_schema(update.classification),
        risk=risk_to_schema(update.risk),
        follow_up_questions=[question_to_schema(q) for q in update.follow_up_questions],
    )


def report_to_schema(report: SummaryReport) -> SummaryReportResponse:
    return SummaryReportResponse(
        session_id=report.session_id,
        symptoms=list(report.symptoms),
        urgency=report.urgency,
        risk=risk_to_schema(report.risk),
        advice=report.advice,
        recommended_actions=list(report.recommended_actions),
        notes=list(report.notes),
        input_count=report.input_count,
        recommendation=RecommendationSchema(**report.recommendation.to_dict()) if report.recommendation else None,
        advisory_narrative=report.advisory_narrative,
        advisory_actions=list(report.advisory_actions),
        advisory_red_flags=list(report.advisory_red_flags),
        advisory_cultural_advice=list(report.advisory_cultural_advice),
        generated_at=report.generated_at,
    )


# =============================================================================
# Session Endpoints
# =============================================================================

@router.post("/sessions", response_model=SessionResponse, status_code=status.HTTP_201_CREATED)
async def start_session(
    body: Optional[SessionStartRequest] = None,
    engine: TriageEngine = Depends(get_engine),
):
    """Start a triage session, ending the previous one if its id is given."""
    previous = body.previous_session_id if body else None
    session = await engine.sessions.start_session(previous)
    return session_to_schema(session)


@router.get("/sessions/{session_id}", response_model=SessionResponse)
async def get_session(
    session_id: str,
    engine: TriageEngine = Depends(get_engine),
):
    session = await engine.sessions.get_session(session_id)
    if session is None:
        raise SessionNotFoundError(f"Session {session_id} not found", details={"session_id": session_id})
    return session_to_schema(session)


@router.post("/sessions/{session_id}/inputs", response_model=SessionUpdateResponse)
async def add_input(
    session_id: str,
    body: SessionInputRequest,
    engine: TriageEngine = Depends(get_engine),
):
    """
    Add a message or voice transcript.

    The whole session history is re-classified; the response carries the
    revised classification, risk assessment and up to three follow-up
    questions.
    """
    context = body.context.model_dump(mode="json", exclude_none=True) if body.context else None
    update = await engine.sessions.add_input(session_id, body.text, context)
    return update_to_schema(session_id, update)


@router.post("/sessions/{session_id}/answers", response_model=SessionUpdateResponse)
async def answer_follow_up(
    session_id: str,
    body: FollowUpAnswerRequest,
    engine: TriageEngine = Depends(get_engine),
):
    update = await engine.sessions.answer_follow_up(session_id, body.question_id, body.answer)
    return update_to_schema(session_id, update)


@router.get("/sessions/{session_id}/report", response_model=SummaryReportResponse)
async def summary_report(
    session_id: str,
    engine: TriageEngine = Depends(get_engine),
):
    """Hand-off summary. 409 until the session has at least one input."""
    report = await engine.sessions.generate_summary_report(session_id)
    return report_to_schema(report)


@router.delete("/sessions/{session_id}", status_code=status.HTTP_204_NO_CONTENT)
async def end_session(
    session_id: str,
    engine: TriageEngine = Depends(get_engine),
):
    if not await engine.sessions.end_session(session_id):
        raise SessionNotFoundError(f"Session {session_id} not found", details={"session_id": session_id})
    return Response(status_code=status.HTTP_204_NO_CONTENT)
