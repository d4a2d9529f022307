"""Score a whole test submission and keep the learner's exam session up to date.

Batch policy is best-effort: a response whose question cannot be found or
scored is logged and skipped, and a response row that fails to save is
logged and dropped while its verdict still counts. The session is completed
with whatever subset succeeded.
"""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Optional

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from ..errors import DownstreamFailure, NotFound, ScoringError, ValidationError
from ..models import (
    SESSION_COMPLETED,
    SESSION_IN_PROGRESS,
    ExamSession,
    Question,
    SectionTest,
    UserResponse,
    db,
    utcnow,
)
from .question_types import resolve_family
from .scorers import percentage, score_question


def _validate_submission(payload: Any) -> Dict[str, Any]:
    if not isinstance(payload, Mapping):
        raise ValidationError("Request body must be a JSON object")

    missing = [name for name in ("user_id", "test_id") if not payload.get(name)]
    if missing:
        raise ValidationError(f"Missing required fields: {', '.join(missing)}")

    responses = payload.get("responses")
    if not isinstance(responses, list) or not responses:
        raise ValidationError("responses must be a non-empty list")
    for index, item in enumerate(responses):
        if not isinstance(item, Mapping) or not item.get("question_id"):
            raise ValidationError(f"responses[{index}] needs a question_id")
        text = item.get("response_text")
        if text is not None and not isinstance(text, str):
            raise ValidationError(f"responses[{index}].response_text must be a string")

    time_spent = payload.get("time_spent_seconds")
    if time_spent is not None and (isinstance(time_spent, bool) or not isinstance(time_spent, int) or time_spent < 0):
        raise ValidationError("time_spent_seconds must be a non-negative integer")

    return {
        "user_id": str(payload["user_id"]),
        "test_id": str(payload["test_id"]),
        "exam_id": payload.get("exam_id"),
        "session_id": payload.get("session_id"),
        "responses": responses,
        "time_spent_seconds": time_spent,
    }


def resolve_exam_id(test_id: str) -> Optional[str]:
    """First non-null exam id stored for any section of ``test_id``."""
    row = (
        SectionTest.query.filter(SectionTest.test_id == test_id, SectionTest.exam_id.isnot(None))
        .order_by(SectionTest.section)
        .first()
    )
    if row is None:
        current_app.logger.warning("[SESSION] No exam_id found for test_id: %s", test_id)
        return None
    return row.exam_id


def get_or_create_session(user_id: str, test_id: str, exam_id: Optional[str],
                          session_id: Optional[str] = None) -> ExamSession:
    """Load the given session, reuse the learner's open one, or start a new one.

    A supplied session must belong to this learner and test and still be open.
    """
    if session_id:
        session = db.session.get(ExamSession, session_id)
        if session is None:
            raise NotFound(f"Session {session_id} not found")
        if session.user_id != user_id or session.test_id != test_id:
            raise NotFound(f"Session {session_id} not found for user {user_id} and test {test_id}")
        if session.status == SESSION_COMPLETED:
            raise ValidationError(f"Session {session_id} already completed")
        return session

    session = (
        ExamSession.query.filter_by(user_id=user_id, test_id=test_id, status=SESSION_IN_PROGRESS)
        .order_by(ExamSession.started_at.desc())
        .first()
    )
    if session is not None:
        current_app.logger.info("[SESSION] Reusing open session %s for user %s", session.id, user_id)
        return session

    session = ExamSession(user_id=user_id, test_id=test_id, exam_id=exam_id, status=SESSION_IN_PROGRESS)
    try:
        db.session.add(session)
        db.session.commit()
    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.error("[SESSION] Failed to create session for user %s: %s", user_id, exc)
        raise DownstreamFailure("Failed to create exam session") from exc
    current_app.logger.info("[SESSION] Created session %s for user %s test %s", session.id, user_id, test_id)
    return session


def _score_response(item: Mapping[str, Any]) -> Optional[Dict[str, Any]]:
    """Score one response against its stored question; None when it must be skipped."""
    question_id = item["question_id"]
    try:
        question = db.session.get(Question, question_id)
    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.error("[SESSION] Question lookup failed for %s: %s", question_id, exc)
        return None
    if question is None:
        current_app.logger.warning("[SESSION] Question not found: %s", question_id)
        return None
    if question.is_example:
        return {"example": True}

    try:
        family = resolve_family(question.question_type)
    except ScoringError as exc:
        current_app.logger.warning("[SESSION] Cannot score question %s: %s", question_id, exc.description)
        return None

    result = score_question(question.to_dict(), item.get("response_text"), family)
    return {"example": False, "question": question, "result": result}


def score_test_submission(payload: Any) -> Dict[str, Any]:
    """Score ``responses`` for one learner and test, persisting every response row."""
    submission = _validate_submission(payload)
    user_id = submission["user_id"]
    test_id = submission["test_id"]
    time_spent = submission["time_spent_seconds"]

    exam_id = submission["exam_id"] or resolve_exam_id(test_id)
    session = get_or_create_session(user_id, test_id, exam_id, submission["session_id"])

    breakdown: List[Dict[str, Any]] = []
    skipped: List[str] = []
    correct_answers = 0

    for item in submission["responses"]:
        scored = _score_response(item)
        if scored is None:
            skipped.append(item["question_id"])
            continue
        if scored["example"]:
            continue

        question, result = scored["question"], scored["result"]
        if result.is_correct:
            correct_answers += 1

        breakdown.append({
            "question_id": question.id,
            "question_number": question.question_number,
            "correct": result.is_correct,
            "user_answer": result.user_answer,
            "correct_answer": result.correct_answer,
        })

        try:
            db.session.add(UserResponse(
                user_id=user_id,
                question_id=question.id,
                response_text=result.user_answer,
                is_correct=result.is_correct,
                score=1.0 if result.is_correct else 0.0,
                time_spent_seconds=time_spent,
                session_id=session.id,
                exam_id=exam_id,
                test_id=test_id,
            ))
            db.session.commit()
        except SQLAlchemyError as exc:
            db.session.rollback()
            current_app.logger.error("[SESSION] Error storing response for question %s: %s", item["question_id"], exc)

    total_questions = len(breakdown)
    score = percentage(correct_answers, total_questions)

    session.status = SESSION_COMPLETED
    session.completed_at = utcnow()
    session.overall_score = score
    session.total_questions = total_questions
    session.correct_answers = correct_answers
    session.time_spent_seconds = time_spent
    try:
        db.session.commit()
    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.error("[SESSION] Failed to finalize session %s: %s", session.id, exc)
        raise DownstreamFailure("Failed to update exam session") from exc

    current_app.logger.info("[SESSION] Session %s completed: %s/%s (%s%%), %s skipped",
                            session.id, correct_answers, total_questions, score, len(skipped))

    return {
        "score": score,
        "correct": correct_answers,
        "total": total_questions,
        "question_breakdown": breakdown,
        "skipped": skipped,
        "test_id": test_id,
        "exam_id": exam_id,
        "session_id": session.id,
        "user_id": user_id,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


def get_session(session_id: str) -> ExamSession:
    session = db.session.get(ExamSession, session_id)
    if session is None:
        raise NotFound(f"Session {session_id} not found")
    return session
