"""Single-question scoring: route a request to the handler of its scorer family."""
from __future__ import annotations

from typing import Any, Callable, Dict, Mapping

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from ..errors import DownstreamFailure, NotFound, ValidationError
from ..models import Question, UserResponse, db
from .question_types import ScorerFamily, resolve_family
from .scorers import ScoringResult, score_question
from .semantic_judge import judge_fill_in_blank

REQUIRED_FIELDS = ("questionId", "userId", "testId")


def _require_fields(payload: Mapping[str, Any]) -> None:
    missing = [name for name in REQUIRED_FIELDS if not payload.get(name)]
    if missing:
        raise ValidationError(f"Missing required fields: {', '.join(missing)}")
    answer = payload.get("userAnswer")
    if answer is not None and not isinstance(answer, str):
        raise ValidationError("userAnswer must be a string")


def _load_question(question_id: str, test_id: str) -> Question:
    question = db.session.get(Question, question_id)
    if question is None or question.test_id != test_id:
        raise NotFound(f"Question {question_id} not found in test {test_id}")
    return question


def _record_response(payload: Mapping[str, Any], question: Question, result: ScoringResult, score: float) -> None:
    response = UserResponse(
        user_id=payload["userId"],
        question_id=question.id,
        response_text=result.user_answer,
        is_correct=result.is_correct,
        score=score,
        test_id=question.test_id,
    )
    try:
        db.session.add(response)
        db.session.commit()
    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.error("[SCORE] Failed to save response for question %s: %s", question.id, exc)
        raise DownstreamFailure("Failed to save score") from exc


def _result_payload(question: Question, result: ScoringResult, score: float) -> Dict[str, Any]:
    payload = result.to_dict()
    payload.update({
        "question_id": question.id,
        "question_type": question.question_type,
        "score": score,
    })
    return payload


def _score_exact(family: ScorerFamily, payload: Mapping[str, Any]) -> Dict[str, Any]:
    _require_fields(payload)
    question = _load_question(payload["questionId"], payload["testId"])
    result = score_question(question.to_dict(), payload.get("userAnswer"), family)
    score = 1.0 if result.is_correct else 0.0
    _record_response(payload, question, result, score)
    return _result_payload(question, result, score)


def score_choice(payload: Mapping[str, Any]) -> Dict[str, Any]:
    return _score_exact(ScorerFamily.MULTIPLE_CHOICE, payload)


def score_true_false(payload: Mapping[str, Any]) -> Dict[str, Any]:
    return _score_exact(ScorerFamily.TRUE_FALSE, payload)


def score_matching(payload: Mapping[str, Any]) -> Dict[str, Any]:
    return _score_exact(ScorerFamily.MATCHING, payload)


def score_fill_in_blank(payload: Mapping[str, Any]) -> Dict[str, Any]:
    """Exact match first; otherwise defer to the LLM when semantic judgment is enabled."""
    _require_fields(payload)
    question = _load_question(payload["questionId"], payload["testId"])
    result = score_question(question.to_dict(), payload.get("userAnswer"), ScorerFamily.FILL_IN_THE_BLANK)
    score = 1.0 if result.is_correct else 0.0
    feedback = None

    if not result.is_correct and result.user_answer and current_app.config.get("SEMANTIC_FILL_IN_BLANK"):
        verdict = judge_fill_in_blank(result.user_answer, result.correct_answer, result.explanation or None)
        result.is_correct = verdict["is_correct"]
        score = verdict["score"]
        feedback = verdict["feedback"]

    _record_response(payload, question, result, score)
    data = _result_payload(question, result, score)
    if feedback:
        data["feedback"] = feedback
    return data


HANDLERS: Dict[ScorerFamily, Callable[[Mapping[str, Any]], Dict[str, Any]]] = {
    ScorerFamily.MULTIPLE_CHOICE: score_choice,
    ScorerFamily.TRUE_FALSE: score_true_false,
    ScorerFamily.FILL_IN_THE_BLANK: score_fill_in_blank,
    ScorerFamily.MATCHING: score_matching,
}

if set(HANDLERS) != set(ScorerFamily):
    raise RuntimeError("Every scorer family needs a request handler")


def dispatch_score(payload: Any) -> Dict[str, Any]:
    """Resolve ``questionType`` and relay the handler's result unchanged."""
    if not isinstance(payload, Mapping):
        raise ValidationError("Request body must be a JSON object")
    family = resolve_family(payload.get("questionType"))
    request_data = {key: value for key, value in payload.items() if key != "questionType"}
    current_app.logger.info("[SCORE] Dispatching %s question %s to %s scorer",
                            payload.get("questionType"), payload.get("questionId"), family.value)
    return HANDLERS[family](request_data)
