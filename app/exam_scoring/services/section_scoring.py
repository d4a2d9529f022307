"""Score a whole test section from its stored question payload."""
from __future__ import annotations

import json
from typing import Any, Dict, List, Mapping, Optional

from flask import current_app

from ..errors import ScoringError, ValidationError
from .question_types import ScorerFamily, resolve_family
from .scorers import ScoreSummary, percentage, score_question


def extract_questions(question_data: Any) -> List[Mapping[str, Any]]:
    """Return the question list of a section payload (``questions`` or ``question_items``)."""
    if isinstance(question_data, str):
        try:
            question_data = json.loads(question_data)
        except json.JSONDecodeError as exc:
            raise ValidationError(f"Invalid question data format: {exc.msg}") from exc
    if not isinstance(question_data, Mapping):
        raise ValidationError("questionData must be an object")

    questions = question_data.get("questions")
    if questions is None:
        questions = question_data.get("question_items")
    if not isinstance(questions, list):
        raise ValidationError("questionData.questions must be a list")
    return [q for q in questions if isinstance(q, Mapping)]


def normalize_user_answers(user_answers: Any) -> Dict[int, Any]:
    """Key answers by question number; JSON object keys arrive as strings."""
    if user_answers is None:
        return {}
    if not isinstance(user_answers, Mapping):
        raise ValidationError("userAnswers must be an object keyed by question number")

    normalized: Dict[int, Any] = {}
    for key, value in user_answers.items():
        try:
            normalized[int(key)] = value
        except (TypeError, ValueError):
            raise ValidationError(f"Invalid question number in userAnswers: {key!r}") from None
    return normalized


def infer_family(question: Mapping[str, Any]) -> ScorerFamily:
    """Pick the scorer family from the declared type, or from the question's shape."""
    declared = question.get("question_type")
    if declared:
        return resolve_family(declared)
    if question.get("options"):
        return ScorerFamily.MULTIPLE_CHOICE
    answer = question.get("answer")
    if isinstance(answer, Mapping) and "is_true" in answer:
        return ScorerFamily.TRUE_FALSE
    if isinstance(question.get("is_true"), bool) or isinstance(question.get("correct_answer"), bool):
        return ScorerFamily.TRUE_FALSE
    return ScorerFamily.MATCHING


def score_section(question_data: Any, user_answers: Optional[Mapping[Any, Any]]) -> ScoreSummary:
    """Score every non-example question of a section.

    Results follow the order of the payload, so identical inputs always
    produce an identical summary. A question whose type cannot be scored is
    logged and left out of both counts.
    """
    questions = extract_questions(question_data)
    answers = normalize_user_answers(user_answers)

    results = []
    for question in questions:
        if question.get("is_example"):
            continue
        try:
            number = int(question.get("question_number"))
        except (TypeError, ValueError):
            number = None
        try:
            family = infer_family(question)
        except ScoringError as exc:
            current_app.logger.warning("[SECTION] Skipping question %s: %s", number, exc.description)
            continue
        result = score_question(question, answers.get(number), family)
        result.question_number = number
        results.append(result)

    correct = sum(1 for result in results if result.is_correct)
    return ScoreSummary(
        score=correct,
        totalScore=len(results),
        percentage=percentage(correct, len(results)),
        results=results,
    )
