"""Stored section payloads and learners' saved section results."""
from __future__ import annotations

import json
from typing import Any, Mapping, Optional

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from ..errors import DownstreamFailure, NotFound
from ..models import SectionScore, SectionTest, db, utcnow
from .scorers import ScoreSummary


def load_question_data(test_id: str, section: int, course: Optional[str] = None) -> tuple[SectionTest, Any]:
    """Fetch a stored section and its payload, preferring the revised version."""
    query = SectionTest.query.filter_by(test_id=test_id, section=section)
    if course:
        query = query.filter_by(course=course)
    test = query.first()
    if test is None:
        raise NotFound(f"Test {test_id} section {section} not found")

    question_data = test.revised_question_data or test.question_data
    if isinstance(question_data, str):
        try:
            question_data = json.loads(question_data)
        except json.JSONDecodeError as exc:
            current_app.logger.error("[SECTION] Failed to parse question_data for %s: %s", test_id, exc)
            raise RuntimeError(f"Invalid question data format for test {test_id}") from exc
    return test, question_data


def save_section_score(user_id: str, test: SectionTest, answers: Mapping[Any, Any],
                       summary: ScoreSummary) -> SectionScore:
    """Insert or update the learner's result for this section."""
    record = SectionScore.query.filter_by(user_id=user_id, test_id=test.test_id, section=test.section).first()
    if record is None:
        record = SectionScore(user_id=user_id, test_id=test.test_id, section=test.section)
        db.session.add(record)

    record.course = test.course
    record.exam_id = test.exam_id
    record.score = summary.score
    record.total_score = summary.totalScore
    record.percentage = summary.percentage
    record.answers = {str(key): value for key, value in answers.items()}
    record.validation_results = [result.to_dict() for result in summary.results]
    record.created_at = utcnow()
    try:
        db.session.commit()
    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.error("[SECTION] Error saving score for user %s test %s: %s", user_id, test.test_id, exc)
        raise DownstreamFailure("Failed to save score") from exc
    return record


def get_section_score(user_id: str, test_id: str, section: int) -> SectionScore:
    record = SectionScore.query.filter_by(user_id=user_id, test_id=test_id, section=section).first()
    if record is None:
        raise NotFound("No saved score for this section")
    return record
