"""Type-specific answer scorers.

All scorers are pure: they compare the submitted string against the
authoritative key exactly as stored, without trimming or case folding, and
never raise on a missing answer (it simply scores as wrong).
"""
from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple

from .question_types import ScorerFamily


@dataclass
class ScoringResult:
    """Verdict for one question."""
    question_number: Optional[int]
    user_answer: str
    correct_answer: str
    is_correct: bool
    explanation: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class ScoreSummary:
    """Totals for a section or test."""
    score: int
    totalScore: int
    percentage: int
    results: List[ScoringResult] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "score": self.score,
            "totalScore": self.totalScore,
            "percentage": self.percentage,
            "results": [result.to_dict() for result in self.results],
        }


def percentage(correct: int, total: int) -> int:
    """Whole-number percentage, rounding halves away from zero; 0 for an empty total."""
    if total <= 0:
        return 0
    # Integer arithmetic avoids float error and Python's round-half-to-even.
    return (200 * correct + total) // (2 * total)


def _answer_text(user_answer: Any) -> str:
    if user_answer is None:
        return ""
    return user_answer if isinstance(user_answer, str) else str(user_answer)


def _option_key(option: Mapping[str, Any]) -> Optional[str]:
    key = option.get("letter")
    if key is None:
        key = option.get("option_letter")
    return None if key is None else str(key)


def _find_correct_option(options: List[Mapping[str, Any]]) -> Optional[Mapping[str, Any]]:
    for option in options:
        if option.get("is_correct") is True:
            return option
    return None


def score_multiple_choice(question: Mapping[str, Any], user_answer: Any) -> ScoringResult:
    """Compare the chosen option letter with the option flagged correct."""
    options = [opt for opt in (question.get("options") or []) if isinstance(opt, Mapping)]
    answer = _answer_text(user_answer)

    correct_option = _find_correct_option(options)
    if correct_option is not None:
        correct_answer = _option_key(correct_option) or ""
    else:
        fallback = question.get("correct_answer")
        correct_answer = "" if fallback is None else str(fallback)
        correct_option = next((opt for opt in options if _option_key(opt) == correct_answer), None)

    is_correct = answer == correct_answer
    selected_option = next((opt for opt in options if _option_key(opt) == answer), None)

    explanation = (
        (selected_option or {}).get("explanation")
        or (correct_option or {}).get("explanation")
        or question.get("explanation")
        or ""
    )
    if not explanation and correct_option is not None and correct_option.get("text"):
        explanation = f'The correct answer is "{correct_option["text"]}".'

    return ScoringResult(
        question_number=question.get("question_number"),
        user_answer=answer,
        correct_answer=correct_answer,
        is_correct=is_correct,
        explanation=explanation,
    )


def _authoritative_bool(question: Mapping[str, Any]) -> Tuple[Optional[bool], str]:
    """Return (is_true, explanation) from whichever shape the question uses."""
    answer = question.get("answer")
    if isinstance(answer, Mapping) and "is_true" in answer:
        return bool(answer.get("is_true")), answer.get("explanation") or question.get("explanation") or ""

    for key in ("is_true", "correct_answer"):
        value = question.get(key)
        if isinstance(value, bool):
            return value, question.get("explanation") or ""
        if value in ("true", "false"):
            return value == "true", question.get("explanation") or ""
    return None, question.get("explanation") or ""


def score_true_false(question: Mapping[str, Any], user_answer: Any) -> ScoringResult:
    """Compare "true"/"false" against the authoritative boolean."""
    is_true, explanation = _authoritative_bool(question)
    correct_answer = "" if is_true is None else ("true" if is_true else "false")
    answer = _answer_text(user_answer)
    return ScoringResult(
        question_number=question.get("question_number"),
        user_answer=answer,
        correct_answer=correct_answer,
        is_correct=answer == correct_answer,
        explanation=explanation,
    )


def score_exact(question: Mapping[str, Any], user_answer: Any) -> ScoringResult:
    """Exact string comparison used for matching keys and fill-in-the-blank text."""
    key = question.get("correct_answer")
    if key is None:
        key = question.get("answer")
    correct_answer = "" if key is None or isinstance(key, Mapping) else str(key)
    answer = _answer_text(user_answer)
    return ScoringResult(
        question_number=question.get("question_number"),
        user_answer=answer,
        correct_answer=correct_answer,
        is_correct=answer == correct_answer,
        explanation=question.get("explanation") or "",
    )


SCORERS: Dict[ScorerFamily, Callable[[Mapping[str, Any], Any], ScoringResult]] = {
    ScorerFamily.MULTIPLE_CHOICE: score_multiple_choice,
    ScorerFamily.TRUE_FALSE: score_true_false,
    ScorerFamily.FILL_IN_THE_BLANK: score_exact,
    ScorerFamily.MATCHING: score_exact,
}

if set(SCORERS) != set(ScorerFamily):
    raise RuntimeError("Every scorer family needs an exact scorer")


def score_question(question: Mapping[str, Any], user_answer: Any, family: ScorerFamily) -> ScoringResult:
    """Score one question with the exact rule of ``family``."""
    return SCORERS[family](question, user_answer)
