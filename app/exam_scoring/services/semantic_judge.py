"""LLM-assisted judgment of free-text fill-in-the-blank answers."""
from __future__ import annotations

from typing import Any, Dict, Optional

from flask import current_app

from ..errors import DownstreamFailure
from .llm_client import get_llm_client

SYSTEM_INSTRUCTION = (
    "You are a language teacher checking fill-in-the-blank answers. "
    "Accept alternative phrasings that preserve the meaning; reject answers that change it."
)


def build_prompt(user_answer: str, correct_answer: str, explanation: Optional[str] = None) -> str:
    """Evaluation prompt for one answer pair plus optional context."""
    context = f'Answer Explanation: "{explanation}"\n' if explanation else ""
    return (
        "Evaluate this fill-in-the-blank answer:\n\n"
        f'Correct Answer: "{correct_answer}"\n'
        f'User\'s Answer: "{user_answer}"\n'
        f"{context}\n"
        "Consider:\n"
        "1. The meaning and intent of the answer\n"
        "2. Alternative correct phrasings\n"
        "3. Whether the answer demonstrates understanding of the concept\n\n"
        "Return strict JSON with keys:\n"
        "{\n"
        '  "is_correct": boolean,\n'
        '  "score": number between 0 and 1 expressing how close the answer is,\n'
        '  "feedback": one short sentence for the learner\n'
        "}\n"
        "Do not include any additional keys or text."
    )


def validate_judgment(response: Any) -> Dict[str, Any]:
    """Check the judgment shape and normalize optional fields.

    ``is_correct`` is mandatory and must be a boolean. ``score`` is clamped
    into [0, 1]; ``feedback`` is kept only when it is a non-empty string.
    """
    if not isinstance(response, dict):
        raise DownstreamFailure("LLM judgment is not a JSON object")

    is_correct = response.get("is_correct")
    if not isinstance(is_correct, bool):
        raise DownstreamFailure("LLM judgment is missing a boolean is_correct")

    score = response.get("score")
    if score is None:
        normalized_score = 1.0 if is_correct else 0.0
    elif isinstance(score, (int, float)) and not isinstance(score, bool):
        normalized_score = max(0.0, min(1.0, float(score)))
    else:
        raise DownstreamFailure("LLM judgment has a non-numeric score")

    feedback = response.get("feedback")
    if feedback is not None and not isinstance(feedback, str):
        raise DownstreamFailure("LLM judgment has a non-string feedback")

    return {
        "is_correct": is_correct,
        "score": normalized_score,
        "feedback": feedback.strip() if feedback and feedback.strip() else None,
    }


def judge_fill_in_blank(user_answer: str, correct_answer: str, explanation: Optional[str] = None) -> Dict[str, Any]:
    """Ask the LLM whether ``user_answer`` fills the blank correctly.

    One attempt only; timeouts and failures propagate to the caller.
    """
    client = get_llm_client()
    current_app.logger.info("[LLM] Judging fill-in-the-blank answer with deployment %s", client.deployment)
    response = client.generate_json(
        build_prompt(user_answer, correct_answer, explanation),
        system_instruction=SYSTEM_INSTRUCTION,
    )
    return validate_judgment(response)
