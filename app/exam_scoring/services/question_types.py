"""Question type registry: surface tags and the scorer family each resolves to."""
from __future__ import annotations

from enum import Enum
from typing import Any, Dict, List, Optional

from ..errors import UnsupportedQuestionType, ValidationError


class ScorerFamily(Enum):
    """Comparison rule shared by one or more question types."""
    MULTIPLE_CHOICE = "multiple_choice"
    TRUE_FALSE = "true_false"
    FILL_IN_THE_BLANK = "fill_in_the_blank"
    MATCHING = "matching"


class QuestionType(Enum):
    """Every question type tag the scoring endpoints accept."""
    MULTIPLE_CHOICE = "multiple_choice"
    TRUE_FALSE = "true_false"
    FILL_IN_THE_BLANK = "fill_in_the_blank"
    MATCHING = "matching"
    MATCH_THE_FOLLOWING = "match_the_following"
    SOURCE_SELECTION = "source_selection"
    LOCATION_SELECTION = "location_selection"
    SCENARIO_MATCHING = "scenario_matching"
    OPINION_MATCHING = "opinion_matching"
    PERSON_STATEMENT_MATCHING = "person_statement_matching"
    HEADING_PARAGRAPH_MATCHING = "heading_paragraph_matching"
    TEXT_COMPLETION = "text_completion"
    COMMENT_STATEMENT_MATCHING = "comment_statement_matching"
    ADVANCED_TEXT_COMPLETION = "advanced_text_completion"
    ADVANCED_SEGMENT_ORDERING = "advanced_segment_ordering"


# Question Type Metadata
QUESTION_TYPES: Dict[QuestionType, Dict[str, Any]] = {
    # Selection and completion: one option letter is the key
    QuestionType.MULTIPLE_CHOICE: {
        "name_en": "Multiple Choice",
        "family": ScorerFamily.MULTIPLE_CHOICE,
    },
    QuestionType.SOURCE_SELECTION: {
        "name_en": "Source Selection",
        "family": ScorerFamily.MULTIPLE_CHOICE,
    },
    QuestionType.LOCATION_SELECTION: {
        "name_en": "Location Selection",
        "family": ScorerFamily.MULTIPLE_CHOICE,
    },
    QuestionType.TEXT_COMPLETION: {
        "name_en": "Text Completion",
        "family": ScorerFamily.MULTIPLE_CHOICE,
    },
    QuestionType.ADVANCED_TEXT_COMPLETION: {
        "name_en": "Advanced Text Completion",
        "family": ScorerFamily.MULTIPLE_CHOICE,
    },
    # Boolean statements
    QuestionType.TRUE_FALSE: {
        "name_en": "True / False",
        "family": ScorerFamily.TRUE_FALSE,
    },
    # Free text, optionally judged by the LLM
    QuestionType.FILL_IN_THE_BLANK: {
        "name_en": "Fill in the Blank",
        "family": ScorerFamily.FILL_IN_THE_BLANK,
    },
    # Key-based matching and ordering
    QuestionType.MATCHING: {
        "name_en": "Matching",
        "family": ScorerFamily.MATCHING,
    },
    QuestionType.MATCH_THE_FOLLOWING: {
        "name_en": "Match the Following",
        "family": ScorerFamily.MATCHING,
    },
    QuestionType.SCENARIO_MATCHING: {
        "name_en": "Scenario Matching",
        "family": ScorerFamily.MATCHING,
    },
    QuestionType.OPINION_MATCHING: {
        "name_en": "Opinion Matching",
        "family": ScorerFamily.MATCHING,
    },
    QuestionType.PERSON_STATEMENT_MATCHING: {
        "name_en": "Person-Statement Matching",
        "family": ScorerFamily.MATCHING,
    },
    QuestionType.HEADING_PARAGRAPH_MATCHING: {
        "name_en": "Heading-Paragraph Matching",
        "family": ScorerFamily.MATCHING,
    },
    QuestionType.COMMENT_STATEMENT_MATCHING: {
        "name_en": "Comment-Statement Matching",
        "family": ScorerFamily.MATCHING,
    },
    QuestionType.ADVANCED_SEGMENT_ORDERING: {
        "name_en": "Advanced Segment Ordering",
        "family": ScorerFamily.MATCHING,
    },
}


def _check_registry() -> None:
    """Fail at import when a question type or family lacks an entry."""
    missing = [member.value for member in QuestionType if member not in QUESTION_TYPES]
    if missing:
        raise RuntimeError(f"Question types without a scorer family: {', '.join(missing)}")
    covered = {meta["family"] for meta in QUESTION_TYPES.values()}
    orphaned = [family.value for family in ScorerFamily if family not in covered]
    if orphaned:
        raise RuntimeError(f"Scorer families without a question type: {', '.join(orphaned)}")


_check_registry()


def resolve_question_type(tag: Optional[str]) -> QuestionType:
    """Return the QuestionType for ``tag`` or raise."""
    if not isinstance(tag, str) or not tag.strip():
        raise ValidationError("Question type is required")
    try:
        return QuestionType(tag)
    except ValueError:
        raise UnsupportedQuestionType(tag) from None


def resolve_family(tag: Optional[str]) -> ScorerFamily:
    """Map a question type tag onto its scorer family."""
    return QUESTION_TYPES[resolve_question_type(tag)]["family"]


def get_question_type_metadata(tag: str) -> Optional[Dict[str, Any]]:
    """Get metadata for a specific question type."""
    try:
        question_type = QuestionType(tag)
    except ValueError:
        return None
    meta = QUESTION_TYPES[question_type]
    return {"id": question_type.value, "name_en": meta["name_en"], "family": meta["family"].value}


def get_question_types_by_family() -> Dict[str, List[Dict[str, Any]]]:
    """Get all question types organized by scorer family."""
    grouped: Dict[str, List[Dict[str, Any]]] = {family.value: [] for family in ScorerFamily}
    for question_type in QuestionType:
        grouped[QUESTION_TYPES[question_type]["family"].value].append(
            get_question_type_metadata(question_type.value)
        )
    return grouped
