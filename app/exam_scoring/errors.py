"""Error taxonomy for scoring requests.

Each error is a werkzeug ``HTTPException`` so Flask maps it onto a status
code; the app renders every one of them as ``{"success": false, "error": ...}``.
"""
from werkzeug.exceptions import HTTPException


class ScoringError(HTTPException):
    """Base class for errors surfaced to scoring callers."""
    code = 500
    description = 'Scoring failed'


class ValidationError(ScoringError):
    """Missing or malformed request fields."""
    code = 400
    description = 'Invalid request'


class UnsupportedQuestionType(ScoringError):
    """No scorer is mapped to the requested question type."""
    code = 400

    def __init__(self, question_type):
        self.question_type = question_type
        super().__init__(f'Unsupported question type: {question_type}')


class NotFound(ScoringError):
    """Referenced question, test or session does not exist."""
    code = 404
    description = 'Not found'


class DownstreamFailure(ScoringError):
    """The persistence store or the LLM judgment call failed."""
    code = 502
    description = 'Downstream service failed'


class DownstreamTimeout(DownstreamFailure):
    """The LLM judgment call did not answer within the configured timeout."""
    code = 504
    description = 'Downstream service timed out'
