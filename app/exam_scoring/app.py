"""
Exam Scoring Service - Flask Application
Answer scoring endpoints, section scoring and exam session aggregation.

Run locally from the repository root with ``python -m app.exam_scoring.app``.
"""
import os
from typing import Any, Dict

from flask import Flask, current_app, jsonify, request
from flask_cors import CORS
from werkzeug.exceptions import HTTPException

from .config import config
from .errors import ScoringError, ValidationError
from .models import db
from .services.dispatcher import dispatch_score
from .services.event_log import get_event_log, init_event_log
from .services.question_types import get_question_types_by_family
from .services.section_scoring import normalize_user_answers, score_section
from .services.section_store import get_section_score, load_question_data, save_section_score
from .services.session_aggregator import get_session, score_test_submission


def create_app(config_name: str = None) -> Flask:
    """Build the application for ``config_name`` (defaults to ``FLASK_ENV``)."""
    app = Flask(__name__)
    app.config.from_object(config[config_name or os.getenv('FLASK_ENV', 'default')])
    app.logger.setLevel(app.config['LOG_LEVEL'])

    # Initialize extensions
    db.init_app(app)
    CORS(app, resources={r"/*": {"origins": app.config['CORS_ALLOWED_ORIGINS']}})
    init_event_log(app)

    register_routes(app)
    register_error_handlers(app)
    return app


def init_database(app: Flask) -> None:
    """Create all tables."""
    with app.app_context():
        db.create_all()


def _json_body() -> Dict[str, Any]:
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise ValidationError('Request body must be a JSON object')
    return data


def _int_arg(value: Any, name: str) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValidationError(f'{name} must be an integer') from None


# ============================================================================
# ROUTES
# ============================================================================

def register_routes(app: Flask) -> None:

    @app.route('/score', methods=['POST'])
    def score_question_route():
        """Score a single answer with the scorer of its question type."""
        data = _json_body()
        events = get_event_log()
        try:
            result = dispatch_score(data)
        except ScoringError as exc:
            events.record('score', question_id=data.get('questionId'),
                          question_type=data.get('questionType'), error=exc.description)
            raise
        events.record('score', question_id=result['question_id'],
                      question_type=data.get('questionType'), is_correct=result['is_correct'])
        return jsonify({'success': True, **result})

    @app.route('/score-section', methods=['POST'])
    def score_section_route():
        """Score a section payload, either posted inline or loaded by test id."""
        data = _json_body()
        user_answers = data.get('userAnswers') or {}
        stored_test = None

        if data.get('questionData') is not None:
            question_data = data['questionData']
        elif data.get('testId'):
            section = _int_arg(data.get('section'), 'section')
            stored_test, question_data = load_question_data(data['testId'], section, data.get('course'))
        else:
            raise ValidationError('Provide questionData or testId and section')

        summary = score_section(question_data, user_answers)
        current_app.logger.info('[SECTION] Scored %s/%s (%s%%)',
                                summary.score, summary.totalScore, summary.percentage)

        if stored_test is not None and data.get('userId'):
            save_section_score(str(data['userId']), stored_test, normalize_user_answers(user_answers), summary)

        get_event_log().record('section', test_id=data.get('testId'),
                               score=summary.score, total=summary.totalScore)
        return jsonify(summary.to_dict())

    @app.route('/score-section', methods=['GET'])
    def get_section_score_route():
        """Return the saved section result for a learner."""
        user_id = request.args.get('userId')
        test_id = request.args.get('testId')
        if not user_id or not test_id:
            raise ValidationError('Missing userId or testId')
        section = _int_arg(request.args.get('section'), 'section')
        return jsonify(get_section_score(user_id, test_id, section).to_dict())

    @app.route('/score-test', methods=['POST'])
    def score_test_route():
        """Score every response of a test submission and complete the session."""
        data = _json_body()
        summary = score_test_submission(data)
        get_event_log().record('test', test_id=summary['test_id'], session_id=summary['session_id'],
                               score=summary['score'], skipped=len(summary['skipped']))
        return jsonify(summary)

    @app.route('/sessions/<session_id>', methods=['GET'])
    def get_session_route(session_id):
        """Session record with its stored responses."""
        return jsonify(get_session(session_id).to_dict(include_responses=True))

    @app.route('/question-types', methods=['GET'])
    def question_types_route():
        return jsonify(get_question_types_by_family())

    @app.route('/events', methods=['GET'])
    def list_events_route():
        limit = request.args.get('limit')
        events = get_event_log().recent(_int_arg(limit, 'limit') if limit is not None else None)
        return jsonify({'events': events, 'count': len(events)})

    @app.route('/events', methods=['DELETE'])
    def clear_events_route():
        return jsonify({'cleared': get_event_log().clear()})


# ============================================================================
# ERROR HANDLERS
# ============================================================================

def register_error_handlers(app: Flask) -> None:

    @app.errorhandler(HTTPException)
    def http_error(error):
        """Structured JSON for every HTTP error, scoring errors included."""
        if error.code and error.code >= 500:
            db.session.rollback()
        return jsonify({'success': False, 'error': error.description}), error.code

    @app.errorhandler(Exception)
    def internal_error(error):
        """Unexpected failure: log it, never leak the trace."""
        current_app.logger.exception('Unhandled error while scoring: %s', error)
        db.session.rollback()
        return jsonify({'success': False, 'error': 'Internal server error'}), 500


# ============================================================================
# INITIALIZATION
# ============================================================================

if __name__ == '__main__':
    application = create_app()
    init_database(application)
    application.run(host='0.0.0.0', port=int(os.getenv('PORT', 1111)), debug=application.config['DEBUG'])
