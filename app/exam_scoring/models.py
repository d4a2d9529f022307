"""SQLAlchemy database models for the exam scoring service."""
from datetime import datetime, timezone
import sqlite3
from uuid import uuid4

from flask_sqlalchemy import SQLAlchemy
from sqlalchemy import event
from sqlalchemy.engine import Engine

db = SQLAlchemy()

SESSION_IN_PROGRESS = 'in_progress'
SESSION_COMPLETED = 'completed'


@event.listens_for(Engine, "connect")
def _set_sqlite_pragma(dbapi_connection, connection_record):
    """Configure SQLite connections for better concurrency."""
    if isinstance(dbapi_connection, sqlite3.Connection):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA journal_mode=WAL;")
        cursor.execute("PRAGMA synchronous=NORMAL;")
        cursor.execute("PRAGMA foreign_keys=ON;")
        cursor.execute("PRAGMA busy_timeout=15000;")
        cursor.close()


def utcnow():
    """Get current UTC time."""
    return datetime.now(timezone.utc)


def _new_id():
    return str(uuid4())


def _isoformat(value):
    return value.isoformat() if value else None


class Question(db.Model):
    """One evaluable item within a test section (read-only reference data)."""
    __tablename__ = 'questions'

    id = db.Column(db.String(36), primary_key=True, default=_new_id)
    test_id = db.Column(db.String(64), index=True, nullable=False)
    question_number = db.Column(db.Integer, nullable=False)
    question_type = db.Column(db.String(64), nullable=False)
    options = db.Column(db.JSON, nullable=True)  # [{letter, text, is_correct, explanation}, ...]
    correct_answer = db.Column(db.String(500), nullable=True)  # key for non-choice types
    explanation = db.Column(db.Text, nullable=True)
    is_example = db.Column(db.Boolean, default=False, nullable=False)

    def __repr__(self):
        return f'<Question {self.test_id}#{self.question_number} {self.question_type}>'

    def to_dict(self):
        return {
            'id': self.id,
            'test_id': self.test_id,
            'question_number': self.question_number,
            'question_type': self.question_type,
            'options': self.options or [],
            'correct_answer': self.correct_answer,
            'explanation': self.explanation,
            'is_example': self.is_example,
        }


class SectionTest(db.Model):
    """Stored JSON payload describing one section of a test."""
    __tablename__ = 'section_tests'
    __table_args__ = (
        db.UniqueConstraint('test_id', 'course', 'section', name='uq_section_test'),
    )

    id = db.Column(db.Integer, primary_key=True)
    test_id = db.Column(db.String(64), index=True, nullable=False)
    course = db.Column(db.String(64), nullable=False)  # e.g. telc_a1
    section = db.Column(db.Integer, nullable=False)
    exam_id = db.Column(db.String(64), nullable=True)
    question_data = db.Column(db.JSON, nullable=True)
    revised_question_data = db.Column(db.JSON, nullable=True)

    def __repr__(self):
        return f'<SectionTest {self.test_id} {self.course} s{self.section}>'


class ExamSession(db.Model):
    """One learner's attempt at one test."""
    __tablename__ = 'exam_sessions'

    id = db.Column(db.String(36), primary_key=True, default=_new_id)
    user_id = db.Column(db.String(128), index=True, nullable=False)
    test_id = db.Column(db.String(64), index=True, nullable=False)
    exam_id = db.Column(db.String(64), nullable=True)
    status = db.Column(db.String(20), default=SESSION_IN_PROGRESS, nullable=False)
    started_at = db.Column(db.DateTime(timezone=True), default=utcnow, nullable=False)
    completed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    overall_score = db.Column(db.Integer, nullable=True)  # percentage
    total_questions = db.Column(db.Integer, nullable=True)
    correct_answers = db.Column(db.Integer, nullable=True)
    time_spent_seconds = db.Column(db.Integer, nullable=True)

    responses = db.relationship('UserResponse', back_populates='session', order_by='UserResponse.id')

    def __repr__(self):
        return f'<ExamSession {self.id} user={self.user_id} status={self.status}>'

    def to_dict(self, include_responses=False):
        data = {
            'id': self.id,
            'user_id': self.user_id,
            'test_id': self.test_id,
            'exam_id': self.exam_id,
            'status': self.status,
            'started_at': _isoformat(self.started_at),
            'completed_at': _isoformat(self.completed_at),
            'overall_score': self.overall_score,
            'total_questions': self.total_questions,
            'correct_answers': self.correct_answers,
            'time_spent_seconds': self.time_spent_seconds,
        }
        if include_responses:
            data['responses'] = [response.to_dict() for response in self.responses]
        return data


class UserResponse(db.Model):
    """Durable trail of a single scored response."""
    __tablename__ = 'user_responses'

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.String(128), index=True, nullable=False)
    question_id = db.Column(db.String(36), db.ForeignKey('questions.id'), nullable=False)
    response_text = db.Column(db.Text, nullable=False, default='')
    is_correct = db.Column(db.Boolean, nullable=False)
    score = db.Column(db.Float, nullable=False)  # 0..1
    time_spent_seconds = db.Column(db.Integer, nullable=True)
    session_id = db.Column(db.String(36), db.ForeignKey('exam_sessions.id', ondelete='CASCADE'), nullable=True)
    exam_id = db.Column(db.String(64), nullable=True)
    test_id = db.Column(db.String(64), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), default=utcnow, nullable=False)

    session = db.relationship('ExamSession', back_populates='responses')

    def __repr__(self):
        return f'<UserResponse user={self.user_id} question={self.question_id} correct={self.is_correct}>'

    def to_dict(self):
        return {
            'id': self.id,
            'user_id': self.user_id,
            'question_id': self.question_id,
            'response_text': self.response_text,
            'is_correct': self.is_correct,
            'score': self.score,
            'time_spent_seconds': self.time_spent_seconds,
            'session_id': self.session_id,
            'exam_id': self.exam_id,
            'test_id': self.test_id,
            'created_at': _isoformat(self.created_at),
        }


class SectionScore(db.Model):
    """Latest section result per learner, test and section."""
    __tablename__ = 'section_scores'
    __table_args__ = (
        db.UniqueConstraint('user_id', 'test_id', 'section', name='uq_user_section_score'),
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.String(128), nullable=False)
    test_id = db.Column(db.String(64), nullable=False)
    section = db.Column(db.Integer, nullable=False)
    course = db.Column(db.String(64), nullable=True)
    exam_id = db.Column(db.String(64), nullable=True)
    score = db.Column(db.Integer, nullable=False)
    total_score = db.Column(db.Integer, nullable=False)
    percentage = db.Column(db.Integer, nullable=False)
    answers = db.Column(db.JSON, nullable=True)
    validation_results = db.Column(db.JSON, nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), default=utcnow, nullable=False)

    def __repr__(self):
        return f'<SectionScore user={self.user_id} test={self.test_id} s{self.section}>'

    def to_dict(self):
        return {
            'user_id': self.user_id,
            'test_id': self.test_id,
            'section': self.section,
            'course': self.course,
            'exam_id': self.exam_id,
            'score': self.score,
            'total_score': self.total_score,
            'percentage': self.percentage,
            'answers': self.answers,
            'validation_results': self.validation_results,
            'created_at': _isoformat(self.created_at),
        }
