import pytest

from app.exam_scoring.app import create_app
from app.exam_scoring.models import Question, SectionTest, db


@pytest.fixture
def app(monkeypatch):
    monkeypatch.delenv("AZURE_OPENAI_API_KEY", raising=False)
    monkeypatch.delenv("AZURE_OPENAI_ENDPOINT", raising=False)
    monkeypatch.delenv("AZURE_OPENAI_RESOURCE_NAME", raising=False)
    app = create_app("testing")
    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def reading_test(app):
    """Questions of one reading test covering every scorer family."""
    questions = [
        Question(
            id="q-mc", test_id="reading-1", question_number=1, question_type="multiple_choice",
            options=[
                {"letter": "A", "text": "Im Park", "is_correct": False, "explanation": "Der Park wird nicht genannt."},
                {"letter": "B", "text": "Am Bahnhof", "is_correct": True, "explanation": "Sie treffen sich am Bahnhof."},
            ],
        ),
        Question(id="q-tf", test_id="reading-1", question_number=2, question_type="true_false",
                 correct_answer="false", explanation="Der Laden ist sonntags geschlossen."),
        Question(id="q-match", test_id="reading-1", question_number=3, question_type="scenario_matching",
                 correct_answer="c"),
        Question(id="q-blank", test_id="reading-1", question_number=4, question_type="fill_in_the_blank",
                 correct_answer="Brot", explanation="Man kauft Brot beim Bäcker."),
        Question(id="q-example", test_id="reading-1", question_number=0, question_type="multiple_choice",
                 is_example=True,
                 options=[{"letter": "A", "is_correct": True}, {"letter": "B", "is_correct": False}]),
    ]
    db.session.add_all(questions)
    db.session.add(SectionTest(test_id="reading-1", course="telc_a1", section=1, exam_id="exam-7",
                               question_data={"questions": []}))
    db.session.commit()
    return {question.id: question for question in questions}
