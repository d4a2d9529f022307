import pytest

from app.exam_scoring.models import SectionScore, SectionTest, db

SECTION_2 = {
    "main_title": "Lesen Teil 2",
    "questions": [
        {
            "question_number": 0, "is_example": True, "correct_answer": "a",
            "options": [{"option_letter": "a", "is_correct": True}, {"option_letter": "b", "is_correct": False}],
        },
        {
            "question_number": 6, "is_example": False, "correct_answer": "b", "explanation": "Siehe Website b.",
            "options": [
                {"option_letter": "a", "is_correct": False, "explanation": "Nur am Wochenende geöffnet."},
                {"option_letter": "b", "is_correct": True, "explanation": "Täglich geöffnet."},
            ],
        },
        {
            "question_number": 7, "is_example": False, "correct_answer": "a",
            "options": [
                {"option_letter": "a", "is_correct": True, "explanation": "Kurse für Anfänger."},
                {"option_letter": "b", "is_correct": False, "explanation": "Nur Fortgeschrittene."},
            ],
        },
    ],
}


@pytest.fixture
def stored_section(app):
    test = SectionTest(test_id="telc-a1-03", course="telc_a1", section=2, exam_id="exam-3",
                       question_data={"questions": []}, revised_question_data=SECTION_2)
    db.session.add(test)
    db.session.commit()
    return test


def test_inline_payload_is_scored(client):
    response = client.post("/score-section", json={"questionData": SECTION_2, "userAnswers": {"6": "b", "7": "b"}})

    assert response.status_code == 200
    data = response.get_json()
    assert (data["score"], data["totalScore"], data["percentage"]) == (1, 2, 50)
    assert data["results"][1]["explanation"] == "Nur Fortgeschrittene."
    assert SectionScore.query.count() == 0


def test_stored_section_prefers_revised_data_and_saves(client, stored_section):
    response = client.post("/score-section", json={
        "testId": "telc-a1-03", "section": 2, "userId": "user_1", "userAnswers": {"6": "b", "7": "a"},
    })

    assert response.get_json()["percentage"] == 100
    record = SectionScore.query.one()
    assert record.exam_id == "exam-3"
    assert record.answers == {"6": "b", "7": "a"}
    assert record.validation_results[0]["question_number"] == 6


def test_rescoring_updates_the_saved_result(client, stored_section):
    body = {"testId": "telc-a1-03", "section": 2, "userId": "user_1", "userAnswers": {"6": "b", "7": "a"}}
    client.post("/score-section", json=body)
    body["userAnswers"] = {"6": "a", "7": "a"}
    client.post("/score-section", json=body)

    record = SectionScore.query.one()
    assert (record.score, record.total_score, record.percentage) == (1, 2, 50)

    saved = client.get("/score-section?userId=user_1&testId=telc-a1-03&section=2").get_json()
    assert saved["percentage"] == 50
    assert saved["answers"] == {"6": "a", "7": "a"}


def test_string_payload_is_decoded(client, app):
    db.session.add(SectionTest(test_id="t-json", course="telc_a1", section=1,
                               question_data='{"questions": [{"question_number": 1, "answer": {"is_true": true}}]}'))
    db.session.commit()
    data = client.post("/score-section", json={"testId": "t-json", "section": 1, "userAnswers": {"1": "true"}}).get_json()
    assert data["score"] == 1


def test_missing_inputs(client, stored_section):
    assert client.post("/score-section", json={"userAnswers": {}}).status_code == 400
    assert client.post("/score-section", json={"testId": "telc-a1-03", "section": "zwei"}).status_code == 400
    assert client.post("/score-section", json={"testId": "unknown", "section": 1}).status_code == 404
    assert client.get("/score-section?userId=user_1&testId=telc-a1-03&section=2").status_code == 404
    assert client.get("/score-section?userId=user_1").status_code == 400


def test_unsupported_type_does_not_fail_the_section(client):
    body = {
        "questionData": {"questions": [
            {"question_number": 1, "question_type": "multiple_choice", "correct_answer": "a",
             "options": [{"option_letter": "a", "is_correct": True}, {"option_letter": "b", "is_correct": False}]},
            {"question_number": 2, "question_type": "essay_freeform"},
        ]},
        "userAnswers": {"1": "a", "2": "Ein Aufsatz"},
    }
    response = client.post("/score-section", json=body)

    assert response.status_code == 200
    data = response.get_json()
    assert (data["score"], data["totalScore"], data["percentage"]) == (1, 1, 100)
    assert [result["question_number"] for result in data["results"]] == [1]
