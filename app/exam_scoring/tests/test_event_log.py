import pytest

from app.exam_scoring.services.event_log import ScoringEventLog


def test_oldest_events_are_dropped_at_capacity():
    log = ScoringEventLog(maxlen=3)
    for n in range(5):
        log.record("score", n=n)

    assert len(log) == 3
    assert [event["n"] for event in log.recent()] == [4, 3, 2]
    assert [event["n"] for event in log.recent(limit=2)] == [4, 3]


def test_clear_reports_dropped_count():
    log = ScoringEventLog(maxlen=10)
    log.record("section", score=1)
    assert log.clear() == 1
    assert log.recent() == []


def test_capacity_must_be_positive():
    with pytest.raises(ValueError):
        ScoringEventLog(maxlen=0)


def test_each_app_owns_its_log(app, client):
    # TestingConfig keeps five events
    for _ in range(7):
        client.post("/score-section", json={"questionData": {"questions": []}, "userAnswers": {}})

    data = client.get("/events?limit=10").get_json()
    assert data["count"] == 5
    assert all(event["kind"] == "section" for event in data["events"])

    assert client.delete("/events").get_json() == {"cleared": 5}
    assert client.get("/events").get_json()["count"] == 0
