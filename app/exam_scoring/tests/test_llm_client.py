from unittest import mock

import pytest
import requests
from flask import Flask

from app.exam_scoring.errors import DownstreamFailure, DownstreamTimeout
from app.exam_scoring.services import semantic_judge
from app.exam_scoring.services.llm_client import AzureOpenAIClient


class _Resp:
    def __init__(self, status_code: int, payload: dict):
        self.status_code = status_code
        self._payload = payload

    def raise_for_status(self):
        if 400 <= self.status_code:
            raise requests.exceptions.HTTPError(response=self)

    def json(self):
        return self._payload


def _completion(content):
    return {"choices": [{"finish_reason": "stop", "message": {"role": "assistant", "content": content}}]}


@pytest.fixture(autouse=True)
def app_context():
    app = Flask(__name__)
    with app.app_context():
        yield app


@pytest.fixture
def client(monkeypatch):
    monkeypatch.setenv("AZURE_OPENAI_RESOURCE_NAME", "lingua-test")
    monkeypatch.setenv("AZURE_OPENAI_DEPLOYMENT", "gpt-5-nano")
    monkeypatch.setenv("LLM_TIMEOUT_SECONDS", "15")
    monkeypatch.delenv("AZURE_OPENAI_ENDPOINT", raising=False)
    return AzureOpenAIClient(api_key="test-key")


def test_generate_json_posts_once_with_timeout(client):
    calls = []

    def fake_post(url, json=None, headers=None, timeout=None):  # noqa: A002 - shadowing builtin allowed in tests
        calls.append({"url": url, "json": json, "headers": headers, "timeout": timeout})
        return _Resp(200, _completion('{"is_correct": true}'))

    with mock.patch("app.exam_scoring.services.llm_client.requests.post", side_effect=fake_post):
        result = client.generate_json("prompt", system_instruction="be strict")

    assert result == {"is_correct": True}
    assert len(calls) == 1
    assert calls[0]["url"].startswith("https://lingua-test.openai.azure.com/openai/deployments/gpt-5-nano/")
    assert calls[0]["headers"] == {"api-key": "test-key"}
    assert calls[0]["timeout"] == 15
    assert calls[0]["json"]["messages"][0] == {"role": "system", "content": "be strict"}


def test_timeout_maps_to_downstream_timeout(client):
    with mock.patch("app.exam_scoring.services.llm_client.requests.post",
                    side_effect=requests.exceptions.ReadTimeout("slow")) as post:
        with pytest.raises(DownstreamTimeout):
            client.generate_json("prompt")
    assert post.call_count == 1


@pytest.mark.parametrize("side_effect", [
    lambda *a, **k: _Resp(500, {}),
    requests.exceptions.ConnectionError("refused"),
])
def test_http_and_connection_errors_are_not_retried(client, side_effect):
    with mock.patch("app.exam_scoring.services.llm_client.requests.post", side_effect=side_effect) as post:
        with pytest.raises(DownstreamFailure) as excinfo:
            client.generate_json("prompt")
    assert not isinstance(excinfo.value, DownstreamTimeout)
    assert post.call_count == 1


def test_empty_or_garbled_content_is_a_failure(client):
    with mock.patch("app.exam_scoring.services.llm_client.requests.post",
                    return_value=_Resp(200, {"choices": []})):
        with pytest.raises(DownstreamFailure):
            client.generate_json("prompt")
    with mock.patch("app.exam_scoring.services.llm_client.requests.post",
                    return_value=_Resp(200, _completion("I think it is right."))):
        with pytest.raises(DownstreamFailure):
            client.generate_json("prompt")


def test_unconfigured_client_raises(monkeypatch):
    monkeypatch.delenv("AZURE_OPENAI_API_KEY", raising=False)
    monkeypatch.delenv("AZURE_OPENAI_RESOURCE_NAME", raising=False)
    monkeypatch.delenv("AZURE_OPENAI_ENDPOINT", raising=False)
    unconfigured = AzureOpenAIClient()
    assert unconfigured.is_configured is False
    with pytest.raises(DownstreamFailure):
        unconfigured.generate_json("prompt")


def test_robust_json_extraction():
    fenced = "```json\n{\n  \"is_correct\": false\n}\n```"
    assert AzureOpenAIClient._robust_parse_json(fenced) == {"is_correct": False}
    prose = 'Verdict: {"is_correct": true, "feedback": "ok {fine}"} hope that helps'
    assert AzureOpenAIClient._robust_parse_json(prose) == {"is_correct": True, "feedback": "ok {fine}"}


def test_validate_judgment_normalizes_optional_fields():
    assert semantic_judge.validate_judgment({"is_correct": True}) == {
        "is_correct": True, "score": 1.0, "feedback": None,
    }
    assert semantic_judge.validate_judgment({"is_correct": False, "score": 1.7, "feedback": "  Fast. "}) == {
        "is_correct": False, "score": 1.0, "feedback": "Fast.",
    }
    assert semantic_judge.validate_judgment({"is_correct": True, "score": -2})["score"] == 0.0


@pytest.mark.parametrize("response", [
    None,
    ["is_correct"],
    {"score": 1},
    {"is_correct": "yes"},
    {"is_correct": True, "score": "high"},
    {"is_correct": True, "feedback": 3},
])
def test_validate_judgment_rejects_malformed_shapes(response):
    with pytest.raises(DownstreamFailure):
        semantic_judge.validate_judgment(response)


def test_judge_fill_in_blank_builds_prompt_with_context(app_context):
    fake = mock.Mock(deployment="gpt-5-nano")
    fake.generate_json.return_value = {"is_correct": True, "score": 0.8, "feedback": "Gut."}
    app_context.llm_client = fake

    verdict = semantic_judge.judge_fill_in_blank("Brötchen", "Brot", "Beim Bäcker")

    assert verdict == {"is_correct": True, "score": 0.8, "feedback": "Gut."}
    prompt = fake.generate_json.call_args.args[0]
    assert 'Correct Answer: "Brot"' in prompt
    assert 'User\'s Answer: "Brötchen"' in prompt
    assert 'Answer Explanation: "Beim Bäcker"' in prompt
