import pytest
import requests

from promptsite import llm_client
from promptsite.errors import EmptyResponse, UpstreamAuthError, UpstreamError, UpstreamRateLimited


class FakeResponse:
    def __init__(self, status_code=200, payload=None, text="", headers=None):
        self.status_code = status_code
        self._payload = payload
        self.text = text
        self.headers = headers or {}

    def json(self):
        if self._payload is None:
            raise ValueError("no json")
        return self._payload


def _reply(text):
    return {"candidates": [{"content": {"parts": [{"text": text}]}}]}


@pytest.fixture
def with_key(monkeypatch):
    monkeypatch.setattr(llm_client, "GEMINI_API_KEY", "test-key")


def test_generate_returns_reply_text(monkeypatch, with_key):
    seen = {}

    def fake_post(url, params=None, json=None, timeout=None):
        seen.update(url=url, params=params, body=json, timeout=timeout)
        return FakeResponse(payload=_reply('{"files": {}}'))

    monkeypatch.setattr(llm_client.requests, "post", fake_post)
    out = llm_client.generate("make a site", "system rules")
    assert out == '{"files": {}}'
    assert seen["params"] == {"key": "test-key"}
    assert seen["body"]["systemInstruction"]["parts"][0]["text"] == "system rules"
    assert seen["body"]["contents"][0]["parts"][0]["text"] == "make a site"
    assert seen["body"]["generationConfig"]["responseMimeType"] == "application/json"
    assert seen["timeout"] == llm_client.LLM_TIMEOUT_SECS


def test_missing_key_is_auth_error(monkeypatch):
    monkeypatch.setattr(llm_client, "GEMINI_API_KEY", "")
    with pytest.raises(UpstreamAuthError):
        llm_client.generate("p", "s")


def test_http_429_is_rate_limited_with_retry_after(monkeypatch, with_key):
    resp = FakeResponse(429, {"error": {"status": "RESOURCE_EXHAUSTED", "message": "slow down"}}, headers={"Retry-After": "7"})
    monkeypatch.setattr(llm_client.requests, "post", lambda *a, **k: resp)
    with pytest.raises(UpstreamRateLimited) as exc_info:
        llm_client.generate("p", "s")
    assert exc_info.value.retry_after == 7.0
    assert exc_info.value.wait_seconds == 7


def test_quota_message_is_rate_limited_even_without_429(monkeypatch, with_key):
    resp = FakeResponse(400, {"error": {"message": "Quota exceeded for metric"}})
    monkeypatch.setattr(llm_client.requests, "post", lambda *a, **k: resp)
    with pytest.raises(UpstreamRateLimited):
        llm_client.generate("p", "s")


@pytest.mark.parametrize("status", [401, 403])
def test_auth_failures(monkeypatch, with_key, status):
    resp = FakeResponse(status, {"error": {"status": "PERMISSION_DENIED", "message": "API key not valid"}})
    monkeypatch.setattr(llm_client.requests, "post", lambda *a, **k: resp)
    with pytest.raises(UpstreamAuthError) as exc_info:
        llm_client.generate("p", "s")
    assert exc_info.value.code == "INVALID_API_KEY"


def test_other_http_errors_are_generic(monkeypatch, with_key):
    resp = FakeResponse(500, None, text="internal")
    monkeypatch.setattr(llm_client.requests, "post", lambda *a, **k: resp)
    with pytest.raises(UpstreamError) as exc_info:
        llm_client.generate("p", "s")
    assert type(exc_info.value) is UpstreamError
    assert exc_info.value.status == 500


def test_network_error_is_upstream_error(monkeypatch, with_key):
    def boom(*a, **k):
        raise requests.ConnectionError("unreachable")

    monkeypatch.setattr(llm_client.requests, "post", boom)
    with pytest.raises(UpstreamError) as exc_info:
        llm_client.generate("p", "s")
    assert "unreachable" not in exc_info.value.message


@pytest.mark.parametrize(
    "payload",
    [
        {"candidates": []},
        {"candidates": [{"content": {"parts": [{"text": "   "}]}}]},
        {"promptFeedback": {"blockReason": "SAFETY"}},
    ],
)
def test_empty_reply(monkeypatch, with_key, payload):
    monkeypatch.setattr(llm_client.requests, "post", lambda *a, **k: FakeResponse(payload=payload))
    with pytest.raises(EmptyResponse):
        llm_client.generate("p", "s")


def test_status_reports_key_presence(monkeypatch):
    monkeypatch.setattr(llm_client, "GEMINI_API_KEY", "")
    assert llm_client.status()["has_token"] is False
    monkeypatch.setattr(llm_client, "GEMINI_API_KEY", "k")
    info = llm_client.status()
    assert info["provider"] == "gemini"
    assert info["model"] == llm_client.GEMINI_GENERATION_MODEL
