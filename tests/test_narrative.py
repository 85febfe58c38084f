from __future__ import annotations

import requests

from sysguard import narrative
from sysguard.analyzer import classify
from sysguard.narrative import FALLBACK_NARRATIVE, NarrativeClient


class FakeResponse:
    def __init__(self, status_code=200, payload=None, text=""):
        self.status_code = status_code
        self._payload = payload
        self.text = text

    def json(self):
        if self._payload is None:
            raise ValueError("no json")
        return self._payload


CLASSIFICATION = classify({"read": 450, "mprotect": 40}, {"read": 850, "mprotect": 850, "execve": 15})


def test_no_url_uses_fallback(monkeypatch):
    def boom(*a, **kw):
        raise AssertionError("should not be called")
    monkeypatch.setattr(narrative.requests, "post", boom)
    assert NarrativeClient("").explain(CLASSIFICATION) == FALLBACK_NARRATIVE


def test_posts_summary_and_reads_text(monkeypatch):
    sent = {}

    def fake_post(url, json=None, timeout=None):
        sent.update(url=url, json=json, timeout=timeout)
        return FakeResponse(payload={"text": "  mprotect spiked.  "})

    monkeypatch.setattr(narrative.requests, "post", fake_post)
    out = NarrativeClient("http://llm.local/explain", timeout=3).explain(CLASSIFICATION)
    assert out == "mprotect spiked."
    assert sent["timeout"] == 3
    assert sent["json"]["status"] == "INTRUSION"
    assert sent["json"]["riskLevel"] == "CRITICAL"
    assert sent["json"]["syscalls"][0]["name"] == "mprotect"


def test_plain_text_reply(monkeypatch):
    monkeypatch.setattr(narrative.requests, "post",
                        lambda *a, **kw: FakeResponse(text="Plain answer\n"))
    assert NarrativeClient("http://x").explain(CLASSIFICATION) == "Plain answer"


def test_http_error_and_timeout_fall_back(monkeypatch):
    monkeypatch.setattr(narrative.requests, "post",
                        lambda *a, **kw: FakeResponse(status_code=503))
    assert NarrativeClient("http://x").explain(CLASSIFICATION) == FALLBACK_NARRATIVE

    def timeout(*a, **kw):
        raise requests.exceptions.Timeout()
    monkeypatch.setattr(narrative.requests, "post", timeout)
    assert NarrativeClient("http://x").explain(CLASSIFICATION) == FALLBACK_NARRATIVE


def test_empty_reply_falls_back(monkeypatch):
    monkeypatch.setattr(narrative.requests, "post",
                        lambda *a, **kw: FakeResponse(payload={"other": 1}))
    assert NarrativeClient("http://x").explain(CLASSIFICATION) == FALLBACK_NARRATIVE
