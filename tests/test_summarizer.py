from __future__ import annotations

from types import SimpleNamespace
from typing import Any, Dict, List

import httpx
import pytest
from openai import APIConnectionError

from link_digest.summarizer import Summarizer, SummaryConnectionError, SummaryError


def _message(text: str) -> SimpleNamespace:
    return SimpleNamespace(
        type="message",
        role="assistant",
        content=[SimpleNamespace(type="output_text", text=text)],
    )


class FakeOpenAI:
    def __init__(self, response: Any = None, exc: Exception | None = None):
        self.calls: List[Dict[str, Any]] = []
        self.responses = self.Responses(self, response, exc)

    class Responses:
        def __init__(self, outer: "FakeOpenAI", response: Any, exc: Exception | None):
            self._outer = outer
            self._response = response
            self._exc = exc

        def create(self, model, tools, input):
            self._outer.calls.append({"model": model, "tools": tools, "input": input})
            if self._exc is not None:
                raise self._exc
            return self._response


def _completed(*outputs: Any) -> SimpleNamespace:
    return SimpleNamespace(status="completed", error=None, output=list(outputs))


def test_summarize_returns_assistant_text_and_uses_prompt():
    fake = FakeOpenAI(_completed(SimpleNamespace(type="web_search_call"), _message("  A short summary.  ")))
    s = Summarizer(api_key="dummy", client=fake)

    assert s.summarize("https://article.test/x") == "A short summary."
    call = fake.calls[0]
    assert call["model"] == "gpt-4.1"
    assert call["tools"] == [{"type": "web_search_preview"}]
    assert "https://article.test/x" in call["input"]
    assert "2-3 sentences" in call["input"]


def test_summarize_fails_when_not_completed():
    fake = FakeOpenAI(SimpleNamespace(status="incomplete", error=None, output=[_message("partial")]))
    s = Summarizer(api_key="dummy", client=fake)
    with pytest.raises(SummaryError, match="not completed"):
        s.summarize("https://article.test/x")


def test_summarize_fails_when_error_present():
    fake = FakeOpenAI(
        SimpleNamespace(status="completed", error=SimpleNamespace(message="quota"), output=[_message("x")])
    )
    s = Summarizer(api_key="dummy", client=fake)
    with pytest.raises(SummaryError, match="quota"):
        s.summarize("https://article.test/x")


def test_summarize_fails_without_assistant_text():
    fake = FakeOpenAI(_completed(SimpleNamespace(type="web_search_call")))
    s = Summarizer(api_key="dummy", client=fake)
    with pytest.raises(SummaryError, match="No summary"):
        s.summarize("https://article.test/x")


def test_connection_error_is_wrapped():
    request = httpx.Request("POST", "https://api.openai.com/v1/responses")
    fake = FakeOpenAI(exc=APIConnectionError(request=request))
    s = Summarizer(api_key="dummy", client=fake)
    with pytest.raises(SummaryConnectionError):
        s.summarize("https://article.test/x")


def test_prompt_template_requires_url_placeholder():
    with pytest.raises(ValueError):
        Summarizer(api_key="dummy", client=FakeOpenAI(), prompt_template="Summarize this")
