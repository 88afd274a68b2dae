from __future__ import annotations

import logging
from typing import Any, Optional

from openai import APIConnectionError, APIStatusError, APITimeoutError, OpenAI, RateLimitError

from .config import DEFAULT_OPENAI_MODEL, OPENAI_RESPONSES_TOOLS, SUMMARY_PROMPT_TEMPLATE
from .utils import trim_text

logger = logging.getLogger(__name__)


class SummaryError(Exception):
    """Raised when summarization fails."""


class SummaryConnectionError(SummaryError):
    """Raised when summarization fails due to upstream connection issues."""


class SummaryRateLimitError(SummaryError):
    """Raised when summarization fails due to rate limits."""


class Summarizer:
    def __init__(
        self,
        api_key: str,
        model: str = DEFAULT_OPENAI_MODEL,
        client: Optional[Any] = None,
        prompt_template: str = SUMMARY_PROMPT_TEMPLATE,
    ):
        if not model or not model.strip():
            raise ValueError("OpenAI model must be provided.")
        if "{url}" not in prompt_template:
            raise ValueError("Prompt template must contain a {url} placeholder.")
        self._client = client or OpenAI(api_key=api_key)
        self._model = model.strip()
        self._prompt_template = prompt_template

    def summarize(self, url: str) -> str:
        logger.info("Summarization request: url=%s model=%s", url, self._model)
        try:
            response = self._client.responses.create(
                model=self._model,
                tools=OPENAI_RESPONSES_TOOLS,
                input=self._prompt_template.format(url=url),
            )
        except RateLimitError as exc:
            raise SummaryRateLimitError(f"OpenAI rate limit: {exc}") from exc
        except (APIConnectionError, APITimeoutError) as exc:
            raise SummaryConnectionError(f"OpenAI connection failed: {exc}") from exc
        except APIStatusError as exc:
            body = trim_text(str(getattr(exc, "body", "") or ""), 500)
            raise SummaryError(f"OpenAI API error: {exc.status_code} - {body}") from exc
        except Exception as exc:  # noqa: BLE001
            raise SummaryError(f"OpenAI API call failed: {exc}") from exc

        text = extract_output_text(response)
        logger.info("Summary generated (%s chars)", len(text))
        return text.strip()


def extract_output_text(response: Any) -> str:
    """Pull the assistant text out of a Responses API result."""
    error = getattr(response, "error", None)
    if error:
        message = getattr(error, "message", None) or str(error)
        raise SummaryError(f"OpenAI API error: {message}")

    status = getattr(response, "status", None)
    if status != "completed":
        raise SummaryError(f"OpenAI API response not completed: {status}")

    for output in getattr(response, "output", None) or []:
        if getattr(output, "type", None) != "message" or getattr(output, "role", None) != "assistant":
            continue
        for content in getattr(output, "content", None) or []:
            if getattr(content, "type", None) == "output_text" and getattr(content, "text", None):
                return content.text
    raise SummaryError("No summary found in response.")
