import os
from typing import Any

import httpx
from loguru import logger
from tenacity import retry, retry_if_exception, stop_after_attempt, wait_exponential

DEFAULT_BASE_URL = "https://openrouter.ai/api/v1"
DEFAULT_MODEL = "openai/gpt-4o-mini"

API_KEY_ENV = "OPENROUTER_API_KEY"
MODEL_ENV = "WORKLOOP_MODEL"
BASE_URL_ENV = "OPENROUTER_BASE_URL"

_RETRYABLE_STATUS = {429, 500, 502, 503, 504}


class LLMClientError(Exception):
    """Raised when the completion API fails or returns an unusable answer."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        self.status_code = status_code
        super().__init__(message)


def _is_retryable_error(e: BaseException) -> bool:
    """Check if error is retryable (rate limit, server error or network)."""
    if isinstance(e, LLMClientError):
        return e.status_code in _RETRYABLE_STATUS
    return isinstance(e, httpx.TransportError)


def _log_retry(retry_state: Any) -> None:
    exc = retry_state.outcome.exception()
    logger.warning(f"[OPENROUTER] Retry {retry_state.attempt_number}: {str(exc)[:100]}")


class OpenRouterClient:
    """Minimal chat-completions client for the OpenRouter API."""

    def __init__(
        self,
        api_key: str,
        model: str = DEFAULT_MODEL,
        base_url: str = DEFAULT_BASE_URL,
        timeout_s: float = 120.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.api_key = api_key
        self.model = model
        self.base_url = base_url.rstrip("/")
        self.timeout_s = timeout_s
        self._transport = transport

    @classmethod
    def from_env(cls) -> "OpenRouterClient | None":
        """Build a client from the environment; None when no API key is set."""
        api_key = os.environ.get(API_KEY_ENV)
        if not api_key:
            return None
        return cls(
            api_key=api_key,
            model=os.environ.get(MODEL_ENV, DEFAULT_MODEL),
            base_url=os.environ.get(BASE_URL_ENV, DEFAULT_BASE_URL),
        )

    @retry(
        retry=retry_if_exception(_is_retryable_error),
        stop=stop_after_attempt(5),
        wait=wait_exponential(multiplier=2, max=60),
        before_sleep=_log_retry,
        reraise=True,
    )
    async def complete(self, prompt: str, system: str | None = None) -> str:
        """Send a single-turn chat request and return the reply text."""
        messages: list[dict[str, str]] = []
        if system:
            messages.append({"role": "system", "content": system})
        messages.append({"role": "user", "content": prompt})

        logger.debug(f"[OPENROUTER] {self.model} request:\n{prompt}")
        async with httpx.AsyncClient(
            base_url=self.base_url, timeout=self.timeout_s, transport=self._transport
        ) as http:
            response = await http.post(
                "/chat/completions",
                headers={
                    "Authorization": f"Bearer {self.api_key}",
                    "X-Title": "workloop",
                },
                json={"model": self.model, "messages": messages},
            )

        if response.status_code != 200:
            raise LLMClientError(
                f"OpenRouter returned {response.status_code}: {response.text[:300]}",
                status_code=response.status_code,
            )
        try:
            content = response.json()["choices"][0]["message"]["content"]
        except (ValueError, KeyError, IndexError, TypeError) as e:
            raise LLMClientError(f"Unexpected OpenRouter response: {response.text[:300]}") from e
        if not isinstance(content, str):
            raise LLMClientError("OpenRouter response has no text content")
        return content
