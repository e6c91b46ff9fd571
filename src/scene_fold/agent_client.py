"""Completion-server client used to generate scene summaries."""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import TYPE_CHECKING, Dict, List, Optional

import requests
from requests.exceptions import ConnectionError, RequestException, Timeout

if TYPE_CHECKING:
    from scene_fold.summarization.prompts import SummaryPrompt
    from scene_fold.summarization.signals import CancelToken

LOGGER = logging.getLogger(__name__)

COMPLETIONS_ENDPOINT = "/v1/chat/completions"


class AgentClientError(Exception):
    """Raised when the completion server rejects or fails a request."""

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        self.status_code = status_code
        super().__init__(message)


@dataclass
class AgentResponse:
    """First choice of a chat completion plus the raw payload."""

    message: Dict
    raw: Dict

    @property
    def content(self) -> str:
        return self.message.get("content") or ""


class AgentClient:
    """Blocking client for an OpenAI-compatible `/v1/chat/completions` API.

    Server errors (5xx), timeouts and other transport failures are retried
    with exponential backoff. Client errors (4xx) are raised at once with
    their status code; auth and rate-limit failures are the summarization
    layer's to classify.
    """

    def __init__(
        self,
        base_url: str = "http://localhost:8080",
        timeout: int = 120,
        max_retries: int = 3,
        api_key: Optional[str] = None,
        session: Optional[requests.Session] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.max_retries = max(1, max_retries)
        self._session = session or requests.Session()
        if api_key:
            self._session.headers["Authorization"] = f"Bearer {api_key}"

    def chat(
        self,
        messages: List[Dict[str, str]],
        temperature: float = 0.3,
        max_tokens: int = 512,
        model: Optional[str] = None,
    ) -> AgentResponse:
        """Send one chat completion request and return the first choice."""
        body: Dict[str, object] = {
            "messages": messages,
            "temperature": temperature,
            "max_tokens": max_tokens,
        }
        if model:
            body["model"] = model

        data = self._post(COMPLETIONS_ENDPOINT, body)
        choices = data.get("choices") if isinstance(data, dict) else None
        if not choices or not isinstance(choices[0], dict) or "message" not in choices[0]:
            raise AgentClientError(f"Malformed response: no choices in {str(data)[:200]}")
        return AgentResponse(message=choices[0]["message"], raw=data)

    def health_check(self) -> bool:
        """True if `/health` answers with a 2xx."""
        try:
            return self._session.get(f"{self.base_url}/health", timeout=5).ok
        except RequestException:
            return False

    def _post(self, endpoint: str, body: Dict[str, object]) -> Dict:
        url = f"{self.base_url}{endpoint}"
        failure = "no attempt made"
        status_code: Optional[int] = None

        for attempt in range(1, self.max_retries + 1):
            try:
                response = self._session.request("POST", url, json=body, timeout=self.timeout)
            except Timeout:
                failure, status_code = "Request timed out", None
            except ConnectionError as exc:
                raise AgentClientError(f"Cannot connect to {self.base_url}") from exc
            except RequestException as exc:
                failure, status_code = f"Request failed: {exc}", None
            else:
                status_code = response.status_code
                if status_code < 400:
                    try:
                        return response.json()
                    except ValueError as exc:
                        raise AgentClientError(f"Invalid JSON from server: {exc}") from exc
                if status_code < 500:
                    raise AgentClientError(
                        f"Request error ({status_code}): {response.text}",
                        status_code=status_code,
                    )
                failure = f"Server error ({status_code}): {response.text}"

            if attempt < self.max_retries:
                delay = 2 ** (attempt - 1)
                LOGGER.warning(
                    "%s; retrying in %ds (attempt %d/%d)",
                    failure,
                    delay,
                    attempt,
                    self.max_retries,
                )
                time.sleep(delay)

        raise AgentClientError(failure, status_code=status_code)


class AgentSummarizer:
    """Async summarizer backed by a blocking AgentClient.

    The HTTP call runs in a worker thread. The cancel token is honoured
    before and after the call; a request already on the wire is allowed to
    finish and its result discarded.
    """

    def __init__(
        self,
        client: AgentClient,
        temperature: float = 0.3,
        max_tokens: int = 512,
        model: Optional[str] = None,
    ) -> None:
        self.client = client
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.model = model

    async def summarize(self, prompt: SummaryPrompt, token: CancelToken) -> str:
        token.raise_if_cancelled()
        LOGGER.debug(
            "Requesting summary (system %d chars, text %d chars)",
            len(prompt.system),
            len(prompt.text),
        )
        response = await asyncio.to_thread(
            self.client.chat,
            prompt.to_messages(),
            self.temperature,
            self.max_tokens,
            self.model,
        )
        token.raise_if_cancelled()
        return response.content
