"""ClassificationClient — bounded-retry client for the classification service.

Talks to an OpenAI-compatible ``/chat/completions`` endpoint and asks for a
``json_object`` response.  The client returns the raw message content string;
parsing and validation happen in :func:`parse_classification`.

Retry policy
------------
Only transient failures are retried: HTTP 408/429/5xx, network errors and
timeouts.  The delay before retry *n* (0-based) is::

    delay = base_delay * 2 ** n

Any other failure raises :class:`ClassificationServiceError` immediately.
Every failed attempt increments the Prometheus counter
``intentguard_classification_errors_total``.
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any

import httpx
from prometheus_client import Counter
from pydantic import ValidationError

from intentguard.schemas.classification import ClassificationResponse

logger = logging.getLogger(__name__)

classification_errors_total = Counter(
    "intentguard_classification_errors_total",
    "Failed classification service attempts",
    ["error_type"],
)

_RETRYABLE_HTTP_STATUSES = frozenset({408, 429, 500, 502, 503, 504})

DEFAULT_MODEL = "gpt-4o-mini"
DEFAULT_TEMPERATURE = 0.2
DEFAULT_MAX_TOKENS = 512


class ClassificationServiceError(Exception):
    """The classification service could not produce a usable response.

    Attributes:
        status_code: HTTP status of the last attempt, when applicable.
        retryable: Whether the failure class is transient.
    """

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        retryable: bool = False,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.retryable = retryable


class ClassificationClient:
    """Async chat-completions client with bounded exponential-backoff retry.

    Args:
        api_key: Bearer credential for the service.
        base_url: API base URL, e.g. ``https://api.openai.com/v1``.
        model: Model name.
        timeout: Deadline for a single attempt in seconds.
        max_retries: Additional attempts after a transient failure.
        retry_base_delay: Base delay for the exponential back-off.
        http_client: Optional shared :class:`httpx.AsyncClient`.
    """

    def __init__(
        self,
        api_key: str,
        *,
        base_url: str = "https://api.openai.com/v1",
        model: str = DEFAULT_MODEL,
        timeout: float = 20.0,
        max_retries: int = 1,
        retry_base_delay: float = 1.0,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self._api_key = api_key
        self._url = f"{base_url.rstrip('/')}/chat/completions"
        self._model = model
        self._timeout = timeout
        self._max_retries = max_retries
        self._retry_base_delay = retry_base_delay
        self._http_client = http_client

    async def classify(self, messages: list[dict[str, Any]]) -> str:
        """Send *messages* and return the assistant message content.

        Raises:
            ClassificationServiceError: After a non-retryable failure, once
                the retry budget is exhausted, or when the response carries
                no content.
        """
        payload = {
            "model": self._model,
            "messages": messages,
            "temperature": DEFAULT_TEMPERATURE,
            "max_tokens": DEFAULT_MAX_TOKENS,
            "response_format": {"type": "json_object"},
        }

        attempts = self._max_retries + 1
        for attempt in range(attempts):
            try:
                body = await self._post(payload)
            except ClassificationServiceError as exc:
                classification_errors_total.labels(
                    error_type="http_error" if exc.status_code else "network_error"
                ).inc()
                if not exc.retryable or attempt >= self._max_retries:
                    raise
                delay = _backoff_delay(self._retry_base_delay, attempt)
                logger.warning(
                    "Classification call failed, retrying: attempt=%d/%d status=%s delay=%.2fs",
                    attempt + 1,
                    attempts,
                    exc.status_code,
                    delay,
                )
                await asyncio.sleep(delay)
                continue
            return _message_content(body)

        raise ClassificationServiceError("Classification retry budget exhausted")  # pragma: no cover

    async def _post(self, payload: dict[str, Any]) -> dict[str, Any]:
        headers = {
            "Authorization": f"Bearer {self._api_key}",
            "Content-Type": "application/json",
        }
        try:
            if self._http_client is not None:
                response = await self._http_client.post(
                    self._url, json=payload, headers=headers, timeout=self._timeout
                )
            else:
                async with httpx.AsyncClient(timeout=self._timeout) as client:
                    response = await client.post(self._url, json=payload, headers=headers)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            status = exc.response.status_code
            raise ClassificationServiceError(
                f"Classification service returned HTTP {status}",
                status_code=status,
                retryable=status in _RETRYABLE_HTTP_STATUSES,
            ) from exc
        except httpx.TimeoutException as exc:
            raise ClassificationServiceError(
                f"Classification service timed out after {self._timeout}s",
                retryable=True,
            ) from exc
        except httpx.RequestError as exc:
            raise ClassificationServiceError(
                f"Classification service unreachable: {type(exc).__name__}",
                retryable=True,
            ) from exc

        try:
            body = response.json()
        except ValueError as exc:
            raise ClassificationServiceError("Classification service returned non-JSON body") from exc
        if not isinstance(body, dict):
            raise ClassificationServiceError("Classification service returned unexpected body")
        return body


def _message_content(body: dict[str, Any]) -> str:
    choices = body.get("choices") or []
    if not choices or not isinstance(choices[0], dict):
        raise ClassificationServiceError("Empty response from classification service")
    content = (choices[0].get("message") or {}).get("content")
    if not content or not isinstance(content, str):
        raise ClassificationServiceError("Empty response from classification service")
    return content


def parse_classification(content: str) -> ClassificationResponse:
    """Parse and validate the service's JSON content.

    Raises:
        ClassificationServiceError: If *content* is not a JSON object.
    """
    try:
        raw = json.loads(content)
    except json.JSONDecodeError as exc:
        raise ClassificationServiceError(
            f"Unparseable classification response: {exc.msg}"
        ) from exc
    if not isinstance(raw, dict):
        raise ClassificationServiceError("Classification response is not a JSON object")
    try:
        return ClassificationResponse.model_validate(raw)
    except ValidationError as exc:
        raise ClassificationServiceError(
            f"Invalid classification response: {exc.error_count()} error(s)"
        ) from exc


def _backoff_delay(base: float, attempt: int) -> float:
    """Formula: ``base * 2**attempt``."""
    return base * (2**attempt)
