"""HTTP client for the structured extraction endpoint, with bounded retry."""

from __future__ import annotations

import asyncio
import logging
import re
from dataclasses import asdict, dataclass, field
from typing import Any, Awaitable, Callable

import httpx

from ..errors import ExtractionServiceError, UnreadableDocumentError
from ..models import ExtractionAttempt


logger = logging.getLogger(__name__)

_LINE_SEPARATORS = re.compile(r"\r\n?|[\u2028\u2029]")
_HSPACE = re.compile(r"[^\S\n]+")
_NOT_PRINTABLE_ASCII = re.compile(r"[^\x20-\x7E\n]")
_BLANK_RUNS = re.compile(r"\n{3,}")


def sanitize_for_transport(text: str) -> str:
    """Reduce text to printable ASCII plus newlines."""
    text = _LINE_SEPARATORS.sub("\n", text)
    text = _HSPACE.sub(" ", text)
    text = _NOT_PRINTABLE_ASCII.sub("", text)
    text = "\n".join(line.strip() for line in text.split("\n"))
    return _BLANK_RUNS.sub("\n\n", text).strip()


@dataclass
class ExtractionResponse:
    """A parsed payload and the failed attempts that preceded it."""

    payload: dict[str, Any]
    attempts: int
    failures: list[ExtractionAttempt] = field(default_factory=list)


class _RetryableFailure(Exception):
    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


def _error_detail(response: httpx.Response) -> str:
    try:
        data = response.json()
    except ValueError:
        return response.text[:200] or response.reason_phrase
    if isinstance(data, dict):
        return str(data.get("details") or data.get("message") or data.get("error") or data)
    return str(data)


class ExtractionClient:
    """Send CV text to the extraction endpoint.

    Policy:
    - 4xx responses are fatal and never retried
    - network errors, other non-2xx, non-JSON or non-object bodies are
      retried, waiting ``min(max_delay, base_delay * 2 ** (n - 1))`` after
      failed attempt ``n``
    """

    def __init__(
        self,
        endpoint_url: str,
        http_client: httpx.AsyncClient,
        max_attempts: int = 3,
        base_delay: float = 1.0,
        max_delay: float = 5.0,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.endpoint_url = endpoint_url
        self.http = http_client
        self.max_attempts = max_attempts
        self.base_delay = base_delay
        self.max_delay = max_delay
        self._sleep = sleep

    def backoff(self, attempt: int) -> float:
        """Delay after failed attempt number ``attempt`` (1-based)."""
        return min(self.max_delay, self.base_delay * 2 ** (attempt - 1))

    async def submit(
        self,
        owner_id: str,
        file_url: str,
        file_name: str,
        text: str,
    ) -> ExtractionResponse:
        body = {
            "ownerId": owner_id,
            "fileUrl": file_url,
            "fileName": file_name,
            "text": sanitize_for_transport(text),
        }
        if text.strip() and not body["text"]:
            raise UnreadableDocumentError(
                "No printable text left to send for extraction",
                {"characters": len(text)},
            )
        missing = [k for k, v in body.items() if not v]
        if missing:
            raise ExtractionServiceError(
                f"Missing required fields for extraction request: {', '.join(missing)}",
                fatal=True,
                attempts=0,
            )

        failures: list[ExtractionAttempt] = []
        for number in range(1, self.max_attempts + 1):
            try:
                payload = await self._post(body, number)
            except _RetryableFailure as e:
                delay = self.backoff(number) if number < self.max_attempts else 0.0
                failures.append(ExtractionAttempt(number, str(e), e.status_code, delay))
                logger.warning(
                    "Extraction attempt %d/%d for %s failed: %s",
                    number, self.max_attempts, owner_id, e,
                )
                if delay:
                    await self._sleep(delay)
                continue

            logger.info("Extraction for %s succeeded on attempt %d", owner_id, number)
            return ExtractionResponse(payload=payload, attempts=number, failures=failures)

        last = failures[-1]
        raise ExtractionServiceError(
            f"Extraction failed after {self.max_attempts} attempts: {last.error}",
            fatal=False,
            attempts=self.max_attempts,
            status_code=last.status_code,
            details={"attempts": [asdict(f) for f in failures]},
        )

    async def _post(self, body: dict[str, str], number: int) -> dict[str, Any]:
        try:
            response = await self.http.post(
                self.endpoint_url,
                json=body,
                headers={"Accept": "application/json"},
            )
        except httpx.HTTPError as e:
            raise _RetryableFailure(f"{type(e).__name__}: {e}") from e

        if 400 <= response.status_code < 500:
            raise ExtractionServiceError(
                f"Extraction request rejected ({response.status_code}): {_error_detail(response)}",
                fatal=True,
                attempts=number,
                status_code=response.status_code,
            )
        if not response.is_success:
            raise _RetryableFailure(
                f"Server error {response.status_code}: {_error_detail(response)}",
                status_code=response.status_code,
            )

        try:
            payload = response.json()
        except ValueError as e:
            raise _RetryableFailure("Response body is not JSON", response.status_code) from e
        if not isinstance(payload, dict):
            raise _RetryableFailure("Invalid response format from server", response.status_code)
        return payload
