"""
Retry policy shared by the outbound Replicate calls and the style service client.
"""
import logging
from typing import Awaitable, Callable, Optional

import httpx

from .errors import NetworkError

logger = logging.getLogger(__name__)

DEFAULT_MAX_ATTEMPTS = 3
BODY_SNIPPET_CHARS = 500

# Failure text fragments that point at a connectivity problem.
TRANSIENT_MARKERS = ("timeout", "connection", "network", "host", "dns")


def should_retry(message: Optional[str], status_code: Optional[int] = None) -> bool:
    """Return True when a failed round trip is worth sending again."""
    if status_code is not None:
        if 400 <= status_code < 500:
            return False
        if status_code >= 500:
            return status_code == 503
    text = (message or "").lower()
    return any(marker in text for marker in TRANSIENT_MARKERS)


def describe_transport_error(exc: httpx.TransportError) -> str:
    detail = str(exc) or type(exc).__name__
    if isinstance(exc, httpx.TimeoutException):
        return f"timeout: {detail}"
    return f"connection error: {detail}"


class RetryPolicy:
    def __init__(self, max_attempts: int = DEFAULT_MAX_ATTEMPTS):
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.max_attempts = max_attempts

    async def send(
        self,
        request: Callable[[], Awaitable[httpx.Response]],
        description: str,
    ) -> httpx.Response:
        """Run ``request`` until it returns a non-error response or retries run out.

        Each attempt calls ``request`` again, so the full body is re-sent.
        Raises NetworkError with the last status code and body snippet.
        """
        for attempt in range(1, self.max_attempts + 1):
            try:
                response = await request()
            except httpx.TransportError as e:
                message = describe_transport_error(e)
                if attempt < self.max_attempts and should_retry(message):
                    logger.warning(
                        "%s failed (attempt %d/%d): %s. Retrying...",
                        description,
                        attempt,
                        self.max_attempts,
                        message,
                    )
                    continue
                raise NetworkError(f"{description} failed: {message}") from e

            if response.status_code < 400:
                return response

            body = response.text[:BODY_SNIPPET_CHARS]
            if attempt < self.max_attempts and should_retry(body, response.status_code):
                logger.warning(
                    "%s returned %s (attempt %d/%d). Retrying...",
                    description,
                    response.status_code,
                    attempt,
                    self.max_attempts,
                )
                continue
            raise NetworkError(
                f"{description} error {response.status_code}: {body}",
                status_code=response.status_code,
                body=body,
            )
        # Unreachable: the last attempt always returns or raises.
        raise NetworkError(f"{description} failed after {self.max_attempts} attempts")
