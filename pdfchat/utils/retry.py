"""Bounded retry with exponential backoff for external capability calls.

Every call into the embedding service, the vector store or the text
generator goes through a :class:`RetryPolicy`.  Each attempt runs under a
per-call timeout; transient failures and timeouts are retried with a
``base_delay * 2 ** (attempt - 1)`` backoff capped at ``max_delay``.
Anything else (terminal input, configuration) propagates immediately.
When the attempts are exhausted the last error is re-raised so the caller
decides whether to requeue a job or surface a failure.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Awaitable, Callable, TypeVar

import structlog

from pdfchat.utils.errors import DeadlineExceededError, PDFChatError, TransientCapabilityError
from pdfchat.utils.logging import get_logger

_T = TypeVar("_T")

_logger: structlog.BoundLogger = get_logger(__name__)


@dataclass(frozen=True)
class RetryPolicy:
    """Attempt budget, backoff curve and per-call timeout for one capability."""

    max_attempts: int = 3
    base_delay: float = 0.5
    max_delay: float = 8.0
    timeout: float | None = 30.0

    def delay_for(self, attempt: int) -> float:
        """Return the sleep before retry number *attempt* (1-based)."""
        return min(self.max_delay, self.base_delay * (2 ** (attempt - 1)))

    async def run(
        self,
        operation: Callable[[], Awaitable[_T]],
        *,
        description: str,
        logger: structlog.BoundLogger | None = None,
    ) -> _T:
        """Await ``operation()`` until it succeeds or the attempts run out.

        Parameters
        ----------
        operation:
            Zero-argument callable returning a fresh awaitable per attempt.
        description:
            Short event-style label used in log lines, e.g. ``"embed_batch"``.
        logger:
            Optional bound logger so retries carry the caller's context.
        """
        log = logger or _logger
        attempt = 1

        while True:
            try:
                if self.timeout is None:
                    return await operation()
                return await asyncio.wait_for(operation(), timeout=self.timeout)
            # wait_for cancels the attempt; the timeout counts as one transient failure.
            except asyncio.TimeoutError:
                last_error: PDFChatError = DeadlineExceededError(
                    message=f"{description} timed out after {self.timeout}s",
                )
            # Anything outside the transient family propagates on the first attempt.
            except TransientCapabilityError as exc:
                last_error = exc

            if attempt >= self.max_attempts:
                log.error(
                    "capability_retries_exhausted",
                    operation=description,
                    attempts=attempt,
                    error=str(last_error),
                )
                raise last_error

            backoff = self.delay_for(attempt)
            log.warning(
                "capability_retry",
                operation=description,
                attempt=attempt,
                max_attempts=self.max_attempts,
                backoff_s=backoff,
                error=str(last_error),
            )
            await asyncio.sleep(backoff)
            attempt += 1
