"""Bounded retry around external tool invocations.

Only :class:`~apiviz._shared.process.ToolExecutionError` is retried; every
other exception propagates on the first attempt. With ``attempts=1`` the
wrapped callable runs exactly once.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from tenacity import (
    RetryCallState,
    Retrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_fixed,
)

from apiviz._shared.logging import get_logger
from apiviz._shared.process import ToolExecutionError

if TYPE_CHECKING:
    from collections.abc import Callable

LOGGER = get_logger(__name__)


def _log_retry(retry_state: RetryCallState) -> None:
    outcome = retry_state.outcome
    exc = outcome.exception() if outcome is not None else None
    LOGGER.warning(
        "Retrying external tool",
        extra={
            "operation": "retry",
            "attempt": retry_state.attempt_number,
            "error": str(exc) if exc is not None else None,
        },
    )


@dataclass(frozen=True, slots=True)
class RetryPolicy:
    """Attempt budget and fixed pause between attempts.

    Attributes
    ----------
    attempts : int
        Total attempts including the first. Values below 1 are treated as 1.
    wait_seconds : float
        Pause between attempts.
    """

    attempts: int = 1
    wait_seconds: float = 0.0

    def build(self) -> Retrying:
        """Return a configured :class:`tenacity.Retrying` instance."""
        return Retrying(
            stop=stop_after_attempt(max(1, self.attempts)),
            wait=wait_fixed(max(0.0, self.wait_seconds)),
            retry=retry_if_exception_type(ToolExecutionError),
            before_sleep=_log_retry,
            reraise=True,
        )

    def call[T](self, fn: Callable[[], T]) -> T:
        """Invoke ``fn`` under this policy and return its result.

        The last :class:`ToolExecutionError` is re-raised once the attempt
        budget is exhausted.
        """
        return self.build()(fn)


__all__ = ["RetryPolicy"]
