"""Tests for apiviz._shared.retry module."""

from __future__ import annotations

import pytest

from apiviz._shared.process import ToolExecutionError
from apiviz._shared.retry import RetryPolicy


def _flaky(failures: int) -> tuple[list[int], object]:
    attempts: list[int] = []

    def _call() -> str:
        attempts.append(len(attempts) + 1)
        if len(attempts) <= failures:
            message = "transient"
            raise ToolExecutionError(message, command=["mmdc"], returncode=1)
        return "ok"

    return attempts, _call


class TestRetryPolicy:
    """Tests for RetryPolicy.call."""

    def test_single_attempt_by_default(self) -> None:
        attempts, call = _flaky(failures=1)
        with pytest.raises(ToolExecutionError, match="transient"):
            RetryPolicy().call(call)  # type: ignore[arg-type]
        assert attempts == [1]

    def test_retries_tool_errors_until_success(self) -> None:
        attempts, call = _flaky(failures=2)
        result = RetryPolicy(attempts=3).call(call)  # type: ignore[arg-type]
        assert result == "ok"
        assert attempts == [1, 2, 3]

    def test_reraises_last_error_when_budget_exhausted(self) -> None:
        attempts, call = _flaky(failures=5)
        with pytest.raises(ToolExecutionError):
            RetryPolicy(attempts=2).call(call)  # type: ignore[arg-type]
        assert attempts == [1, 2]

    def test_other_exceptions_are_not_retried(self) -> None:
        calls: list[int] = []

        def _broken() -> None:
            calls.append(1)
            message = "not a tool failure"
            raise ValueError(message)

        with pytest.raises(ValueError, match="not a tool failure"):
            RetryPolicy(attempts=3).call(_broken)
        assert calls == [1]
