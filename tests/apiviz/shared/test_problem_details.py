"""Tests for apiviz._shared.problem_details module."""

from __future__ import annotations

import json
from pathlib import Path

from apiviz._shared.problem_details import (
    ProblemDetailsParams,
    build_problem_details,
    render_problem,
    tool_digest_mismatch_problem_details,
    tool_disallowed_problem_details,
    tool_failure_problem_details,
    tool_missing_problem_details,
    tool_timeout_problem_details,
)


class TestBuildProblemDetails:
    """Tests for build_problem_details function."""

    def test_extensions_are_flattened(self) -> None:
        problem = build_problem_details(
            ProblemDetailsParams(
                type="https://apiviz.dev/problems/example",
                title="Example",
                status=400,
                detail="Something happened",
                instance="urn:apiviz:example:run",
                extensions={"document": "a/b.yaml"},
            )
        )
        assert problem["document"] == "a/b.yaml"
        assert problem["status"] == 400

    def test_empty_extensions_add_nothing(self) -> None:
        problem = build_problem_details(
            ProblemDetailsParams(
                type="t", title="t", status=500, detail="d", instance="i", extensions={}
            )
        )
        assert set(problem) == {"type", "title", "status", "detail", "instance"}

    def test_extensions_never_replace_standard_members(self) -> None:
        problem = build_problem_details(
            ProblemDetailsParams(
                type="t", title="t", status=500, detail="d", instance="i", extensions={"status": 1}
            )
        )
        assert problem["status"] == 500


class TestToolProblemDetails:
    """Tests for subprocess-related payloads."""

    def test_failure_records_command_and_returncode(self) -> None:
        problem = tool_failure_problem_details(
            ["/usr/bin/npx", "mmdc"], returncode=2, detail="boom"
        )
        assert problem["instance"] == "urn:tool:npx:exit-2"
        assert problem["command"] == ["/usr/bin/npx", "mmdc"]
        assert problem["returncode"] == 2
        assert problem["type"] == "https://apiviz.dev/problems/tool-failure"

    def test_timeout_detail_mentions_duration(self) -> None:
        problem = tool_timeout_problem_details(["node", "-e", "x"], timeout=1.5)
        assert problem["detail"] == "Command 'node' timed out after 1.5 seconds"
        assert problem["timeout"] == 1.5
        assert problem["status"] == 504

    def test_timeout_without_budget(self) -> None:
        problem = tool_timeout_problem_details([], timeout=None)
        assert problem["detail"] == "Command timed out"
        assert "timeout" not in problem
        assert problem["instance"] == "urn:tool:<unknown>:timeout"

    def test_missing_falls_back_to_executable(self) -> None:
        problem = tool_missing_problem_details([], executable="mmdc", detail="not on PATH")
        assert problem["command"] == ["mmdc"]
        assert problem["instance"] == "urn:tool:mmdc:missing"

    def test_disallowed_lists_allowlist(self) -> None:
        problem = tool_disallowed_problem_details(
            ["curl"], executable=Path("/usr/bin/curl"), allowlist=["node"]
        )
        assert problem["status"] == 403
        assert problem["allowlist"] == ["node"]
        assert problem["executable"] == "/usr/bin/curl"

    def test_digest_mismatch_omits_unknown_actual_digest(self) -> None:
        problem = tool_digest_mismatch_problem_details(
            ["node"],
            executable=Path("/usr/bin/node"),
            expected_digest="abc",
            actual_digest=None,
            reason="executable-missing",
        )
        assert problem["expectedDigest"] == "abc"
        assert "actualDigest" not in problem
        assert problem["reason"] == "executable-missing"


def test_render_problem_is_json() -> None:
    problem = tool_failure_problem_details(["false"], returncode=1, detail="exit 1")
    assert json.loads(render_problem(problem))["type"].endswith("/tool-failure")
