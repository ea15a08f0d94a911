"""Tests for verdict computation and summary artifacts."""

import json

from crossaudit.pipeline.structures import StepResult, StepStatus
from crossaudit.steps.summary import build_summary, compute_verdict, render_markdown, write_summary


def result(name, status=StepStatus.PASS, requires=False, phase="BLOCK", **kwargs):
    return StepResult(name=name, status=status, requires_enforcement=requires, phase=phase, **kwargs)


class TestComputeVerdict:
    def test_pass_when_nothing_requires_enforcement(self):
        verdict = compute_verdict(
            {
                "a": result("a"),
                "b": result("b", StepStatus.SKIPPED, reason="nothing to do"),
                "c": result("c", StepStatus.WARN),
            }
        )

        assert verdict.status == "PASS"
        assert verdict.reasons == ()
        assert verdict.phased_enforcement == {"a": "BLOCK", "b": "BLOCK", "c": "BLOCK"}

    def test_blocking_enforcement_fails(self):
        verdict = compute_verdict({"webhook-drift-report": result("webhook-drift-report", StepStatus.WARN, True)})

        assert verdict.status == "FAIL"
        assert verdict.reasons == ("webhook-drift-report requires enforcement (phase BLOCK)",)
        assert verdict.integrity_errors == ()

    def test_warn_phase_is_advisory(self):
        verdict = compute_verdict({"schema-vs-query": result("schema-vs-query", StepStatus.WARN, True, phase="WARN")})
        assert verdict.status == "PASS"

    def test_thrown_step_is_integrity_error(self):
        failed = StepResult.failed("query-index", "RuntimeError: boom")
        verdict = compute_verdict({"query-index": failed})

        assert verdict.status == "FAIL"
        assert verdict.reasons == ("query-index status FAIL: RuntimeError: boom",)
        assert verdict.integrity_errors == ("query-index: RuntimeError: boom",)


def test_summary_and_markdown():
    results = {
        "a": result("a", StepStatus.WARN, True),
        "b": result("b", StepStatus.SKIPPED, reason="Command schema skips b"),
    }
    verdict = compute_verdict(results)

    summary = build_summary(results, verdict)
    assert summary["status"] == "FAIL"
    assert summary["steps"]["a"] == {"status": "WARN", "requiresEnforcement": True}

    markdown = render_markdown(results, verdict)
    assert "Verdict: **FAIL**" in markdown
    assert "| a | WARN | yes | BLOCK | no |" in markdown
    assert "- b: Command schema skips b" in markdown


def test_write_summary(tmp_path):
    results = {"a": result("a")}
    verdict = compute_verdict(results)

    write_summary(tmp_path, results, verdict)

    assert json.loads((tmp_path / "ci-verdict.json").read_text())["status"] == "PASS"
    assert json.loads((tmp_path / "summary.json").read_text())["steps"] == {
        "a": {"status": "PASS", "requiresEnforcement": False}
    }
    assert (tmp_path / "summary.md").read_text().startswith("# Audit Summary")
