"""summary / ci-verdict: aggregate every step result into the gate decision."""

from pathlib import Path

from crossaudit.pipeline.structures import StepResult, StepStatus, Verdict
from crossaudit.utils.constants import SUMMARY_JSON, SUMMARY_MD, VERDICT_JSON
from crossaudit.utils.helpers import utc_now_iso, write_json, write_text


def compute_verdict(results: dict[str, StepResult]) -> Verdict:
    """FAIL if any step failed, or if any step requires enforcement outside a WARN phase."""
    reasons = []
    integrity_errors = []
    for name, result in sorted(results.items()):
        if result.threw:
            integrity_errors.append(f"{name}: {result.error}")
        if result.status == StepStatus.FAIL:
            reasons.append(f"{name} status FAIL" + (f": {result.error}" if result.error else ""))
        elif result.requires_enforcement and result.phase != "WARN":
            reasons.append(f"{name} requires enforcement (phase {result.phase})")

    return Verdict(
        status="FAIL" if reasons else "PASS",
        reasons=tuple(reasons),
        phased_enforcement={name: r.phase for name, r in sorted(results.items())},
        integrity_errors=tuple(integrity_errors),
    )


def build_summary(results: dict[str, StepResult], verdict: Verdict) -> dict:
    return {
        "generatedAt": utc_now_iso(),
        "status": verdict.status,
        "steps": {
            name: {"status": r.status.value, "requiresEnforcement": r.requires_enforcement}
            for name, r in sorted(results.items())
        },
    }


def render_markdown(results: dict[str, StepResult], verdict: Verdict) -> str:
    lines = [
        "# Audit Summary",
        "",
        f"Verdict: **{verdict.status}**",
        "",
        "| Step | Status | Requires enforcement | Phase | Approved |",
        "|---|---|---|---|---|",
    ]
    for name, r in sorted(results.items()):
        lines.append(
            f"| {name} | {r.status.value} | {'yes' if r.requires_enforcement else 'no'} "
            f"| {r.phase} | {'yes' if r.enforcement_approved else 'no'} |"
        )
    if verdict.reasons:
        lines += ["", "## Reasons", ""]
        lines += [f"- {reason}" for reason in verdict.reasons]
    if verdict.integrity_errors:
        lines += ["", "## Integrity errors", ""]
        lines += [f"- {error}" for error in verdict.integrity_errors]
    skipped = [(name, r.reason) for name, r in sorted(results.items()) if r.status == StepStatus.SKIPPED]
    if skipped:
        lines += ["", "## Skipped", ""]
        lines += [f"- {name}: {reason}" for name, reason in skipped]
    return "\n".join(lines) + "\n"


def write_summary(run_dir: Path, results: dict[str, StepResult], verdict: Verdict) -> None:
    run_dir = Path(run_dir)
    write_json(run_dir / SUMMARY_JSON, build_summary(results, verdict))
    write_text(run_dir / SUMMARY_MD, render_markdown(results, verdict))
    write_json(run_dir / VERDICT_JSON, verdict.to_dict())
