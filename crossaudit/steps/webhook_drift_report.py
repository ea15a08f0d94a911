"""webhook-drift-report: idempotency and payload validation of webhook handlers."""

from concurrent.futures import ThreadPoolExecutor

from crossaudit.pipeline.structures import StepResult, StepStatus
from crossaudit.rules.base import Finding, RuleContext
from crossaudit.rules.idempotency import detect_idempotency_violation
from crossaudit.rules.payload_access import detect_unsafe_payload_access
from crossaudit.rules.webhook_handler import classify
from crossaudit.scanner import SourceFile
from crossaudit.steps import commands

NAME = "webhook-drift-report"
COMMANDS = commands()


def empty_payload() -> dict:
    return {"handlers": [], "findings": [], "counts": {"handlers": 0, "idempotency": 0, "payloadAccess": 0}}


def analyze_file(source_file: SourceFile, snippet_chars: int = 200) -> tuple[dict | None, list[Finding]]:
    content = source_file.read()
    how = classify(source_file.path, content)
    if how is None:
        return None, []

    ctx = RuleContext(
        file_path=source_file.path, content=content, repo=source_file.repo, snippet_chars=snippet_chars
    )
    findings: list[Finding] = []
    idempotency = detect_idempotency_violation(source_file.path, content, ctx)
    if idempotency:
        findings.append(idempotency)
    findings.extend(detect_unsafe_payload_access(source_file.path, content, ctx))

    handler = {"file": source_file.path, "repo": source_file.repo, "classification": how}
    return handler, findings


def run(files: list[SourceFile], max_workers: int = 8, snippet_chars: int = 200) -> StepResult:
    if not files:
        return StepResult.skipped(NAME, "No code files found", empty_payload())

    handlers = []
    findings: list[Finding] = []
    with ThreadPoolExecutor(max_workers=max(1, max_workers)) as executor:
        for handler, file_findings in executor.map(lambda f: analyze_file(f, snippet_chars), files):
            if handler:
                handlers.append(handler)
                findings.extend(file_findings)

    findings.sort(key=lambda f: f.sort_key())
    counts = {
        "handlers": len(handlers),
        "idempotency": sum(1 for f in findings if f.classification.value == "idempotency"),
        "payloadAccess": sum(1 for f in findings if f.classification.value == "payloadAccess"),
    }
    payload = {
        "handlers": sorted(handlers, key=lambda h: (h["repo"], h["file"])),
        "findings": [f.to_dict() for f in findings],
        "counts": counts,
    }
    return StepResult(
        name=NAME,
        status=StepStatus.WARN if findings else StepStatus.PASS,
        payload=payload,
        requires_enforcement=bool(findings),
    )
