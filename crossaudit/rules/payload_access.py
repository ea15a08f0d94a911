"""Unsafe payload access detection.

Flags every ``<event>.data.object`` dereference in a webhook handler that
is not preceded, in file order, by a validation signature. Only text
before the access is considered; control flow is not modelled.
"""

import re

from crossaudit.rules.base import Classification, Evidence, Finding, RuleContext
from crossaudit.rules.webhook_handler import is_webhook_handler

RULE_NAME = "webhook-payload-access"

PAYLOAD_ACCESS = re.compile(r"\b(event|evt|payload|body|webhookEvent|stripeEvent)\.data\.object\b")

VALIDATION_PATTERNS = (
    re.compile(r"\w+[Ss]chema\.(safe)?[Pp]arse(Async)?\s*\("),
    re.compile(r"\bvalidate\w*\s*\("),
    re.compile(r"\w*[Vv]alidator\."),
    re.compile(r"\bconstructEvent(Async)?\s*\("),
    re.compile(r"\bif\s*\(\s*!?\s*\w+\.data\.object\b"),
    re.compile(r"\btypeof\s+[\w.]+\.object\b"),
    re.compile(r"\.object\.object\s*==="),
)


def find_payload_access(content: str) -> list[re.Match]:
    return list(PAYLOAD_ACCESS.finditer(content))


def has_validation_before(content: str, index: int) -> bool:
    preceding = content[:index]
    return any(pattern.search(preceding) for pattern in VALIDATION_PATTERNS)


def detect_unsafe_payload_access(
    file_path: str, content: str, context: RuleContext | None = None
) -> list[Finding]:
    """One finding per unvalidated access; empty list when there are none."""
    if not is_webhook_handler(file_path, content):
        return []

    ctx = context or RuleContext(file_path=file_path, content=content)
    findings = []
    for match in find_payload_access(content):
        # the access itself may be the check, e.g. `if (!event.data.object)`
        if has_validation_before(content, match.end()):
            continue
        line = ctx.line_for(match.start())
        findings.append(
            Finding(
                classification=Classification.PAYLOAD_ACCESS,
                reason=f"'{match.group(0)}' read before any payload validation",
                file=file_path,
                line_numbers=[line],
                evidence=[
                    Evidence(type="payloadAccess", detail=match.group(0), file=file_path, line_number=line)
                ],
                repo=ctx.repo,
                rule=RULE_NAME,
                snippet=ctx.snippet(match.start()),
                recommended_fix=(
                    "Validate the event payload (schema parse or constructEvent) "
                    "before reading data.object."
                ),
            )
        )
    return findings
