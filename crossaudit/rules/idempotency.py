"""Idempotency guard detection for webhook handlers.

The guard search is file-scoped: a guard anywhere in the file, even after
the side effect, marks the handler idempotent. It does not check that the
guard dominates the side effect at runtime.
"""

import re

from crossaudit.rules.base import Classification, Evidence, Finding, RuleContext
from crossaudit.rules.webhook_handler import is_test_or_debug_path, is_webhook_handler

RULE_NAME = "webhook-idempotency"

SIDE_EFFECT_PATTERNS = (
    ("document-create", re.compile(r"(?<!Object)\.create\s*\(")),
    ("document-createOrReplace", re.compile(r"\.createOrReplace\s*\(")),
    (
        "document-patch",
        re.compile(r"\.patch\s*\([^;]*?\)\s*\.\s*(set|setIfMissing|inc|dec|append|insert|unset)\s*\("),
    ),
    ("email-send", re.compile(r"\.emails\.send\s*\(|\bsendEmail\s*\(")),
    ("refund-create", re.compile(r"\.refunds\.create\s*\(")),
    ("transfer-create", re.compile(r"\.transfers\.create\s*\(")),
    ("shipment-create", re.compile(r"\bShipment\.create\s*\(")),
    ("label-buy", re.compile(r"\.buy\s*\(")),
)

GUARD_PATTERNS = (
    re.compile(r"\bcreateIfNotExists\s*\("),
    re.compile(r"\*\[[^\]]*\b(eventId|event_id|stripeEventId|webhookEventId|lastEventId)\b[^\]]*\]"),
    re.compile(r"\bgetDocument\s*\([^)]*\bevent\.id\b"),
    re.compile(r"\bif\s*\(\s*!?\s*existing\w*\b"),
    re.compile(r"idempoten", re.IGNORECASE),
    re.compile(r"already\s+processed", re.IGNORECASE),
)


def find_side_effects(content: str) -> list[tuple[str, int]]:
    """``(kind, offset)`` for every side-effecting call, in file order."""
    hits = []
    for kind, pattern in SIDE_EFFECT_PATTERNS:
        hits.extend((kind, m.start()) for m in pattern.finditer(content))
    return sorted(hits, key=lambda hit: hit[1])


def has_side_effects(content: str) -> bool:
    return any(pattern.search(content) for _, pattern in SIDE_EFFECT_PATTERNS)


def has_idempotency_guard(content: str) -> bool:
    return any(pattern.search(content) for pattern in GUARD_PATTERNS)


def detect_idempotency_violation(
    file_path: str, content: str, context: RuleContext | None = None
) -> Finding | None:
    """One finding for an unguarded webhook handler with side effects, else None."""
    if is_test_or_debug_path(file_path) or not is_webhook_handler(file_path, content):
        return None

    if not has_side_effects(content) or has_idempotency_guard(content):
        return None

    side_effects = find_side_effects(content)

    ctx = context or RuleContext(file_path=file_path, content=content)
    lines = [ctx.line_for(offset) for _, offset in side_effects]
    evidence = [
        Evidence(type="sideEffect", detail=kind, file=file_path, line_number=line)
        for (kind, _), line in zip(side_effects, lines)
    ]

    return Finding(
        classification=Classification.IDEMPOTENCY,
        reason="Webhook handler performs side effects without an idempotency guard",
        file=file_path,
        line_numbers=sorted(set(lines)),
        evidence=evidence,
        repo=ctx.repo,
        rule=RULE_NAME,
        snippet=ctx.snippet(side_effects[0][1]),
        recommended_fix=(
            "Record the provider event id and skip events already processed "
            "(createIfNotExists or an existence query keyed by event id)."
        ),
    )
