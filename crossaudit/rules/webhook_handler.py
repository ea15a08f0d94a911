"""Webhook-handler classification.

A file is a webhook handler when it is not excluded and either

1. its path matches a handler-location allowlist, or
2. its content shows all three signals together: a handler export,
   signature verification, and an event-shape access.

Any single content signal on its own is not enough.
"""

import re

from crossaudit.utils.helpers import normalize_path

# Paths that are never handlers, whatever they contain
EXCLUDED_PATH_PATTERNS = (
    re.compile(r"(^|/)(schemaTypes|schemas)/"),
    re.compile(r"(^|/)(components|desk|structure|plugins|views)/"),
    re.compile(r"(^|/)docs?/"),
    re.compile(r"\.mdx?$"),
    re.compile(r"(^|/)(__tests__|tests?|debug)/"),
    re.compile(r"\.(test|spec)\.[cm]?[jt]sx?$"),
    re.compile(r"(^|/)[^/]*(test-|debug-)[^/]*$"),
    re.compile(r"(^|/)(scripts|tools|lib|utils?|shared)/"),
)

TEST_OR_DEBUG_PATTERNS = (
    re.compile(r"(^|/)(__tests__|tests?|debug)/"),
    re.compile(r"\.(test|spec)\.[cm]?[jt]sx?$"),
    re.compile(r"(^|/)[^/]*(test-|debug-)[^/]*$"),
)

ALLOWLIST_PATH_PATTERNS = (
    re.compile(r"(^|/)(netlify/)?functions/.*webhook", re.IGNORECASE),
    re.compile(r"(^|/)netlify/functions/[^/]*events?\.[cm]?[jt]sx?$", re.IGNORECASE),
    re.compile(r"(^|/)(src/)?pages/api/.*webhook", re.IGNORECASE),
    re.compile(r"(^|/)api/(.*/)?webhooks?/", re.IGNORECASE),
)

REACT_IMPORT = re.compile(
    r"""(from\s+['"](react|react-dom|@sanity/ui)(/[^'"]*)?['"]|require\(\s*['"]react['"]\s*\))"""
)
SCHEMA_DEFINITION = re.compile(r"\bdefineType\s*\(")

HANDLER_EXPORT_PATTERNS = (
    re.compile(r"export\s+const\s+handler\b"),
    re.compile(r"export\s+async\s+function\s+handler\b"),
    re.compile(r"exports\.handler\b"),
    re.compile(r"module\.exports\.handler\b"),
    re.compile(r"export\s+default\b"),
    re.compile(r"export\s+(?:async\s+)?(?:const|function)\s+(GET|POST|PUT|PATCH|DELETE)\b"),
)

SIGNATURE_PATTERNS = (
    re.compile(r"\bconstructEvent(?:Async)?\s*\("),
    re.compile(
        r"""['"](stripe-signature|x-[a-z-]*signature[a-z-]*|svix-signature|x-hmac-[a-z0-9-]+|webhook-signature)['"]""",
        re.IGNORECASE,
    ),
    re.compile(r"\bverify\w*Signature\b|\bverifyWebhook\w*\b", re.IGNORECASE),
)

_EVENT_ID_READ = re.compile(r"\b([A-Za-z_$][\w$]*)\.id\b")
EVENT_SHAPE_PATTERNS = (
    re.compile(r"\.data\.object\b"),
    re.compile(r"\b(eventType|event_type)\b"),
)


def is_excluded(file_path: str, content: str = "") -> bool:
    """True if the file can never be a webhook handler."""
    path = normalize_path(file_path)
    lowered = path.lower()

    if lowered.endswith(".d.ts") and "webhook" not in content.lower():
        return True
    if any(p.search(path) for p in EXCLUDED_PATH_PATTERNS):
        return True
    if SCHEMA_DEFINITION.search(content):
        return True
    if re.search(r"\.[jt]sx$", lowered) and REACT_IMPORT.search(content):
        return True
    return False


def is_test_or_debug_path(file_path: str) -> bool:
    path = normalize_path(file_path)
    return any(p.search(path) for p in TEST_OR_DEBUG_PATTERNS)


def matches_allowlist(file_path: str) -> bool:
    path = normalize_path(file_path)
    return any(p.search(path) for p in ALLOWLIST_PATH_PATTERNS)


def has_handler_export(content: str) -> bool:
    return any(p.search(content) for p in HANDLER_EXPORT_PATTERNS)


def has_signature_verification(content: str) -> bool:
    return any(p.search(content) for p in SIGNATURE_PATTERNS)


def has_event_shape(content: str) -> bool:
    """``x.id`` and ``x.type`` read off the same object, or a payload/event-type access."""
    if any(p.search(content) for p in EVENT_SHAPE_PATTERNS):
        return True
    for name in {m.group(1) for m in _EVENT_ID_READ.finditer(content)}:
        if re.search(rf"\b{re.escape(name)}\.type\b", content):
            return True
    return False


def content_signals(content: str) -> dict[str, bool]:
    return {
        "handlerExport": has_handler_export(content),
        "signatureVerification": has_signature_verification(content),
        "eventShape": has_event_shape(content),
    }


def classify(file_path: str, content: str) -> str | None:
    """How a file qualifies as a webhook handler: ``"path"``, ``"content"`` or None."""
    if is_excluded(file_path, content):
        return None
    if matches_allowlist(file_path):
        return "path"
    if all(content_signals(content).values()):
        return "content"
    return None


def is_webhook_handler(file_path: str, content: str) -> bool:
    return classify(file_path, content) is not None
