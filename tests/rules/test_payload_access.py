"""Tests for the unsafe-payload-access detector."""

from crossaudit.rules.base import Classification
from crossaudit.rules.payload_access import (
    detect_unsafe_payload_access,
    find_payload_access,
    has_validation_before,
)

BASE = """
export default async function handler(req, res) {
  const signature = req.headers['stripe-signature']
  const event = verifySignature(req.body, signature)
  console.log(event.id, event.type)
}
"""

HANDLER_PATH = "netlify/functions/stripe-webhook.ts"


def test_find_payload_access():
    assert len(find_payload_access("event.data.object.amount")) == 1
    assert len(find_payload_access("payload.data.object; evt.data.object")) == 2
    assert find_payload_access("event.data.items") == []


def test_has_validation_before():
    assert has_validation_before("webhookSchema.parse(event)\n", 30)
    assert not has_validation_before("const x = 1\nwebhookSchema.parse(event)", 5)


def test_unvalidated_access_is_reported():
    content = f"{BASE}\nconst amount = event.data.object.amount_total"
    findings = detect_unsafe_payload_access(HANDLER_PATH, content)

    assert len(findings) == 1
    assert findings[0].classification == Classification.PAYLOAD_ACCESS
    assert findings[0].line_numbers == [8]
    assert findings[0].snippet == "const amount = event.data.object.amount_total"


def test_each_occurrence_is_reported_individually():
    content = f"{BASE}\nconst a = event.data.object.id\nconst b = event.data.object.amount"
    assert len(detect_unsafe_payload_access(HANDLER_PATH, content)) == 2


def test_schema_parse_before_access_is_safe():
    content = f"{BASE}\nwebhookSchema.parse(event.data.object)\nconst amount = event.data.object.amount_total"
    assert detect_unsafe_payload_access(HANDLER_PATH, content) == []


def test_constructed_event_before_access_is_safe():
    content = (
        f"{BASE}\nstripe.webhooks.constructEvent(req.body, signature, secret)\n"
        "const obj = event.data.object"
    )
    assert detect_unsafe_payload_access(HANDLER_PATH, content) == []


def test_validation_after_access_does_not_count():
    content = f"{BASE}\nconst obj = event.data.object\nwebhookSchema.parse(obj)"
    assert len(detect_unsafe_payload_access(HANDLER_PATH, content)) == 1


def test_non_webhook_file_is_ignored():
    content = f"{BASE}\nconst obj = event.data.object"
    assert detect_unsafe_payload_access("src/lib/webhook.ts", content) == []


def test_classification_values():
    assert {c.value for c in Classification} == {
        "IN_USE",
        "SHOULD_BE_USED",
        "BROKEN",
        "OBSOLETE",
        "DUPLICATE",
        "missingField",
        "idempotency",
        "payloadAccess",
        "schemaMismatch",
        "notPersisted",
    }
