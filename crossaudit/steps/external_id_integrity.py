"""external-id-integrity: provider id fields in the schema and their live values."""

import re
from typing import Any

from crossaudit.indexer.schema_index import SchemaIndex
from crossaudit.pipeline.structures import StepResult, StepStatus
from crossaudit.sanity_client import RuntimeSample
from crossaudit.steps import commands

NAME = "external-id-integrity"
COMMANDS = commands()

PROVIDER_PREFIXES = (
    "stripe", "easypost", "easyPost", "resend", "shippo", "shipengine", "shipEngine",
    "shopify", "calcom", "paymentIntent", "checkoutSession", "charge", "customer",
    "subscription", "invoice", "tracking", "label", "rate", "message",
)
ID_FIELD = re.compile(
    r"^(?:" + "|".join(PROVIDER_PREFIXES) + r")\w*(?:Id|ID|_id)$|ExternalId$|_external_id$",
)


def is_external_id_field(name: str) -> bool:
    return bool(ID_FIELD.search(name))


def empty_payload() -> dict:
    return {"idFields": [], "duplicates": {}, "nullRates": {}, "runtime": {"sampled": False}}


def id_fields(schema: SchemaIndex) -> list[dict[str, Any]]:
    found = []
    for schema_type in schema.types:
        for name in sorted(schema_type.fields):
            if is_external_id_field(name):
                found.append(
                    {
                        "type": schema_type.name,
                        "field": name,
                        "required": name in schema_type.required,
                    }
                )
    return found


def run(schema: SchemaIndex, sample: RuntimeSample) -> StepResult:
    fields = id_fields(schema)
    if not schema.types:
        return StepResult.skipped(NAME, "No schema types indexed", empty_payload())

    duplicates: dict[str, dict[str, int]] = {}
    null_rates: dict[str, float] = {}
    if sample.available:
        for entry in fields:
            docs = sample.documents.get(entry["type"])
            if not docs:
                continue
            key = f"{entry['type']}.{entry['field']}"
            counts: dict[str, int] = {}
            missing = 0
            for doc in docs:
                value = doc.get(entry["field"])
                if value in (None, ""):
                    missing += 1
                    continue
                counts[str(value)] = counts.get(str(value), 0) + 1
            repeated = {value: n for value, n in sorted(counts.items()) if n > 1}
            if repeated:
                duplicates[key] = repeated
            null_rates[key] = round(missing / len(docs), 4)

    payload = {
        "idFields": fields,
        "duplicates": duplicates,
        "nullRates": dict(sorted(null_rates.items())),
        "runtime": {"sampled": sample.available, "reason": sample.reason},
    }
    return StepResult(
        name=NAME,
        status=StepStatus.WARN if duplicates else StepStatus.PASS,
        payload=payload,
        requires_enforcement=bool(duplicates),
    )
