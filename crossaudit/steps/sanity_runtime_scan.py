"""sanity-runtime-scan: compare sampled live documents with the schema.

Read-only. Missing credentials or any network failure is a skip, never a
failure of the run.
"""

from collections.abc import Callable

from crossaudit.indexer.schema_index import SchemaIndex
from crossaudit.pipeline.structures import StepResult, StepStatus
from crossaudit.sanity_client import RuntimeSample, SampleUnavailable, SanityClient, SanityCredentials
from crossaudit.steps import commands
from crossaudit.utils.logging import logger

NAME = "sanity-runtime-scan"
COMMANDS = commands("schema")

SYSTEM_FIELDS = frozenset({"_id", "_type", "_rev", "_key", "_createdAt", "_updatedAt", "_originalId"})


def empty_payload() -> dict:
    return {"types": {}, "counts": {"typesSampled": 0, "documents": 0}}


def collect_sample(
    schema: SchemaIndex,
    credentials: SanityCredentials | None,
    missing_credentials: list[str],
    sample_size: int,
    client_factory: Callable[[SanityCredentials], SanityClient],
) -> RuntimeSample:
    if credentials is None:
        return RuntimeSample.unavailable(
            "Missing document store credentials: " + ", ".join(missing_credentials)
        )
    documents = schema.documents()
    if not documents:
        return RuntimeSample.unavailable("No document types in schema index to sample")

    client = client_factory(credentials)
    sampled = {}
    try:
        for schema_type in documents:
            sampled[schema_type.name] = tuple(client.sample_documents(schema_type.name, sample_size))
    except SampleUnavailable as e:
        logger.warning(f"Runtime sampling unavailable: {e}")
        return RuntimeSample.unavailable(str(e))
    return RuntimeSample(documents=sampled)


def run(schema: SchemaIndex, sample: RuntimeSample) -> StepResult:
    if not sample.available:
        return StepResult.skipped(NAME, sample.reason, empty_payload())

    types = {}
    drift = False
    for type_name, docs in sorted(sample.documents.items()):
        schema_type = schema.get(type_name)
        declared = schema_type.fields if schema_type else frozenset()
        seen = set()
        for doc in docs:
            seen.update(k for k in doc if k not in SYSTEM_FIELDS)
        not_in_schema = sorted(seen - declared)
        never_seen = sorted(declared - seen) if docs else []
        drift = drift or bool(not_in_schema)
        types[type_name] = {
            "sampled": len(docs),
            "fieldsSeen": sorted(seen),
            "fieldsNotInSchema": not_in_schema,
            "schemaFieldsNeverSeen": never_seen,
        }

    payload = {
        "types": types,
        "counts": {
            "typesSampled": len(types),
            "documents": sum(t["sampled"] for t in types.values()),
        },
    }
    return StepResult(
        name=NAME,
        status=StepStatus.WARN if drift else StepStatus.PASS,
        payload=payload,
    )
