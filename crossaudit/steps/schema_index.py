"""schema-index: report the merged content schema."""

from crossaudit.indexer.schema_index import SchemaIndex
from crossaudit.pipeline.structures import StepIntegrityError, StepResult, StepStatus
from crossaudit.steps import commands

NAME = "schema-index"
COMMANDS = commands("schema")


def empty_payload() -> dict:
    return SchemaIndex().to_dict()


def run(index: SchemaIndex) -> StepResult:
    if not index.files:
        return StepResult.skipped(NAME, "No schema files found", empty_payload())

    for schema_type in index.types:
        if not schema_type.required <= schema_type.fields:
            raise StepIntegrityError(
                f"Schema type '{schema_type.name}' has required fields outside its field set"
            )

    return StepResult(name=NAME, status=StepStatus.PASS, payload=index.to_dict())
