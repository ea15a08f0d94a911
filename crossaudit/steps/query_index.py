"""query-index: report embedded queries and field usage."""

from crossaudit.indexer.query_index import QueryIndex
from crossaudit.pipeline.structures import StepResult, StepStatus
from crossaudit.steps import commands

NAME = "query-index"
COMMANDS = commands("schema")


def empty_payload() -> dict:
    return QueryIndex().to_dict()


def run(index: QueryIndex, scanned_files: int) -> StepResult:
    if scanned_files == 0:
        return StepResult.skipped(NAME, "No code files found", empty_payload())

    # parse errors are data, not a gate condition
    status = StepStatus.WARN if index.parse_errors() else StepStatus.PASS
    return StepResult(name=NAME, status=status, payload=index.to_dict())
