"""integrations-inventory: provider usage and env key references."""

from crossaudit.indexer.integrations import IntegrationsInventory
from crossaudit.pipeline.structures import StepResult, StepStatus
from crossaudit.steps import commands

NAME = "integrations-inventory"
COMMANDS = commands("env")


def empty_payload() -> dict:
    return IntegrationsInventory().to_dict()


def run(inventory: IntegrationsInventory, scanned_files: int) -> StepResult:
    if scanned_files == 0:
        return StepResult.skipped(NAME, "No code files found", empty_payload())
    return StepResult(name=NAME, status=StepStatus.PASS, payload=inventory.to_dict())
