"""Pipeline steps. One module per step; each exposes NAME, COMMANDS,
``empty_payload()`` and a pure ``run(...)`` returning a StepResult."""

FULL_COMMANDS = frozenset({"run", "ci"})


def commands(*extra: str) -> frozenset[str]:
    """Command names that select a step: always ``run``/``ci`` plus ``extra``."""
    return FULL_COMMANDS | frozenset(extra)
