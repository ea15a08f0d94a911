"""Data contracts for pipeline execution."""

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any

from crossaudit.utils.helpers import utc_now_iso


class AuditError(Exception):
    """Base class for errors raised by crossaudit itself."""


class ConfigurationError(AuditError):
    """Bad config file, repository spec or enforcement phase."""


class StepIntegrityError(AuditError):
    """A step produced output that contradicts its own contract."""


class StepStatus(Enum):
    """Status of a pipeline step."""

    PASS = "PASS"
    WARN = "WARN"
    FAIL = "FAIL"
    SKIPPED = "SKIPPED"


@dataclass(frozen=True)
class StepResult:
    """Result of a single pipeline step.

    Frozen: once a step returns, its result is only ever copied (for example
    to stamp ``enforcement_approved``), never modified in place.
    """

    name: str
    status: StepStatus
    payload: dict[str, Any] = field(default_factory=dict)
    requires_enforcement: bool = False
    enforcement_approved: bool = False
    phase: str = "BLOCK"
    reason: str | None = None
    error: str | None = None
    generated_at: str = field(default_factory=utc_now_iso)

    def to_dict(self) -> dict[str, Any]:
        """Convert to JSON-serializable dictionary."""
        d = {
            "step": self.name,
            "status": self.status.value,
            "requiresEnforcement": self.requires_enforcement,
            "enforcementApproved": self.enforcement_approved,
            "phase": self.phase,
            "generatedAt": self.generated_at,
            "payload": self.payload,
        }
        if self.reason is not None:
            d["reason"] = self.reason
        if self.error is not None:
            d["error"] = self.error
        return d

    @property
    def threw(self) -> bool:
        """True if the step raised instead of returning."""
        return self.error is not None

    @classmethod
    def skipped(cls, name: str, reason: str, payload: dict[str, Any] | None = None) -> "StepResult":
        return cls(name=name, status=StepStatus.SKIPPED, payload=payload or {}, reason=reason)

    @classmethod
    def failed(cls, name: str, error: str, payload: dict[str, Any] | None = None) -> "StepResult":
        return cls(name=name, status=StepStatus.FAIL, payload=payload or {}, error=error)


@dataclass(frozen=True)
class Verdict:
    """Gate decision derived from the collected step results."""

    status: str
    reasons: tuple[str, ...] = ()
    phased_enforcement: dict[str, str] = field(default_factory=dict)
    integrity_errors: tuple[str, ...] = ()
    generated_at: str = field(default_factory=utc_now_iso)

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": self.status,
            "reasons": list(self.reasons),
            "phasedEnforcement": dict(self.phased_enforcement),
            "integrityErrors": list(self.integrity_errors),
            "generatedAt": self.generated_at,
        }

    @property
    def passed(self) -> bool:
        return self.status == "PASS"


@dataclass(frozen=True)
class AuditContext:
    """Configuration that flows through one pipeline run."""

    root: Path
    command: str
    config: dict[str, Any]
    repos: tuple = ()
    run_dir: Path | None = None
    quiet: bool = False
