"""Base contracts shared by the detectors."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from crossaudit.utils.constants import DEFAULT_SNIPPET_CHARS
from crossaudit.utils.helpers import LineIndex, snippet_at


class Classification(Enum):
    """Finding classifications across detectors."""

    IN_USE = "IN_USE"
    SHOULD_BE_USED = "SHOULD_BE_USED"
    BROKEN = "BROKEN"
    OBSOLETE = "OBSOLETE"
    DUPLICATE = "DUPLICATE"
    MISSING_FIELD = "missingField"
    IDEMPOTENCY = "idempotency"
    PAYLOAD_ACCESS = "payloadAccess"
    SCHEMA_MISMATCH = "schemaMismatch"
    NOT_PERSISTED = "notPersisted"


class Severity(Enum):
    """Whether a finding can fail the gate."""

    BLOCKING = "blocking"
    INFO = "info"


@dataclass(frozen=True)
class Evidence:
    """One piece of supporting evidence for a finding."""

    type: str
    detail: str
    file: str
    line_number: int | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.type,
            "detail": self.detail,
            "file": self.file,
            "lineNumber": self.line_number,
        }


@dataclass
class Finding:
    """Standardized output from all detectors."""

    classification: Classification
    reason: str
    file: str
    line_numbers: list[int] = field(default_factory=list)
    evidence: list[Evidence] = field(default_factory=list)
    repo: str = ""
    rule: str = ""
    severity: Severity = Severity.BLOCKING
    snippet: str = ""
    recommended_fix: str | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        result = {
            "classification": self.classification.value,
            "reason": self.reason,
            "file": self.file,
            "repo": self.repo,
            "rule": self.rule,
            "severity": self.severity.value,
            "lineNumbers": sorted(self.line_numbers),
            "evidence": [e.to_dict() for e in self.evidence],
        }
        if self.snippet:
            result["snippet"] = self.snippet
        if self.recommended_fix:
            result["recommendedFix"] = self.recommended_fix
        if self.extra:
            result.update(self.extra)
        return result

    def sort_key(self) -> tuple:
        return (self.repo, self.file, min(self.line_numbers, default=0), self.classification.value)


@dataclass(frozen=True)
class FieldResolution:
    """Best-effort field set: exact (``Ok``) or a lower bound (``Partial``)."""

    fields: frozenset[str]
    partial: bool = False
    reason: str | None = None

    @classmethod
    def ok(cls, fields) -> "FieldResolution":
        return cls(fields=frozenset(fields))

    @classmethod
    def partial_of(cls, fields, reason: str) -> "FieldResolution":
        return cls(fields=frozenset(fields), partial=True, reason=reason)

    def union(self, other: "FieldResolution") -> "FieldResolution":
        return FieldResolution(
            fields=self.fields | other.fields,
            partial=self.partial or other.partial,
            reason=self.reason or other.reason,
        )


@dataclass
class RuleContext:
    """Everything a detector needs about one file."""

    file_path: str
    content: str
    repo: str = ""
    snippet_chars: int = DEFAULT_SNIPPET_CHARS
    _lines: LineIndex | None = field(default=None, repr=False)

    def line_for(self, index: int) -> int:
        if self._lines is None:
            self._lines = LineIndex(self.content)
        return self._lines.line_for(index)

    def snippet(self, index: int) -> str:
        return snippet_at(self.content, index, self.snippet_chars)
