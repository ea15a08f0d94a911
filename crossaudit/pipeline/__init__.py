"""Pipeline execution infrastructure."""
from .structures import AuditContext, StepResult, StepStatus, Verdict
from .ui import console, print_header, print_status_panel, print_warning

__all__ = [
    "AuditContext", "StepResult", "StepStatus", "Verdict",
    "console", "print_header", "print_status_panel", "print_warning",
]
