"""Central UI handler for crossaudit.

Single source of truth for Rich console styling. Import this instead of
instantiating Console() in every command file.

Usage:
    from crossaudit.pipeline.ui import console, print_header, print_warning

    console.print("[success]Gate passed[/success]")
    print_header("AUDIT RESULTS")
    print_warning("Repository shop is not usable: MISSING_PATH")
"""

import sys

from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.text import Text
from rich.theme import Theme

CROSSAUDIT_THEME = Theme({
    "info": "bold cyan",
    "warning": "bold yellow",
    "error": "bold red",
    "success": "bold green",
    "skipped": "dim white",
    "cmd": "bold magenta",
    "path": "bold cyan",
    "dim": "dim white",
})

# Single console instance - import this, don't create your own
console = Console(
    theme=CROSSAUDIT_THEME,
    force_terminal=sys.stdout.isatty()
)

STATUS_STYLES = {
    "PASS": "success",
    "WARN": "warning",
    "FAIL": "error",
    "SKIPPED": "skipped",
}


def print_header(title: str) -> None:
    """Print a styled section header with horizontal rules."""
    console.rule(f"[bold]{title}[/bold]")


def print_warning(msg: str) -> None:
    """Print a warning message in yellow."""
    console.print(f"[warning]WARNING:[/warning] {msg}")


def print_status_panel(
    status: str,
    message: str,
    detail: str,
    level: str = "info"
) -> None:
    """Print a status panel with colored border.

    Args:
        status: Status label (e.g., "PASS", "FAIL")
        message: Main message line
        detail: Additional detail line
        level: One of "error", "warning", "success", "info"
    """
    style_map = {
        "error": ("bold red", "red"),
        "warning": ("bold yellow", "yellow"),
        "success": ("bold green", "green"),
        "info": ("bold cyan", "cyan"),
    }
    text_style, border_style = style_map.get(level, ("white", "white"))

    panel = Panel(
        Text.assemble(
            (f"STATUS: [{status}]\n", text_style),
            (f"{message}\n", border_style),
            (detail, border_style)
        ),
        border_style=border_style,
        expand=False
    )
    console.print(panel)


def render_step_table(results) -> Table:
    """Per-step status table; ``results`` maps step name to StepResult."""
    table = Table(title="Pipeline steps", show_lines=False)
    table.add_column("Step", style="bold")
    table.add_column("Status")
    table.add_column("Enforce", justify="center")
    table.add_column("Phase", justify="center")
    table.add_column("Note", style="dim", overflow="fold")

    for name, result in sorted(results.items()):
        status = result.status.value
        style = STATUS_STYLES.get(status, "info")
        table.add_row(
            name,
            f"[{style}]{status}[/{style}]",
            "yes" if result.requires_enforcement else "-",
            result.phase,
            result.error or result.reason or "",
        )
    return table


def print_run_report(results, verdict, run_dir) -> None:
    """Step table followed by the verdict panel."""
    console.print(render_step_table(results))
    console.print()

    if verdict.integrity_errors:
        print_status_panel(
            "INTEGRITY ERROR",
            f"{len(verdict.integrity_errors)} step(s) raised - results are partial.",
            "; ".join(verdict.integrity_errors),
            level="error",
        )
    elif verdict.passed:
        print_status_panel(
            "PASS",
            "No enforced violations.",
            f"Artifacts: {run_dir}",
            level="success",
        )
    else:
        print_status_panel(
            "FAIL",
            f"{len(verdict.reasons)} enforced violation(s).",
            "\n".join(verdict.reasons),
            level="error",
        )
    console.print(f"\nReview the artifacts in [path]{run_dir}[/path]")
