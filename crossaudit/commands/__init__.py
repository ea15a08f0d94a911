"""Click commands for the crossaudit CLI."""
