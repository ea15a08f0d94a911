"""Centralized exit codes for the crossaudit CLI."""


class ExitCodes:
    """Standard exit codes for crossaudit CLI commands."""

    SUCCESS = 0

    VERDICT_FAIL = 1

    USAGE_ERROR = 2

    INTEGRITY_ERROR = 3

    @classmethod
    def get_description(cls, code: int) -> str:
        """Get human-readable description for an exit code."""
        descriptions = {
            cls.SUCCESS: "Success - gate passed",
            cls.VERDICT_FAIL: "CI verdict FAIL - enforced violations detected",
            cls.USAGE_ERROR: "Invalid subcommand or option",
            cls.INTEGRITY_ERROR: "A pipeline step raised an error - results are partial",
        }
        return descriptions.get(code, f"Unknown exit code: {code}")

    @classmethod
    def should_fail_pipeline(cls, code: int) -> bool:
        """Determine if an exit code should fail a CI/CD pipeline."""
        return code != cls.SUCCESS
