"""Centralized error handler for crossaudit commands."""

import traceback
from collections.abc import Callable
from datetime import datetime
from functools import wraps
from typing import Any

import click

from crossaudit.utils.logging import logger

from .constants import ERROR_LOG_NAME, STATE_DIR


def handle_exceptions(func: Callable[..., Any]) -> Callable[..., Any]:
    """Log any unexpected command failure and turn it into a ClickException.

    ``click.ClickException`` and ``SystemExit`` pass through untouched so
    usage errors and deliberate exit codes keep their meaning.
    """

    @wraps(func)
    def wrapper(*args: Any, **kwargs: Any) -> Any:
        try:
            return func(*args, **kwargs)
        except click.ClickException:
            raise
        except Exception as e:
            STATE_DIR.mkdir(parents=True, exist_ok=True)

            error_log_path = STATE_DIR / ERROR_LOG_NAME
            error_type = type(e).__name__
            error_msg = str(e)
            tb = traceback.format_exc()

            logger.opt(exception=True).error(
                "Command '{cmd}' failed: {err}",
                cmd=func.__name__,
                err=error_msg,
            )

            with open(error_log_path, "a", encoding="utf-8") as f:
                f.write("\n" + "=" * 80 + "\n")
                f.write(f"[{datetime.now().isoformat()}] Error in command: {func.__name__}\n")
                f.write("=" * 80 + "\n")
                f.write(f"{error_type}: {error_msg}\n\n")
                f.write(tb)
                f.write("=" * 80 + "\n\n")

            user_message = (
                f"{error_type}: {error_msg}\n\n"
                f"Full traceback logged to: {error_log_path}"
            )

            raise click.ClickException(user_message) from e

    return wrapper
