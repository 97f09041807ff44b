"""Exception hierarchy for tabgen.

All exceptions inherit from :class:`TabgenError`, which carries an
``exit_code`` attribute mapped to a constant from :mod:`tabgen.exit_codes`.

Per-entry errors (:class:`ConfigurationError`, :class:`GenerationError`,
:class:`WriteError`) are caught by the run orchestrator and recorded as a
``failed`` result for that entry only. Errors raised outside a run reach
:func:`tabgen.app.main`, which prints them and exits with their code.

Subclass hierarchy::

    TabgenError (exit 1)
    +-- InvalidUsageError    (exit 2)
    +-- ConfigError          (exit 1)
    +-- ConfigurationError   (exit 1)
    +-- GenerationError      (exit 3)
    +-- WriteError           (exit 3)
"""

from __future__ import annotations

from typing import Optional

from tabgen.exit_codes import (
    EXIT_GENERATION_FAILURE,
    EXIT_GENERIC_FAILURE,
    EXIT_INVALID_USAGE,
)


class TabgenError(Exception):
    """Base exception for all tabgen errors.

    Args:
        message: Human-readable error description printed to stderr.
        exit_code: Optional override for the class-level exit code.
    """

    exit_code: int = EXIT_GENERIC_FAILURE

    def __init__(self, message: str, exit_code: int | None = None):
        super().__init__(message)
        if exit_code is not None:
            self.exit_code = exit_code


class InvalidUsageError(TabgenError):
    """Raised for invalid CLI arguments (e.g. an unknown ``--tool`` name)."""

    exit_code = EXIT_INVALID_USAGE


class ConfigError(TabgenError):
    """Raised for configuration problems (invalid JSON, unreadable registry file)."""

    exit_code = EXIT_GENERIC_FAILURE


class ConfigurationError(TabgenError):
    """Raised when a single registry entry is malformed.

    Detected at resolution time; aborts only the offending entry.
    """

    exit_code = EXIT_GENERIC_FAILURE


class GenerationError(TabgenError):
    """Raised when a tool's completion-generation command fails.

    Covers a nonzero exit status, a timeout, a process that could not be
    started, and a process that succeeded but printed nothing.

    Args:
        command: The shell command line that was run.
        returncode: The process exit status, or ``None`` when the process
            never produced one (timeout, spawn failure, empty output).
        stderr: Captured diagnostic text from the process.
        reason: Short description used when there is no exit status.
    """

    exit_code = EXIT_GENERATION_FAILURE

    def __init__(
        self,
        command: str,
        returncode: Optional[int] = None,
        stderr: str = "",
        reason: Optional[str] = None,
    ):
        self.command = command
        self.returncode = returncode
        self.stderr = stderr
        if reason is None:
            reason = f"exited with status {returncode}"
        message = f"`{command}` {reason}"
        detail = stderr.strip()
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)


class WriteError(TabgenError):
    """Raised when a completion script cannot be written to its destination."""

    exit_code = EXIT_GENERATION_FAILURE

    def __init__(self, path: str, message: str):
        self.path = path
        super().__init__(f"Cannot write {path}: {message}")
