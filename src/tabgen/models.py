"""Canonical Pydantic models shared across all tabgen modules.

The models fall into three groups:

**Registry models** -- the shape of one configured tool:
    :class:`ToolSpec` (the record form a user writes) and
    :class:`RegistryEntry` (the canonical form the runner consumes).

**Run models** -- produced by :mod:`tabgen.runner` and discarded at the end
of an invocation:
    :class:`RunStatus`, :class:`RunResult`, and :class:`RunSummary`.

**Configuration models** -- serialised as JSON in the user's config
directory:
    :class:`GlobalConfig`.

All models use Pydantic v2.
"""

from __future__ import annotations

import enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from tabgen.exit_codes import (
    EXIT_CANCELLED,
    EXIT_GENERATION_FAILURE,
    EXIT_SUCCESS,
)


# --- Registry ---


class ToolSpec(BaseModel):
    """The record form of a registry value.

    A registry value is either a bare generation-command string or a
    mapping with the fields below. External names follow the registry file
    format (``check``, ``command``, ``env``, ``skipCheck``); ``skip_check``
    is accepted as well.

    Example::

        ToolSpec.model_validate({
            "check": "rustup",
            "command": "rustup completions powershell cargo",
            "env": {"RUSTUP_TOOLCHAIN": "stable"},
        })
    """

    model_config = ConfigDict(extra="forbid", populate_by_name=True, strict=True)

    check: Optional[str] = Field(
        default=None, description="Command whose presence on PATH is tested"
    )
    command: Optional[str] = Field(
        default=None, description="Shell command printing the completion script"
    )
    env: dict[str, str] = Field(
        default_factory=dict,
        description="Environment overrides applied while the command runs",
    )
    skip_check: bool = Field(
        default=False,
        alias="skipCheck",
        description="Bypass the PATH check unconditionally",
    )


class RegistryEntry(BaseModel):
    """A fully resolved registry entry with every field populated.

    Built by :func:`tabgen.registry.resolve_entry`; never mutated afterwards.
    """

    model_config = ConfigDict(frozen=True)

    name: str
    check_command: str
    generate_command: str
    env_overrides: dict[str, str] = Field(default_factory=dict)
    skip_check: bool = False

    @field_validator("name")
    @classmethod
    def _name_is_file_safe(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("tool name must not be empty")
        if value in (".", "..") or "/" in value or "\\" in value:
            raise ValueError(f"tool name {value!r} cannot be used as a file name")
        return value

    @field_validator("generate_command")
    @classmethod
    def _command_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("generation command must not be empty")
        return value

    @field_validator("env_overrides")
    @classmethod
    def _env_keys_valid(cls, value: dict[str, str]) -> dict[str, str]:
        for key in value:
            if not key or "=" in key:
                raise ValueError(f"invalid environment variable name {key!r}")
        return value


# --- Run results ---


class RunStatus(str, enum.Enum):
    """Terminal state of one registry entry within a run."""

    GENERATED = "generated"
    SKIPPED_NOT_FOUND = "skipped_not_found"
    SKIPPED_EXISTS = "skipped_exists"
    FAILED = "failed"


class RunResult(BaseModel):
    """Outcome of processing a single registry entry.

    ``error`` and ``error_type`` are set only when ``status`` is
    :attr:`RunStatus.FAILED`.
    """

    name: str
    status: RunStatus
    path: Optional[str] = None
    error: Optional[str] = None
    error_type: Optional[str] = None


class RunSummary(BaseModel):
    """All results of one invocation, in registry order."""

    results: list[RunResult] = Field(default_factory=list)
    cancelled: bool = False

    def count(self, status: RunStatus) -> int:
        """Return how many entries ended in *status*."""
        return sum(1 for r in self.results if r.status == status)

    def counts(self) -> dict[str, int]:
        """Return a ``{status value: count}`` mapping covering every status."""
        return {status.value: self.count(status) for status in RunStatus}

    @property
    def has_failures(self) -> bool:
        return any(r.status == RunStatus.FAILED for r in self.results)

    @property
    def exit_code(self) -> int:
        """Process exit status for this run.

        Cancellation wins over failures; any failed entry yields
        :data:`~tabgen.exit_codes.EXIT_GENERATION_FAILURE`.
        """
        if self.cancelled:
            return EXIT_CANCELLED
        if self.has_failures:
            return EXIT_GENERATION_FAILURE
        return EXIT_SUCCESS


# --- Global config ---


class GlobalConfig(BaseModel):
    """User configuration stored as ``config.json`` in the config directory.

    Example::

        {
          "completions_dir": null,
          "registry_file": "~/dotfiles/tabgen.yaml",
          "timeout_seconds": 60,
          "disabled": ["docker"]
        }
    """

    completions_dir: Optional[str] = Field(
        default=None, description="Override for the completions root directory"
    )
    registry_file: Optional[str] = Field(
        default=None, description="User registry file (JSON or YAML)"
    )
    timeout_seconds: Optional[float] = Field(
        default=120.0,
        ge=0,
        description="Per-command timeout in seconds; null or 0 disables it",
    )
    disabled: list[str] = Field(
        default_factory=list, description="Tool names excluded from runs"
    )
